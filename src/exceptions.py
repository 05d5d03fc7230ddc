"""Error taxonomy shared by the selector, the compute engine, the comparator and the pipeline."""

from collections.abc import Mapping


class VoxelPipeError(Exception):
    """Base class for all errors raised by voxelpipe."""


class SelectorSyntaxError(VoxelPipeError, ValueError):
    """Raised when a selection expression or one of its patterns cannot be parsed."""

    def __init__(self, expression: str, reason: str) -> None:
        self.expression = expression
        super().__init__(f"Invalid selection expression '{expression}': {reason}")


class EmptySelectionError(VoxelPipeError):
    """Raised when a selection that must yield at least one entity yields none."""

    def __init__(self, expression: str) -> None:
        self.expression = expression
        super().__init__(f"Selection '{expression}' did not select anything")


class ChannelOutOfRangeError(VoxelPipeError, IndexError):
    """Raised when an operation addresses a channel an image does not have."""

    def __init__(self, channel: int, channels: int) -> None:
        self.channel = channel
        self.channels = channels
        super().__init__(
            f"Channel {channel} is out of range for an image with {channels} channel(s)"
        )


class NonRectilinearGridError(VoxelPipeError):
    """Raised when a reference image array does not form a rectilinear grid."""


class ComputeTaskFailure(VoxelPipeError):
    """
    Aggregate failure of a compute engine call.

    Mutations committed by the tasks that succeeded are kept.

    :param failures: Mapping of image index to the exception its task raised.
    """

    def __init__(self, failures: Mapping[int, BaseException]) -> None:
        self.failures = dict(sorted(failures.items()))
        details = "; ".join(
            f"image {index}: {type(error).__name__}: {error}"
            for index, error in self.failures.items()
        )
        super().__init__(f"{len(self.failures)} task(s) failed ({details})")


class ArgumentError(VoxelPipeError, ValueError):
    """Raised when the arguments of an operation fail validation."""

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        super().__init__(f"Invalid arguments for operation '{operation}': {reason}")


class OperationAlreadyRegisteredError(VoxelPipeError):
    """Raised when attempting to register an operation with a name that already exists."""

    def __init__(self, operation_name: str) -> None:
        self.operation_name = operation_name
        super().__init__(
            f"Operation '{operation_name}' is already registered. "
            f"Use a different name or unregister the existing one first."
        )


class UnknownOperationError(VoxelPipeError, KeyError):
    """Raised when a pipeline refers to an operation that is not registered."""

    def __init__(self, operation_name: str) -> None:
        self.operation_name = operation_name
        super().__init__(f"Operation '{operation_name}' is not registered")

    def __str__(self) -> str:
        return str(self.args[0])


class PipelineError(VoxelPipeError):
    """Raised by the pipeline runner when a step fails. The step's error is chained as the cause."""

    def __init__(self, step_index: int, step_name: str, message: str) -> None:
        self.step_index = step_index
        self.step_name = step_name
        super().__init__(f"Step {step_index} ({step_name}) failed: {message}")
