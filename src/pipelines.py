"""
Railway-oriented execution of operation pipelines.

A pipeline is an ordered list of :class:`PipelineStep` objects, each naming a
registered operation and its string arguments. `run_pipeline` resolves every
name against the operation registry, then threads the state store through the
operations as a chain of ``returns`` containers: each operation either keeps
the store on the success track or switches it to the failure track, after
which no further operation runs.

The runner hands the store returned by one step to the next and keeps no other
reference to it. On failure the store is left as the failing operation left
it; nothing is rolled back.

:examples
--------
>>> store = run_pipeline(
...     StateStore(image_arrays=[image_array]),
...     [
...         PipelineStep("ThresholdImages", {"Lower": "0", "Low": "0"}),
...         PipelineStep("ComputeImageStatistics"),
...     ],
... )
"""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from loguru import logger
from returns.pipeline import flow
from returns.pointfree import bind
from returns.result import Failure, ResultE, Success

from container_models import StateStore
from exceptions import PipelineError, UnknownOperationError
from operations import RegisteredOperation, get_operation_registry
from utils.logger import log_railway_function


@dataclass(frozen=True)
class PipelineStep:
    """One invocation of a named operation."""

    name: str
    arguments: Mapping[str, str] = field(default_factory=dict)


def _step_failure(index: int, step: PipelineStep, error: Exception) -> PipelineError:
    failure = PipelineError(index, step.name, str(error))
    failure.__cause__ = error
    return failure


def _resolve(steps: Sequence[PipelineStep]) -> list[RegisteredOperation]:
    registry = get_operation_registry()
    resolved = []
    for index, step in enumerate(steps):
        try:
            resolved.append(registry.get(step.name))
        except UnknownOperationError as error:
            raise _step_failure(index, step, error) from error
    return resolved


def _stage(
    index: int,
    step: PipelineStep,
    operation: RegisteredOperation,
    invocation_metadata: Mapping[str, str],
    locale: str,
) -> Callable[[StateStore], ResultE[StateStore]]:
    @log_railway_function(
        f"Step {index} ({step.name}) failed",
        success_message=f"Step {index} ({step.name}) completed",
    )
    def stage(store: StateStore) -> ResultE[StateStore]:
        return operation.run(store, step.arguments, invocation_metadata, locale).alt(
            lambda error: _step_failure(index, step, error)
        )

    return stage


def run_pipeline(
    store: StateStore,
    steps: Sequence[PipelineStep],
    invocation_metadata: Mapping[str, str] | None = None,
    locale: str = "",
) -> StateStore:
    """
    Run operations on a state store in order, stopping at the first failure.

    :param store: The initial state. Ownership passes to the pipeline.
    :param steps: The operations to run, in order.
    :param invocation_metadata: Passed unchanged to every operation.
    :param locale: Passed unchanged to every operation.
    :returns: The store returned by the last operation.
    :raises PipelineError: If a step names an unknown operation (before anything
        runs) or an operation fails. The operation's error is the cause.
    """
    resolved = _resolve(steps)
    invocation_metadata = dict(invocation_metadata or {})
    logger.info(f"Running pipeline of {len(steps)} step(s)")

    result = flow(
        Success(store),
        *(
            bind(_stage(index, step, operation, invocation_metadata, locale))
            for index, (step, operation) in enumerate(zip(steps, resolved))
        ),
    )
    match result:
        case Success(value):
            return value
        case Failure(error):
            raise error
    raise TypeError(f"Pipeline produced {result!r}")
