"""Global operation registry and registration decorator."""

from __future__ import annotations

from collections.abc import Callable
from typing import overload

from loguru import logger
from pydantic import BaseModel

from exceptions import OperationAlreadyRegisteredError, UnknownOperationError
from operations.types import OperationMetadata, OperationProtocol, RegisteredOperation

type WrapRegisterOperation = Callable[[OperationProtocol], RegisteredOperation]


class _OperationRegistry:
    """Global singleton registry of named operations.

    Pipelines refer to operations by name only; this registry resolves those
    names to implementations and their argument models.

    Example:
        >>> registry = get_operation_registry()
        >>> @registry.register(name="InvertImages", arguments=InvertArguments)
        ... def invert_images(store, arguments, invocation_metadata, locale):
        ...     '''Negate every pixel of the selected image arrays.'''
        ...     return store
    """

    _instance: _OperationRegistry | None = None
    _operations: dict[str, RegisteredOperation]

    def __new__(cls) -> _OperationRegistry:
        """Implement singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._operations = {}
        return cls._instance

    @overload
    def register(self, function: OperationProtocol) -> RegisteredOperation: ...

    @overload
    def register(
        self,
        function: None = None,
        *,
        name: str | None = None,
        description: str | None = None,
        arguments: type[BaseModel] | None = None,
    ) -> WrapRegisterOperation: ...

    def register(
        self,
        function: OperationProtocol | None = None,
        *,
        name: str | None = None,
        description: str | None = None,
        arguments: type[BaseModel] | None = None,
    ) -> RegisteredOperation | WrapRegisterOperation:
        """Register an operation with the global registry.

        Can be used as a decorator with or without arguments:

            @registry.register
            def my_operation(store, arguments, invocation_metadata, locale): ...

            @registry.register(name="MyOperation", arguments=MyArguments)
            def my_operation(store, arguments, invocation_metadata, locale): ...

        :param function: The operation implementation to register
        :param name: Override the operation name (defaults to function name)
        :param description: Override description (defaults to docstring)
        :param arguments: Pydantic model validating the operation's string arguments
        :returns: RegisteredOperation wrapping the function
        :raises OperationAlreadyRegisteredError: If name already registered
        """

        def decorator(func: OperationProtocol) -> RegisteredOperation:
            operation_name = name or func.__name__  # type: ignore[attr-defined]

            if operation_name in self._operations:
                raise OperationAlreadyRegisteredError(operation_name)

            metadata = OperationMetadata(
                name=operation_name,
                description=description or (func.__doc__ or "").strip().split("\n")[0],
            )
            registered = RegisteredOperation(
                func=func, metadata=metadata, arguments_model=arguments
            )
            self._operations[operation_name] = registered
            logger.debug(f"Registered operation '{operation_name}'")
            return registered

        if function is not None:
            return decorator(function)
        return decorator

    def unregister(self, name: str) -> RegisteredOperation:
        """Remove an operation. :raises UnknownOperationError: If name is not registered."""
        if name not in self._operations:
            raise UnknownOperationError(name)
        return self._operations.pop(name)

    def get(self, name: str) -> RegisteredOperation:
        """Look up an operation by name.

        :raises UnknownOperationError: If name is not registered
        """
        try:
            return self._operations[name]
        except KeyError:
            raise UnknownOperationError(name) from None

    def list_operations(self) -> list[OperationMetadata]:
        """List all registered operations.

        :returns: List of operation metadata, in registration order
        """
        return [operation.metadata for operation in self._operations.values()]

    def __contains__(self, value: str | RegisteredOperation) -> bool:
        if isinstance(value, RegisteredOperation):
            value = value.name
        return value in self._operations

    def __len__(self) -> int:
        return len(self._operations)


def get_operation_registry() -> _OperationRegistry:
    """Get the global operation registry instance."""
    return _OperationRegistry()
