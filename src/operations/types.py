"""Type definitions for the operation registry."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import astuple, dataclass
from typing import Any, Protocol, runtime_checkable

from loguru import logger
from pydantic import BaseModel, ValidationError
from returns.result import Failure, ResultE, Success, safe

from container_models import StateStore
from exceptions import ArgumentError

type Arguments = Mapping[str, str]
type InvocationMetadata = Mapping[str, str]


def unwrap_or_raise[T](result: ResultE[T]) -> T:
    """Return the value of a successful result, or raise the error a failed one carries."""
    match result:
        case Success(value):
            return value
        case Failure(error):
            raise error
    raise TypeError(f"Expected a Result container, got {result!r}")


@runtime_checkable
class OperationProtocol(Protocol):
    """
    Signature of an operation implementation.

    The implementation receives the store, its validated arguments (a pydantic
    model, or the raw mapping when the operation declares no model), the
    invocation metadata and the locale, and returns the store.
    """

    def __call__(
        self,
        store: StateStore,
        arguments: Any,
        invocation_metadata: InvocationMetadata,
        locale: str,
    ) -> StateStore: ...


@dataclass(frozen=True)
class OperationMetadata:
    """Immutable metadata container for registered operations.

    :param name: Unique identifier for the operation, as used in pipelines.
    :param description: Human-readable description (from docstring or explicit).
    """

    name: str
    description: str

    def __post_init__(self) -> None:
        labels = ("name", "description")
        if fields := ", ".join(label for label, value in zip(labels, astuple(self)) if not value):
            raise ValueError(f"Operation {fields} cannot be empty")


@dataclass(frozen=True)
class RegisteredOperation:
    """
    An operation implementation bundled with its metadata and arguments model.

    Calling it follows the operation contract
    ``(store, arguments, invocation_metadata, locale) -> store``.
    """

    func: OperationProtocol
    metadata: OperationMetadata
    arguments_model: type[BaseModel] | None = None

    @property
    def name(self) -> str:
        return self.metadata.name

    def parse_arguments(self, arguments: Arguments) -> Any:
        """Validate raw string arguments. :raises ArgumentError: On invalid arguments."""
        if self.arguments_model is None:
            return dict(arguments)
        try:
            return self.arguments_model.model_validate(dict(arguments))
        except ValidationError as error:
            raise ArgumentError(self.name, str(error)) from error

    def __call__(
        self,
        store: StateStore,
        arguments: Arguments | None = None,
        invocation_metadata: InvocationMetadata | None = None,
        locale: str = "",
    ) -> StateStore:
        parsed = self.parse_arguments(arguments or {})
        logger.debug(f"Running {self.name} with {parsed!r}")
        return self.func(store, parsed, invocation_metadata or {}, locale)

    @safe
    def run(
        self,
        store: StateStore,
        arguments: Arguments | None = None,
        invocation_metadata: InvocationMetadata | None = None,
        locale: str = "",
    ) -> StateStore:
        """Railway variant of `__call__`: failures are returned, not raised."""
        return self(store, arguments, invocation_metadata, locale)

    def describe(self) -> dict[str, Any]:
        """Name, description and the JSON schema of the arguments."""
        return {
            "name": self.name,
            "description": self.metadata.description,
            "arguments": (
                self.arguments_model.model_json_schema(by_alias=True)
                if self.arguments_model
                else {}
            ),
        }
