"""
Named operations applied to a state store by the pipeline runner.

Importing this package registers every operation below with the global
registry (see :func:`get_operation_registry`).
"""

from . import compare, lifecycle, metadata, statistics, threshold
from .registry import get_operation_registry
from .types import OperationMetadata, RegisteredOperation, unwrap_or_raise


__all__ = [
    "OperationMetadata",
    "RegisteredOperation",
    "compare",
    "get_operation_registry",
    "lifecycle",
    "metadata",
    "statistics",
    "threshold",
    "unwrap_or_raise",
]
