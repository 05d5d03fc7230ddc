"""
Parallel dispatch of per-image functions.

See :mod:`compute.engine` for the three execution contracts and
:mod:`compute.regions` for how contour collections restrict them.
"""

from .engine import ComputeEngine
from .regions import region_mask
from .types import ComputeFunction, Merge, ProcessFunction, TaskContext


__all__ = [
    "ComputeEngine",
    "ComputeFunction",
    "Merge",
    "ProcessFunction",
    "TaskContext",
    "region_mask",
]
