"""
Voxel-wise spatial comparison: discrepancy, distance-to-agreement and gamma index.
"""

from .comparator import SpatialComparator
from .grid import GridAlignment, RectilinearGrid
from .parameters import (
    GAMMA_ABOVE_ONE,
    ComparisonMethod,
    ComparisonParameters,
    DiscrepancyType,
    GammaMode,
    relative_difference,
)
from .search import NeighbourhoodSearch, Shell


__all__ = [
    "GAMMA_ABOVE_ONE",
    "ComparisonMethod",
    "ComparisonParameters",
    "DiscrepancyType",
    "GammaMode",
    "GridAlignment",
    "NeighbourhoodSearch",
    "RectilinearGrid",
    "Shell",
    "SpatialComparator",
    "relative_difference",
]
