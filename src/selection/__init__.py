"""
Selection of entities by expression.

Operations pick their working sets from the state store with short
expressions such as ``all``, ``last``, ``#2``, ``0:3`` or
``ROIName=.*parotid.*;Modality=RTSTRUCT``. Selections return references, so
mutating a selected image array mutates the one held by the store.
"""

from .expressions import Selection, SelectionKind, metadata_selection, parse_selection
from .selector import (
    select,
    select_contour_collections,
    select_image_arrays,
    select_matching,
)


__all__ = [
    "Selection",
    "SelectionKind",
    "metadata_selection",
    "parse_selection",
    "select",
    "select_contour_collections",
    "select_image_arrays",
    "select_matching",
]
