"""Type definitions for the functions dispatched by the compute engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from container_models import ContourCollection, ImageArray, PlanarImage
from container_models.base import RegionMask


@dataclass(frozen=True)
class TaskContext:
    """
    Everything a per-image function gets besides the image itself.

    :param index: Position of the image in the primary collection.
    :param aux: Auxiliary image arrays. Read-only by contract.
    :param regions: The region contour collections the call was restricted to.
    :param mask: Pixels of this image inside the regions, or None when the call
        was not restricted.
    """

    index: int
    aux: tuple[ImageArray, ...] = ()
    regions: tuple[ContourCollection, ...] = ()
    mask: RegionMask | None = field(default=None, repr=False)

    def in_region(self, row: int, column: int) -> bool:
        return self.mask is None or bool(self.mask[row, column])


class ComputeFunction[P](Protocol):
    """Reads one image and returns a partial result for the reduce phase."""

    def __call__(self, image: PlanarImage, context: TaskContext) -> P: ...


class Merge[A, P](Protocol):
    """Folds one partial result into the accumulator. Must be commutative and associative."""

    def __call__(self, accumulator: A, partial: P) -> A: ...


class ProcessFunction(Protocol):
    """
    Mutates one image.

    Returning the same image (or None) keeps it in place; returning another
    image replaces it in the collection.
    """

    def __call__(
        self, image: PlanarImage, context: TaskContext
    ) -> PlanarImage | None: ...
