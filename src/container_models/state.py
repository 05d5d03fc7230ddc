"""
The state store handed from one pipeline stage to the next.

A `StateStore` owns every image array and contour collection of a pipeline
run. Each operation receives the store, mutates or replaces it, and returns
it; the pipeline runner keeps no other reference, so two stages never work on
the same store at once.
"""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger
from pydantic import Field

from container_models.base import ConfigBaseModel
from container_models.contour import ContourCollection
from container_models.image import ImageArray


def _prune[T](items: list[T], doomed: Iterable[T]) -> list[T]:
    doomed_ids = {id(item) for item in doomed}
    return [item for item in items if id(item) not in doomed_ids]


class StateStore(ConfigBaseModel):
    image_arrays: list[ImageArray] = Field(default_factory=list)
    contour_collections: list[ContourCollection] = Field(default_factory=list)

    def append_image_array(self, image_array: ImageArray) -> ImageArray:
        self.image_arrays.append(image_array)
        return image_array

    def replace_image_array(self, old: ImageArray, new: ImageArray) -> None:
        """Put `new` in the slot `old` occupies. Identity, not equality, decides the slot."""
        for index, image_array in enumerate(self.image_arrays):
            if image_array is old:
                self.image_arrays[index] = new
                return
        raise ValueError("Image array to replace is not owned by this store")

    def prune_image_arrays(self, doomed: Iterable[ImageArray]) -> int:
        """Drop the given image arrays. :returns: The number of arrays removed."""
        before = len(self.image_arrays)
        self.image_arrays = _prune(self.image_arrays, doomed)
        removed = before - len(self.image_arrays)
        logger.debug(f"Pruned {removed} image array(s)")
        return removed

    def append_contour_collection(self, collection: ContourCollection) -> ContourCollection:
        self.contour_collections.append(collection)
        return collection

    def prune_contour_collections(self, doomed: Iterable[ContourCollection]) -> int:
        """Drop the given contour collections. :returns: The number of collections removed."""
        before = len(self.contour_collections)
        self.contour_collections = _prune(self.contour_collections, doomed)
        removed = before - len(self.contour_collections)
        logger.debug(f"Pruned {removed} contour collection(s)")
        return removed

    def deep_copy(self) -> StateStore:
        """An independent copy sharing no arrays with this store."""
        return self.model_copy(deep=True)
