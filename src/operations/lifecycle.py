"""Operations creating and removing whole image arrays and contour collections."""

from __future__ import annotations

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from compute import ComputeEngine
from container_models import StateStore
from operations.registry import get_operation_registry
from operations.types import InvocationMetadata, unwrap_or_raise
from selection import select_contour_collections, select_image_arrays


class ImageSelectionArguments(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    image_selection: str = Field(default="last", alias="ImageSelection")


class ContourSelectionArguments(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    roi_selection: str = Field(default="all", alias="ROISelection")


@get_operation_registry().register(name="CopyImages", arguments=ImageSelectionArguments)
def copy_images(
    store: StateStore,
    arguments: ImageSelectionArguments,
    invocation_metadata: InvocationMetadata,
    locale: str,
) -> StateStore:
    """Append deep copies of the selected image arrays to the store."""
    engine = ComputeEngine()
    # The selection is resolved before anything is appended, so copies are never copied again.
    for image_array in select_image_arrays(store, arguments.image_selection):
        copy = unwrap_or_raise(engine.transform(image_array, lambda image, context: image))
        store.append_image_array(copy)
    logger.info(f"Store now holds {len(store.image_arrays)} image array(s)")
    return store


@get_operation_registry().register(name="DeleteImages", arguments=ImageSelectionArguments)
def delete_images(
    store: StateStore,
    arguments: ImageSelectionArguments,
    invocation_metadata: InvocationMetadata,
    locale: str,
) -> StateStore:
    """Remove the selected image arrays from the store."""
    removed = store.prune_image_arrays(
        select_image_arrays(store, arguments.image_selection)
    )
    logger.info(f"Deleted {removed} image array(s)")
    return store


@get_operation_registry().register(name="DeleteContours", arguments=ContourSelectionArguments)
def delete_contours(
    store: StateStore,
    arguments: ContourSelectionArguments,
    invocation_metadata: InvocationMetadata,
    locale: str,
) -> StateStore:
    """Remove the selected contour collections from the store."""
    removed = store.prune_contour_collections(
        select_contour_collections(store, arguments.roi_selection)
    )
    logger.info(f"Deleted {removed} contour collection(s)")
    return store
