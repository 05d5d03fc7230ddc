"""ModifyImageMetadata: set metadata on image arrays and their images."""

from __future__ import annotations

from typing import Annotated

from loguru import logger
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from container_models import StateStore
from operations.registry import get_operation_registry
from operations.types import InvocationMetadata
from selection import select_image_arrays


def parse_key_values(value: object) -> object:
    """Parse ``key@value;key@value`` into a mapping. Later keys overwrite earlier ones."""
    if not isinstance(value, str):
        return value
    pairs: dict[str, str] = {}
    for item in value.split(";"):
        if not item.strip():
            continue
        key, separator, text = item.partition("@")
        if not separator or not (key := key.strip()):
            raise ValueError(f"'{item}' is not of the form key@value")
        pairs[key] = text
    return pairs


class ModifyMetadataArguments(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    image_selection: str = Field(default="last", alias="ImageSelection")
    key_values: Annotated[dict[str, str], BeforeValidator(parse_key_values)] = Field(
        alias="KeyValues"
    )
    include_images: bool = Field(default=True, alias="IncludeImages")


@get_operation_registry().register(
    name="ModifyImageMetadata", arguments=ModifyMetadataArguments
)
def modify_image_metadata(
    store: StateStore,
    arguments: ModifyMetadataArguments,
    invocation_metadata: InvocationMetadata,
    locale: str,
) -> StateStore:
    """Set metadata key-value pairs on the selected image arrays."""
    selected = select_image_arrays(store, arguments.image_selection)
    for image_array in selected:
        image_array.metadata.update(arguments.key_values)
        if arguments.include_images:
            for image in image_array.images:
                image.metadata.update(arguments.key_values)
    logger.info(
        f"Set {', '.join(arguments.key_values)} on {len(selected)} image array(s)"
    )
    return store
