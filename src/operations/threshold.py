"""
ThresholdImages: clamp pixel values outside a window to fixed replacement values.

Bounds are given as strings. A plain number is used as-is; a number followed by
``%`` is scaled between the channel's minimum and maximum; a number followed by
``tile`` (or ``percentile``) is the channel's percentile. Lower and upper bounds
may use different forms. Percentage and percentile bounds are resolved per
image, so each image may be thresholded with different values.
"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Annotated, NamedTuple

import numpy as np
from loguru import logger
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from compute import ComputeEngine, TaskContext
from container_models import PlanarImage, StateStore
from operations.registry import get_operation_registry
from operations.types import InvocationMetadata, unwrap_or_raise
from selection import select_image_arrays

_BOUND = re.compile(
    r"\s*(?P<value>[-+]?(?:inf(?:inity)?|nan|(?:\d+\.?\d*|\.\d+)(?:e[-+]?\d+)?))"
    r"\s*(?P<unit>%|(?:p?e?r?c?e?n?)tile)?\s*",
    re.IGNORECASE,
)


class BoundKind(StrEnum):
    VALUE = "value"
    PERCENT = "percent"
    PERCENTILE = "percentile"


class Bound(NamedTuple):
    value: float
    kind: BoundKind = BoundKind.VALUE

    def resolve(self, channel: np.ndarray) -> float:
        """The bound as a pixel value of `channel`."""
        match self.kind:
            case BoundKind.PERCENT:
                low, high = float(np.nanmin(channel)), float(np.nanmax(channel))
                return low + (high - low) * self.value / 100.0
            case BoundKind.PERCENTILE:
                return float(np.nanpercentile(channel, self.value))
        return self.value


def parse_bound(text: object) -> Bound:
    if isinstance(text, Bound):
        return text
    if isinstance(text, (int, float)):
        return Bound(float(text))
    if (match := _BOUND.fullmatch(str(text))) is None:
        raise ValueError(f"'{text}' is not a number, percentage or percentile")
    value = float(match["value"])
    match (match["unit"] or "").lower():
        case "%":
            kind = BoundKind.PERCENT
        case "":
            kind = BoundKind.VALUE
        case _:
            kind = BoundKind.PERCENTILE
    if kind is not BoundKind.VALUE and not 0.0 <= value <= 100.0:
        raise ValueError(f"'{text}' must lie within [0, 100]")
    return Bound(value, kind)


type ThresholdBound = Annotated[Bound, BeforeValidator(parse_bound)]


class ThresholdArguments(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    lower: ThresholdBound = Field(default=Bound(-np.inf), alias="Lower")
    low: float = Field(default=-np.inf, alias="Low")
    upper: ThresholdBound = Field(default=Bound(np.inf), alias="Upper")
    high: float = Field(default=np.inf, alias="High")
    channel: int = Field(default=0, ge=0, alias="Channel")
    image_selection: str = Field(default="last", alias="ImageSelection")


def threshold_channel(
    channel: np.ndarray, lower: float, upper: float, low: float, high: float
) -> None:
    """
    Replace values below `lower` by `low` and values above `upper` by `high`, in place.

    Only values inside ``[lower, upper]`` are kept, so NaN pixels end up as `high`.
    """
    original = channel.copy()
    channel[~(original >= lower)] = low
    channel[~(original <= upper)] = high


def set_window(image: PlanarImage, channel: np.ndarray) -> None:
    """Update the display window of `image` to span the values of `channel`."""
    low, high = float(np.nanmin(channel)), float(np.nanmax(channel))
    image.metadata["WindowCenter"] = f"{(low + high) / 2.0:g}"
    image.metadata["WindowWidth"] = f"{high - low:g}"


class _ThresholdTask:
    def __init__(self, arguments: ThresholdArguments) -> None:
        self.arguments = arguments

    def __call__(self, image: PlanarImage, context: TaskContext) -> PlanarImage:
        arguments = self.arguments
        channel = image.channel_data(arguments.channel)
        lower = arguments.lower.resolve(channel)
        upper = arguments.upper.resolve(channel)
        logger.debug(f"Image {context.index}: thresholding to [{lower:g}, {upper:g}]")
        threshold_channel(channel, lower, upper, arguments.low, arguments.high)
        image.metadata["Description"] = "Thresholded"
        set_window(image, channel)
        return image


@get_operation_registry().register(name="ThresholdImages", arguments=ThresholdArguments)
def threshold_images(
    store: StateStore,
    arguments: ThresholdArguments,
    invocation_metadata: InvocationMetadata,
    locale: str,
) -> StateStore:
    """Apply thresholds to the selected images, each image independently."""
    engine = ComputeEngine()
    task = _ThresholdTask(arguments)
    for image_array in select_image_arrays(store, arguments.image_selection):
        image_array.check_channel(arguments.channel)
        unwrap_or_raise(engine.process(image_array, task))
        logger.info(f"Thresholded {len(image_array)} image(s)")
    return store
