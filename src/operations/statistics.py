"""ComputeImageStatistics: pixel value statistics of whole image arrays."""

from __future__ import annotations

from collections.abc import Sequence
from typing import NamedTuple

import numpy as np
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from compute import ComputeEngine, TaskContext
from container_models import ContourCollection, ImageArray, PlanarImage, StateStore
from operations.registry import get_operation_registry
from operations.types import InvocationMetadata, unwrap_or_raise
from selection import select_image_arrays, select_matching


class PixelStatistics(NamedTuple):
    """Running statistics, merged across images in any order."""

    minimum: float = np.inf
    maximum: float = -np.inf
    total: float = 0.0
    count: int = 0

    @classmethod
    def of(cls, values: np.ndarray) -> PixelStatistics:
        values = values[~np.isnan(values)]
        if not values.size:
            return cls()
        return cls(float(values.min()), float(values.max()), float(values.sum()), int(values.size))

    def merge(self, other: PixelStatistics) -> PixelStatistics:
        return PixelStatistics(
            min(self.minimum, other.minimum),
            max(self.maximum, other.maximum),
            self.total + other.total,
            self.count + other.count,
        )

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else np.nan


def channel_statistics(channel: int):
    """Per-image function collecting statistics of one channel, inside the region mask if any."""

    def collect(image: PlanarImage, context: TaskContext) -> PixelStatistics:
        values = image.channel_data(channel)
        if context.mask is not None:
            return PixelStatistics.of(values[context.mask])
        return PixelStatistics.of(values.ravel())

    return collect


def image_array_statistics(
    engine: ComputeEngine,
    image_array: ImageArray,
    channel: int,
    regions: Sequence[ContourCollection] = (),
) -> PixelStatistics:
    return unwrap_or_raise(
        engine.compute(
            image_array,
            channel_statistics(channel),
            PixelStatistics.merge,
            PixelStatistics(),
            regions=regions,
        )
    )


class StatisticsArguments(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    image_selection: str = Field(default="all", alias="ImageSelection")
    channel: int = Field(default=0, ge=0, alias="Channel")
    roi_label_regex: str | None = Field(default=None, alias="ROILabelRegex")
    normalized_roi_label_regex: str | None = Field(default=None, alias="NormalizedROILabelRegex")

    def region_patterns(self) -> dict[str, str]:
        patterns = {
            "ROIName": self.roi_label_regex,
            "NormalizedROIName": self.normalized_roi_label_regex,
        }
        return {key: pattern for key, pattern in patterns.items() if pattern is not None}


@get_operation_registry().register(name="ComputeImageStatistics", arguments=StatisticsArguments)
def compute_image_statistics(
    store: StateStore,
    arguments: StatisticsArguments,
    invocation_metadata: InvocationMetadata,
    locale: str,
) -> StateStore:
    """Record the minimum, maximum and mean pixel value of each selected image array."""
    regions = []
    if patterns := arguments.region_patterns():
        regions = select_matching(patterns, store.contour_collections, require_nonempty=True)

    engine = ComputeEngine()
    for image_array in select_image_arrays(store, arguments.image_selection):
        image_array.check_channel(arguments.channel)
        statistics = image_array_statistics(engine, image_array, arguments.channel, regions)
        image_array.metadata |= {
            "MinimumPixelValue": f"{statistics.minimum:g}",
            "MaximumPixelValue": f"{statistics.maximum:g}",
            "MeanPixelValue": f"{statistics.mean:g}",
        }
        logger.info(
            f"Image array statistics over {statistics.count} pixel(s): "
            f"min {statistics.minimum:g}, max {statistics.maximum:g}, mean {statistics.mean:g}"
        )
    return store
