"""
Voxel-wise comparison of test images against a reference image array.

The comparator is a client of the compute engine: every test image is one
``process`` task which overwrites the compared channel with the metric.

+--------------+----------------------------------------------------------+
| Method       | Value written into the test voxel                        |
+==============+==========================================================+
| discrepancy  | difference to the enclosing reference voxel              |
+--------------+----------------------------------------------------------+
| dta          | distance to the nearest agreeing reference voxel,        |
|              | ``dta_max`` when there is none                           |
+--------------+----------------------------------------------------------+
| gamma-index  | ``sqrt((dta / dta_thr)^2 + (disc / disc_thr)^2)``        |
+--------------+----------------------------------------------------------+

Test voxels outside the regions, outside the test threshold window, or not
enclosed by the reference grid are left untouched. Discrepancy and gamma also
need the enclosing reference voxel to be inside the reference window.
"""

from __future__ import annotations

from collections.abc import Sequence
from math import hypot, sqrt

import numpy as np
from loguru import logger
from returns.result import ResultE

from comparison.grid import GridAlignment, RectilinearGrid, VoxelIndex
from comparison.parameters import (
    GAMMA_ABOVE_ONE,
    ComparisonMethod,
    ComparisonParameters,
    GammaMode,
)
from comparison.search import NeighbourhoodSearch
from compute import ComputeEngine, TaskContext
from container_models import ContourCollection, ImageArray, PlanarImage
from utils.logger import log_railway_function


class SpatialComparator:
    """
    Compares test image arrays against one reference image array.

    :param parameters: What to compute and with which thresholds.
    :param engine: The compute engine running one task per test image.
    """

    def __init__(
        self, parameters: ComparisonParameters, engine: ComputeEngine | None = None
    ) -> None:
        self.parameters = parameters
        self.engine = engine or ComputeEngine()

    @log_railway_function(
        "Image comparison failed", success_message="Image comparison completed"
    )
    def compare(
        self,
        test: ImageArray,
        reference: ImageArray,
        regions: Sequence[ContourCollection] = (),
    ) -> ResultE[ImageArray]:
        """
        Overwrite the compared channel of every test image with the metric.

        The reference grid is validated and the channels are checked before any
        voxel is visited, so precondition failures leave `test` untouched.

        :param test: The image array to compare. Mutated in place.
        :param reference: The reference image array. Never mutated.
        :param regions: Restrict the comparison to voxels inside these contours.
        :returns: `test`, or a `ComputeTaskFailure`.
        :raises NonRectilinearGridError: If `reference` is not rectilinear.
        :raises ChannelOutOfRangeError: If an image lacks the compared channel.
        """
        test.check_channel(self.parameters.channel)
        grid = RectilinearGrid.from_image_array(reference, self.parameters.channel)
        search = NeighbourhoodSearch(grid, self.parameters)
        logger.info(
            f"Comparing {len(test)} test image(s) by {self.parameters.method} "
            f"against a {grid.shape} reference grid ({len(search.shell)} search offsets)"
        )
        return self.engine.process(
            test,
            _VoxelComparison(search, self.parameters),
            aux=(reference,),
            regions=regions,
        )


class _VoxelComparison:
    """The per-image function handed to the compute engine."""

    def __init__(self, search: NeighbourhoodSearch, parameters: ComparisonParameters) -> None:
        self.search = search
        self.grid = search.grid
        self.parameters = parameters

    def __call__(self, image: PlanarImage, context: TaskContext) -> PlanarImage:
        channel = image.channel_data(self.parameters.channel)
        eligible = self.parameters.in_test_window(channel)
        if context.mask is not None:
            eligible &= context.mask
        alignment = self.grid.alignment_for(image)
        positions = image.positions()

        compared = skipped = 0
        for row, column in np.argwhere(eligible):
            point = positions[row, column]
            voxel = self._enclosing_voxel(point, row, column, alignment)
            metric = None
            if voxel is not None:
                metric = self.measure(point, voxel, float(channel[row, column]), alignment is not None)
            if metric is None:
                skipped += 1
                continue
            channel[row, column] = metric
            compared += 1

        logger.debug(
            f"Image {context.index}: compared {compared} voxel(s), skipped {skipped}"
            f"{' (aligned with reference grid)' if alignment else ''}"
        )
        return image

    def _enclosing_voxel(
        self, point: np.ndarray, row: int, column: int, alignment: GridAlignment | None
    ) -> VoxelIndex | None:
        if alignment is None:
            return self.grid.locate(point)
        voxel = alignment.voxel(int(row), int(column))
        return voxel if self.grid.contains(np.array(voxel)) else None

    def measure(
        self, point: np.ndarray, voxel: VoxelIndex, value: float, aligned: bool
    ) -> float | None:
        """The metric of one test voxel, or None when it cannot be compared."""
        parameters = self.parameters
        if parameters.method is ComparisonMethod.DTA:
            return self.search.distance_to_agreement(point, voxel, value, aligned=aligned)

        if (reference_value := self.search.reference_value(voxel)) is None:
            return None
        discrepancy = parameters.discrepancy(value, reference_value)
        if parameters.method is ComparisonMethod.DISCREPANCY:
            return discrepancy

        discrepancy_norm = discrepancy / parameters.gamma_discrepancy_threshold
        if parameters.gamma_mode is GammaMode.EXACT:
            dta = self.search.distance_to_agreement(point, voxel, value, aligned=aligned)
            return hypot(dta / parameters.gamma_dta_threshold, discrepancy_norm)

        if discrepancy_norm > 1.0:
            return GAMMA_ABOVE_ONE
        # Any agreement farther than this already pushes gamma above one.
        abandon_beyond = parameters.gamma_dta_threshold * sqrt(1.0 - discrepancy_norm**2)
        dta = self.search.distance_to_agreement(
            point, voxel, value, aligned=aligned, abandon_beyond=abandon_beyond
        )
        if dta is None:
            return GAMMA_ABOVE_ONE
        return hypot(dta / parameters.gamma_dta_threshold, discrepancy_norm)
