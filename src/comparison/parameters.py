from enum import StrEnum
from typing import Final

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict, Field, model_validator

# Reported in lieu of the true gamma when a bounded search proves gamma > 1.
GAMMA_ABOVE_ONE: Final[float] = float(np.nextafter(1.0, np.inf))


class ComparisonMethod(StrEnum):
    DISCREPANCY = "discrepancy"
    DTA = "dta"
    GAMMA_INDEX = "gamma-index"


class DiscrepancyType(StrEnum):
    ABSOLUTE = "absolute"
    RELATIVE = "relative"


class GammaMode(StrEnum):
    EXACT = "exact"
    BOUNDED_APPROXIMATE = "bounded-approximate"


class ComparisonParameters(BaseModel):
    """
    Settings of a voxel-wise comparison between test and reference images.

    :param method: The metric written into the test images.
    :param channel: Channel compared on both sides.
    :param test_lower_threshold: Test voxels below this value (exclusive) are left alone.
    :param test_upper_threshold: Test voxels above this value (exclusive) are left alone.
    :param reference_lower_threshold: Reference voxels below this value are ignored.
    :param reference_upper_threshold: Reference voxels above this value are ignored.
    :param discrepancy_type: Absolute value difference, or relative difference in percent.
    :param dta_value_abs_tolerance: Values this close (absolute) agree in a DTA search.
    :param dta_value_rel_tolerance: Values this close (relative difference, percent) agree in a DTA search.
    :param dta_max: Search radius (mm). Reported as the DTA when nothing agrees within it.
        The search precomputes every reference offset within this radius, about
        ``(2 * dta_max / step + 1)`` per axis (capped by the grid size) before
        trimming to a sphere. With 0.5 mm voxels and the default 30 mm that is
        about two million offsets, roughly 70 MB per comparison, growing with the
        cube of ``dta_max / step``.
    :param gamma_dta_threshold: DTA normalisation of the gamma index (mm).
    :param gamma_discrepancy_threshold: Discrepancy normalisation of the gamma index,
        in the units of `discrepancy_type`.
    :param gamma_mode: ``exact`` searches the full radius; ``bounded-approximate``
        stops as soon as gamma is known to exceed one and reports `GAMMA_ABOVE_ONE`.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: ComparisonMethod = ComparisonMethod.GAMMA_INDEX
    channel: int = Field(default=0, ge=0)
    test_lower_threshold: float = -np.inf
    test_upper_threshold: float = np.inf
    reference_lower_threshold: float = -np.inf
    reference_upper_threshold: float = np.inf
    discrepancy_type: DiscrepancyType = DiscrepancyType.RELATIVE
    dta_value_abs_tolerance: float = Field(default=1.0e-3, ge=0.0)
    dta_value_rel_tolerance: float = Field(default=1.0, ge=0.0)
    dta_max: float = Field(default=30.0, gt=0.0)
    gamma_dta_threshold: float = Field(default=5.0, gt=0.0)
    gamma_discrepancy_threshold: float = Field(default=5.0, gt=0.0)
    gamma_mode: GammaMode = GammaMode.BOUNDED_APPROXIMATE

    @model_validator(mode="after")
    def _ordered_windows(self):
        if self.test_lower_threshold > self.test_upper_threshold:
            raise ValueError("test_lower_threshold exceeds test_upper_threshold")
        if self.reference_lower_threshold > self.reference_upper_threshold:
            raise ValueError("reference_lower_threshold exceeds reference_upper_threshold")
        return self

    def in_test_window(self, values: NDArray) -> NDArray:
        return (values >= self.test_lower_threshold) & (values <= self.test_upper_threshold)

    def in_reference_window(self, values: NDArray) -> NDArray:
        return (values >= self.reference_lower_threshold) & (
            values <= self.reference_upper_threshold
        )

    def discrepancy(self, test_value: float, reference_value: float) -> float:
        if self.discrepancy_type is DiscrepancyType.ABSOLUTE:
            return abs(test_value - reference_value)
        return 100.0 * float(relative_difference(test_value, reference_value))

    def values_agree(self, candidates: NDArray, value: float) -> NDArray:
        """Which candidate values are close enough to `value` to end a DTA search."""
        return (np.abs(candidates - value) <= self.dta_value_abs_tolerance) | (
            100.0 * relative_difference(candidates, value) <= self.dta_value_rel_tolerance
        )


def relative_difference(a, b):
    """``|a - b| / max(|a|, |b|)``, zero where both are zero."""
    a, b = np.asarray(a, dtype=np.float64), np.asarray(b, dtype=np.float64)
    scale = np.maximum(np.abs(a), np.abs(b))
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(scale > 0.0, np.abs(a - b) / scale, 0.0)
