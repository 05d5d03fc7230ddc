"""
ComparePixels: voxel-wise comparison of image arrays against a reference array.

Method, discrepancy type and the early-termination flag accept abbreviations:
``gam``, ``gamma`` and ``gamma-index`` all select the gamma index, ``dis``
selects the discrepancy, ``t`` and ``true`` enable early termination.
"""

from __future__ import annotations

import re
from typing import Annotated, Final

import numpy as np
from loguru import logger
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from comparison import (
    ComparisonMethod,
    ComparisonParameters,
    DiscrepancyType,
    GammaMode,
    SpatialComparator,
)
from compute import ComputeEngine
from container_models import StateStore
from exceptions import ArgumentError
from operations.registry import get_operation_registry
from operations.types import InvocationMetadata, unwrap_or_raise
from selection import select_image_arrays, select_matching

_METHODS: Final = (
    (re.compile(r"ga?m?m?a?-?i?n?d?e?x?"), ComparisonMethod.GAMMA_INDEX),
    (re.compile(r"dta?"), ComparisonMethod.DTA),
    (re.compile(r"dis?c?r?e?p?a?n?c?y?"), ComparisonMethod.DISCREPANCY),
)
_DISCREPANCY_TYPES: Final = (
    (re.compile(r"ab?s?o?l?u?t?e?"), DiscrepancyType.ABSOLUTE),
    (re.compile(r"re?l?a?t?i?v?e?"), DiscrepancyType.RELATIVE),
)
_TRUE: Final = re.compile(r"tr?u?e?")


def _abbreviation[T](table: tuple[tuple[re.Pattern[str], T], ...], label: str):
    def parse(value: object) -> object:
        if not isinstance(value, str):
            return value
        text = value.strip().lower()
        for pattern, member in table:
            if pattern.fullmatch(text):
                return member
        raise ValueError(f"{label} '{value}' not understood")

    return parse


def _terminate_above_one(value: object) -> object:
    if isinstance(value, str):
        return _TRUE.fullmatch(value.strip().lower()) is not None
    return value


type Method = Annotated[ComparisonMethod, BeforeValidator(_abbreviation(_METHODS, "Method"))]
type Discrepancy = Annotated[
    DiscrepancyType, BeforeValidator(_abbreviation(_DISCREPANCY_TYPES, "DiscType"))
]


class CompareArguments(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    image_selection: str = Field(default="all", alias="ImageSelection")
    reference_image_selection: str = Field(default="all", alias="ReferenceImageSelection")
    roi_label_regex: str = Field(default=".*", alias="ROILabelRegex")
    normalized_roi_label_regex: str = Field(default=".*", alias="NormalizedROILabelRegex")
    method: Method = Field(default=ComparisonMethod.GAMMA_INDEX, alias="Method")
    channel: int = Field(default=0, ge=0, alias="Channel")
    test_lower_threshold: float = Field(default=-np.inf, alias="TestImgLowerThreshold")
    test_upper_threshold: float = Field(default=np.inf, alias="TestImgUpperThreshold")
    reference_lower_threshold: float = Field(default=-np.inf, alias="RefImgLowerThreshold")
    reference_upper_threshold: float = Field(default=np.inf, alias="RefImgUpperThreshold")
    discrepancy_type: Discrepancy = Field(default=DiscrepancyType.RELATIVE, alias="DiscType")
    dta_value_abs_tolerance: float = Field(default=1.0e-3, alias="DTAVoxValEqAbs")
    dta_value_rel_tolerance: float = Field(default=1.0, alias="DTAVoxValEqRelDiff")
    dta_max: float = Field(default=30.0, alias="DTAMax")
    gamma_dta_threshold: float = Field(default=5.0, alias="GammaDTAThreshold")
    gamma_discrepancy_threshold: float = Field(default=5.0, alias="GammaDiscThreshold")
    gamma_terminate_above_one: Annotated[bool, BeforeValidator(_terminate_above_one)] = Field(
        default=True, alias="GammaTerminateAboveOne"
    )

    def parameters(self) -> ComparisonParameters:
        """The comparison parameters these arguments describe."""
        return ComparisonParameters(
            method=self.method,
            channel=self.channel,
            test_lower_threshold=self.test_lower_threshold,
            test_upper_threshold=self.test_upper_threshold,
            reference_lower_threshold=self.reference_lower_threshold,
            reference_upper_threshold=self.reference_upper_threshold,
            discrepancy_type=self.discrepancy_type,
            dta_value_abs_tolerance=self.dta_value_abs_tolerance,
            dta_value_rel_tolerance=self.dta_value_rel_tolerance,
            dta_max=self.dta_max,
            gamma_dta_threshold=self.gamma_dta_threshold,
            gamma_discrepancy_threshold=self.gamma_discrepancy_threshold,
            gamma_mode=(
                GammaMode.BOUNDED_APPROXIMATE
                if self.gamma_terminate_above_one
                else GammaMode.EXACT
            ),
        )


@get_operation_registry().register(name="ComparePixels", arguments=CompareArguments)
def compare_pixels(
    store: StateStore,
    arguments: CompareArguments,
    invocation_metadata: InvocationMetadata,
    locale: str,
) -> StateStore:
    """Compare the selected image arrays voxel-by-voxel against one reference image array."""
    try:
        parameters = arguments.parameters()
    except ValueError as error:
        raise ArgumentError("ComparePixels", str(error)) from error

    regions = select_matching(
        {
            "ROIName": arguments.roi_label_regex,
            "NormalizedROIName": arguments.normalized_roi_label_regex,
        },
        store.contour_collections,
        require_nonempty=True,
    )
    references = select_image_arrays(store, arguments.reference_image_selection)
    if len(references) != 1:
        raise ArgumentError(
            "ComparePixels",
            f"exactly one reference image array must be selected, got {len(references)}",
        )
    (reference,) = references

    comparator = SpatialComparator(parameters, ComputeEngine())
    tests = select_image_arrays(store, arguments.image_selection)
    for test in tests:
        unwrap_or_raise(comparator.compare(test, reference, regions))
    logger.info(
        f"Compared {len(tests)} image array(s) by {parameters.method} "
        f"within {len(regions)} contour collection(s)"
    )
    return store
