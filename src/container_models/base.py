from __future__ import annotations
from collections.abc import Sequence
from functools import partial
from typing import Annotated, NamedTuple

import numpy as np
from numpy import bool_, float64
from numpy.typing import DTypeLike, NDArray
from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, PlainSerializer


class Spacing(NamedTuple):
    """Voxel spacing in mm: between rows, between columns, and the slice thickness."""

    row: float
    column: float
    thickness: float


def serialize_ndarray(array_: NDArray) -> list:
    """Serialize numpy array to a Python list for JSON serialization."""
    return array_.tolist()


def coerce_to_array(
    dtype: DTypeLike, value: Sequence | NDArray | None
) -> NDArray | None:
    """
    Coerce input to a numpy array of `dtype`.

    Arrays that already have the requested dtype are returned as-is, so that
    models keep referring to the caller's buffer.
    """
    if isinstance(value, Sequence):
        try:
            return np.array(value, dtype=dtype)
        except OverflowError as ofe:
            raise ValueError("Array's value(s) out of range") from ofe
    if isinstance(value, np.ndarray):
        return np.asarray(value, dtype=dtype)
    return value


def validate_shape(n_dims: int, value: NDArray) -> NDArray:
    if (array_dims := len(value.shape)) != n_dims:
        raise ValueError(
            f"Array shape mismatch, expected {n_dims} dimension(s), but got {array_dims}"
        )
    return value


def validate_vector3(value: NDArray) -> NDArray:
    if value.shape != (3,):
        raise ValueError(f"Expected a 3D vector, but got shape {value.shape}")
    return value


def validate_points3(value: NDArray) -> NDArray:
    if value.ndim != 2 or value.shape[1] != 3:
        raise ValueError(f"Expected an (N, 3) array of points, but got shape {value.shape}")
    return value


# Tier 1: Base types
type FloatArray = Annotated[
    NDArray[float64],
    BeforeValidator(partial(coerce_to_array, float64)),
    PlainSerializer(serialize_ndarray),
]
type BoolArray = Annotated[
    NDArray[bool_],
    BeforeValidator(partial(coerce_to_array, bool_)),
    PlainSerializer(serialize_ndarray),
]

# Tier 2: Shape and data types
type FloatArray2D = Annotated[FloatArray, AfterValidator(partial(validate_shape, 2))]
type FloatArray3D = Annotated[FloatArray, AfterValidator(partial(validate_shape, 3))]
type BoolArray2D = Annotated[BoolArray, AfterValidator(partial(validate_shape, 2))]

# Tier 3: Semantic context
type PixelData = FloatArray3D  # Shape: (rows, columns, channels)
type Vector3 = Annotated[FloatArray, AfterValidator(validate_vector3)]  # Shape: (3,)
type Points3D = Annotated[FloatArray, AfterValidator(validate_points3)]  # Shape: (N, 3)
type RegionMask = BoolArray2D  # Shape: (rows, columns)
type Metadata = dict[str, str]


class ConfigBaseModel(BaseModel):
    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        validate_assignment=True,
        extra="forbid",
    )
