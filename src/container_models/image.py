"""Image container architecture.

This module defines the data containers used to represent images throughout
the processing pipeline.

Architecture
------------
::

    +------------------------------------------+
    |               ImageArray                 |
    |------------------------------------------|
    | images   : list[PlanarImage]             |
    | metadata : Metadata                      |
    +--------------------+---------------------+
                         | 0..n
                         v
    +------------------------------------------+
    |               PlanarImage                |
    |------------------------------------------|
    | data             : PixelData             |
    | origin           : Vector3               |
    | row_direction    : Vector3               |
    | column_direction : Vector3               |
    | spacing          : Spacing               |
    | metadata         : Metadata              |
    +------------------------------------------+
    | rows / columns / channels -> int         |
    | normal -> Vector3                        |
    | position(row, column) -> Vector3         |
    | fractional_index(point) -> Vector3       |
    | positions() -> FloatArray3D              |
    | channel_data(channel) -> FloatArray2D    |
    +------------------------------------------+

- :class:`PlanarImage` stores a ``rows x columns x channels`` float64 array and
  the frame placing it in patient space. ``origin`` is the centre of pixel
  ``(0, 0)``; moving one row adds ``spacing.row * row_direction``, moving one
  column adds ``spacing.column * column_direction``.
- :class:`ImageArray` is an ordered collection of planar images. No spatial
  relation between its images is required.
- Images compare equal when their data is equal (NaN-aware).
"""

from __future__ import annotations

import numpy as np
from pydantic import Field, field_validator

from container_models.base import (
    ConfigBaseModel,
    FloatArray2D,
    FloatArray3D,
    Metadata,
    PixelData,
    Spacing,
    Vector3,
)
from exceptions import ChannelOutOfRangeError


class PlanarImage(ConfigBaseModel):
    data: PixelData
    origin: Vector3 = Field(default_factory=lambda: np.zeros(3))
    row_direction: Vector3 = Field(default_factory=lambda: np.array([0.0, 1.0, 0.0]))
    column_direction: Vector3 = Field(
        default_factory=lambda: np.array([1.0, 0.0, 0.0])
    )
    spacing: Spacing = Spacing(1.0, 1.0, 1.0)
    metadata: Metadata = Field(default_factory=dict)

    @field_validator("row_direction", "column_direction")
    @classmethod
    def _normalise_direction(cls, value: np.ndarray) -> np.ndarray:
        if not (length := float(np.linalg.norm(value))) > 0.0:
            raise ValueError("Direction vectors must have a non-zero length")
        return value / length

    @field_validator("spacing")
    @classmethod
    def _check_spacing(cls, value: Spacing) -> Spacing:
        if any(not step > 0.0 for step in value):
            raise ValueError(f"Voxel spacing must be positive, got {tuple(value)}")
        return value

    @property
    def rows(self) -> int:
        return self.data.shape[0]

    @property
    def columns(self) -> int:
        return self.data.shape[1]

    @property
    def channels(self) -> int:
        return self.data.shape[2]

    @property
    def normal(self) -> np.ndarray:
        """Unit vector orthogonal to the image plane."""
        normal = np.cross(self.row_direction, self.column_direction)
        return normal / np.linalg.norm(normal)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PlanarImage):
            return NotImplemented
        return np.array_equal(self.data, other.data, equal_nan=True)

    def check_channel(self, channel: int) -> None:
        """Raise `ChannelOutOfRangeError` unless `channel` addresses one of this image's channels."""
        if not 0 <= channel < self.channels:
            raise ChannelOutOfRangeError(channel, self.channels)

    def channel_data(self, channel: int) -> FloatArray2D:
        """Return a (writeable) view on one channel."""
        self.check_channel(channel)
        return self.data[:, :, channel]

    def position(self, row: float, column: float) -> np.ndarray:
        """Physical position of the centre of pixel `(row, column)`."""
        return (
            self.origin
            + row * self.spacing.row * self.row_direction
            + column * self.spacing.column * self.column_direction
        )

    def positions(self) -> FloatArray3D:
        """Physical positions of every pixel centre, shape ``(rows, columns, 3)``."""
        rows = np.arange(self.rows, dtype=np.float64)[:, None, None]
        columns = np.arange(self.columns, dtype=np.float64)[None, :, None]
        return (
            self.origin[None, None, :]
            + rows * self.spacing.row * self.row_direction[None, None, :]
            + columns * self.spacing.column * self.column_direction[None, None, :]
        )

    def fractional_index(self, point: np.ndarray) -> np.ndarray:
        """
        Project a point into the image's index space.

        :returns: ``(row, column, offset)`` where row and column are fractional
            pixel indices and offset is the signed distance to the image plane
            in units of the slice thickness.
        """
        delta = np.asarray(point, dtype=np.float64) - self.origin
        return np.array(
            [
                delta @ self.row_direction / self.spacing.row,
                delta @ self.column_direction / self.spacing.column,
                delta @ self.normal / self.spacing.thickness,
            ]
        )


class ImageArray(ConfigBaseModel):
    """An ordered collection of planar images with collection-level metadata."""

    images: list[PlanarImage] = Field(default_factory=list)
    metadata: Metadata = Field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.images)

    def check_channel(self, channel: int) -> None:
        for image in self.images:
            image.check_channel(channel)
