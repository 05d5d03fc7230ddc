"""
Rectilinear reference grids.

A reference image array is turned into a :class:`RectilinearGrid`: a
``(slices, rows, columns)`` snapshot of one channel together with an
orthonormal frame and constant per-axis spacing. The constant spacing is what
makes point location a projection and a rounding, without any search.

Axis order is always ``(slice, row, column)``.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from container_models import ImageArray, PlanarImage
from exceptions import NonRectilinearGridError
from settings import get_settings

type VoxelIndex = tuple[int, int, int]


@dataclass(frozen=True)
class GridAlignment:
    """
    Precomputed mapping of a test image's pixels onto grid voxels.

    Pixel ``(row, column)`` of the aligned image sits at voxel
    ``(slice, row + row_offset, column + column_offset)``.
    """

    slice: int
    row_offset: int
    column_offset: int

    def voxel(self, row: int, column: int) -> VoxelIndex:
        return self.slice, row + self.row_offset, column + self.column_offset


def _check_close(
    label: str, values: NDArray, expected: NDArray, tolerance: float
) -> None:
    if not np.allclose(values, expected, rtol=tolerance, atol=tolerance):
        raise NonRectilinearGridError(
            f"Reference images differ in {label}: {np.asarray(values).tolist()} "
            f"vs {np.asarray(expected).tolist()}"
        )


@dataclass(frozen=True)
class RectilinearGrid:
    volume: NDArray  # (slices, rows, columns)
    origin: NDArray  # centre of voxel (0, 0, 0)
    axes: NDArray  # unit vectors: slice normal, row direction, column direction
    spacing: NDArray  # mm along each axis
    tolerance: float

    @classmethod
    def from_image_array(
        cls, reference: ImageArray, channel: int, tolerance: float | None = None
    ) -> RectilinearGrid:
        """
        Validate that `reference` is rectilinear and snapshot one channel of it.

        :param reference: The reference image array. Not modified.
        :param channel: The channel to snapshot.
        :param tolerance: Relative tolerance of the geometric checks. Defaults to
            the ``grid_tolerance`` setting.
        :raises NonRectilinearGridError: If the images differ in shape,
            orientation or in-plane spacing, are not stacked along a common
            normal, or are unevenly spaced.
        :raises ChannelOutOfRangeError: If an image lacks `channel`.
        """
        tolerance = tolerance if tolerance is not None else get_settings().grid_tolerance
        if not reference.images:
            raise NonRectilinearGridError("Reference image array is empty")
        reference.check_channel(channel)

        first = reference.images[0]
        if abs(float(first.row_direction @ first.column_direction)) > tolerance:
            raise NonRectilinearGridError("Reference row and column directions are not orthogonal")
        for image in reference.images[1:]:
            _check_close("shape", np.array(image.data.shape[:2]), np.array(first.data.shape[:2]), 0.0)
            _check_close("row direction", image.row_direction, first.row_direction, tolerance)
            _check_close("column direction", image.column_direction, first.column_direction, tolerance)
            _check_close(
                "in-plane spacing",
                np.array(image.spacing[:2]),
                np.array(first.spacing[:2]),
                tolerance,
            )

        normal = first.normal
        displacements = np.array([image.origin - first.origin for image in reference.images])
        heights = displacements @ normal
        in_plane = displacements - np.outer(heights, normal)
        if not np.allclose(in_plane, 0.0, atol=tolerance * min(first.spacing[:2])):
            raise NonRectilinearGridError("Reference images are not stacked along a common normal")

        order = np.argsort(heights, kind="stable")
        heights = heights[order]
        if len(heights) > 1:
            gaps = np.diff(heights)
            if np.any(gaps <= tolerance * first.spacing.thickness):
                raise NonRectilinearGridError("Reference images overlap (duplicate slice positions)")
            if not np.allclose(gaps, gaps[0], rtol=tolerance, atol=tolerance * gaps[0]):
                raise NonRectilinearGridError(
                    f"Reference slice spacing is irregular: {gaps.tolist()}"
                )
            slice_spacing = float(gaps[0])
        else:
            slice_spacing = first.spacing.thickness

        stacked = [reference.images[index] for index in order]
        volume = np.stack([image.data[:, :, channel] for image in stacked], axis=0)
        logger.debug(
            f"Reference grid {volume.shape} with spacing "
            f"({slice_spacing:g}, {first.spacing.row:g}, {first.spacing.column:g}) mm"
        )
        return cls(
            volume=volume,
            origin=stacked[0].origin.copy(),
            axes=np.stack([normal, first.row_direction, first.column_direction]),
            spacing=np.array([slice_spacing, first.spacing.row, first.spacing.column]),
            tolerance=tolerance,
        )

    @property
    def shape(self) -> tuple[int, int, int]:
        return self.volume.shape  # type: ignore[return-value]

    @property
    def steps(self) -> NDArray:
        """Displacement of one voxel step along each axis, shape ``(3, 3)``."""
        return self.axes * self.spacing[:, None]

    @property
    def half_diagonal(self) -> float:
        """Largest distance between a point and the centre of the voxel enclosing it."""
        return 0.5 * float(np.linalg.norm(self.spacing))

    def fractional_index(self, point: NDArray) -> NDArray:
        return (self.axes @ (np.asarray(point) - self.origin)) / self.spacing

    def contains(self, index: NDArray) -> NDArray:
        """Whether integer indices (shape ``(..., 3)``) fall inside the volume."""
        return np.all((index >= 0) & (index < np.array(self.shape)), axis=-1)

    def locate(self, point: NDArray) -> VoxelIndex | None:
        """The voxel enclosing `point`, or None when the point lies outside the grid."""
        index = np.rint(self.fractional_index(point)).astype(np.int64)
        if not self.contains(index):
            return None
        return int(index[0]), int(index[1]), int(index[2])

    def positions(self, indices: NDArray) -> NDArray:
        """Voxel centres of integer indices, shape ``(N, 3)``."""
        return self.origin + indices @ self.steps

    def alignment_for(self, image: PlanarImage) -> GridAlignment | None:
        """
        Precompute the pixel to voxel mapping of an image lying on the grid.

        :returns: None unless the image's plane coincides with a grid slice and
            its pixel lattice coincides with the grid's.
        """
        tolerance = self.tolerance
        same_frame = (
            np.allclose(image.row_direction, self.axes[1], atol=tolerance)
            and np.allclose(image.column_direction, self.axes[2], atol=tolerance)
            and np.allclose(image.spacing[:2], self.spacing[1:], rtol=tolerance)
        )
        if not same_frame:
            return None
        fractional = self.fractional_index(image.origin)
        rounded = np.rint(fractional)
        if not np.allclose(fractional, rounded, atol=tolerance):
            return None
        slice_index, row_offset, column_offset = (int(value) for value in rounded)
        if not 0 <= slice_index < self.shape[0]:
            return None
        return GridAlignment(slice_index, row_offset, column_offset)
