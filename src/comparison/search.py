"""
Bounded neighbourhood search over a rectilinear grid.

A :class:`Shell` lists the integer voxel offsets within the search radius,
ordered by non-decreasing physical length. Searching visits them in that
order, one chunk at a time, so the scan can stop as soon as no remaining
offset can improve on the best match found.

A reference voxel matches a test value when it is eligible (inside the
reference threshold window) and either

- its value agrees with the test value within the DTA tolerances, or
- the test value lies between its value and that of an eligible axis
  neighbour. The crossing is then somewhere between both voxels and the
  farther of the two distances is reported.
"""

from __future__ import annotations

from dataclasses import dataclass
from math import ceil
from typing import Final

import numpy as np
from numpy.typing import NDArray

from comparison.grid import RectilinearGrid, VoxelIndex
from comparison.parameters import ComparisonParameters

SHELL_CHUNK: Final[int] = 64
_AXIS_STEPS: Final[NDArray] = np.array(
    [[-1, 0, 0], [1, 0, 0], [0, -1, 0], [0, 1, 0], [0, 0, -1], [0, 0, 1]]
)


@dataclass(frozen=True)
class Shell:
    offsets: NDArray  # (M, 3) integer offsets
    distances: NDArray  # (M,) physical length of each offset, non-decreasing

    @classmethod
    def around(cls, grid: RectilinearGrid, radius: float) -> Shell:
        """
        All offsets reaching at most one voxel diagonal beyond `radius`.

        The margin lets a search starting from the voxel enclosing a point
        still cover every voxel within `radius` of the point itself.
        """
        reach = radius + 2.0 * grid.half_diagonal
        extents = [
            min(ceil(reach / step), size - 1)
            for step, size in zip(grid.spacing, grid.shape)
        ]
        axes = [np.arange(-extent, extent + 1) for extent in extents]
        offsets = np.stack(np.meshgrid(*axes, indexing="ij"), axis=-1).reshape(-1, 3)
        distances = np.linalg.norm(offsets * grid.spacing, axis=1)
        keep = distances <= reach
        offsets, distances = offsets[keep], distances[keep]
        order = np.argsort(distances, kind="stable")
        return cls(offsets=offsets[order], distances=distances[order])

    def __len__(self) -> int:
        return len(self.distances)

    def chunks(self):
        for start in range(0, len(self), SHELL_CHUNK):
            yield start, min(start + SHELL_CHUNK, len(self))


class NeighbourhoodSearch:
    """
    Distance-to-agreement searches against one reference grid.

    :param grid: The reference grid. Never modified.
    :param parameters: Thresholds and tolerances of the comparison.
    """

    def __init__(self, grid: RectilinearGrid, parameters: ComparisonParameters) -> None:
        self.grid = grid
        self.parameters = parameters
        self.eligible = parameters.in_reference_window(grid.volume)
        self.shell = Shell.around(grid, parameters.dta_max)

    def reference_value(self, voxel: VoxelIndex) -> float | None:
        """Value of an eligible reference voxel, or None when it is outside the threshold window."""
        if not self.eligible[voxel]:
            return None
        return float(self.grid.volume[voxel])

    def _gather(self, indices: NDArray) -> tuple[NDArray, NDArray]:
        """Values and eligibility at indices; out-of-grid indices are ineligible."""
        inside = self.grid.contains(indices)
        clipped = np.clip(indices, 0, np.array(self.grid.shape) - 1)
        k, r, c = clipped.T
        return self.grid.volume[k, r, c], self.eligible[k, r, c] & inside

    def _match_distances(
        self, point: NDArray, indices: NDArray, value: float
    ) -> NDArray:
        candidates, eligible = self._gather(indices)
        positions = self.grid.positions(indices)
        distances = np.linalg.norm(positions - point, axis=1)
        matches = np.where(
            eligible & self.parameters.values_agree(candidates, value), distances, np.inf
        )
        for step in _AXIS_STEPS:
            neighbours, neighbour_eligible = self._gather(indices + step)
            low = np.minimum(candidates, neighbours)
            high = np.maximum(candidates, neighbours)
            brackets = eligible & neighbour_eligible & (low <= value) & (value <= high)
            if not brackets.any():
                continue
            neighbour_distances = np.linalg.norm(
                positions + step @ self.grid.steps - point, axis=1
            )
            matches = np.minimum(
                matches,
                np.where(brackets, np.maximum(distances, neighbour_distances), np.inf),
            )
        return matches

    def distance_to_agreement(
        self,
        point: NDArray,
        start: VoxelIndex,
        value: float,
        *,
        aligned: bool = False,
        abandon_beyond: float | None = None,
    ) -> float | None:
        """
        Distance from `point` to the nearest reference voxel agreeing with `value`.

        :param point: Physical position of the test voxel.
        :param start: The reference voxel enclosing `point`.
        :param value: The test voxel's value.
        :param aligned: Whether `point` is exactly the centre of `start`. Unaligned
            points keep scanning while a later offset could still be closer.
        :param abandon_beyond: Give up once every remaining candidate, and the
            best match so far, is farther than this.
        :returns: The distance, capped at ``dta_max``; or None when abandoned.
        """
        dta_max = self.parameters.dta_max
        slack = 0.0 if aligned else self.grid.half_diagonal
        origin = np.asarray(start)
        best = np.inf
        for first, last in self.shell.chunks():
            nearest = self.shell.distances[first] - slack
            if nearest >= best or nearest > dta_max:
                break
            if abandon_beyond is not None and nearest > abandon_beyond and best > abandon_beyond:
                return None
            indices = origin + self.shell.offsets[first:last]
            indices = indices[self.grid.contains(indices)]
            if len(indices):
                best = min(best, float(self._match_distances(point, indices, value).min()))
        if abandon_beyond is not None and min(best, dta_max) > abandon_beyond:
            return None
        return min(best, dta_max)
