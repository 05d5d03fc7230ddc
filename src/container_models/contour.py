from pydantic import Field, field_validator

from container_models.base import ConfigBaseModel, Metadata, Points3D


class Contour(ConfigBaseModel):
    """A closed planar polygon. The closing edge from the last point back to the first is implicit."""

    points: Points3D

    @field_validator("points")
    @classmethod
    def _at_least_a_triangle(cls, value):
        if len(value) < 3:
            raise ValueError(f"A contour needs at least 3 points, got {len(value)}")
        return value


class ContourCollection(ConfigBaseModel):
    """A set of contours sharing one metadata map, typically one region of interest."""

    contours: list[Contour] = Field(default_factory=list)
    metadata: Metadata = Field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.contours)
