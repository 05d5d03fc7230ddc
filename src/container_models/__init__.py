"""
Data container models passed through the operation pipeline.

These pydantic models hold the images, contours and the state store that
every operation receives and returns. Image data is kept as numpy arrays that
are mutated in place by the compute engine, so models refer to the caller's
buffers rather than copying them.
"""

from .contour import Contour, ContourCollection
from .image import ImageArray, PlanarImage
from .state import StateStore


__all__ = ["Contour", "ContourCollection", "ImageArray", "PlanarImage", "StateStore"]
