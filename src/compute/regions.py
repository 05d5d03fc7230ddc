import numpy as np
from collections.abc import Sequence
from skimage.draw import polygon2mask

from container_models import Contour, ContourCollection, PlanarImage
from container_models.base import RegionMask

# Contours further than this from the image plane (in slice thicknesses) do not cut it.
PLANE_TOLERANCE = 0.5


def project_contour(image: PlanarImage, contour: Contour) -> np.ndarray | None:
    """
    Project a contour into the fractional (row, column) index space of an image.

    :returns: An ``(N, 2)`` array of vertices, or None when the contour does not
        lie within the image's slab.
    """
    delta = contour.points - image.origin
    offsets = delta @ image.normal / image.spacing.thickness
    if np.any(np.abs(offsets) > PLANE_TOLERANCE):
        return None
    rows = delta @ image.row_direction / image.spacing.row
    columns = delta @ image.column_direction / image.spacing.column
    return np.column_stack((rows, columns))


def region_mask(
    image: PlanarImage, regions: Sequence[ContourCollection]
) -> RegionMask | None:
    """
    Rasterise the contours cutting an image into a mask over its pixel centres.

    Overlapping contours are combined by union.

    :param image: The image defining the pixel grid.
    :param regions: Contour collections to rasterise. An empty sequence means
        the caller did not restrict the computation.
    :returns: A ``rows x columns`` boolean mask, or None when `regions` is empty.
    """
    if not regions:
        return None
    mask = np.zeros((image.rows, image.columns), dtype=bool)
    for collection in regions:
        for contour in collection.contours:
            vertices = project_contour(image, contour)
            if vertices is not None:
                mask |= polygon2mask(mask.shape, vertices)
    return mask
