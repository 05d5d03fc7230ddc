import logging
from collections.abc import Callable, Sequence

import numpy as np
import pytest
from loguru import logger

from container_models import Contour, ContourCollection, ImageArray, PlanarImage, StateStore
from settings import get_settings

type ImageFactory = Callable[..., PlanarImage]


class PropagateHandler(logging.Handler):
    """Handler that propagates loguru records to standard logging."""

    def emit(self, record: logging.LogRecord) -> None:
        logging.getLogger(record.name).handle(record)


@pytest.fixture
def caplog(caplog):
    """Fixture to enable caplog to capture loguru logs."""
    handler_id = logger.add(PropagateHandler(), format="{message}")
    yield caplog
    logger.remove(handler_id)


@pytest.fixture(autouse=True)
def fresh_settings():
    """Make every test read settings from its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def make_image(
    values: Sequence | np.ndarray,
    z: float = 0.0,
    spacing: tuple[float, float, float] = (1.0, 1.0, 1.0),
    origin: Sequence[float] | None = None,
    **metadata: str,
) -> PlanarImage:
    """A single-channel (or multi-channel for 3D `values`) image lying in the plane ``z``."""
    data = np.array(values, dtype=np.float64)
    if data.ndim == 2:
        data = data[:, :, np.newaxis]
    return PlanarImage(
        data=data,
        origin=np.array(origin if origin is not None else [0.0, 0.0, z]),
        spacing=spacing,
        metadata=dict(metadata),
    )


def make_stack(
    values: Sequence | np.ndarray, heights: Sequence[float], **metadata: str
) -> ImageArray:
    """An image array with one copy of `values` at every height."""
    return ImageArray(
        images=[make_image(values, z=height) for height in heights],
        metadata=dict(metadata),
    )


def square_contour(
    first_row: float, last_row: float, first_column: float, last_column: float, z: float = 0.0
) -> Contour:
    """A rectangle covering pixel centres between the given indices of a default-frame image."""
    # Default frame: rows run along y, columns along x.
    low_y, high_y = first_row - 0.5, last_row + 0.5
    low_x, high_x = first_column - 0.5, last_column + 0.5
    return Contour(
        points=[
            [low_x, low_y, z],
            [high_x, low_y, z],
            [high_x, high_y, z],
            [low_x, high_y, z],
        ]
    )


@pytest.fixture
def image_factory() -> ImageFactory:
    return make_image


@pytest.fixture
def ramp_image() -> PlanarImage:
    """A 2 x 2 single-channel image holding 1, 2, 3, 4."""
    return make_image([[1.0, 2.0], [3.0, 4.0]])


@pytest.fixture
def ramp_array(ramp_image: PlanarImage) -> ImageArray:
    return ImageArray(
        images=[ramp_image, make_image([[5.0, 6.0], [7.0, 8.0]], z=1.0)],
        metadata={"Modality": "CT"},
    )


@pytest.fixture
def roi_collection() -> ContourCollection:
    return ContourCollection(
        contours=[square_contour(0, 0, 0, 1)],
        metadata={"ROIName": "Body", "NormalizedROIName": "body"},
    )


@pytest.fixture
def store(ramp_array: ImageArray, roi_collection: ContourCollection) -> StateStore:
    return StateStore(image_arrays=[ramp_array], contour_collections=[roi_collection])
