import numpy as np
import pytest

from conftest import make_image
from container_models import ImageArray, StateStore
from exceptions import ArgumentError, ChannelOutOfRangeError
from operations import get_operation_registry
from operations.threshold import Bound, BoundKind, parse_bound


@pytest.fixture
def threshold_images():
    return get_operation_registry().get("ThresholdImages")


def single_row_store(values) -> StateStore:
    return StateStore(image_arrays=[ImageArray(images=[make_image([values])])])


def pixels(store: StateStore, array: int = -1) -> np.ndarray:
    return store.image_arrays[array].images[0].channel_data(0)[0]


class TestThresholdImages:
    def test_clamps_values_outside_the_window(self, threshold_images):
        # Arrange
        store = single_row_store([-5.0, 0.0, 5.0, 10.0])
        # Act
        threshold_images(store, {"Lower": "0", "Upper": "5", "Low": "-1", "High": "99"})
        # Assert
        np.testing.assert_array_equal(pixels(store), [-1.0, 0.0, 5.0, 99.0])

    def test_nan_pixels_fall_outside_the_window(self, threshold_images):
        store = single_row_store([np.nan, 1.0])
        threshold_images(store, {"Lower": "0", "Upper": "5", "Low": "-1", "High": "99"})
        np.testing.assert_array_equal(pixels(store), [99.0, 1.0])

    def test_defaults_change_nothing(self, threshold_images):
        store = single_row_store([-5.0, 0.0, 5.0, 10.0])
        threshold_images(store, {})
        np.testing.assert_array_equal(pixels(store), [-5.0, 0.0, 5.0, 10.0])

    def test_percent_bounds_scale_between_min_and_max(self, threshold_images):
        store = single_row_store([0.0, 10.0, 20.0, 30.0, 40.0])
        threshold_images(store, {"Lower": "25%", "Low": "0", "Upper": "75 %", "High": "100"})
        np.testing.assert_array_equal(pixels(store), [0.0, 10.0, 20.0, 30.0, 100.0])

    def test_percentile_bounds(self, threshold_images):
        store = single_row_store(list(range(101)))
        threshold_images(store, {"Lower": "10tile", "Low": "-1", "Upper": "90 percentile", "High": "-2"})
        result = pixels(store)
        assert np.count_nonzero(result == -1.0) == 10
        assert np.count_nonzero(result == -2.0) == 10

    def test_sets_description_and_window(self, threshold_images):
        store = single_row_store([-5.0, 0.0, 5.0, 10.0])
        threshold_images(store, {"Lower": "0", "Low": "0", "Upper": "5", "High": "5"})
        metadata = store.image_arrays[0].images[0].metadata
        assert metadata["Description"] == "Thresholded"
        assert (metadata["WindowCenter"], metadata["WindowWidth"]) == ("2.5", "5")

    def test_defaults_to_the_last_image_array(self, threshold_images):
        store = single_row_store([-5.0, 5.0])
        store.append_image_array(ImageArray(images=[make_image([[-5.0, 5.0]])]))
        threshold_images(store, {"Lower": "0", "Low": "0"})
        np.testing.assert_array_equal(pixels(store, 0), [-5.0, 5.0])
        np.testing.assert_array_equal(pixels(store, 1), [0.0, 5.0])

    def test_only_the_requested_channel(self, threshold_images):
        data = np.array([[[-5.0, -5.0]]])
        store = StateStore(image_arrays=[ImageArray(images=[make_image(data)])])
        threshold_images(store, {"Lower": "0", "Low": "0", "Channel": "1"})
        np.testing.assert_array_equal(store.image_arrays[0].images[0].data[0, 0], [-5.0, 0.0])

    def test_missing_channel(self, threshold_images):
        with pytest.raises(ChannelOutOfRangeError):
            threshold_images(single_row_store([1.0]), {"Channel": "3"})

    @pytest.mark.parametrize(
        "arguments",
        [
            pytest.param({"Lower": "abc"}, id="not a number"),
            pytest.param({"Upper": "120%"}, id="percentage above 100"),
            pytest.param({"Low": "zero"}, id="replacement not a number"),
            pytest.param({"Channel": "-1"}, id="negative channel"),
        ],
    )
    def test_invalid_arguments(self, threshold_images, arguments):
        with pytest.raises(ArgumentError):
            threshold_images(single_row_store([1.0]), arguments)


@pytest.mark.parametrize(
    "text, expected",
    [
        pytest.param("1.5", Bound(1.5), id="value"),
        pytest.param("-1E-99", Bound(-1e-99), id="exponent"),
        pytest.param("-inf", Bound(-np.inf), id="infinity"),
        pytest.param("0.2%", Bound(0.2, BoundKind.PERCENT), id="percent"),
        pytest.param("23tile", Bound(23.0, BoundKind.PERCENTILE), id="tile"),
        pytest.param("23.123 tile", Bound(23.123, BoundKind.PERCENTILE), id="spaced tile"),
        pytest.param("94 Percentile", Bound(94.0, BoundKind.PERCENTILE), id="percentile"),
    ],
)
def test_parse_bound(text: str, expected: Bound):
    assert parse_bound(text) == expected
