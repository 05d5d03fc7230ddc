import numpy as np
import pytest
from pydantic import ValidationError

from comparison import (
    GAMMA_ABOVE_ONE,
    ComparisonMethod,
    ComparisonParameters,
    DiscrepancyType,
    GammaMode,
    Shell,
    RectilinearGrid,
    relative_difference,
)
from conftest import make_stack


def test_defaults():
    parameters = ComparisonParameters()
    assert parameters.method is ComparisonMethod.GAMMA_INDEX
    assert parameters.discrepancy_type is DiscrepancyType.RELATIVE
    assert parameters.gamma_mode is GammaMode.BOUNDED_APPROXIMATE
    assert (parameters.dta_max, parameters.gamma_dta_threshold, parameters.gamma_discrepancy_threshold) == (
        30.0,
        5.0,
        5.0,
    )


def test_sentinel_is_just_above_one():
    assert GAMMA_ABOVE_ONE > 1.0
    assert np.nextafter(GAMMA_ABOVE_ONE, 0.0) == 1.0


@pytest.mark.parametrize(
    "a, b, expected",
    [
        pytest.param(0.0, 0.0, 0.0, id="both zero"),
        pytest.param(1.0, 2.0, 0.5, id="ordinary"),
        pytest.param(-1.0, 1.0, 2.0, id="opposite signs"),
        pytest.param(3.0, 0.0, 1.0, id="one zero"),
    ],
)
def test_relative_difference(a: float, b: float, expected: float):
    assert relative_difference(a, b) == pytest.approx(expected)
    assert relative_difference(b, a) == pytest.approx(expected)


@pytest.mark.parametrize(
    "discrepancy_type, expected",
    [
        pytest.param(DiscrepancyType.ABSOLUTE, 2.0, id="absolute"),
        pytest.param(DiscrepancyType.RELATIVE, 20.0, id="relative percent"),
    ],
)
def test_discrepancy(discrepancy_type: DiscrepancyType, expected: float):
    parameters = ComparisonParameters(discrepancy_type=discrepancy_type)
    assert parameters.discrepancy(8.0, 10.0) == pytest.approx(expected)


def test_values_agree_by_either_tolerance():
    parameters = ComparisonParameters(dta_value_abs_tolerance=0.5, dta_value_rel_tolerance=10.0)
    agree = parameters.values_agree(np.array([10.4, 10.9, 11.2, 100.0, 109.0, 112.0]), 10.0)
    np.testing.assert_array_equal(agree, [True, True, False, False, False, False])
    agree = parameters.values_agree(np.array([109.0, 112.0]), 100.0)
    np.testing.assert_array_equal(agree, [True, False])


def test_windows_are_inclusive():
    parameters = ComparisonParameters(test_lower_threshold=1.0, test_upper_threshold=2.0)
    np.testing.assert_array_equal(
        parameters.in_test_window(np.array([0.5, 1.0, 2.0, 2.5])), [False, True, True, False]
    )


@pytest.mark.parametrize(
    "arguments",
    [
        pytest.param({"test_lower_threshold": 2.0, "test_upper_threshold": 1.0}, id="inverted test window"),
        pytest.param({"reference_lower_threshold": 2.0, "reference_upper_threshold": 1.0}, id="inverted reference window"),
        pytest.param({"dta_max": 0.0}, id="empty search radius"),
        pytest.param({"gamma_dta_threshold": -1.0}, id="negative dta threshold"),
        pytest.param({"method": "nearest"}, id="unknown method"),
    ],
)
def test_invalid_parameters(arguments: dict):
    with pytest.raises(ValidationError):
        ComparisonParameters(**arguments)


class TestShell:
    @pytest.fixture
    def shell(self) -> Shell:
        grid = RectilinearGrid.from_image_array(make_stack(np.zeros((9, 9)), [0.0, 1.0, 2.0]), channel=0)
        return Shell.around(grid, radius=1.0)

    def test_ordered_by_distance(self, shell: Shell):
        assert np.all(np.diff(shell.distances) >= 0.0)
        np.testing.assert_array_equal(shell.offsets[0], [0, 0, 0])

    def test_reach_includes_a_voxel_diagonal(self, shell: Shell):
        # radius 1 plus twice the half diagonal of a unit voxel
        assert shell.distances[-1] <= 1.0 + np.sqrt(3.0)
        offsets = {tuple(offset) for offset in shell.offsets.tolist()}
        assert {(1, 1, 1), (0, 0, 2), (2, 1, 0)} <= offsets
        assert (0, 0, 3) not in offsets

    def test_offsets_are_clipped_to_the_grid(self, shell: Shell):
        assert np.abs(shell.offsets[:, 0]).max() == 2

    def test_chunks_cover_the_shell(self, shell: Shell):
        covered = sum(last - first for first, last in shell.chunks())
        assert covered == len(shell)
