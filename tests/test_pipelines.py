import logging

import numpy as np
import pytest

from container_models import StateStore
from exceptions import ArgumentError, PipelineError, UnknownOperationError
from operations import get_operation_registry
from pipelines import PipelineStep, run_pipeline


@pytest.fixture
def recorder():
    """An operation recording the order in which it runs."""
    registry = get_operation_registry()
    calls: list[tuple[str, str, str]] = []

    @registry.register(name="Record")
    def record(store, arguments, invocation_metadata, locale):
        """Record one call."""
        calls.append((arguments.get("Label", ""), invocation_metadata.get("Run", ""), locale))
        if arguments.get("Fail"):
            raise RuntimeError(f"{arguments['Label']} failed")
        return store

    yield calls
    registry.unregister("Record")


class TestRunPipeline:
    def test_runs_steps_in_order(self, store: StateStore, recorder):
        # Act
        result = run_pipeline(
            store,
            [PipelineStep("Record", {"Label": "a"}), PipelineStep("Record", {"Label": "b"})],
            invocation_metadata={"Run": "1"},
            locale="nl_NL",
        )
        # Assert
        assert result is store
        assert recorder == [("a", "1", "nl_NL"), ("b", "1", "nl_NL")]

    def test_empty_pipeline_returns_the_store(self, store: StateStore):
        assert run_pipeline(store, []) is store

    def test_halts_at_the_first_failure(self, store: StateStore, recorder):
        # Arrange
        steps = [
            PipelineStep("Record", {"Label": "a"}),
            PipelineStep("Record", {"Label": "b", "Fail": "yes"}),
            PipelineStep("Record", {"Label": "c"}),
        ]
        # Act
        with pytest.raises(PipelineError, match=r"Step 1 \(Record\) failed: b failed") as exc_info:
            run_pipeline(store, steps)
        # Assert
        assert [label for label, _, _ in recorder] == ["a", "b"]
        assert exc_info.value.step_index == 1
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_unknown_operation_fails_before_anything_runs(self, store: StateStore, recorder):
        with pytest.raises(PipelineError) as exc_info:
            run_pipeline(store, [PipelineStep("Record"), PipelineStep("Teleport")])
        assert recorder == []
        assert exc_info.value.step_name == "Teleport"
        assert isinstance(exc_info.value.__cause__, UnknownOperationError)

    def test_argument_errors_are_the_cause(self, store: StateStore):
        with pytest.raises(PipelineError) as exc_info:
            run_pipeline(store, [PipelineStep("ThresholdImages", {"Lower": "low"})])
        assert isinstance(exc_info.value.__cause__, ArgumentError)

    def test_state_flows_between_operations(self, store: StateStore):
        # Act
        run_pipeline(
            store,
            [
                PipelineStep("CopyImages"),
                PipelineStep("ThresholdImages", {"Upper": "4", "High": "0"}),
                PipelineStep("ComputeImageStatistics", {"ImageSelection": "last"}),
            ],
        )
        # Assert
        original, thresholded = store.image_arrays
        assert original.images[1].data.max() == 8.0
        assert thresholded.images[1].data.max() == 0.0
        assert thresholded.metadata["MaximumPixelValue"] == "4"
        assert "MaximumPixelValue" not in original.metadata

    def test_logs_each_step(self, store: StateStore, recorder, caplog: pytest.LogCaptureFixture):
        with caplog.at_level(logging.INFO):
            run_pipeline(store, [PipelineStep("Record", {"Label": "a"})])
        assert "Step 0 (Record) completed" in caplog.text

    def test_logs_the_failing_step(self, store: StateStore, recorder, caplog: pytest.LogCaptureFixture):
        with caplog.at_level(logging.DEBUG), pytest.raises(PipelineError):
            run_pipeline(store, [PipelineStep("Record", {"Label": "a", "Fail": "1"})])
        assert any(
            record.levelname == "ERROR" and "Step 0 (Record) failed" in record.message
            for record in caplog.records
        )


def test_leaves_partial_work_in_place(store: StateStore):
    with pytest.raises(PipelineError):
        run_pipeline(
            store,
            [
                PipelineStep("ThresholdImages", {"Lower": "3", "Low": "0"}),
                PipelineStep("ComparePixels", {"ReferenceImageSelection": "none"}),
            ],
        )
    np.testing.assert_array_equal(store.image_arrays[0].images[1].data[..., 0], [[5.0, 6.0], [7.0, 8.0]])
    np.testing.assert_array_equal(store.image_arrays[0].images[0].data[..., 0], [[0.0, 0.0], [3.0, 4.0]])
