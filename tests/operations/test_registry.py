import pytest
from pydantic import BaseModel, ConfigDict, Field
from returns.pipeline import is_successful

from container_models import StateStore
from exceptions import ArgumentError, OperationAlreadyRegisteredError, UnknownOperationError
from operations import OperationMetadata, RegisteredOperation, get_operation_registry

BUILT_IN = {
    "ThresholdImages",
    "ComparePixels",
    "ComputeImageStatistics",
    "ModifyImageMetadata",
    "CopyImages",
    "DeleteImages",
    "DeleteContours",
}


class TagArguments(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    key: str = Field(alias="Key")
    count: int = Field(default=1, gt=0, alias="Count")


@pytest.fixture
def tag_operation():
    registry = get_operation_registry()

    @registry.register(name="TagStore", arguments=TagArguments)
    def tag_store(store, arguments: TagArguments, invocation_metadata, locale):
        """Tag every image array.

        Extra lines are not part of the description.
        """
        for image_array in store.image_arrays:
            image_array.metadata[arguments.key] = f"{arguments.count}:{locale}"
        return store

    yield tag_store
    registry.unregister("TagStore")


class TestRegistry:
    def test_is_a_singleton(self):
        assert get_operation_registry() is get_operation_registry()

    def test_built_in_operations_are_registered(self):
        registry = get_operation_registry()
        assert BUILT_IN <= {metadata.name for metadata in registry.list_operations()}
        assert all(name in registry for name in BUILT_IN)

    def test_register_returns_a_registered_operation(self, tag_operation: RegisteredOperation):
        assert isinstance(tag_operation, RegisteredOperation)
        assert tag_operation.metadata == OperationMetadata("TagStore", "Tag every image array.")
        assert tag_operation in get_operation_registry()
        assert get_operation_registry().get("TagStore") is tag_operation

    def test_duplicate_names_are_rejected(self, tag_operation: RegisteredOperation):
        with pytest.raises(OperationAlreadyRegisteredError, match="TagStore"):
            get_operation_registry().register(tag_operation.func, name="TagStore")

    def test_unknown_operation(self):
        with pytest.raises(UnknownOperationError, match="'NoSuchOperation' is not registered"):
            get_operation_registry().get("NoSuchOperation")

    def test_unregister(self):
        # Arrange
        registry = get_operation_registry()
        before = len(registry)

        @registry.register
        def short_lived(store, arguments, invocation_metadata, locale):
            """Does nothing."""
            return store

        # Act
        registry.unregister("short_lived")
        # Assert
        assert len(registry) == before
        assert "short_lived" not in registry

    def test_description_is_required(self):
        def undocumented(store, arguments, invocation_metadata, locale):
            return store

        with pytest.raises(ValueError, match="description cannot be empty"):
            get_operation_registry().register(undocumented)


class TestRegisteredOperation:
    def test_validates_string_arguments(self, tag_operation: RegisteredOperation, store: StateStore):
        tag_operation(store, {"Key": "Tag", "Count": "3"}, {}, "en_GB")
        assert store.image_arrays[0].metadata["Tag"] == "3:en_GB"

    @pytest.mark.parametrize(
        "arguments",
        [
            pytest.param({}, id="missing argument"),
            pytest.param({"Key": "Tag", "Count": "zero"}, id="not a number"),
            pytest.param({"Key": "Tag", "Count": "0"}, id="out of range"),
            pytest.param({"Key": "Tag", "Colour": "red"}, id="unknown argument"),
        ],
    )
    def test_invalid_arguments(self, tag_operation: RegisteredOperation, store: StateStore, arguments):
        with pytest.raises(ArgumentError, match="TagStore") as exc_info:
            tag_operation(store, arguments)
        assert exc_info.value.operation == "TagStore"

    def test_run_returns_a_result(self, tag_operation: RegisteredOperation, store: StateStore):
        assert is_successful(tag_operation.run(store, {"Key": "Tag"}))
        failed = tag_operation.run(store, {})
        assert isinstance(failed.failure(), ArgumentError)

    def test_describe(self, tag_operation: RegisteredOperation):
        description = tag_operation.describe()
        assert description["name"] == "TagStore"
        assert set(description["arguments"]["properties"]) == {"Key", "Count"}
