"""Tests for normalize(): defaults, uuid generation, nested records, patch mode."""

from dataclasses import dataclass

import pytest

from pydantic import BaseModel

from model_store.errors import SchemaDefinitionError
from model_store.model.definition import ModelDefinition, Registry
from model_store.model.normalizer import extract, generate_uuid, normalize
from model_store.model.record import Record


@pytest.fixture
def tags() -> ModelDefinition:
    return ModelDefinition.build("Tag", [
        {"id": "id", "type": "uuid", "default": True},
        {"id": "label", "type": "string", "default": "new"},
        {"id": "aliases", "type": "array", "default": []},
        {"id": "note", "type": "string"},
    ])


class TestExtract:
    """Verify input flattening."""

    def test_none(self) -> None:
        assert extract(None) == {}

    def test_record(self, registry: Registry) -> None:
        record = registry.create("Place", {"id": "oslo"})
        assert extract(record)["id"] == "oslo"

    def test_pydantic_model(self) -> None:
        class Point(BaseModel):
            x: int
            y: int

        assert extract(Point(x=1, y=2)) == {"x": 1, "y": 2}

    def test_plain_object(self) -> None:
        @dataclass
        class Point:
            x: int
            y: int

        assert extract(Point(1, 2)) == {"x": 1, "y": 2}

    def test_unsupported(self) -> None:
        with pytest.raises(TypeError, match="Cannot normalize value of type int"):
            extract(42)


class TestNormalize:
    """Verify defaults, generated uuids and key filtering."""

    def test_defaults_applied(self, tags: ModelDefinition) -> None:
        data = normalize(tags, {})
        assert len(data["id"]) == 36
        assert data["label"] == "new"
        assert data["aliases"] == []
        assert data["note"] is None
        assert list(data) == ["id", "label", "aliases", "note"]

    def test_supplied_values_win(self, tags: ModelDefinition) -> None:
        data = normalize(tags, {"id": "x" * 36, "label": "old"})
        assert data["id"] == "x" * 36
        assert data["label"] == "old"

    def test_none_replaced_by_default(self, tags: ModelDefinition) -> None:
        assert normalize(tags, {"label": None})["label"] == "new"

    def test_defaults_are_copied(self, tags: ModelDefinition) -> None:
        first = normalize(tags, {})
        first["aliases"].append("a")
        assert normalize(tags, {})["aliases"] == []

    def test_unknown_keys_dropped(self, tags: ModelDefinition) -> None:
        assert "colour" not in normalize(tags, {"colour": "red"})

    def test_uuid_true_generates(self, tags: ModelDefinition) -> None:
        first = normalize(tags, {"id": True})["id"]
        second = normalize(tags, {"id": True})["id"]
        assert len(first) == 36 and first != second

    def test_patch_mode_only_present_keys(self, tags: ModelDefinition) -> None:
        data = normalize(tags, {"note": "x", "label": None}, include_defaults=False)
        assert data == {"label": None, "note": "x"}

    def test_schemaless_passthrough(self) -> None:
        source = {"anything": 1, "goes": [2]}
        assert normalize(ModelDefinition.build("Bag"), source) == source

    def test_generate_uuid_format(self) -> None:
        value = generate_uuid()
        assert len(value) == 36
        assert value[14] == "4"


class TestNestedModels:
    """Verify raw mappings under model properties become records."""

    @pytest.fixture
    def trips(self, registry: Registry) -> Registry:
        registry.define("Trip", [
            {"id": "id", "type": "string"},
            {"id": "start", "type": "object", "model": "Place"},
            {"id": "stops", "type": "array", "model": "Place"},
        ])
        return registry

    def test_nested_object(self, trips: Registry) -> None:
        data = normalize(
            trips.get("Trip"), {"start": {"id": "oslo", "lat": 1.0}}, registry=trips
        )
        assert isinstance(data["start"], Record)
        assert data["start"].definition.name == "Place"
        assert data["start"]["lat"] == 1.0

    def test_nested_array(self, trips: Registry) -> None:
        existing = trips.create("Place", {"id": "bergen"})
        data = normalize(
            trips.get("Trip"), {"stops": [{"id": "oslo"}, existing]}, registry=trips
        )
        assert [stop.id() for stop in data["stops"]] == ["oslo", "bergen"]
        assert data["stops"][1] is existing

    def test_nested_without_registry(self, trips: Registry) -> None:
        with pytest.raises(SchemaDefinitionError, match="no registry"):
            normalize(trips.get("Trip"), {"start": {"id": "oslo"}})
