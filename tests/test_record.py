"""Tests for Record: accessors, mutation rules, serialization and equality."""

import json

import pytest

from model_store.errors import MutationError
from model_store.model.definition import ModelDefinition, Registry
from model_store.model.normalizer import normalize
from model_store.model.record import Record


@pytest.fixture
def accounts() -> Registry:
    registry = Registry()
    registry.define("Account", [
        {"id": "id", "type": "uuid", "default": True, "mutable": False},
        {"id": "email", "type": "email", "required": True},
        {"id": "created", "type": "datetime", "writable": False},
        {"id": "secret", "type": "string", "readable": False},
        {"id": "legacy", "type": "string", "disabled": True},
        {"id": "plan", "type": "string", "default": "free"},
    ])
    return registry


class TestAccessors:
    """Verify the single get / set / unset / patch path."""

    def test_get_and_item_access(self, registry: Registry) -> None:
        place = registry.create("Place", {"id": "oslo", "lat": 59.9, "lon": 10.7})
        assert place.get("lat") == 59.9
        assert place["lon"] == 10.7
        assert place.get("missing", "fallback") == "fallback"

    def test_set_returns_record(self, registry: Registry) -> None:
        place = registry.create("Place", {"id": "oslo"})
        assert place.set("lat", 60.0) is place
        place["lon"] = 11.0
        assert place.data == {"id": "oslo", "lat": 60.0, "lon": 11.0}

    def test_data_is_a_copy(self, registry: Registry) -> None:
        place = registry.create("Place", {"id": "oslo"})
        place.data["lat"] = 1.0
        assert place["lat"] is None

    def test_set_unknown_key(self, registry: Registry) -> None:
        place = registry.create("Place", {"id": "oslo"})
        with pytest.raises(MutationError, match="Setting the colour property in Place is not allowed.") as info:
            place["colour"] = "red"
        assert info.value.field == "colour"

    def test_set_not_writable(self, accounts: Registry) -> None:
        account = accounts.create("Account", {"email": "a@example.org"})
        with pytest.raises(MutationError, match="not writable"):
            account.set("created", "2024-01-01T00:00:00")

    def test_immutable_once_set(self, accounts: Registry) -> None:
        account = accounts.create("Account", {"email": "a@example.org"})
        with pytest.raises(MutationError, match="cannot be changed once set"):
            account.set("id", "0b5a3c9e-8f1d-4a57-9b55-2c1d6c3e8f00")

    def test_immutable_may_be_filled(self) -> None:
        definition = ModelDefinition.build("Ticket", [
            {"id": "id", "type": "string"},
            {"id": "code", "type": "string", "mutable": False},
        ])
        ticket = Record(definition, {"id": "t"})
        ticket.set("code", "ABC")
        assert ticket["code"] == "ABC"

    def test_unset_resets_to_none(self, accounts: Registry) -> None:
        account = accounts.create("Account", {"email": "a@example.org"})
        del account["plan"]
        assert "plan" in account
        assert account["plan"] is None

    def test_unset_not_writable(self, accounts: Registry) -> None:
        account = accounts.create("Account", {"email": "a@example.org"})
        with pytest.raises(MutationError):
            account.unset("created")

    def test_patch_merges(self, accounts: Registry) -> None:
        account = accounts.create("Account", {"email": "a@example.org", "plan": "pro"})
        account.patch({"email": "b@example.org"})
        assert account["email"] == "b@example.org"
        assert account["plan"] == "pro"

    def test_patch_same_value_on_guarded_field(self, accounts: Registry) -> None:
        """Re-sending an unchanged immutable value is not a mutation."""
        account = accounts.create("Account", {"email": "a@example.org"})
        account.patch(account.data)

    def test_patch_checks_permissions(self, accounts: Registry) -> None:
        account = accounts.create("Account", {"email": "a@example.org"})
        with pytest.raises(MutationError):
            account.patch({"created": "2024-01-01T00:00:00"})

    def test_id(self, registry: Registry) -> None:
        assert registry.create("Place", {"id": "oslo"}).id() == "oslo"
        assert registry.create("Place").id() is None

    def test_replace_returns_previous(self, registry: Registry) -> None:
        place = registry.create("Place", {"id": "oslo", "lat": 1.0})
        old = place.replace({"id": "bergen"})
        assert old["id"] == "oslo"
        assert place.data == {"id": "bergen", "lat": None, "lon": None}


class TestSchemaless:
    """Records without a definition accept any key."""

    def test_any_key(self) -> None:
        record = Record(None, {"a": 1})
        record["b"] = [2]
        assert record.data == {"a": 1, "b": [2]}
        assert record.definition.is_empty

    def test_delete_removes_key(self) -> None:
        record = Record(None, {"a": 1, "b": 2})
        del record["a"]
        assert list(record) == ["b"]
        assert len(record) == 1


class TestSerialization:
    """Verify serialize / describe / to_json."""

    def test_serialize_nested(self, registry: Registry) -> None:
        registry.define("Trip", [
            {"id": "id", "type": "string"},
            {"id": "stops", "type": "array", "model": "Place"},
        ])
        trip = registry.create("Trip", {"id": "t", "stops": [{"id": "oslo", "lat": 1.0}]})
        assert trip.serialize() == {
            "id": "t",
            "stops": [{"id": "oslo", "lat": 1.0, "lon": None}],
        }

    def test_serialize_compact(self, accounts: Registry) -> None:
        account = accounts.create("Account", {"id": "x" * 36, "email": "a@example.org"})
        compact = account.serialize(compact=True)
        assert "plan" not in compact
        assert "secret" not in compact
        assert compact["email"] == "a@example.org"

    def test_describe(self, accounts: Registry) -> None:
        account = accounts.create("Account", {"email": "a@example.org", "secret": "s"})
        described = {entry["id"]: entry for entry in account.describe()}

        assert "legacy" not in described
        assert described["email"]["value"] == "a@example.org"
        assert described["email"]["type"] == "email"
        assert "value" not in described["secret"]

    def test_to_json(self, registry: Registry) -> None:
        place = registry.create("Place", {"id": "tromsø", "lat": 69.6, "lon": 18.9})
        assert json.loads(place.to_json()) == place.serialize()
        assert "tromsø" in str(place)

    def test_cycle_serialized_as_id(self, registry: Registry) -> None:
        registry.define("Owner", [
            {"id": "id", "type": "string"},
            {"id": "pets", "type": "array", "model": "Pet"},
        ])
        registry.define("Pet", [
            {"id": "id", "type": "string"},
            {"id": "owner", "type": "object", "model": "Owner"},
        ])
        owner = registry.create("Owner", {"id": "ann"})
        rex = registry.create("Pet", {"id": "rex", "owner": owner})
        owner["pets"] = [rex, rex]

        assert owner.serialize() == {
            "id": "ann",
            "pets": [{"id": "rex", "owner": "ann"}, {"id": "rex", "owner": "ann"}],
        }
        assert json.loads(str(owner))["pets"][0]["owner"] == "ann"
        assert rex.serialize() == {"id": "rex", "owner": {"id": "ann", "pets": ["rex", "rex"]}}
        described = {entry["id"]: entry for entry in rex.describe()}
        assert described["owner"]["value"] == {"id": "ann", "pets": ["rex", "rex"]}


class TestEquality:

    def test_equal_by_name_and_data(self, registry: Registry) -> None:
        a = registry.create("Place", {"id": "oslo", "lat": 1.0})
        b = registry.create("Place", {"id": "oslo", "lat": 1.0})
        assert a == b
        b["lat"] = 2.0
        assert a != b

    def test_different_models(self, registry: Registry) -> None:
        registry.extend("Place", "City")
        a = registry.create("Place", {"id": "oslo"})
        b = registry.create("City", {"id": "oslo"})
        assert a != b

    def test_unhashable(self, registry: Registry) -> None:
        with pytest.raises(TypeError):
            hash(registry.create("Place"))


class TestRoundTrip:
    """A serialized record normalizes back to the same canonical mapping."""

    @pytest.fixture
    def journeys(self, registry: Registry) -> Registry:
        registry.define("Journey", [
            {"id": "id", "type": "uuid", "default": True},
            {"id": "title", "type": "string", "default": "untitled"},
            {"id": "days", "type": "integer", "default": 1},
            {"id": "start", "type": "object", "model": "Place"},
            {"id": "stops", "type": "array", "model": "Place"},
            {"id": "meta", "type": "object"},
            {"id": "notes", "type": "array"},
        ])
        return registry

    @pytest.mark.parametrize("compact", [False, True])
    @pytest.mark.parametrize("data", [
        {},
        {"id": "6f1c0a8e-3b5d-4f0e-9a47-1d2b3c4d5e6f", "title": "Coast"},
        {"start": {"id": "oslo", "lat": 59.9, "lon": 10.7}},
        {"stops": [{"id": "oslo", "lat": 59.9}, {"id": "bergen", "lon": 5.3}], "days": 4},
        {"meta": {"season": "summer"}, "notes": ["ferry", 3], "title": "untitled"},
    ])
    def test_round_trip(self, journeys: Registry, data: dict, compact: bool) -> None:
        definition = journeys.get("Journey")
        journey = journeys.create("Journey", data)
        serialized = journey.serialize(compact=compact)

        assert Record(definition, serialized, registry=journeys) == journey
        assert normalize(definition, serialized, registry=journeys) == journey.data

    def test_auto_uuid_survives(self, journeys: Registry) -> None:
        journey = journeys.create("Journey")
        assert len(journey.id()) == 36
        assert Record(journey.definition, journey.serialize(), registry=journeys).id() == journey.id()

    def test_nested_records_rebuilt(self, journeys: Registry) -> None:
        journey = journeys.create("Journey", {"start": {"id": "oslo"}, "stops": [{"id": "bergen"}]})
        copy = Record(journey.definition, journey.serialize(), registry=journeys)

        assert isinstance(copy["start"], Record)
        assert copy["start"] is not journey["start"]
        assert [stop.id() for stop in copy["stops"]] == ["bergen"]
