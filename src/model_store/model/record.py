"""Record: a model instance holding canonical, normalized data.

A record owns its field mapping.  All reads and writes go through one
accessor path (``get`` / ``set`` / ``unset`` / ``patch``); item access
delegates to the same methods so write permissions are checked in exactly
one place.

Example:
    >>> place = registry.create("Place", {"id": "oslo", "lat": 59.91, "lon": 10.75})
    >>> place.id()
    'oslo'
    >>> place["lat"] = 60.0
    >>> place.patch({"lon": 11.0}).validate().serialize()
    {'id': 'oslo', 'lat': 60.0, 'lon': 11.0}
"""

import json
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from model_store.errors import MutationError
from model_store.model.definition import SCHEMALESS, ModelDefinition
from model_store.model.normalizer import normalize
from model_store.model.validator import validate_record

if TYPE_CHECKING:
    from model_store.model.definition import Registry


def _serialize_value(value: Any, compact: bool, path: frozenset[int] = frozenset()) -> Any:
    """Serialize nested records; a record already on *path* collapses to its id."""
    if isinstance(value, Record):
        if id(value) in path:
            return value.id()
        return value._serialize(compact, path)
    if isinstance(value, list):
        return [_serialize_value(item, compact, path) for item in value]
    return value


class Record:
    """An instance of a model definition.

    Args:
        definition: The model definition; ``None`` creates a schema-less
            record that accepts any key.
        data: Initial data (mapping, record or compatible object).
        registry: Registry used to resolve nested model references.
    """

    __slots__ = ("_definition", "_data", "_registry")

    def __init__(
        self,
        definition: ModelDefinition | None = None,
        data: Any = None,
        *,
        registry: "Registry | None" = None,
    ) -> None:
        self._definition = definition or SCHEMALESS
        self._registry = registry
        self._data: dict[str, Any] = normalize(self._definition, data, registry=registry)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def definition(self) -> ModelDefinition:
        return self._definition

    @property
    def registry(self) -> "Registry | None":
        return self._registry

    @property
    def data(self) -> dict[str, Any]:
        """Shallow copy of the canonical field mapping."""
        return dict(self._data)

    def id(self) -> Any:
        """Return the primary-key value, or None if unset."""
        return self._data.get(self._definition.primary)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def _check_writable(self, key: str) -> None:
        definition = self._definition
        if definition.is_empty:
            return
        prop = definition.properties.get(key)
        if prop is None:
            raise MutationError(
                key, f"Setting the {key} property in {definition.name} is not allowed."
            )
        if not prop.writable:
            raise MutationError(key, f"The {key} property in {definition.name} is not writable.")
        if not prop.mutable and self._data.get(key) is not None:
            raise MutationError(
                key, f"The {key} property in {definition.name} cannot be changed once set."
            )

    def set(self, key: str, value: Any) -> "Record":
        """Assign one field.

        Raises:
            MutationError: If *key* is unknown to a non-empty definition, not
                writable, or immutable and already set.
        """
        self._check_writable(key)
        if not self._definition.is_empty:
            value = normalize(
                self._definition, {key: value}, include_defaults=False, registry=self._registry
            )[key]
        self._data[key] = value
        return self

    def unset(self, key: str) -> "Record":
        """Clear a field.

        Declared fields are reset to ``None``; schema-less records drop the key.

        Raises:
            MutationError: If the field may not be written.
        """
        if self._definition.is_empty:
            self._data.pop(key, None)
            return self
        self._check_writable(key)
        self._data[key] = None
        return self

    def patch(self, data: Any) -> "Record":
        """Merge *data* into the record without applying defaults."""
        for key, value in normalize(
            self._definition, data, include_defaults=False, registry=self._registry
        ).items():
            if key in self._data and self._data[key] == value:
                continue
            self._check_writable(key)
            self._data[key] = value
        return self

    def replace(self, data: Any) -> dict[str, Any]:
        """Replace all data with a fresh normalization of *data*.

        Returns:
            The previous canonical mapping.
        """
        old = self._data
        self._data = normalize(self._definition, data, registry=self._registry)
        return old

    def validate(self) -> "Record":
        """Validate against the definition; raises ``ValidationError``."""
        return validate_record(self)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialize(self, compact: bool = False) -> dict[str, Any]:
        """Return the canonical mapping with nested records serialized.

        A nested record that refers back to one of its enclosing records is
        serialized as that record's id.

        Args:
            compact: Omit fields whose value equals the property default.
        """
        return self._serialize(compact, frozenset())

    def _serialize(self, compact: bool, path: frozenset[int]) -> dict[str, Any]:
        path = path | {id(self)}
        definition = self._definition
        result: dict[str, Any] = {}
        for key, value in self._data.items():
            value = _serialize_value(value, compact, path)
            if compact and not definition.is_empty:
                prop = definition.properties.get(key)
                if prop is not None and value == prop.default:
                    continue
            result[key] = value
        return result

    def describe(self) -> list[dict[str, Any]]:
        """Return one property mapping per enabled property.

        Readable properties carry their current ``value``; nested records
        also carry their own description under ``properties``.
        """
        return self._describe(frozenset())

    def _describe(self, path: frozenset[int]) -> list[dict[str, Any]]:
        path = path | {id(self)}
        result: list[dict[str, Any]] = []
        for prop in self._definition:
            if prop.disabled:
                continue
            entry = prop.to_dict()
            if prop.readable:
                value = self._data.get(prop.id)
                entry["value"] = _serialize_value(value, False, path)
                if isinstance(value, Record) and id(value) not in path:
                    entry["properties"] = value._describe(path)
            result.append(entry)
        return result

    def to_json(self, **kwargs: Any) -> str:
        """Dump the serialized record as JSON."""
        kwargs.setdefault("ensure_ascii", False)
        return json.dumps(self.serialize(), **kwargs)

    # ------------------------------------------------------------------
    # Mapping protocol
    # ------------------------------------------------------------------

    def __getitem__(self, key: str) -> Any:
        return self.get(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def __delitem__(self, key: str) -> None:
        self.unset(key)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return (
            self._definition.name == other._definition.name
            and self.serialize() == other.serialize()
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"{self._definition.name}({self._data!r})"

    def __str__(self) -> str:
        return self.to_json()
