"""Model definitions and the definition registry.

A ``ModelDefinition`` is an immutable, ordered mapping of property id to
``Property`` plus the id of its primary-key property.  Inheritance is
explicit: ``extend()`` overlays a base definition with new or replaced
properties and returns a new definition, keeping the base's ordering for
untouched ids.

Usage:
    from model_store.model.definition import Registry

    registry = Registry()
    registry.define("Place", [
        {"id": "id", "type": "string", "required": True, "primary": True},
        {"id": "lat", "type": "float", "required": True, "min": -90, "max": 90},
        {"id": "lon", "type": "float", "required": True, "min": -180, "max": 180},
    ])
    registry.extend("Place", "City", [{"id": "population", "type": "integer"}])

    city = registry.create("City", {"id": "oslo", "lat": 59.9, "lon": 10.7})
"""

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import pydantic

from model_store.errors import SchemaDefinitionError
from model_store.model.property import Property

if TYPE_CHECKING:
    from model_store.model.record import Record

logger = logging.getLogger(__name__)

PropertySource = Property | Mapping[str, Any]


# ------------------------------------------------------------------
# Property list parsing
# ------------------------------------------------------------------


def build_property(source: PropertySource, key: str | None = None) -> Property:
    """Build a ``Property`` from a mapping, wrapping schema errors.

    Args:
        source: A ``Property`` or a mapping of property keys.
        key: Id to use when the mapping omits ``id`` (mapping-style
            property lists are keyed by id).

    Raises:
        SchemaDefinitionError: If the property schema is malformed.
    """
    if isinstance(source, Property):
        return source
    data = dict(source)
    if key is not None:
        data.setdefault("id", key)
    try:
        return Property(**data)
    except pydantic.ValidationError as e:
        label = data.get("id", key) or "<unnamed>"
        raise SchemaDefinitionError(f"Invalid property '{label}': {e}") from e
    except TypeError as e:
        raise SchemaDefinitionError(f"Invalid property '{key}': {e}") from e


def build_properties(
    properties: Iterable[PropertySource] | Mapping[str, PropertySource],
) -> dict[str, Property]:
    """Parse a property list (sequence or id-keyed mapping) into ``Property`` objects.

    Raises:
        SchemaDefinitionError: On malformed entries or duplicate ids.
    """
    parsed: dict[str, Property] = {}
    if isinstance(properties, Mapping):
        items = [build_property(value, key) for key, value in properties.items()]
    else:
        items = [build_property(value) for value in properties]

    for prop in items:
        if prop.id in parsed:
            raise SchemaDefinitionError(f"Duplicate property id '{prop.id}'")
        parsed[prop.id] = prop
    return parsed


def _resolve_primary(name: str, properties: Mapping[str, Property], primary: str | None) -> str:
    flagged = [prop.id for prop in properties.values() if prop.primary]
    if len(flagged) > 1:
        raise SchemaDefinitionError(
            f"Model '{name}' flags more than one primary property: {', '.join(flagged)}"
        )
    if primary is not None:
        if properties and primary not in properties:
            raise SchemaDefinitionError(
                f"Model '{name}' declares primary key '{primary}' which is not a property"
            )
        return primary
    if flagged:
        return flagged[0]
    return "id"


# ------------------------------------------------------------------
# Model definition
# ------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class ModelDefinition:
    """Immutable, ordered description of a record type.

    Attributes:
        name: Model type identifier (registry key, table name source).
        properties: Ordered, read-only mapping of property id to ``Property``.
        primary: Id of the primary-key property.  A model whose primary id
            is not among its properties has no primary key and is stored
            inline by its owner.
        bases: Names of the definitions this one was extended from,
            nearest first.
    """

    name: str
    properties: Mapping[str, Property] = field(default_factory=dict)
    primary: str = "id"
    bases: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    @classmethod
    def build(
        cls,
        name: str,
        properties: Iterable[PropertySource] | Mapping[str, PropertySource] = (),
        primary: str | None = None,
        bases: tuple[str, ...] = (),
    ) -> "ModelDefinition":
        """Parse raw property schemas and resolve the primary key.

        The primary key is *primary* when given, else the property flagged
        ``primary``, else ``"id"``.
        """
        if not name:
            raise SchemaDefinitionError("Model name must not be empty")
        parsed = build_properties(properties)
        return cls(
            name=name,
            properties=parsed,
            primary=_resolve_primary(name, parsed, primary),
            bases=bases,
        )

    @property
    def is_empty(self) -> bool:
        """True for schema-less definitions."""
        return not self.properties

    @property
    def primary_property(self) -> Property | None:
        """The primary-key ``Property``, or None if the model has no primary key."""
        return self.properties.get(self.primary)

    def is_a(self, name: str) -> bool:
        """True if this definition is *name* or was extended from it."""
        return name == self.name or name in self.bases

    def __contains__(self, prop_id: object) -> bool:
        return prop_id in self.properties

    def __iter__(self) -> Iterator[Property]:
        return iter(self.properties.values())


SCHEMALESS = ModelDefinition(name="Record")


def extend(
    base: ModelDefinition,
    name: str,
    overrides: Iterable[PropertySource] | Mapping[str, PropertySource] = (),
    primary: str | None = None,
) -> ModelDefinition:
    """Return a new definition overlaying *overrides* on *base*.

    Overriding properties with an existing id replace the base entry in
    place; new ids are appended in the order given.

    Example:
        >>> base = ModelDefinition.build("A", [{"id": "id"}, {"id": "x"}])
        >>> derived = extend(base, "B", [{"id": "y"}, {"id": "x", "type": "integer"}])
        >>> list(derived.properties)
        ['id', 'x', 'y']
        >>> derived.is_a("A")
        True
    """
    merged: dict[str, Property] = dict(base.properties)
    merged.update(build_properties(overrides))

    if primary is None:
        flagged = [p.id for p in merged.values() if p.primary and p.id != base.primary]
        if flagged:
            primary = flagged[0]
            # The base's primary flag no longer applies.
            old = merged.get(base.primary)
            if old is not None and old.primary:
                merged[base.primary] = old.model_copy(update={"primary": False})
        else:
            primary = base.primary

    return ModelDefinition.build(name, merged, primary=primary, bases=(base.name, *base.bases))


# ------------------------------------------------------------------
# Registry
# ------------------------------------------------------------------


class Registry:
    """Definitions keyed by model name, in registration order."""

    def __init__(self) -> None:
        self._definitions: dict[str, ModelDefinition] = {}

    def register(self, definition: ModelDefinition) -> ModelDefinition:
        """Add an existing definition.

        Raises:
            SchemaDefinitionError: If the name is already registered.
        """
        if definition.name in self._definitions:
            raise SchemaDefinitionError(f"Model '{definition.name}' is already registered")
        self._definitions[definition.name] = definition
        logger.debug("Registered model %s (%d properties)", definition.name, len(definition.properties))
        return definition

    def define(
        self,
        name: str,
        properties: Iterable[PropertySource] | Mapping[str, PropertySource] = (),
        primary: str | None = None,
    ) -> ModelDefinition:
        """Build and register a new definition."""
        return self.register(ModelDefinition.build(name, properties, primary=primary))

    def extend(
        self,
        base: str | ModelDefinition,
        name: str,
        overrides: Iterable[PropertySource] | Mapping[str, PropertySource] = (),
        primary: str | None = None,
    ) -> ModelDefinition:
        """Build and register a definition derived from *base*."""
        if isinstance(base, str):
            base = self.get(base)
        return self.register(extend(base, name, overrides, primary=primary))

    def get(self, name: str) -> ModelDefinition:
        """Look up a definition by name.

        Raises:
            SchemaDefinitionError: If *name* is not registered.
        """
        try:
            return self._definitions[name]
        except KeyError:
            raise SchemaDefinitionError(f"Unknown model '{name}'") from None

    def create(self, name: str, data: Any = None) -> "Record":
        """Create a record of model *name* from arbitrary input."""
        from model_store.model.record import Record

        return Record(self.get(name), data, registry=self)

    def check(self) -> None:
        """Verify that every ``model`` / ``foreign`` reference resolves.

        Raises:
            SchemaDefinitionError: On the first unresolved reference, or a
                ``foreign`` reference whose ``match`` field does not exist.
        """
        for definition in self._definitions.values():
            for prop in definition:
                ref = prop.reference
                if ref is None:
                    continue
                if ref not in self._definitions:
                    raise SchemaDefinitionError(
                        f"Property '{definition.name}.{prop.id}' references unknown model '{ref}'"
                    )
                if prop.foreign and prop.match and prop.match not in self._definitions[ref]:
                    raise SchemaDefinitionError(
                        f"Property '{definition.name}.{prop.id}' matches unknown field "
                        f"'{ref}.{prop.match}'"
                    )

    def names(self) -> list[str]:
        return list(self._definitions)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __iter__(self) -> Iterator[ModelDefinition]:
        return iter(list(self._definitions.values()))

    def __len__(self) -> int:
        return len(self._definitions)
