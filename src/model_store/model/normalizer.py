"""Normalization: arbitrary input to a canonical field mapping.

``normalize()`` interprets a model definition to turn a raw mapping, another
record, or any structurally compatible object into the canonical
``{property id: value}`` mapping held by a ``Record``:

- supplied values win, then (with ``include_defaults``) declared defaults,
  then ``None``
- nested raw mappings for ``model`` properties become nested records
- a ``uuid`` property whose value is ``True`` gets a fresh random uuid
- an empty definition passes the input through unchanged
"""

import copy
import uuid
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from model_store.errors import SchemaDefinitionError
from model_store.model.definition import ModelDefinition
from model_store.model.property import Property, PropertyType

if TYPE_CHECKING:
    from model_store.model.definition import Registry


def generate_uuid() -> str:
    """Return a random RFC 4122 version 4 uuid as a 36 character string."""
    return str(uuid.uuid4())


def extract(source: Any) -> dict[str, Any]:
    """Flatten *source* into a plain dict of available values.

    Accepts ``None``, a mapping, a ``Record``, a pydantic model or any
    object with instance attributes.

    Raises:
        TypeError: If no values can be extracted from *source*.
    """
    from model_store.model.record import Record

    if source is None:
        return {}
    if isinstance(source, Record):
        return dict(source.data)
    if isinstance(source, Mapping):
        return dict(source)
    if hasattr(source, "model_dump"):
        return dict(source.model_dump())
    try:
        return dict(vars(source))
    except TypeError:
        raise TypeError(f"Cannot normalize value of type {type(source).__name__}") from None


def _nested(prop: Property, value: Any, registry: "Registry | None") -> Any:
    """Instantiate nested records for raw mappings under a ``model`` property."""
    from model_store.model.record import Record

    if registry is None:
        raise SchemaDefinitionError(
            f"Property '{prop.id}' references model '{prop.model}' but no registry was given"
        )
    definition = registry.get(prop.model)

    if prop.type is PropertyType.ARRAY and isinstance(value, (list, tuple)):
        return [
            Record(definition, item, registry=registry) if isinstance(item, Mapping) else item
            for item in value
        ]
    if isinstance(value, Mapping):
        return Record(definition, value, registry=registry)
    return value


def normalize(
    definition: ModelDefinition,
    source: Any,
    include_defaults: bool = True,
    registry: "Registry | None" = None,
) -> dict[str, Any]:
    """Convert *source* into the canonical mapping for *definition*.

    Args:
        definition: Model definition driving the conversion.
        source: Raw mapping, record or compatible object.
        include_defaults: When False (patching), only properties present in
            *source* are included, so unrelated fields are never reset.
        registry: Registry used to resolve nested ``model`` references.

    Returns:
        Ordered dict of property id to value.

    Example:
        >>> d = ModelDefinition.build("Tag", [{"id": "id", "type": "uuid", "default": True},
        ...                                   {"id": "label", "default": "new"}])
        >>> data = normalize(d, {})
        >>> len(data["id"]), data["label"]
        (36, 'new')
    """
    values = extract(source)

    if definition.is_empty:
        return values

    result: dict[str, Any] = {}
    for prop in definition:
        if prop.id in values:
            value = values[prop.id]
        elif include_defaults:
            value = None
        else:
            continue

        if value is None and include_defaults:
            value = copy.deepcopy(prop.default)

        if prop.type is PropertyType.UUID and value is True:
            value = generate_uuid()
        elif prop.model and value is not None:
            value = _nested(prop, value, registry)

        result[prop.id] = value
    return result
