"""Record validation against its model definition.

``validate_record()`` walks the definition's properties in order and applies
the rule chain below to each value, raising ``ValidationError`` on the first
violation:

1. required
2. type
3. nested model (recursing into nested records)
4. object / interface
5. pattern
6. enumeration
7. min / max

A ``None`` value on an optional property skips the remaining rules for that
property.  Validation is always explicit; records never validate themselves
on construction or assignment.
"""

import datetime
import importlib
import re
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from model_store.errors import SchemaDefinitionError, ValidationError
from model_store.model.property import Property, PropertyType

if TYPE_CHECKING:
    from model_store.model.record import Record


def _number(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_datetime(value: Any, parser: Callable[[str], Any]) -> bool:
    if not isinstance(value, str):
        return False
    try:
        parser(value)
    except ValueError:
        return False
    return True


# ------------------------------------------------------------------
# Rules
# ------------------------------------------------------------------


def check_required(prop: Property, value: Any) -> None:
    if prop.required and value is None:
        raise ValidationError(prop.id, "required", f"{prop.name} is required.")


def check_type(prop: Property, value: Any) -> None:
    kind = prop.type

    if kind is PropertyType.ANY:
        valid = True
    elif kind is PropertyType.BOOL:
        valid = isinstance(value, bool)
    elif kind is PropertyType.INTEGER:
        valid = isinstance(value, int) and not isinstance(value, bool)
    elif kind in (PropertyType.FLOAT, PropertyType.NUMBER):
        valid = _is_number(value)
    elif kind is PropertyType.UUID:
        valid = isinstance(value, str) and len(value) == 36
    elif kind in (PropertyType.STRING, PropertyType.URL, PropertyType.EMAIL):
        valid = isinstance(value, str)
    elif kind is PropertyType.DATETIME:
        valid = _is_datetime(value, datetime.datetime.fromisoformat)
    elif kind is PropertyType.DATE:
        valid = _is_datetime(value, datetime.date.fromisoformat)
    elif kind is PropertyType.TIME:
        valid = _is_datetime(value, datetime.time.fromisoformat)
    elif kind is PropertyType.ARRAY:
        valid = isinstance(value, list)
    elif kind is PropertyType.FUNCTION:
        valid = callable(value)
    else:
        # object: anything structured that is neither a scalar nor a list
        valid = not isinstance(value, (str, bytes, int, float, bool, list))

    if not valid:
        raise ValidationError(prop.id, "type", f"{prop.name} must be of type {kind.value}.")


def check_model(prop: Property, value: Any, seen: set[int] | None = None) -> None:
    """Nested records must be of the declared model (or derived from it) and valid.

    Records already in *seen* (by identity) are not validated again, so
    restored graphs with cycles terminate.
    """
    from model_store.model.record import Record

    if not prop.model:
        return

    items = value if isinstance(value, list) else [value]
    for item in items:
        if not isinstance(item, Record) or not item.definition.is_a(prop.model):
            raise ValidationError(
                prop.id, "model", f"{prop.name} must be an instance of {prop.model}"
            )
        validate_record(item, seen)


def resolve_object_type(target: Any) -> type:
    """Resolve an ``object`` constraint given as a type or import path.

    Import paths may use ``module:attr`` or ``module.attr`` form.

    Raises:
        SchemaDefinitionError: If the path cannot be imported.
    """
    if isinstance(target, type):
        return target
    path = str(target)
    if ":" in path:
        module_name, _, attr = path.partition(":")
    else:
        module_name, _, attr = path.rpartition(".")
    if not module_name or not attr:
        raise SchemaDefinitionError(f"Invalid object type path '{path}'")
    try:
        resolved = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise SchemaDefinitionError(f"Cannot resolve object type '{path}': {e}") from e
    if not isinstance(resolved, type):
        raise SchemaDefinitionError(f"Object type '{path}' is not a class")
    return resolved


def check_object(prop: Property, value: Any) -> None:
    if prop.object_ is None:
        return
    expected = resolve_object_type(prop.object_)
    items = value if isinstance(value, list) else [value]
    for item in items:
        if not isinstance(item, expected):
            raise ValidationError(
                prop.id, "object", f"{prop.name} must be an instance of {expected.__name__}"
            )


def check_pattern(prop: Property, value: Any) -> None:
    if prop.pattern is None or not isinstance(value, str):
        return
    if re.search(prop.pattern, value) is None:
        raise ValidationError(
            prop.id, "pattern", f"{prop.name} must match the regex pattern {prop.pattern}"
        )


def _in_enumeration(value: Any, options: tuple[Any, ...]) -> bool:
    # Exact match: 1, 1.0 and True are different options.
    return any(type(value) is type(option) and value == option for option in options)


def check_enumeration(prop: Property, value: Any) -> None:
    options = prop.enumeration
    if not options:
        return
    if isinstance(value, list):
        valid = all(_in_enumeration(item, options) for item in value)
    elif isinstance(value, (str, int, float, bool)):
        valid = _in_enumeration(value, options)
    else:
        return
    if not valid:
        joined = ", ".join(str(option) for option in options)
        raise ValidationError(prop.id, "enumeration", f"{prop.name} must be one of {joined}")


def check_range(prop: Property, value: Any) -> None:
    """Apply ``min`` / ``max`` to numbers, string lengths and list counts."""
    if prop.min is None and prop.max is None:
        return

    if _is_number(value):
        measured, low, high = value, "must be at least {}.", "must be max {}."
    elif isinstance(value, str):
        measured = len(value)
        low, high = "must contain at least {} characters.", "must contain max {} characters."
    elif isinstance(value, list):
        measured = len(value)
        low, high = "must contain at least {} entries.", "must contain max {} entries."
    else:
        return

    if prop.min is not None and measured < prop.min:
        raise ValidationError(prop.id, "min", f"{prop.name} {low.format(_number(prop.min))}")
    if prop.max is not None and measured > prop.max:
        raise ValidationError(prop.id, "max", f"{prop.name} {high.format(_number(prop.max))}")


RULES: tuple[Callable[[Property, Any], None], ...] = (
    check_type,
    check_model,
    check_object,
    check_pattern,
    check_enumeration,
    check_range,
)


# ------------------------------------------------------------------
# Entry points
# ------------------------------------------------------------------


def validate_value(prop: Property, value: Any, seen: set[int] | None = None) -> None:
    """Run the full rule chain for a single property value."""
    check_required(prop, value)
    if value is None:
        return
    for rule in RULES:
        if rule is check_model:
            check_model(prop, value, seen)
        else:
            rule(prop, value)


def validate_record(record: "Record", seen: set[int] | None = None) -> "Record":
    """Validate *record* against its definition.

    Args:
        record: The record to validate.
        seen: Identities of records already validated in this pass.

    Returns:
        The same record, for chaining.

    Raises:
        ValidationError: On the first violated constraint.

    Example:
        >>> place = registry.create("Place", {"lat": 70.66, "lon": 23.68})
        >>> validate_record(place)
        Traceback (most recent call last):
        ...
        model_store.errors.ValidationError: id is required.
    """
    if seen is None:
        seen = set()
    if id(record) in seen:
        return record
    seen.add(id(record))

    data = record.data
    for prop in record.definition:
        validate_value(prop, data.get(prop.id), seen)
    return record
