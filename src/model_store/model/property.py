"""Property schema: the static description of a single model field.

A ``Property`` is a frozen pydantic model.  Constructing one validates the
schema itself (pattern compiles, ``min <= max``, nested models only on
``object``/``array`` properties), so a malformed definition is rejected when
it is registered rather than when a record is first validated.

Example:
    >>> prop = Property(id="lat", type="float", required=True, min=-90, max=90)
    >>> prop.name
    'lat'
    >>> prop.type is PropertyType.FLOAT
    True
"""

import re
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class PropertyType(str, Enum):
    """Declared property types."""

    ANY = "any"
    BOOL = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    NUMBER = "number"
    STRING = "string"
    UUID = "uuid"
    URL = "url"
    EMAIL = "email"
    DATETIME = "datetime"
    DATE = "date"
    TIME = "time"
    ARRAY = "array"
    OBJECT = "object"
    FUNCTION = "function"


# Types whose values are plain scalars (stored in a typed column).
SCALAR_TYPES = frozenset({
    PropertyType.BOOL,
    PropertyType.INTEGER,
    PropertyType.FLOAT,
    PropertyType.NUMBER,
    PropertyType.STRING,
    PropertyType.UUID,
    PropertyType.URL,
    PropertyType.EMAIL,
    PropertyType.DATETIME,
    PropertyType.DATE,
    PropertyType.TIME,
})


class Property(BaseModel):
    """Schema for one model field.

    Recognized keys mirror the model definition surface: identity
    (``id``, ``name``, ``desc``), ``type``, nested ``model`` reference,
    ``object`` type constraint, ``foreign``/``match`` references, ``default``,
    flags, ``index``/``unique`` names and validation constraints.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    id: str
    name: str = ""
    desc: str = ""
    type: PropertyType = PropertyType.ANY
    model: str | None = None
    object_: Any = Field(default=None, alias="object")
    foreign: str | None = None
    match: str | None = None
    default: Any = None
    required: bool = False
    readable: bool = True
    writable: bool = True
    mutable: bool = True
    disabled: bool = False
    primary: bool = False
    index: str | None = None
    unique: str | None = None
    pattern: str | None = None
    enumeration: tuple[Any, ...] | None = Field(
        default=None,
        validation_alias=AliasChoices("enumeration", "enum"),
    )
    min: float | None = None
    max: float | None = None

    @model_validator(mode="before")
    @classmethod
    def _fill_defaults(cls, data: Any) -> Any:
        """Default ``name`` to ``id`` and expand boolean index flags."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not data.get("name") and data.get("id"):
            data["name"] = data["id"]
        for key in ("index", "unique"):
            if data.get(key) is True:
                data[key] = data.get("id")
            elif data.get(key) is False:
                data[key] = None
        return data

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("property id must not be empty")
        return value

    @field_validator("pattern")
    @classmethod
    def _check_pattern(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"invalid regex pattern {value!r}: {e}") from e
        return value

    @model_validator(mode="after")
    def _check_consistency(self) -> "Property":
        if self.model and self.type not in (PropertyType.OBJECT, PropertyType.ARRAY):
            raise ValueError(
                f"property '{self.id}' references model '{self.model}' "
                f"but is of type '{self.type.value}' (expected object or array)"
            )
        if self.model and self.foreign:
            raise ValueError(f"property '{self.id}' cannot declare both model and foreign")
        if self.match and not self.foreign:
            raise ValueError(f"property '{self.id}' declares match without foreign")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"property '{self.id}' has min greater than max")
        return self

    @property
    def reference(self) -> str | None:
        """Name of the referenced model (``model`` or ``foreign``), if any."""
        return self.model or self.foreign

    @property
    def auto_uuid(self) -> bool:
        """True when the property generates a fresh uuid for ``True`` values."""
        return self.type is PropertyType.UUID and self.default is True

    def to_dict(self) -> dict[str, Any]:
        """Return the schema as a plain dict using the public key names."""
        return self.model_dump(by_alias=True, exclude_none=True)
