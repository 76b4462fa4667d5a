"""Target schema generation from model definitions.

Derives the physical schema (tables, columns, indexes, foreign keys and
relation tables) that stores a set of model definitions.

Mapping rules:
- scalar properties become columns using ``column_type()``
- an ``object`` property whose ``model`` has a primary key, and any scalar
  ``foreign`` property, become a foreign-key column typed like the
  referenced key, with a simple index and a foreign key constraint
- an ``array`` property whose ``model`` has a primary key (or any array
  ``foreign`` property) is elided from the owner table and stored in a
  relation table ``{Owner}_{Child}``
- ``function`` properties are not stored

Usage:
    from model_store.schema.generator import generate_target

    target = generate_target(registry)
    for table in target.tables.values():
        print(table.name, list(table.columns))
"""

import hashlib
import logging
from collections.abc import Iterable
from decimal import Decimal

from model_store.errors import SchemaDefinitionError
from model_store.model.definition import ModelDefinition, Registry
from model_store.model.property import Property, PropertyType
from model_store.schema.models import (
    PRIMARY_INDEX,
    ColumnSchema,
    ForeignKeySchema,
    IndexSchema,
    RelationTable,
    SchemaTarget,
    TableSchema,
)

logger = logging.getLogger(__name__)

# MySQL identifier length limit
MAX_IDENTIFIER = 64

# Column types whose values are stored as JSON text and take no default
JSON_TYPES = frozenset({PropertyType.ANY, PropertyType.ARRAY, PropertyType.OBJECT})


# ------------------------------------------------------------------
# Naming and column types
# ------------------------------------------------------------------


def table_name(model: str) -> str:
    """Return the table name for a model name (dots become underscores)."""
    return model.replace(".", "_")


def foreign_key_name(table: str, column: str) -> str:
    """Return the constraint name for a foreign key column.

    Names longer than MySQL's identifier limit are shortened with a hash
    suffix so they stay unique and stable.
    """
    name = f"fk_{table}_{column}"
    if len(name) <= MAX_IDENTIFIER:
        return name
    digest = hashlib.sha1(name.encode("utf-8")).hexdigest()[:12]
    return f"{name[:MAX_IDENTIFIER - 13]}_{digest}"


def column_type(prop: Property) -> str | None:
    """Return the SQL column type for a property, or None if it is not stored.

    Example:
        >>> column_type(Property(id="n", type="integer"))
        'bigint'
        >>> column_type(Property(id="s", type="string", max=64))
        'varchar(64)'
        >>> column_type(Property(id="s", type="string"))
        'text'
    """
    kind = prop.type

    if kind is PropertyType.FUNCTION:
        return None
    if kind is PropertyType.ANY:
        return "varbinary(255)"
    if kind is PropertyType.BOOL:
        return "tinyint(1)"
    if kind is PropertyType.INTEGER:
        return "bigint"
    if kind in (PropertyType.FLOAT, PropertyType.NUMBER):
        return "decimal(32,10)"
    if kind is PropertyType.UUID:
        return "char(36)"
    if kind in (PropertyType.STRING, PropertyType.URL, PropertyType.EMAIL):
        size = int(prop.max) if prop.max is not None else None
        keyed = prop.primary or prop.unique or prop.index or prop.default is not None
        if keyed:
            size = min(255, size) if size is not None else 255
        if size is not None and size <= 255:
            return f"varchar({max(size, 1)})"
        return "text"
    if kind is PropertyType.DATETIME:
        return "varchar(32)"
    if kind is PropertyType.DATE:
        return "varchar(10)"
    if kind is PropertyType.TIME:
        return "varchar(8)"
    return "text"


def column_default(prop: Property, sql_type: str) -> str | None:
    """Return the column default in the string form MySQL reports it."""
    default = prop.default
    if default is None or prop.auto_uuid:
        return None
    if sql_type in ("text", "varbinary(255)") or prop.type in JSON_TYPES:
        return None
    if isinstance(default, bool):
        return "1" if default else "0"
    if isinstance(default, (int, float, Decimal)):
        return str(default)
    if isinstance(default, str):
        return default
    return None


# ------------------------------------------------------------------
# Target builder
# ------------------------------------------------------------------


class TargetBuilder:
    """One generation run over a registry.

    Holds the tables and relation tables discovered so far, so relation
    name collisions are detected within the run.
    """

    def __init__(self, registry: Registry) -> None:
        self._registry = registry
        self._target = SchemaTarget()
        self._relation_tables: dict[str, TableSchema] = {}

    def build(self, models: Iterable[str] | None = None) -> SchemaTarget:
        strict = models is not None
        names = list(models) if models is not None else self._registry.names()

        for definition in self._reachable(names):
            if definition.primary_property is None:
                if strict and definition.name in names:
                    raise SchemaDefinitionError(
                        f"Model '{definition.name}' has no primary key property "
                        f"'{definition.primary}' and cannot be stored in a table"
                    )
                continue
            self._target.models[definition.name] = table_name(definition.name)

        for model, table in self._target.models.items():
            self._target.tables[table] = self._model_table(self._registry.get(model))

        for name, table in self._relation_tables.items():
            if name in self._target.tables:
                raise SchemaDefinitionError(
                    f"Relation table '{name}' collides with a model table of the same name"
                )
            self._target.tables[name] = table

        logger.debug(
            "Generated target: %d model tables, %d relation tables",
            len(self._target.models),
            len(self._target.relations),
        )
        return self._target

    def _reachable(self, names: list[str]) -> list[ModelDefinition]:
        """Return *names* plus every model they reference, in discovery order."""
        seen: dict[str, ModelDefinition] = {}
        pending = list(names)
        while pending:
            name = pending.pop(0)
            if name in seen:
                continue
            definition = self._registry.get(name)
            seen[name] = definition
            for prop in definition:
                if prop.reference and prop.reference not in seen:
                    pending.append(prop.reference)
        return list(seen.values())

    def _key_property(self, prop: Property) -> tuple[ModelDefinition, Property] | None:
        """Return the referenced model and key property for a reference, if stored by key."""
        child = self._registry.get(prop.reference)
        if prop.foreign:
            key_id = prop.match or child.primary
            key = child.properties.get(key_id)
            if key is None:
                raise SchemaDefinitionError(
                    f"Property '{prop.id}' references unknown key '{prop.foreign}.{key_id}'"
                )
            if key_id != child.primary and not (key.unique or key.index):
                raise SchemaDefinitionError(
                    f"Property '{prop.id}' matches '{prop.foreign}.{key_id}', "
                    f"which is neither the primary key nor indexed"
                )
            if child.primary_property is None:
                raise SchemaDefinitionError(
                    f"Model '{prop.foreign}' referenced by '{prop.id}' has no primary key"
                )
            return child, key
        key = child.primary_property
        if key is None:
            return None
        return child, key

    def _model_table(self, definition: ModelDefinition) -> TableSchema:
        table = TableSchema(name=table_name(definition.name))
        references: list[tuple[Property, ModelDefinition, Property]] = []

        for prop in definition:
            if prop.type is PropertyType.FUNCTION:
                continue

            resolved = self._key_property(prop) if prop.reference else None

            if prop.type is PropertyType.ARRAY and resolved is not None:
                self._add_relation(definition, prop, *resolved)
                continue

            if resolved is not None:
                child, key = resolved
                sql_type = self._key_type(key)
                table.columns[prop.id] = ColumnSchema(
                    name=prop.id, type=sql_type, required=prop.required or prop.primary
                )
                references.append((prop, child, key))
                continue

            sql_type = self._key_type(prop) if prop.id == definition.primary else column_type(prop)
            table.columns[prop.id] = ColumnSchema(
                name=prop.id,
                type=sql_type,
                required=prop.required or prop.id == definition.primary,
                default=column_default(prop, sql_type),
            )

        table.indexes = self._model_indexes(definition, table)

        for prop, child, key in references:
            if prop.id not in table.indexes:
                table.indexes[prop.id] = IndexSchema(name=prop.id, kind="index", columns=[prop.id])
            name = foreign_key_name(table.name, prop.id)
            table.foreign_keys[name] = ForeignKeySchema(
                name=name,
                columns=[prop.id],
                references_table=table_name(child.name),
                references_columns=[key.id],
                on_update="CASCADE",
                on_delete="CASCADE" if prop.required else "SET NULL",
            )
        return table

    @staticmethod
    def _key_type(prop: Property) -> str:
        """Column type of a key column; string keys are capped at varchar(255)."""
        sql_type = column_type(prop)
        if sql_type in (None, "text"):
            return "varchar(255)"
        return sql_type

    @staticmethod
    def _model_indexes(definition: ModelDefinition, table: TableSchema) -> dict[str, IndexSchema]:
        indexes: dict[str, IndexSchema] = {
            PRIMARY_INDEX: IndexSchema(name=PRIMARY_INDEX, kind="primary", columns=[definition.primary])
        }
        for prop in definition:
            if prop.id not in table.columns:
                continue
            for kind, name in (("unique", prop.unique), ("index", prop.index)):
                if not name:
                    continue
                if name == PRIMARY_INDEX:
                    raise SchemaDefinitionError(
                        f"Index name '{PRIMARY_INDEX}' is reserved ({definition.name}.{prop.id})"
                    )
                index = indexes.get(name)
                if index is None:
                    indexes[name] = IndexSchema(name=name, kind=kind, columns=[prop.id])
                elif index.kind != kind:
                    raise SchemaDefinitionError(
                        f"Index '{name}' in model '{definition.name}' is used as both unique and index"
                    )
                else:
                    index.columns.append(prop.id)
        return indexes

    def _add_relation(
        self,
        owner: ModelDefinition,
        prop: Property,
        child: ModelDefinition,
        key: Property,
    ) -> None:
        owner_table = table_name(owner.name)
        child_table = table_name(child.name)
        if owner_table == child_table:
            raise SchemaDefinitionError(
                f"Property '{owner.name}.{prop.id}' relates model '{owner.name}' to itself; "
                f"self-referencing relation tables are not supported"
            )

        name = f"{owner_table}_{child_table}"
        existing = self._target.relations.get(name)
        if existing is not None:
            raise SchemaDefinitionError(
                f"Relation table '{name}' is produced by both "
                f"'{existing.owner}.{existing.property}' and '{owner.name}.{prop.id}'"
            )

        owner_key = owner.primary_property
        self._target.relations[name] = RelationTable(
            table=name,
            owner=owner.name,
            child=child.name,
            property=prop.id,
            owner_column=owner_table,
            child_column=child_table,
            child_key=key.id,
            child_is_model=prop.model is not None,
        )

        table = TableSchema(name=name)
        table.columns[owner_table] = ColumnSchema(
            name=owner_table, type=self._key_type(owner_key), required=True
        )
        table.columns[child_table] = ColumnSchema(
            name=child_table, type=self._key_type(key), required=True
        )
        table.indexes = {
            PRIMARY_INDEX: IndexSchema(
                name=PRIMARY_INDEX, kind="primary", columns=[owner_table, child_table]
            ),
            owner_table: IndexSchema(name=owner_table, kind="index", columns=[owner_table]),
            child_table: IndexSchema(name=child_table, kind="index", columns=[child_table]),
        }
        for column, references_table, references_column in (
            (owner_table, owner_table, owner.primary),
            (child_table, child_table, key.id),
        ):
            fk_name = foreign_key_name(name, column)
            table.foreign_keys[fk_name] = ForeignKeySchema(
                name=fk_name,
                columns=[column],
                references_table=references_table,
                references_columns=[references_column],
                on_update="CASCADE",
                on_delete="CASCADE",
            )
        self._relation_tables[name] = table


def generate_target(registry: Registry, models: Iterable[str] | None = None) -> SchemaTarget:
    """Generate the target schema for *models* (default: every registered model).

    Models referenced through ``model`` / ``foreign`` are included as well.
    When *models* is given explicitly, each named model must have a primary
    key; unnamed models without one are stored inline by their owners.

    Raises:
        SchemaDefinitionError: On unresolved references, relation table
            collisions or self-referencing relations.
    """
    return TargetBuilder(registry).build(models)
