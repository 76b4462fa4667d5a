"""Persistence engine: CRUD for records over a SQL executor.

``SqlStore`` maps each stored model to the table the schema generator
derives for it and performs typed reads and writes through the
``SqlExecutor`` Protocol.

- Reads (``get``, ``collect``, ``list``, ``filter``) optionally *restore*
  loaded rows: nested-model foreign keys are replaced by the referenced
  records and relation tables by the ordered list of related records.
- ``set`` validates first, stores nested records with a primary key
  before their owner, upserts the row, then synchronizes relation tables
  (delete links no longer present, insert new ones).
- Prepared statements are cached per (table, operation) for the lifetime
  of the store.

Usage:
    from model_store.store import SqlStore

    store = SqlStore(adapter, registry)
    store.build()                       # create / alter tables

    city = registry.create("City", {"id": "oslo", "lat": 59.9, "lon": 10.7})
    store.set(city)
    assert store.get("oslo", "City") == city
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from model_store.adapters.base import SqlExecutor
from model_store.errors import PersistenceError, SchemaDefinitionError, ValidationError
from model_store.model.definition import ModelDefinition, Registry
from model_store.model.property import Property, PropertyType
from model_store.model.record import Record
from model_store.schema.generator import JSON_TYPES, generate_target
from model_store.schema.introspector import SchemaIntrospector
from model_store.schema.models import ReconcileResult, RelationTable, SchemaTarget
from model_store.schema.reconciler import ReconcilePlan, apply_plan, reconcile

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, Record):
        return value.serialize()
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _text(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8")
    return value


class SqlStore:
    """Record persistence over a SQL executor.

    Args:
        executor: SQL execution capability (``SqlExecutor`` Protocol).
        registry: Registry holding the model definitions.
        models: Models to store (default: every registered model).  Models
            they reference are always included.

    Example:
        store = SqlStore(SqlAdapter("sqlite://"), registry)
        store.set(registry.create("Place", {"id": "x", "lat": 1.0, "lon": 2.0}))
        store.exists("x", "Place")
        # True
    """

    def __init__(
        self,
        executor: SqlExecutor,
        registry: Registry,
        models: Iterable[str] | None = None,
    ) -> None:
        self._executor = executor
        self._registry = registry
        self._models = list(models) if models is not None else None
        self._target: SchemaTarget | None = None
        self._statements: dict[tuple[str, str], Any] = {}

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    @property
    def executor(self) -> SqlExecutor:
        return self._executor

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def target(self) -> SchemaTarget:
        """The generated target schema (computed once)."""
        if self._target is None:
            self._target = generate_target(self._registry, self._models)
        return self._target

    def plan(
        self,
        renames: dict[str, dict[str, str]] | None = None,
        guess_renames: bool = False,
    ) -> ReconcilePlan:
        """Introspect the database and plan the DDL converging it with the target."""
        target = self.target
        actual = SchemaIntrospector(self._executor).introspect()
        return reconcile(actual, target, renames=renames, guess_renames=guess_renames)

    def build(
        self,
        dry_run: bool = False,
        renames: dict[str, dict[str, str]] | None = None,
        guess_renames: bool = False,
    ) -> ReconcileResult:
        """Create or alter tables so the database matches the models.

        Returns:
            ``ReconcileResult``; running ``build()`` again applies nothing.
        """
        plan = self.plan(renames=renames, guess_renames=guess_renames)
        logger.info("Building schema: %d changes", plan.change_count)
        return apply_plan(self._executor, plan, dry_run=dry_run)

    # ------------------------------------------------------------------
    # Statement helpers
    # ------------------------------------------------------------------

    def _definition(self, model: str | ModelDefinition) -> ModelDefinition:
        if isinstance(model, ModelDefinition):
            return model
        return self._registry.get(model)

    def _table(self, definition: ModelDefinition) -> str:
        table = self.target.models.get(definition.name)
        if table is None:
            raise SchemaDefinitionError(f"Model '{definition.name}' is not stored in a table")
        return table

    def _columns(self, table: str) -> list[str]:
        return list(self.target.tables[table].columns)

    def _statement(self, table: str, operation: str, sql: str) -> Any:
        """Return the cached prepared statement for (table, operation)."""
        key = (table, operation)
        statement = self._statements.get(key)
        if statement is None:
            statement = self._statements[key] = self._executor.prepare(sql)
        return statement

    def _select_sql(self, table: str, where: str = "", order: str = "") -> str:
        n = self._executor.name
        columns = ", ".join(n(c) for c in self._columns(table))
        sql = f"SELECT {columns} FROM {n(table)}"
        if where:
            sql += f" WHERE {where}"
        if order:
            sql += f" ORDER BY {n(order)}"
        return sql

    # ------------------------------------------------------------------
    # Value encoding
    # ------------------------------------------------------------------

    def _is_stored_reference(self, prop: Property) -> bool:
        """True for object properties stored as a foreign key to a model table."""
        return (
            prop.model is not None
            and prop.type is PropertyType.OBJECT
            and prop.model in self.target.models
        )

    def _encode(self, prop: Property, value: Any) -> Any:
        if value is None:
            return None
        if self._is_stored_reference(prop):
            return value.id() if isinstance(value, Record) else value
        if prop.type in JSON_TYPES and not prop.foreign:
            return json.dumps(value, default=_json_default, ensure_ascii=False)
        if isinstance(value, bool):
            return int(value)
        return value

    def _decode(self, prop: Property, value: Any) -> Any:
        if value is None:
            return None
        value = _text(value)
        kind = prop.type
        if self._is_stored_reference(prop):
            child = self._registry.get(prop.model)
            return self._decode_key(child, child.primary, value)
        if kind in JSON_TYPES and not prop.foreign:
            return json.loads(value) if isinstance(value, str) else value
        if kind is PropertyType.BOOL:
            return bool(int(value))
        if kind is PropertyType.INTEGER:
            return int(value)
        if kind in (PropertyType.FLOAT, PropertyType.NUMBER):
            return float(value)
        return value

    def _decode_key(self, definition: ModelDefinition, key_id: str, value: Any) -> Any:
        prop = definition.properties.get(key_id)
        return self._decode(prop, value) if prop is not None else _text(value)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def exists(self, id: Any, model: str | ModelDefinition) -> bool:
        """True if a row with primary key *id* exists."""
        definition = self._definition(model)
        table = self._table(definition)
        n = self._executor.name
        statement = self._statement(
            table, "exists", f"SELECT 1 AS found FROM {n(table)} WHERE {n(definition.primary)} = :id LIMIT 1"
        )
        return bool(self._executor.query(statement, {"id": id}))

    def get(
        self,
        id: Any,
        model: str | ModelDefinition,
        restore: bool = True,
        create: bool = False,
    ) -> Record | None:
        """Load one record by primary key.

        Args:
            id: Primary key value.
            model: Model name or definition.
            restore: Resolve nested-model and relation fields into records.
            create: Return a new, unsaved record with this id when no row exists.

        Returns:
            The record, or None if not found (and *create* is False).

        Raises:
            PersistenceError: If a referenced record cannot be restored.
        """
        definition = self._definition(model)
        table = self._table(definition)
        statement = self._statement(
            table, "get", self._select_sql(table, f"{self._executor.name(definition.primary)} = :id")
        )
        rows = self._executor.query(statement, {"id": id})
        if not rows:
            if create:
                return Record(definition, {definition.primary: id}, registry=self._registry)
            return None
        return self._restore(definition, rows[0], restore, {})

    def collect(
        self,
        ids: Iterable[Any],
        model: str | ModelDefinition,
        restore: bool = True,
        create: bool = False,
    ) -> list[Record]:
        """Load several records by primary key, in the order of *ids*.

        Missing ids are skipped unless *create* is set.
        """
        definition = self._definition(model)
        table = self._table(definition)
        ids = list(dict.fromkeys(ids))
        if not ids:
            return []

        n = self._executor.name
        placeholders = ", ".join(f":p{i}" for i in range(len(ids)))
        statement = self._statement(
            table,
            f"collect:{len(ids)}",
            self._select_sql(table, f"{n(definition.primary)} IN ({placeholders})"),
        )
        rows = self._executor.query(statement, {f"p{i}": value for i, value in enumerate(ids)})

        seen: dict[tuple[str, str], Record] = {}
        by_id: dict[str, Record] = {}
        for row in rows:
            record = self._restore(definition, row, restore, seen)
            by_id[str(record.id())] = record

        result: list[Record] = []
        for value in ids:
            record = by_id.get(str(value))
            if record is None and create:
                record = Record(definition, {definition.primary: value}, registry=self._registry)
            if record is not None:
                result.append(record)
        return result

    def list(self, model: str | ModelDefinition, restore: bool = True) -> list[Record]:
        """Load every record of *model*, ordered by primary key."""
        definition = self._definition(model)
        table = self._table(definition)
        statement = self._statement(table, "list", self._select_sql(table, order=definition.primary))
        seen: dict[tuple[str, str], Record] = {}
        return [self._restore(definition, row, restore, seen) for row in self._executor.query(statement)]

    def filter(
        self,
        model: str | ModelDefinition,
        match: dict[str, Any],
        restore: bool = True,
    ) -> list[Record]:
        """Load records whose columns equal every value in *match*.

        ``None`` matches NULL.  Results are ordered by primary key.

        Raises:
            PersistenceError: If a key in *match* is not a stored column.
        """
        definition = self._definition(model)
        table = self._table(definition)
        columns = self._columns(table)
        n = self._executor.name

        conditions: list[str] = []
        params: dict[str, Any] = {}
        for i, (key, value) in enumerate(match.items()):
            if key not in columns:
                raise PersistenceError(f"Cannot filter {definition.name} on '{key}': not a stored column")
            if value is None:
                conditions.append(f"{n(key)} IS NULL")
            else:
                conditions.append(f"{n(key)} = :p{i}")
                params[f"p{i}"] = self._encode(definition.properties[key], value)

        operation = "filter:" + ",".join(
            f"{key}{' null' if value is None else ''}" for key, value in match.items()
        )
        statement = self._statement(
            table,
            operation,
            self._select_sql(table, " AND ".join(conditions), order=definition.primary),
        )
        seen: dict[tuple[str, str], Record] = {}
        return [
            self._restore(definition, row, restore, seen)
            for row in self._executor.query(statement, params)
        ]

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def _load(self, model: str, id: Any, seen: dict[tuple[str, str], Record]) -> Record:
        """Load a referenced record, sharing instances already restored in this pass."""
        definition = self._registry.get(model)
        cached = seen.get((definition.name, str(id)))
        if cached is not None:
            return cached
        table = self._table(definition)
        statement = self._statement(
            table, "get", self._select_sql(table, f"{self._executor.name(definition.primary)} = :id")
        )
        rows = self._executor.query(statement, {"id": id})
        if not rows:
            raise PersistenceError(f"Referenced {model} '{id}' not found")
        return self._restore(definition, rows[0], True, seen)

    def _relation_ids(self, relation: RelationTable, owner_id: Any) -> list[Any]:
        n = self._executor.name
        statement = self._statement(
            relation.table,
            "children",
            f"SELECT {n(relation.child_column)} AS child FROM {n(relation.table)} "
            f"WHERE {n(relation.owner_column)} = :owner ORDER BY {n(relation.child_column)}",
        )
        child = self._registry.get(relation.child)
        return [
            self._decode_key(child, relation.child_key, row["child"])
            for row in self._executor.query(statement, {"owner": owner_id})
        ]

    def _restore(
        self,
        definition: ModelDefinition,
        row: dict[str, Any],
        restore: bool,
        seen: dict[tuple[str, str], Record],
    ) -> Record:
        """Build a record from a row, resolving references when *restore* is set.

        The record is registered in *seen* before its references are
        resolved, so cycles resolve to the same instance.
        """
        data: dict[str, Any] = {}
        for prop in definition:
            if prop.id in row:
                data[prop.id] = self._decode(prop, row[prop.id])

        record = Record(definition, data, registry=self._registry)
        owner_id = record.id()
        if restore:
            seen[(definition.name, str(owner_id))] = record

        changed = False
        for prop in definition:
            relation = self.target.relation_for(definition.name, prop.id)
            if relation is not None:
                ids = self._relation_ids(relation, owner_id)
                if restore and relation.child_is_model:
                    data[prop.id] = [self._load(relation.child, child_id, seen) for child_id in ids]
                else:
                    data[prop.id] = ids
                changed = True
            elif restore and self._is_stored_reference(prop) and data.get(prop.id) is not None:
                data[prop.id] = self._load(prop.model, data[prop.id], seen)
                changed = True

        if changed:
            record.replace(data)
        return record

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set(self, record: Record) -> Record:
        """Validate and store *record* (insert or update), including nested records.

        Raises:
            ValidationError: Before any statement runs, if the record (or a
                nested record) is invalid.
            PersistenceError: If a statement fails.
        """
        record.validate()
        self._check_keys(record, set())
        self._store(record, set())
        return record

    def _check_keys(self, record: Record, seen: set[int]) -> None:
        """Check that every record stored in its own row has a key, before any write."""
        if id(record) in seen:
            return
        seen.add(id(record))
        definition = record.definition
        self._table(definition)
        if record.id() is None:
            prop = definition.primary_property
            name = prop.name if prop is not None else definition.primary
            raise ValidationError(definition.primary, "required", f"{name} is required.")

        for prop in definition:
            value = record.get(prop.id)
            if value is None:
                continue
            relation = self.target.relation_for(definition.name, prop.id)
            if relation is not None:
                for child in value:
                    if not isinstance(child, Record):
                        continue
                    if child.get(relation.child_key) is None:
                        child_prop = child.definition.properties.get(relation.child_key)
                        name = child_prop.name if child_prop is not None else relation.child_key
                        raise ValidationError(
                            relation.child_key, "required", f"{name} is required."
                        )
                    self._check_keys(child, seen)
            elif self._is_stored_reference(prop) and isinstance(value, Record):
                self._check_keys(value, seen)

    def _store(self, record: Record, seen: set[tuple[str, str]]) -> None:
        definition = record.definition
        table = self._table(definition)
        id = record.id()
        key = (definition.name, str(id))
        if key in seen:
            return
        seen.add(key)

        columns = self._columns(table)
        values: dict[str, Any] = {}
        for column in columns:
            prop = definition.properties[column]
            value = record.get(column)
            if self._is_stored_reference(prop) and isinstance(value, Record):
                self._store(value, seen)
                value = value.id()
            values[column] = self._encode(prop, value)

        n = self._executor.name
        params = {f"p{i}": values[c] for i, c in enumerate(columns)}
        if self.exists(id, definition):
            assignments = ", ".join(f"{n(c)} = :p{i}" for i, c in enumerate(columns))
            statement = self._statement(
                table, "update", f"UPDATE {n(table)} SET {assignments} WHERE {n(definition.primary)} = :id"
            )
            self._executor.execute(statement, {**params, "id": id})
            logger.debug("Updated %s %s", definition.name, id)
        else:
            names = ", ".join(n(c) for c in columns)
            placeholders = ", ".join(f":p{i}" for i in range(len(columns)))
            statement = self._statement(
                table, "insert", f"INSERT INTO {n(table)} ({names}) VALUES ({placeholders})"
            )
            self._executor.execute(statement, params)
            logger.debug("Inserted %s %s", definition.name, id)

        for prop in definition:
            relation = self.target.relation_for(definition.name, prop.id)
            if relation is not None and record.get(prop.id) is not None:
                self._sync_relation(relation, id, record.get(prop.id), seen)

    def _sync_relation(
        self,
        relation: RelationTable,
        owner_id: Any,
        children: list[Any],
        seen: set[tuple[str, str]],
    ) -> None:
        """Make the relation rows for *owner_id* equal the given children.

        Child records are stored first; links no longer present are
        deleted and new ones inserted.
        """
        target: dict[str, Any] = {}
        for child in children:
            if isinstance(child, Record):
                self._store(child, seen)
                child_id = child.get(relation.child_key)
            else:
                child_id = child
            target.setdefault(str(child_id), child_id)

        existing = {str(child_id): child_id for child_id in self._relation_ids(relation, owner_id)}
        n = self._executor.name

        removed = [value for key, value in existing.items() if key not in target]
        added = [value for key, value in target.items() if key not in existing]

        if removed:
            statement = self._statement(
                relation.table,
                "unlink",
                f"DELETE FROM {n(relation.table)} "
                f"WHERE {n(relation.owner_column)} = :owner AND {n(relation.child_column)} = :child",
            )
            for child_id in removed:
                self._executor.execute(statement, {"owner": owner_id, "child": child_id})

        if added:
            statement = self._statement(
                relation.table,
                "link",
                f"INSERT INTO {n(relation.table)} ({n(relation.owner_column)}, {n(relation.child_column)}) "
                f"VALUES (:owner, :child)",
            )
            for child_id in added:
                self._executor.execute(statement, {"owner": owner_id, "child": child_id})

        logger.debug(
            "Synced %s for %s: %d unlinked, %d linked", relation.table, owner_id, len(removed), len(added)
        )

    def delete(self, id: Any, model: str | ModelDefinition) -> bool:
        """Delete a row by primary key; relation rows go with it via cascading keys.

        Returns:
            True if a row was deleted.
        """
        definition = self._definition(model)
        table = self._table(definition)
        n = self._executor.name
        statement = self._statement(
            table, "delete", f"DELETE FROM {n(table)} WHERE {n(definition.primary)} = :id"
        )
        deleted = self._executor.execute(statement, {"id": id}) > 0
        logger.debug("Deleted %s %s: %s", definition.name, id, deleted)
        return deleted
