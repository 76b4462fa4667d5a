"""Schema reconciliation -- converge a live database with the target schema.

Diffs the introspected schema against the generated target, renders the
DDL that converges them, and applies it via the ``SqlExecutor.execute()``
Protocol method.

Statements are ordered in three phases:

1. drop foreign keys that change, or that touch columns/indexes about to
   change
2. per table (model tables, then relation tables): ``CREATE TABLE IF NOT
   EXISTS`` for missing tables, one ``ALTER TABLE`` for changed ones
3. add foreign keys, after every table, column and index exists

Tables present in the database but not in the target are left alone.

Usage:
    from model_store.schema.generator import generate_target
    from model_store.schema.introspector import SchemaIntrospector
    from model_store.schema.reconciler import apply_plan, reconcile

    actual = SchemaIntrospector(executor).introspect()
    plan = reconcile(actual, generate_target(registry))
    print(plan.format_report())
    result = apply_plan(executor, plan)
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from model_store.schema.comparator import (
    ColumnDelta,
    IndexDelta,
    diff_columns,
    diff_foreign_keys,
    diff_indexes,
)
from model_store.schema.models import (
    PRIMARY_INDEX,
    ColumnSchema,
    DatabaseSchema,
    ForeignKeySchema,
    IndexSchema,
    ReconcileResult,
    SchemaTarget,
    TableSchema,
)

if TYPE_CHECKING:
    from model_store.adapters.base import SqlExecutor

logger = logging.getLogger(__name__)

NUMERIC_TYPES = ("tinyint", "smallint", "mediumint", "int", "bigint", "decimal", "float", "double")


# ------------------------------------------------------------------
# DDL rendering
# ------------------------------------------------------------------


def quote_name(name: str) -> str:
    """Quote a database, table, column or index name with backticks."""
    return "`" + name.strip().strip("`").replace("`", "``") + "`"


def sql_literal(value: str) -> str:
    """Quote a string literal for MySQL DDL.

    Example:
        >>> sql_literal("it's")
        "'it''s'"
    """
    return "'" + value.replace("\\", "\\\\").replace("'", "''") + "'"


def _default_sql(column: ColumnSchema) -> str:
    default = column.default
    if column.type.startswith(NUMERIC_TYPES):
        try:
            Decimal(default)
            return default
        except InvalidOperation:
            pass
    return sql_literal(default)


def define_column(column: ColumnSchema) -> str:
    """Render a column definition.

    Example:
        >>> define_column(ColumnSchema(name="lat", type="decimal(32,10)", required=True))
        '`lat` decimal(32,10) NOT NULL'
    """
    parts = [quote_name(column.name), column.type]
    if column.required:
        parts.append("NOT NULL")
    if column.default is not None:
        parts.append(f"DEFAULT {_default_sql(column)}")
    return " ".join(parts)


def define_index(index: IndexSchema) -> str:
    """Render an index definition for CREATE TABLE / ALTER TABLE ADD."""
    columns = ", ".join(quote_name(c) for c in index.columns)
    if index.kind == "primary":
        return f"PRIMARY KEY ({columns})"
    if index.kind == "unique":
        return f"UNIQUE {quote_name(index.name)} ({columns})"
    return f"INDEX {quote_name(index.name)} ({columns})"


def define_foreign_key(fk: ForeignKeySchema) -> str:
    columns = ", ".join(quote_name(c) for c in fk.columns)
    references = ", ".join(quote_name(c) for c in fk.references_columns)
    return (
        f"CONSTRAINT {quote_name(fk.name)} FOREIGN KEY ({columns}) "
        f"REFERENCES {quote_name(fk.references_table)} ({references}) "
        f"ON UPDATE {fk.on_update} ON DELETE {fk.on_delete}"
    )


def create_table_sql(table: TableSchema) -> str:
    """Render ``CREATE TABLE IF NOT EXISTS`` with columns and indexes.

    Foreign keys are not included; they are added in the last phase.
    """
    lines = [define_column(c) for c in table.columns.values()]
    lines += [define_index(i) for i in table.indexes.values()]
    body = ",\n\t".join(lines)
    return f"CREATE TABLE IF NOT EXISTS {quote_name(table.name)} (\n\t{body}\n)"


def alter_table_sql(table: str, columns: ColumnDelta, indexes: IndexDelta) -> str | None:
    """Render one ``ALTER TABLE`` for a table's column and index changes.

    Clause order: drop indexes, drop columns, modify/change columns, add
    columns, add indexes.  Returns None when there is nothing to change.
    """
    clauses: list[str] = []

    for name, index in indexes.drop.items():
        if index.kind == "primary":
            clauses.append("DROP PRIMARY KEY")
        else:
            clauses.append(f"DROP INDEX {quote_name(name)}")

    for name in columns.drop:
        clauses.append(f"DROP COLUMN {quote_name(name)}")

    for old, column in columns.alter.items():
        if old == column.name:
            clauses.append(f"MODIFY COLUMN {define_column(column)}")
        else:
            clauses.append(f"CHANGE COLUMN {quote_name(old)} {define_column(column)}")

    for column in columns.create.values():
        clauses.append(f"ADD COLUMN {define_column(column)}")

    for index in indexes.create.values():
        clauses.append(f"ADD {define_index(index)}")

    if not clauses:
        return None
    return f"ALTER TABLE {quote_name(table)} \n" + ",\n".join(clauses)


# ------------------------------------------------------------------
# Plan data classes
# ------------------------------------------------------------------


@dataclass
class TableChange:
    """A table to be created or altered.

    Example:
        change = TableChange(table="Place", create=True, statement="CREATE TABLE ...")
        change.to_sql()
        # 'CREATE TABLE ...'
    """

    table: str
    create: bool
    statement: str
    columns: ColumnDelta = field(default_factory=ColumnDelta)
    indexes: IndexDelta = field(default_factory=IndexDelta)

    def to_sql(self) -> str:
        return self.statement


@dataclass
class ForeignKeyChange:
    """A foreign key to be dropped or added on a table."""

    table: str
    foreign_key: ForeignKeySchema

    def drop_sql(self) -> str:
        return f"ALTER TABLE {quote_name(self.table)} DROP FOREIGN KEY {quote_name(self.foreign_key.name)}"

    def add_sql(self) -> str:
        return f"ALTER TABLE {quote_name(self.table)} ADD {define_foreign_key(self.foreign_key)}"


@dataclass
class ReconcilePlan:
    """Ordered DDL plan converging the database with the target.

    Attributes:
        drop_foreign_keys: Foreign keys dropped before table changes.
        tables: Table creations and alterations, model tables first.
        add_foreign_keys: Foreign keys added after all table changes.
        extra_tables: Tables in the database that the target does not
            describe (reported, never dropped).
    """

    drop_foreign_keys: list[ForeignKeyChange] = field(default_factory=list)
    tables: list[TableChange] = field(default_factory=list)
    add_foreign_keys: list[ForeignKeyChange] = field(default_factory=list)
    extra_tables: list[str] = field(default_factory=list)

    @property
    def statements(self) -> list[str]:
        """All statements in execution order."""
        return (
            [fk.drop_sql() for fk in self.drop_foreign_keys]
            + [change.to_sql() for change in self.tables]
            + [fk.add_sql() for fk in self.add_foreign_keys]
        )

    @property
    def has_changes(self) -> bool:
        return bool(self.drop_foreign_keys or self.tables or self.add_foreign_keys)

    @property
    def change_count(self) -> int:
        return len(self.drop_foreign_keys) + len(self.tables) + len(self.add_foreign_keys)

    def format_report(self) -> str:
        """Format the plan as a human-readable report."""
        if not self.has_changes:
            lines = ["Schema up to date"]
        else:
            lines = [f"Schema changes ({self.change_count}):"]

            created = [c for c in self.tables if c.create]
            altered = [c for c in self.tables if not c.create]

            if created:
                lines.append(f"\n  Create tables ({len(created)}):")
                for change in created:
                    lines.append(f"    + {change.table}")

            if altered:
                lines.append(f"\n  Alter tables ({len(altered)}):")
                for change in altered:
                    lines.append(f"    ~ {change.table}")
                    for name in change.columns.create:
                        lines.append(f"        + column {name}")
                    for name in change.columns.drop:
                        lines.append(f"        - column {name}")
                    for old, column in change.columns.alter.items():
                        if old != column.name:
                            lines.append(f"        ~ column {old} -> {column.name}")
                        else:
                            lines.append(f"        ~ column {old}")
                    for name in change.indexes.drop:
                        lines.append(f"        - index {name}")
                    for name in change.indexes.create:
                        lines.append(f"        + index {name}")

            if self.drop_foreign_keys:
                lines.append(f"\n  Drop foreign keys ({len(self.drop_foreign_keys)}):")
                for fk in self.drop_foreign_keys:
                    lines.append(f"    - {fk.table}.{fk.foreign_key.name}")

            if self.add_foreign_keys:
                lines.append(f"\n  Add foreign keys ({len(self.add_foreign_keys)}):")
                for fk in self.add_foreign_keys:
                    lines.append(f"    + {fk.table}.{fk.foreign_key.name}")

        if self.extra_tables:
            lines.append(f"\n  Extra tables (kept): {', '.join(self.extra_tables)}")

        return "\n".join(lines)


# ------------------------------------------------------------------
# Plan generation
# ------------------------------------------------------------------


def _touched_columns(table: str, columns: ColumnDelta, indexes: IndexDelta) -> set[tuple[str, str]]:
    """Columns whose definition or covering index changes."""
    touched = {(table, name) for name in columns.drop}
    touched |= {(table, old) for old in columns.alter}
    for index in indexes.drop.values():
        touched |= {(table, name) for name in index.columns}
    return touched


def _touches(table: str, fk: ForeignKeySchema, touched: set[tuple[str, str]]) -> bool:
    return any((table, c) in touched for c in fk.columns) or any(
        (fk.references_table, c) in touched for c in fk.references_columns
    )


def reconcile(
    actual: DatabaseSchema,
    target: SchemaTarget,
    renames: dict[str, dict[str, str]] | None = None,
    guess_renames: bool = False,
) -> ReconcilePlan:
    """Build the plan converging *actual* with *target*.

    Pure logic -- the caller introspects and applies.

    Args:
        actual: Introspected database schema.
        target: Generated target schema.
        renames: Per-table column renames, ``{table: {old: new}}``.
        guess_renames: Treat dropped/created columns of the same type as
            renames (see ``comparator.guess_renames``).

    Returns:
        ``ReconcilePlan``; reconciling again after applying it yields an
        empty plan.

    Example:
        >>> plan = reconcile(DatabaseSchema(), target)
        >>> [s.split("(")[0] for s in plan.statements]
        ['CREATE TABLE IF NOT EXISTS `Place` ']
    """
    plan = ReconcilePlan()
    renames = renames or {}
    touched: set[tuple[str, str]] = set()

    plan.extra_tables = sorted(name for name in actual.tables if name not in target.tables)

    # Phase 2 first, to know which columns and indexes change
    for name, table in target.tables.items():
        existing = actual.tables.get(name)
        if existing is None:
            plan.tables.append(TableChange(table=name, create=True, statement=create_table_sql(table)))
            continue

        columns = diff_columns(
            existing.columns, table.columns, renames=renames.get(name), guess=guess_renames
        )
        indexes = diff_indexes(existing.indexes, table.indexes)
        statement = alter_table_sql(name, columns, indexes)
        if statement is not None:
            plan.tables.append(
                TableChange(table=name, create=False, statement=statement, columns=columns, indexes=indexes)
            )
            touched |= _touched_columns(name, columns, indexes)

    # Phases 1 and 3
    for name, existing in actual.tables.items():
        table = target.tables.get(name)
        wanted = table.foreign_keys if table is not None else existing.foreign_keys
        delta = diff_foreign_keys(existing.foreign_keys, wanted)

        for fk_name, fk in existing.foreign_keys.items():
            if fk_name not in delta.drop and _touches(name, fk, touched):
                delta.drop[fk_name] = fk
                delta.create[fk_name] = wanted[fk_name]

        plan.drop_foreign_keys += [ForeignKeyChange(name, fk) for fk in delta.drop.values()]
        plan.add_foreign_keys += [ForeignKeyChange(name, fk) for fk in delta.create.values()]

    for name, table in target.tables.items():
        if name not in actual.tables:
            plan.add_foreign_keys += [ForeignKeyChange(name, fk) for fk in table.foreign_keys.values()]

    logger.debug(
        "Reconcile plan: %d foreign keys dropped, %d tables changed, %d foreign keys added",
        len(plan.drop_foreign_keys),
        len(plan.tables),
        len(plan.add_foreign_keys),
    )
    return plan


# ------------------------------------------------------------------
# Plan application
# ------------------------------------------------------------------


def apply_plan(executor: "SqlExecutor", plan: ReconcilePlan, dry_run: bool = False) -> ReconcileResult:
    """Execute the plan's statements in order.

    Execution stops at the first failing statement and the executor's
    error propagates unchanged; reconciling again after fixing the cause
    converges the remaining difference.

    Args:
        executor: SQL execution capability (``SqlExecutor`` Protocol).
        plan: Plan from ``reconcile()``.
        dry_run: Only report the statements.

    Returns:
        ``ReconcileResult`` with counts and the statements.
    """
    result = ReconcileResult(dry_run=dry_run, statements=plan.statements)
    result.tables_created = sum(1 for c in plan.tables if c.create)
    result.tables_altered = sum(1 for c in plan.tables if not c.create)
    result.foreign_keys_dropped = len(plan.drop_foreign_keys)
    result.foreign_keys_added = len(plan.add_foreign_keys)

    if dry_run:
        result.success = True
        return result

    for statement in result.statements:
        logger.debug("DDL: %s", statement)
        executor.execute(statement)

    result.success = True
    return result
