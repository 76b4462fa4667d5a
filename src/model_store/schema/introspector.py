"""MySQL schema introspection.

Queries the live database through the ``SqlExecutor`` Protocol to extract:
- Tables (``SHOW TABLES``)
- Columns: canonical type, nullability, default (``SHOW COLUMNS``)
- Indexes: primary, unique and plain, with ordered columns (``SHOW INDEXES``)
- Foreign keys with referenced columns and update/delete rules
  (``information_schema``)

Column types are normalized to the form the schema generator emits, so a
freshly reconciled database compares equal to its target.
"""

import logging
import re
from typing import Any

from model_store.adapters.base import SqlExecutor
from model_store.schema.models import (
    PRIMARY_INDEX,
    ColumnSchema,
    DatabaseSchema,
    ForeignKeySchema,
    IndexSchema,
    TableSchema,
)
from model_store.schema.reconciler import quote_name

logger = logging.getLogger(__name__)

# Integer display widths are dropped (MySQL < 8.0.19 reports bigint(20)),
# except tinyint(1) which is the boolean type.
_INTEGER_WIDTH = re.compile(r"^(tinyint|smallint|mediumint|int|bigint)\(\d+\)")

_FOREIGN_KEYS_QUERY = """
    SELECT
        k.CONSTRAINT_NAME AS name,
        k.COLUMN_NAME AS column_name,
        k.REFERENCED_TABLE_NAME AS references_table,
        k.REFERENCED_COLUMN_NAME AS references_column,
        r.UPDATE_RULE AS on_update,
        r.DELETE_RULE AS on_delete
    FROM information_schema.KEY_COLUMN_USAGE k
    JOIN information_schema.REFERENTIAL_CONSTRAINTS r
        ON r.CONSTRAINT_SCHEMA = k.CONSTRAINT_SCHEMA
        AND r.CONSTRAINT_NAME = k.CONSTRAINT_NAME
        AND r.TABLE_NAME = k.TABLE_NAME
    WHERE k.TABLE_SCHEMA = DATABASE()
      AND k.TABLE_NAME = :table
      AND k.REFERENCED_TABLE_NAME IS NOT NULL
    ORDER BY k.CONSTRAINT_NAME, k.ORDINAL_POSITION
"""


def _text(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8")
    return value


def normalize_type(sql_type: str) -> str:
    """Normalize a reported column type.

    Example:
        >>> normalize_type("BIGINT(20)")
        'bigint'
        >>> normalize_type("tinyint(1)")
        'tinyint(1)'
    """
    sql_type = str(_text(sql_type)).strip().lower()
    if sql_type.startswith("tinyint(1)"):
        return sql_type
    return _INTEGER_WIDTH.sub(r"\1", sql_type)


class SchemaIntrospector:
    """Introspects a MySQL database schema.

    Usage:
        introspector = SchemaIntrospector(executor)

        # Full schema (tables, columns, indexes, foreign keys)
        schema = introspector.introspect()

        # Or a single table
        columns = introspector.get_columns("Place")
    """

    def __init__(self, executor: SqlExecutor):
        self._executor = executor

    def introspect(self, tables: list[str] | None = None) -> DatabaseSchema:
        """Introspect the schema of the connected database.

        Args:
            tables: Restrict introspection to these tables (missing ones are
                skipped).  Default: every base table.

        Returns:
            DatabaseSchema with all tables, columns, indexes and foreign keys.
        """
        db_schema = DatabaseSchema()
        names = self.get_table_names()
        if tables is not None:
            names = [name for name in names if name in set(tables)]

        for table_name in names:
            table = TableSchema(name=table_name)
            table.columns = self.get_columns(table_name)
            table.indexes = self.get_indexes(table_name)
            table.foreign_keys = self.get_foreign_keys(table_name)
            db_schema.tables[table_name] = table

        logger.debug("Introspected %d tables", len(db_schema.tables))
        return db_schema

    def get_table_names(self) -> list[str]:
        """Get all table names in the current database."""
        rows = self._executor.query("SHOW TABLES")
        return [str(_text(next(iter(row.values())))) for row in rows]

    def get_columns(self, table_name: str) -> dict[str, ColumnSchema]:
        """Get columns for a table, in table order."""
        rows = self._executor.query(f"SHOW COLUMNS FROM {quote_name(table_name)}")
        columns: dict[str, ColumnSchema] = {}
        for row in rows:
            name = _text(row["Field"])
            default = _text(row.get("Default"))
            columns[name] = ColumnSchema(
                name=name,
                type=normalize_type(row["Type"]),
                required=_text(row["Null"]) == "NO",
                default=None if default is None else str(default),
            )
        return columns

    def get_indexes(self, table_name: str) -> dict[str, IndexSchema]:
        """Get indexes for a table, grouping multi-column indexes by name."""
        rows = self._executor.query(f"SHOW INDEXES FROM {quote_name(table_name)}")
        rows = sorted(rows, key=lambda r: (str(_text(r["Key_name"])), int(r.get("Seq_in_index") or 0)))

        indexes: dict[str, IndexSchema] = {}
        for row in rows:
            name = _text(row["Key_name"])
            index = indexes.get(name)
            if index is None:
                if name == PRIMARY_INDEX:
                    kind = "primary"
                else:
                    kind = "index" if int(row["Non_unique"]) else "unique"
                index = indexes[name] = IndexSchema(name=name, kind=kind)
            index.columns.append(_text(row["Column_name"]))
        return indexes

    def get_foreign_keys(self, table_name: str) -> dict[str, ForeignKeySchema]:
        """Get foreign key constraints declared on a table."""
        rows = self._executor.query(_FOREIGN_KEYS_QUERY, {"table": table_name})

        foreign_keys: dict[str, ForeignKeySchema] = {}
        for row in rows:
            name = _text(row["name"])
            fk = foreign_keys.get(name)
            if fk is None:
                fk = foreign_keys[name] = ForeignKeySchema(
                    name=name,
                    references_table=_text(row["references_table"]),
                    on_update=str(_text(row["on_update"])).upper(),
                    on_delete=str(_text(row["on_delete"])).upper(),
                )
            fk.columns.append(_text(row["column_name"]))
            fk.references_columns.append(_text(row["references_column"]))
        return foreign_keys
