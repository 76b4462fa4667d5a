"""Pydantic models for physical schemas and reconciliation results.

This module contains schema-domain models:
- Schema models: ColumnSchema, IndexSchema, ForeignKeySchema, TableSchema,
  DatabaseSchema (the introspected "actual" schema)
- Target models: RelationTable, SchemaTarget (the schema derived from model
  definitions, including relation tables)
- Result model: ReconcileResult

Both sides of a reconciliation use the same shapes, so the comparator can
diff them field by field.
"""

from typing import Literal

from pydantic import BaseModel, Field

IndexKind = Literal["primary", "unique", "index"]

PRIMARY_INDEX = "PRIMARY"


# ============================================================================
# Schema Models
# ============================================================================


class ColumnSchema(BaseModel):
    """Schema for a table column.

    ``type`` is the canonical lower-case SQL type (``varchar(64)``,
    ``bigint``, ``decimal(32,10)``).  ``default`` is kept as the string
    form the database reports, or None for no default.

    Example:
        >>> col = ColumnSchema(name="id", type="char(36)", required=True)
        >>> col.default is None
        True
    """

    name: str
    type: str
    required: bool = False
    default: str | None = None


class IndexSchema(BaseModel):
    """Schema for a primary, unique or plain index."""

    name: str
    kind: IndexKind = "index"
    columns: list[str] = Field(default_factory=list)


class ForeignKeySchema(BaseModel):
    """Schema for a foreign key constraint."""

    name: str
    columns: list[str] = Field(default_factory=list)
    references_table: str
    references_columns: list[str] = Field(default_factory=list)
    on_update: str = "CASCADE"
    on_delete: str = "CASCADE"


class TableSchema(BaseModel):
    """Schema for a table; mappings keep column and index order."""

    name: str
    columns: dict[str, ColumnSchema] = Field(default_factory=dict)
    indexes: dict[str, IndexSchema] = Field(default_factory=dict)
    foreign_keys: dict[str, ForeignKeySchema] = Field(default_factory=dict)

    @property
    def primary_key(self) -> IndexSchema | None:
        return self.indexes.get(PRIMARY_INDEX)


class DatabaseSchema(BaseModel):
    """Complete database schema."""

    tables: dict[str, TableSchema] = Field(default_factory=dict)


# ============================================================================
# Target Models
# ============================================================================


class RelationTable(BaseModel):
    """A synthetic table linking owner rows to child rows for one array property.

    Attributes:
        table: Relation table name (``{Owner}_{Child}``).
        owner: Owner model name.
        child: Child model name.
        property: Owner property id backed by this table.
        owner_column: Column holding the owner's primary key.
        child_column: Column holding the child's key.
        child_key: Child column referenced by ``child_column``.
        child_is_model: True for ``model`` references (children restored as
            records); False for ``foreign`` references (children kept as ids).
    """

    table: str
    owner: str
    child: str
    property: str
    owner_column: str
    child_column: str
    child_key: str
    child_is_model: bool = True


class SchemaTarget(DatabaseSchema):
    """Schema derived from model definitions.

    Attributes:
        tables: Model tables followed by relation tables.
        models: Model name to table name for every stored model.
        relations: Relation table name to its ``RelationTable`` description.
    """

    models: dict[str, str] = Field(default_factory=dict)
    relations: dict[str, RelationTable] = Field(default_factory=dict)

    def relation_for(self, model: str, prop: str) -> RelationTable | None:
        """Return the relation table backing *model*.*prop*, if any."""
        for relation in self.relations.values():
            if relation.owner == model and relation.property == prop:
                return relation
        return None


# ============================================================================
# Result Models
# ============================================================================


class ReconcileResult(BaseModel):
    """Result of applying a reconcile plan.

    Attributes:
        success: True if every statement was executed (or the run was dry).
        dry_run: True if statements were only reported.
        tables_created: Number of CREATE TABLE statements.
        tables_altered: Number of ALTER TABLE statements for columns/indexes.
        foreign_keys_dropped: Number of foreign keys dropped.
        foreign_keys_added: Number of foreign keys added.
        statements: Statements executed (or that would be executed).
    """

    success: bool = False
    dry_run: bool = False
    tables_created: int = 0
    tables_altered: int = 0
    foreign_keys_dropped: int = 0
    foreign_keys_added: int = 0
    statements: list[str] = Field(default_factory=list)
