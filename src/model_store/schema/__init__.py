"""Schema generation, introspection, comparison and reconciliation.

Provides target generation from model definitions (``generate_target``),
live database introspection (``SchemaIntrospector``), pure diffing
(``diff_columns``, ``diff_indexes``, ``diff_foreign_keys``) and DDL planning
and application (``reconcile``, ``apply_plan``).

Usage:
    from model_store.schema import SchemaIntrospector, generate_target
    from model_store.schema import reconcile, apply_plan
"""

from model_store.schema.comparator import (
    ColumnDelta,
    ForeignKeyDelta,
    IndexDelta,
    diff_columns,
    diff_foreign_keys,
    diff_indexes,
    guess_renames,
)
from model_store.schema.generator import column_type, generate_target, table_name
from model_store.schema.introspector import SchemaIntrospector
from model_store.schema.models import (
    ColumnSchema,
    DatabaseSchema,
    ForeignKeySchema,
    IndexSchema,
    ReconcileResult,
    RelationTable,
    SchemaTarget,
    TableSchema,
)
from model_store.schema.reconciler import (
    ForeignKeyChange,
    ReconcilePlan,
    TableChange,
    apply_plan,
    reconcile,
)

__all__ = [
    "generate_target",
    "column_type",
    "table_name",
    "SchemaIntrospector",
    "diff_columns",
    "diff_indexes",
    "diff_foreign_keys",
    "guess_renames",
    "ColumnDelta",
    "IndexDelta",
    "ForeignKeyDelta",
    "reconcile",
    "apply_plan",
    "ReconcilePlan",
    "TableChange",
    "ForeignKeyChange",
    "ReconcileResult",
    "ColumnSchema",
    "IndexSchema",
    "ForeignKeySchema",
    "TableSchema",
    "DatabaseSchema",
    "RelationTable",
    "SchemaTarget",
]
