"""Schema comparison using set operations.

Compares an actual (introspected) table against its target (generated)
definition.  Pure logic -- no I/O, no database connections.

Each diff function returns an explicit delta:
- ``diff_columns()`` -> ``ColumnDelta`` (create / drop / alter, renames as
  alters keyed by the old column name)
- ``diff_indexes()`` -> ``IndexDelta`` (create / drop; a changed index is
  dropped and recreated)
- ``diff_foreign_keys()`` -> ``ForeignKeyDelta`` (create / drop)

Renames cannot be detected reliably.  They are applied from an explicit
``renames`` mapping; ``guess_renames()`` is an opt-in heuristic that pairs
dropped and created columns of the same SQL type.

Usage:
    from model_store.schema.comparator import diff_columns

    delta = diff_columns(actual_table.columns, target_table.columns,
                         renames={"fullname": "name"})
    for old, column in delta.alter.items():
        print(old, "->", column.name, column.type)
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from model_store.schema.models import ColumnSchema, ForeignKeySchema, IndexSchema

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Delta data classes
# ------------------------------------------------------------------


@dataclass
class ColumnDelta:
    """Column changes for one table.

    Attributes:
        create: New columns, by name.
        drop: Columns to remove, by name.
        alter: Columns to modify, keyed by their current (old) name; the
            value's ``name`` differs from the key for renames.
    """

    create: dict[str, ColumnSchema] = field(default_factory=dict)
    drop: dict[str, ColumnSchema] = field(default_factory=dict)
    alter: dict[str, ColumnSchema] = field(default_factory=dict)

    @property
    def has_changes(self) -> bool:
        return bool(self.create or self.drop or self.alter)

    @property
    def renamed(self) -> dict[str, str]:
        """Old name to new name for every renamed column."""
        return {old: col.name for old, col in self.alter.items() if old != col.name}


@dataclass
class IndexDelta:
    """Index changes for one table (changed indexes appear in both sets)."""

    create: dict[str, IndexSchema] = field(default_factory=dict)
    drop: dict[str, IndexSchema] = field(default_factory=dict)

    @property
    def has_changes(self) -> bool:
        return bool(self.create or self.drop)


@dataclass
class ForeignKeyDelta:
    """Foreign key changes for one table."""

    create: dict[str, ForeignKeySchema] = field(default_factory=dict)
    drop: dict[str, ForeignKeySchema] = field(default_factory=dict)

    @property
    def has_changes(self) -> bool:
        return bool(self.create or self.drop)


# ------------------------------------------------------------------
# Columns
# ------------------------------------------------------------------


def same_default(actual: str | None, target: str | None) -> bool:
    """Compare column defaults, numerically when both parse as numbers.

    Example:
        >>> same_default("1.5000000000", "1.5")
        True
        >>> same_default("abc", None)
        False
    """
    if actual == target:
        return True
    if actual is None or target is None:
        return False
    try:
        return Decimal(actual) == Decimal(target)
    except InvalidOperation:
        return False


def same_column(actual: ColumnSchema, target: ColumnSchema) -> bool:
    """True if the columns agree on type, nullability and default."""
    return (
        actual.type == target.type
        and actual.required == target.required
        and same_default(actual.default, target.default)
    )


def guess_renames(
    create: dict[str, ColumnSchema],
    drop: dict[str, ColumnSchema],
) -> dict[str, str]:
    """Pair dropped and created columns sharing the same SQL type.

    This is a heuristic: a dropped column and an unrelated new column of
    the same type are treated as a rename and keep the old data.  Pairs
    are taken in column order, each column used at most once.

    Returns:
        Old name to new name.

    Example:
        >>> guess_renames(
        ...     {"title": ColumnSchema(name="title", type="varchar(64)")},
        ...     {"name": ColumnSchema(name="name", type="varchar(64)")},
        ... )
        {'name': 'title'}
    """
    renames: dict[str, str] = {}
    available = dict(drop)
    for new_name, column in create.items():
        for old_name, old_column in available.items():
            if old_column.type == column.type:
                renames[old_name] = new_name
                del available[old_name]
                break
    return renames


def diff_columns(
    actual: dict[str, ColumnSchema],
    target: dict[str, ColumnSchema],
    renames: dict[str, str] | None = None,
    guess: bool = False,
) -> ColumnDelta:
    """Diff actual columns against target columns.

    Args:
        actual: Columns present in the database, by name.
        target: Columns the table should have, by name.
        renames: Explicit old-name to new-name directives.  A directive is
            applied only when the old column exists and the new one does not.
        guess: Also apply ``guess_renames()`` to the remaining create/drop
            pairs.

    Returns:
        ``ColumnDelta`` where renames appear in ``alter`` under the old name.
    """
    delta = ColumnDelta()
    delta.create = {name: col for name, col in target.items() if name not in actual}
    delta.drop = {name: col for name, col in actual.items() if name not in target}

    for name, column in target.items():
        if name in actual and not same_column(actual[name], column):
            delta.alter[name] = column

    pairs: dict[str, str] = {}
    for old, new in (renames or {}).items():
        if old in delta.drop and new in delta.create:
            pairs[old] = new
    if guess:
        remaining_create = {n: c for n, c in delta.create.items() if n not in pairs.values()}
        remaining_drop = {n: c for n, c in delta.drop.items() if n not in pairs}
        pairs.update(guess_renames(remaining_create, remaining_drop))

    for old, new in pairs.items():
        logger.debug("Column rename %s -> %s", old, new)
        delta.alter[old] = delta.create.pop(new)
        del delta.drop[old]

    return delta


# ------------------------------------------------------------------
# Indexes and foreign keys
# ------------------------------------------------------------------


def diff_indexes(actual: dict[str, IndexSchema], target: dict[str, IndexSchema]) -> IndexDelta:
    """Diff indexes by name; a changed kind or column list drops and recreates."""
    delta = IndexDelta()
    for name, index in actual.items():
        wanted = target.get(name)
        if wanted is None or wanted.kind != index.kind or wanted.columns != index.columns:
            delta.drop[name] = index
    for name, index in target.items():
        if name not in actual or name in delta.drop:
            delta.create[name] = index
    return delta


def _same_foreign_key(actual: ForeignKeySchema, target: ForeignKeySchema) -> bool:
    return (
        actual.columns == target.columns
        and actual.references_table == target.references_table
        and actual.references_columns == target.references_columns
        and actual.on_update.upper() == target.on_update.upper()
        and actual.on_delete.upper() == target.on_delete.upper()
    )


def diff_foreign_keys(
    actual: dict[str, ForeignKeySchema],
    target: dict[str, ForeignKeySchema],
) -> ForeignKeyDelta:
    """Diff foreign keys by name; a changed definition drops and recreates."""
    delta = ForeignKeyDelta()
    for name, fk in actual.items():
        wanted = target.get(name)
        if wanted is None or not _same_foreign_key(fk, wanted):
            delta.drop[name] = fk
    for name, fk in target.items():
        if name not in actual or name in delta.drop:
            delta.create[name] = fk
    return delta
