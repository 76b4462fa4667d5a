"""Shared fixtures for model-store tests."""

import pytest

from model_store.model.definition import Registry

PLACE_PROPERTIES = [
    {"id": "id", "type": "string", "required": True, "primary": True},
    {"id": "lat", "type": "float", "required": True, "min": -90, "max": 90},
    {"id": "lon", "type": "float", "required": True, "min": -180, "max": 180},
]


@pytest.fixture
def registry() -> Registry:
    """Registry with a ``Place`` model (string id, bounded lat/lon)."""
    registry = Registry()
    registry.define("Place", PLACE_PROPERTIES)
    return registry


def _create_sqlite_tables(adapter, target) -> None:
    """Create the target's tables on SQLite (columns, primary key, foreign keys).

    MySQL's inline ``INDEX`` clauses are not valid SQLite, so indexes other
    than the primary key are left out.
    """
    from model_store.schema.reconciler import define_column, define_foreign_key, define_index

    for table in target.tables.values():
        lines = [define_column(c) for c in table.columns.values()]
        lines.append(define_index(table.primary_key))
        lines += [define_foreign_key(fk) for fk in table.foreign_keys.values()]
        body = ",\n\t".join(lines)
        adapter.execute(f"CREATE TABLE `{table.name}` (\n\t{body}\n)")


@pytest.fixture
def create_tables():
    """Return a helper creating a target's tables on a SQLite adapter."""
    return _create_sqlite_tables
