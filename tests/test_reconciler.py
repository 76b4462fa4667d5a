"""Tests for reconcile(), DDL rendering and apply_plan()."""

from unittest.mock import MagicMock

import pytest

from model_store.errors import PersistenceError
from model_store.model.definition import Registry
from model_store.schema.generator import generate_target
from model_store.schema.models import (
    ColumnSchema,
    DatabaseSchema,
    ForeignKeySchema,
    IndexSchema,
    TableSchema,
)
from model_store.schema.reconciler import (
    alter_table_sql,
    apply_plan,
    create_table_sql,
    define_column,
    define_index,
    quote_name,
    reconcile,
    sql_literal,
)
from model_store.schema.comparator import ColumnDelta, IndexDelta


def _as_actual(target: DatabaseSchema) -> DatabaseSchema:
    """A database that already matches *target*."""
    return DatabaseSchema(tables={n: t.model_copy(deep=True) for n, t in target.tables.items()})


# ============================================================================
# DDL rendering
# ============================================================================


class TestRendering:

    def test_quote_name(self) -> None:
        assert quote_name("Place") == "`Place`"
        assert quote_name("we`ird") == "`we``ird`"

    def test_sql_literal(self) -> None:
        assert sql_literal("it's") == "'it''s'"
        assert sql_literal("a\\b") == "'a\\\\b'"

    def test_define_column(self) -> None:
        assert define_column(ColumnSchema(name="n", type="bigint", default="3")) == "`n` bigint DEFAULT 3"
        assert (
            define_column(ColumnSchema(name="s", type="varchar(8)", required=True, default="x"))
            == "`s` varchar(8) NOT NULL DEFAULT 'x'"
        )

    def test_define_index(self) -> None:
        assert define_index(IndexSchema(name="PRIMARY", kind="primary", columns=["a", "b"])) == (
            "PRIMARY KEY (`a`, `b`)"
        )
        assert define_index(IndexSchema(name="u", kind="unique", columns=["a"])) == "UNIQUE `u` (`a`)"
        assert define_index(IndexSchema(name="i", columns=["a"])) == "INDEX `i` (`a`)"

    def test_create_table(self) -> None:
        table = TableSchema(
            name="T",
            columns={"id": ColumnSchema(name="id", type="bigint", required=True)},
            indexes={"PRIMARY": IndexSchema(name="PRIMARY", kind="primary", columns=["id"])},
        )
        assert create_table_sql(table) == (
            "CREATE TABLE IF NOT EXISTS `T` (\n\t`id` bigint NOT NULL,\n\tPRIMARY KEY (`id`)\n)"
        )

    def test_alter_clause_order(self) -> None:
        columns = ColumnDelta(
            create={"c": ColumnSchema(name="c", type="bigint")},
            drop={"d": ColumnSchema(name="d", type="bigint")},
            alter={
                "m": ColumnSchema(name="m", type="text"),
                "old": ColumnSchema(name="new", type="text"),
            },
        )
        indexes = IndexDelta(
            create={"c": IndexSchema(name="c", columns=["c"])},
            drop={"d": IndexSchema(name="d", columns=["d"])},
        )
        assert alter_table_sql("T", columns, indexes) == (
            "ALTER TABLE `T` \n"
            "DROP INDEX `d`,\n"
            "DROP COLUMN `d`,\n"
            "MODIFY COLUMN `m` text,\n"
            "CHANGE COLUMN `old` `new` text,\n"
            "ADD COLUMN `c` bigint,\n"
            "ADD INDEX `c` (`c`)"
        )

    def test_alter_nothing(self) -> None:
        assert alter_table_sql("T", ColumnDelta(), IndexDelta()) is None


# ============================================================================
# Planning
# ============================================================================


class TestReconcile:
    """Verify plans against empty, matching and drifted databases."""

    def test_empty_database(self, registry: Registry) -> None:
        plan = reconcile(DatabaseSchema(), generate_target(registry))

        assert len(plan.statements) == 1
        statement = plan.statements[0]
        assert statement.startswith("CREATE TABLE IF NOT EXISTS `Place`")
        assert "`id` varchar(255) NOT NULL" in statement
        assert "`lat` decimal(32,10) NOT NULL" in statement
        assert "`lon` decimal(32,10) NOT NULL" in statement
        assert "PRIMARY KEY (`id`)" in statement

    def test_converged_database(self, registry: Registry) -> None:
        target = generate_target(registry)
        plan = reconcile(_as_actual(target), target)
        assert not plan.has_changes
        assert plan.statements == []
        assert plan.format_report() == "Schema up to date"

    def test_decimal_default_reported_by_server(self) -> None:
        registry = Registry()
        registry.define("Item", [{"id": "id", "type": "integer"}, {"id": "ratio", "type": "float", "default": 1.5}])
        target = generate_target(registry)
        actual = _as_actual(target)
        actual.tables["Item"].columns["ratio"].default = "1.5000000000"
        assert not reconcile(actual, target).has_changes

    def test_new_property_adds_column(self, registry: Registry) -> None:
        actual = _as_actual(generate_target(registry))
        changed = Registry()
        changed.define("Place", [
            {"id": "id", "type": "string", "required": True, "primary": True},
            {"id": "lat", "type": "float", "required": True},
            {"id": "lon", "type": "float", "required": True},
            {"id": "name", "type": "string", "max": 64},
        ])
        plan = reconcile(actual, generate_target(changed))
        assert plan.statements == ["ALTER TABLE `Place` \nADD COLUMN `name` varchar(64)"]
        assert plan.tables[0].columns.create["name"].type == "varchar(64)"

    def _renamed(self) -> tuple[DatabaseSchema, DatabaseSchema]:
        before = Registry()
        before.define("Place", [{"id": "id", "type": "integer"}, {"id": "title", "type": "string", "max": 64}])
        after = Registry()
        after.define("Place", [{"id": "id", "type": "integer"}, {"id": "name", "type": "string", "max": 64}])
        return _as_actual(generate_target(before)), generate_target(after)

    def test_rename_without_directive(self) -> None:
        actual, target = self._renamed()
        statement = reconcile(actual, target).statements[0]
        assert "DROP COLUMN `title`" in statement
        assert "ADD COLUMN `name` varchar(64)" in statement

    def test_explicit_rename(self) -> None:
        actual, target = self._renamed()
        plan = reconcile(actual, target, renames={"Place": {"title": "name"}})
        assert plan.statements == ["ALTER TABLE `Place` \nCHANGE COLUMN `title` `name` varchar(64)"]

    def test_guessed_rename(self) -> None:
        actual, target = self._renamed()
        plan = reconcile(actual, target, guess_renames=True)
        assert plan.statements == ["ALTER TABLE `Place` \nCHANGE COLUMN `title` `name` varchar(64)"]

    def test_extra_tables_kept(self, registry: Registry) -> None:
        actual = _as_actual(generate_target(registry))
        actual.tables["legacy"] = TableSchema(name="legacy")
        plan = reconcile(actual, generate_target(registry))
        assert plan.extra_tables == ["legacy"]
        assert not plan.has_changes
        assert "Extra tables (kept): legacy" in plan.format_report()


class TestForeignKeyPhases:
    """Foreign keys are dropped first and added last."""

    @pytest.fixture
    def trips(self, registry: Registry) -> Registry:
        registry.define("Trip", [
            {"id": "id", "type": "integer"},
            {"id": "start", "type": "object", "model": "Place"},
            {"id": "stops", "type": "array", "model": "Place"},
        ])
        return registry

    def test_new_tables_then_foreign_keys(self, trips: Registry) -> None:
        plan = reconcile(DatabaseSchema(), generate_target(trips))
        statements = plan.statements

        creates = [s for s in statements if s.startswith("CREATE TABLE")]
        adds = [s for s in statements if "ADD CONSTRAINT" in s]
        assert len(creates) == 3
        assert len(adds) == 3
        assert statements == creates + adds
        assert all("FOREIGN KEY" not in s for s in creates)
        assert (
            "ALTER TABLE `Trip` ADD CONSTRAINT `fk_Trip_start` FOREIGN KEY (`start`) "
            "REFERENCES `Place` (`id`) ON UPDATE CASCADE ON DELETE SET NULL"
        ) in adds

    def test_referenced_column_change_recreates_foreign_keys(self, trips: Registry) -> None:
        target = generate_target(trips)
        actual = _as_actual(target)
        actual.tables["Place"].columns["id"].type = "varchar(64)"

        plan = reconcile(actual, target)
        statements = plan.statements

        dropped = {fk.foreign_key.name for fk in plan.drop_foreign_keys}
        added = {fk.foreign_key.name for fk in plan.add_foreign_keys}
        assert dropped == {"fk_Trip_start", "fk_Trip_Place_Place"}
        assert added == dropped

        modify = statements.index("ALTER TABLE `Place` \nMODIFY COLUMN `id` varchar(255) NOT NULL")
        assert all(statements.index(fk.drop_sql()) < modify for fk in plan.drop_foreign_keys)
        assert all(statements.index(fk.add_sql()) > modify for fk in plan.add_foreign_keys)

    def test_changed_foreign_key_rule(self, trips: Registry) -> None:
        target = generate_target(trips)
        actual = _as_actual(target)
        actual.tables["Trip"].foreign_keys["fk_Trip_start"].on_delete = "CASCADE"

        plan = reconcile(actual, target)
        assert [fk.foreign_key.name for fk in plan.drop_foreign_keys] == ["fk_Trip_start"]
        assert plan.add_foreign_keys[0].foreign_key.on_delete == "SET NULL"
        assert plan.tables == []

    def test_extra_table_foreign_keys_untouched(self, trips: Registry) -> None:
        target = generate_target(trips)
        actual = _as_actual(target)
        actual.tables["legacy"] = TableSchema(
            name="legacy",
            foreign_keys={"fk_legacy": ForeignKeySchema(
                name="fk_legacy", columns=["p"], references_table="Place", references_columns=["id"]
            )},
        )
        assert not reconcile(actual, target).has_changes


# ============================================================================
# Application
# ============================================================================


class TestApplyPlan:

    def test_executes_in_order(self, registry: Registry) -> None:
        executor = MagicMock()
        plan = reconcile(DatabaseSchema(), generate_target(registry))

        result = apply_plan(executor, plan)

        assert result.success
        assert result.tables_created == 1
        assert result.statements == plan.statements
        executor.execute.assert_called_once_with(plan.statements[0])

    def test_dry_run(self, registry: Registry) -> None:
        executor = MagicMock()
        result = apply_plan(executor, reconcile(DatabaseSchema(), generate_target(registry)), dry_run=True)
        assert result.success and result.dry_run
        executor.execute.assert_not_called()

    def test_error_propagates(self, registry: Registry) -> None:
        executor = MagicMock()
        executor.execute.side_effect = PersistenceError("boom")
        with pytest.raises(PersistenceError, match="boom"):
            apply_plan(executor, reconcile(DatabaseSchema(), generate_target(registry)))
