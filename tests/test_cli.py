"""Tests for the model-store CLI with mocked stores."""

import os
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from model_store.cli import _parse_renames, main
from model_store.model.definition import Registry
from model_store.schema.generator import generate_target
from model_store.schema.models import DatabaseSchema
from model_store.schema.reconciler import reconcile

CONFIG = """
[profiles.local]
host = "localhost"
user = "root"
database = "models"
description = "Local MySQL"

[schema]
registry = "myapp.models:registry"
"""


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "store.toml"
    path.write_text(CONFIG)
    return path


def _run(*args: str) -> int:
    with patch.object(sys, "argv", ["model-store", *args]):
        return main()


def _mock_store(registry: Registry, actual: DatabaseSchema | None = None) -> MagicMock:
    store = MagicMock()
    target = generate_target(registry)
    store.plan.side_effect = lambda renames=None, guess_renames=False: reconcile(
        actual or DatabaseSchema(), target, renames=renames, guess_renames=guess_renames
    )
    return store


class TestParseRenames:

    def test_parse(self) -> None:
        assert _parse_renames(["Place.title=name", "Place.x=y", "Trip.a=b"]) == {
            "Place": {"title": "name", "x": "y"},
            "Trip": {"a": "b"},
        }

    def test_none(self) -> None:
        assert _parse_renames(None) == {}

    @pytest.mark.parametrize("value", ["title=name", "Place.title", "Place.=name", ".title=name"])
    def test_invalid(self, value: str) -> None:
        with pytest.raises(ValueError, match="expected table.old=new"):
            _parse_renames([value])


class TestProfilesCommand:

    def test_lists_profiles(self, config_file: Path, capsys: pytest.CaptureFixture) -> None:
        with patch.dict(os.environ, {"DB_PROFILE": "local"}):
            assert _run("--config", str(config_file), "profiles") == 0
        out = capsys.readouterr().out
        assert "local" in out
        assert "root@localhost:3306" in out

    def test_missing_config(self, tmp_path: Path) -> None:
        assert _run("--config", str(tmp_path / "missing.toml"), "profiles") == 1


class TestPlanCommand:

    def test_prints_statements(self, config_file: Path, registry: Registry, capsys: pytest.CaptureFixture) -> None:
        store = _mock_store(registry)
        with patch("model_store.cli.get_store", return_value=store) as get_store:
            assert _run("--config", str(config_file), "plan", "--profile", "local") == 0

        get_store.assert_called_once_with("myapp.models:registry", "local", "", config_file)
        assert "CREATE TABLE IF NOT EXISTS `Place`" in capsys.readouterr().out
        store.executor.close.assert_called_once_with()

    def test_registry_option_overrides_config(self, config_file: Path, registry: Registry) -> None:
        with patch("model_store.cli.get_store", return_value=_mock_store(registry)) as get_store:
            _run("--config", str(config_file), "plan", "-p", "local", "-r", "other:registry")
        assert get_store.call_args.args[0] == "other:registry"

    def test_renames_passed_through(self, config_file: Path, registry: Registry) -> None:
        store = _mock_store(registry)
        with patch("model_store.cli.get_store", return_value=store):
            _run("--config", str(config_file), "plan", "-p", "local", "--rename", "Place.title=name")
        store.plan.assert_called_once_with(renames={"Place": {"title": "name"}}, guess_renames=False)

    def test_no_profile(self, config_file: Path) -> None:
        with patch.dict(os.environ, {}, clear=True):
            assert _run("--config", str(config_file), "plan") == 1

    def test_plan_failure_closes_connection(self, config_file: Path, registry: Registry, capsys: pytest.CaptureFixture) -> None:
        """A failing introspection still releases the adapter."""
        from model_store.errors import PersistenceError

        store = _mock_store(registry)
        store.plan.side_effect = PersistenceError("Query failed: gone away")
        with patch("model_store.cli.get_store", return_value=store):
            assert _run("--config", str(config_file), "plan", "-p", "local") == 1
        store.executor.close.assert_called_once_with()
        assert "gone away" in capsys.readouterr().out

    def test_up_to_date(self, config_file: Path, registry: Registry, capsys: pytest.CaptureFixture) -> None:
        target = generate_target(registry)
        actual = DatabaseSchema(tables={n: t.model_copy(deep=True) for n, t in target.tables.items()})
        with patch("model_store.cli.get_store", return_value=_mock_store(registry, actual)):
            assert _run("--config", str(config_file), "plan", "-p", "local") == 0
        assert "up to date" in capsys.readouterr().out


class TestBuildCommand:

    def test_requires_confirm(self, config_file: Path, registry: Registry, capsys: pytest.CaptureFixture) -> None:
        store = _mock_store(registry)
        with patch("model_store.cli.get_store", return_value=store):
            assert _run("--config", str(config_file), "build", "-p", "local") == 0
        store.executor.execute.assert_not_called()
        assert "--confirm" in capsys.readouterr().out

    def test_confirm_applies(self, config_file: Path, registry: Registry, capsys: pytest.CaptureFixture) -> None:
        store = _mock_store(registry)
        with patch("model_store.cli.get_store", return_value=store):
            assert _run("--config", str(config_file), "build", "-p", "local", "--confirm") == 0
        store.executor.execute.assert_called_once()
        assert "1 tables created" in capsys.readouterr().out

    def test_failure_reported(self, config_file: Path, registry: Registry) -> None:
        from model_store.errors import PersistenceError

        store = _mock_store(registry)
        store.executor.execute.side_effect = PersistenceError("denied")
        with patch("model_store.cli.get_store", return_value=store):
            assert _run("--config", str(config_file), "build", "-p", "local", "--confirm") == 1
        store.executor.close.assert_called_once_with()
