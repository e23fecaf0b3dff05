from __future__ import annotations

import pytest
from typer.testing import CliRunner

from shardtest.config import get_settings
from shardtest.main import app

runner = CliRunner()


@pytest.fixture
def cli_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("INTEGRATE_DATABASE_TYPES", "sqlite")
    monkeypatch.setenv("INTEGRATE_RULE_TYPES", "db,masterslave")
    monkeypatch.setenv("INTEGRATE_EMBEDDED_DIR", str(tmp_path / "sqlite"))
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


def test_info_lists_backends_and_rule_types(cli_env) -> None:
    result = runner.invoke(app, ["info"])

    assert result.exit_code == 0
    assert "postgresql (disabled)" in result.output
    assert "rule_types=db,masterslave" in result.output


def test_create_all_then_topology(cli_env) -> None:
    created = runner.invoke(app, ["create", "all", "--strict"])
    assert created.exit_code == 0, created.output
    assert (cli_env / "sqlite" / "db_3.db").exists()

    shown = runner.invoke(app, ["topology", "-r", "db"])
    assert shown.exit_code == 0, shown.output
    assert "db_0" in shown.output


def test_topology_on_disabled_backend_exits_1(cli_env) -> None:
    result = runner.invoke(app, ["topology", "-r", "db", "-d", "postgresql"])

    assert result.exit_code == 1


def test_unknown_target_is_rejected(cli_env) -> None:
    result = runner.invoke(app, ["drop", "everything"])

    assert result.exit_code != 0
