from __future__ import annotations

from datetime import timezone
from typing import List, Tuple

from shardtest.config import Settings
from shardtest.errors import ConfigError
from shardtest.lifecycle import (
    CREATE_DATABASE,
    CREATE_TABLE,
    DROP_DATABASE,
    DROP_TABLE,
    create_databases,
    create_databases_and_tables,
    drop_databases,
    drop_tables,
)

RULE_TYPES = ["masterslave", "db"]


class RecordingManager:
    """Schema manager double recording every call; selected calls fail."""

    def __init__(self, failing: Tuple[str, str] = ("", "")) -> None:
        self.settings = Settings(rule_types=",".join(RULE_TYPES), time_zone="UTC")
        self.failing = failing
        self.calls: List[Tuple[str, str]] = []

    def _record(self, operation: str, rule_type: str) -> None:
        self.calls.append((operation, rule_type))
        if (operation, rule_type) == self.failing:
            raise ConfigError(f"{rule_type} schema file not found")

    def create_database(self, rule_type: str) -> None:
        self._record(CREATE_DATABASE, rule_type)

    def drop_database(self, rule_type: str) -> None:
        self._record(DROP_DATABASE, rule_type)

    def create_table(self, rule_type: str) -> None:
        self._record(CREATE_TABLE, rule_type)

    def drop_table(self, rule_type: str) -> None:
        self._record(DROP_TABLE, rule_type)


def test_create_databases_and_tables_runs_passes_in_order() -> None:
    manager = RecordingManager()

    outcomes = create_databases_and_tables(manager)

    assert manager.calls == [
        (DROP_TABLE, "masterslave"),
        (DROP_TABLE, "db"),
        (DROP_DATABASE, "masterslave"),
        (DROP_DATABASE, "db"),
        (CREATE_DATABASE, "masterslave"),
        (CREATE_DATABASE, "db"),
        (CREATE_TABLE, "masterslave"),
        (CREATE_TABLE, "db"),
    ]
    assert [(o.operation, o.rule_type) for o in outcomes] == manager.calls
    assert all(outcome.succeeded for outcome in outcomes)


def test_failure_for_one_rule_type_does_not_stop_the_next() -> None:
    manager = RecordingManager(failing=(DROP_TABLE, "masterslave"))

    outcomes = drop_tables(manager)

    assert manager.calls == [(DROP_TABLE, "masterslave"), (DROP_TABLE, "db")]
    failed, succeeded = outcomes
    assert not failed.succeeded
    assert failed.error_type == "ConfigError"
    assert "schema file not found" in failed.error
    assert succeeded.succeeded
    assert succeeded.error is None


def test_failure_is_logged(caplog) -> None:
    manager = RecordingManager(failing=(DROP_DATABASE, "db"))

    with caplog.at_level("ERROR", logger="shardtest.lifecycle"):
        drop_databases(manager)

    assert any("[LIFECYCLE FAILED] drop_database db" in r.getMessage() for r in caplog.records)


def test_create_databases_drops_everything_first() -> None:
    manager = RecordingManager()

    create_databases(manager, rule_types=["db"])

    assert manager.calls == [(DROP_DATABASE, "db"), (CREATE_DATABASE, "db")]


def test_outcome_timestamps_use_configured_time_zone() -> None:
    outcomes = drop_tables(RecordingManager(), rule_types=["db"])

    assert outcomes[0].finished_at.tzinfo == timezone.utc


def test_reset_is_idempotent_on_sqlite(sqlite_manager) -> None:
    first = create_databases_and_tables(sqlite_manager)
    database_type = sqlite_manager.environment.enabled_database_types()[0]
    with database_type.connect("db_1", sqlite_manager.settings) as conn:
        conn.execute("INSERT INTO t_order (order_id, user_id, status) VALUES (1, 1, 'init')")

    second = create_databases_and_tables(sqlite_manager)

    assert all(outcome.succeeded for outcome in first + second)
    with database_type.connect("db_1", sqlite_manager.settings) as conn:
        assert conn.execute("SELECT COUNT(*) FROM t_order").fetchone()[0] == 0
        tables = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
    assert tables == {"t_order", "t_order_item", "t_broadcast_table"}


def test_drop_databases_removes_sqlite_files(prepared_sqlite) -> None:
    database_type = prepared_sqlite.environment.enabled_database_types()[0]
    path = database_type.database_path("tbl", prepared_sqlite.settings)
    assert path.exists()

    outcomes = drop_databases(prepared_sqlite, rule_types=["tbl"])

    assert outcomes[0].succeeded
    assert not path.exists()


def test_unusable_embedded_dir_is_recorded_as_failure(sqlite_manager, tmp_path) -> None:
    blocker = tmp_path / "blocked"
    blocker.write_text("not a directory", encoding="utf-8")
    blocked = Settings(database_types="sqlite", rule_types="db", embedded_dir=blocker)
    sqlite_manager.settings = blocked
    sqlite_manager.environment.settings = blocked

    outcomes = drop_tables(sqlite_manager, rule_types=["db"])

    assert not outcomes[0].succeeded
    assert outcomes[0].error_type == FileExistsError.__name__
