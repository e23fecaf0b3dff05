"""
Bulk environment reset across every registered rule type.

Usage (example from a test suite's session setup):
    from shardtest.lifecycle import create_databases_and_tables

    outcomes = create_databases_and_tables()
    failed = [o for o in outcomes if not o.succeeded]

Environment reset is best-effort housekeeping. Each (operation, rule type) pair
runs on its own: a failure is logged, recorded as a failed LifecycleOutcome and
the loop moves on. Callers must not assume all-or-nothing semantics; inspect the
returned outcomes instead.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from shardtest.domain.models import LifecycleOutcome
from shardtest.infrastructure.schema import SchemaEnvironmentManager
from shardtest.utils.logging import get_logger

log = get_logger(__name__)

CREATE_DATABASE = "create_database"
DROP_DATABASE = "drop_database"
CREATE_TABLE = "create_table"
DROP_TABLE = "drop_table"

OPERATIONS = (CREATE_DATABASE, DROP_DATABASE, CREATE_TABLE, DROP_TABLE)


def _resolve(
    manager: Optional[SchemaEnvironmentManager], rule_types: Optional[Sequence[str]]
) -> tuple[SchemaEnvironmentManager, List[str]]:
    manager = manager or SchemaEnvironmentManager()
    names = list(rule_types) if rule_types is not None else manager.settings.rule_type_names()
    return manager, names


def _run_operation(
    manager: SchemaEnvironmentManager, operation: str, rule_type: str
) -> LifecycleOutcome:
    time_zone = manager.settings.tzinfo
    try:
        getattr(manager, operation)(rule_type)
    except Exception as exc:  # noqa: BLE001 - intentional broad catch to record failures
        log.exception(
            f"[LIFECYCLE FAILED] {operation} {rule_type}",
            extra={"operation": operation, "rule_type": rule_type},
        )
        return LifecycleOutcome(
            rule_type=rule_type,
            operation=operation,
            succeeded=False,
            error=str(exc),
            error_type=type(exc).__name__,
            finished_at=datetime.now(time_zone),
        )
    log.info(
        f"[LIFECYCLE] {operation} {rule_type}",
        extra={"operation": operation, "rule_type": rule_type},
    )
    return LifecycleOutcome(
        rule_type=rule_type,
        operation=operation,
        succeeded=True,
        finished_at=datetime.now(time_zone),
    )


def _run_pass(
    manager: SchemaEnvironmentManager, operation: str, rule_types: Sequence[str]
) -> List[LifecycleOutcome]:
    return [_run_operation(manager, operation, rule_type) for rule_type in rule_types]


def create_databases(
    manager: Optional[SchemaEnvironmentManager] = None,
    rule_types: Optional[Sequence[str]] = None,
) -> List[LifecycleOutcome]:
    """
    Drop every rule type's databases, then create them all again.

    Parameters
    ----------
    manager : SchemaEnvironmentManager | None
        Manager performing the DDL. Defaults to one built from process settings.
    rule_types : sequence[str] | None
        Rule types in registry order. Defaults to ``Settings.rule_type_names()``.

    Returns
    -------
    List[LifecycleOutcome]
        One outcome per (operation, rule type), drops first.
    """
    manager, names = _resolve(manager, rule_types)
    return _run_pass(manager, DROP_DATABASE, names) + _run_pass(manager, CREATE_DATABASE, names)


def create_tables(
    manager: Optional[SchemaEnvironmentManager] = None,
    rule_types: Optional[Sequence[str]] = None,
) -> List[LifecycleOutcome]:
    """Create every rule type's tables."""
    manager, names = _resolve(manager, rule_types)
    return _run_pass(manager, CREATE_TABLE, names)


def drop_databases(
    manager: Optional[SchemaEnvironmentManager] = None,
    rule_types: Optional[Sequence[str]] = None,
) -> List[LifecycleOutcome]:
    """Drop every rule type's databases."""
    manager, names = _resolve(manager, rule_types)
    return _run_pass(manager, DROP_DATABASE, names)


def drop_tables(
    manager: Optional[SchemaEnvironmentManager] = None,
    rule_types: Optional[Sequence[str]] = None,
) -> List[LifecycleOutcome]:
    """Drop every rule type's tables."""
    manager, names = _resolve(manager, rule_types)
    return _run_pass(manager, DROP_TABLE, names)


def create_databases_and_tables(
    manager: Optional[SchemaEnvironmentManager] = None,
    rule_types: Optional[Sequence[str]] = None,
) -> List[LifecycleOutcome]:
    """
    Reset the environment to a clean slate.

    Runs, in order: drop tables, create databases (drop + create), create tables.
    Calling it twice leaves the same schema state as calling it once.
    """
    manager, names = _resolve(manager, rule_types)
    outcomes = drop_tables(manager, names)
    outcomes += create_databases(manager, names)
    outcomes += create_tables(manager, names)
    failed = [outcome for outcome in outcomes if not outcome.succeeded]
    succeeded = len(outcomes) - len(failed)
    log.info(
        f"[LIFECYCLE COMPLETE] {succeeded}/{len(outcomes)} operation(s) succeeded",
        extra={"rule_types": names, "failed": len(failed)},
    )
    return outcomes


__all__ = [
    "CREATE_DATABASE",
    "CREATE_TABLE",
    "DROP_DATABASE",
    "DROP_TABLE",
    "OPERATIONS",
    "create_databases",
    "create_databases_and_tables",
    "create_tables",
    "drop_databases",
    "drop_tables",
]
