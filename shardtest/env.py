"""
Integration environment: resource locations, enabled backends and fixture paths.

Resource layout under ``Settings.resources_dir``::

    integrate/env/<rule_type>/schema.yaml
    integrate/env/<rule_type>/sharding-rule.yaml
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from shardtest.config import Settings, get_settings
from shardtest.infrastructure.database_types import (
    DatabaseType,
    get_database_type,
    registered_database_types,
)

SCHEMA_FILE = "schema.yaml"
RULE_FILE = "sharding-rule.yaml"


def rule_type_dir(rule_type: str, settings: Optional[Settings] = None) -> Path:
    settings = settings or get_settings()
    return Path(settings.resources_dir) / "integrate" / "env" / rule_type


def schema_resource_file(rule_type: str, settings: Optional[Settings] = None) -> Path:
    """Path of the schema file declaring the rule type's databases and tables."""
    return rule_type_dir(rule_type, settings) / SCHEMA_FILE


def rule_resource_file(rule_type: str, settings: Optional[Settings] = None) -> Path:
    """Path of the routing rule file for the rule type."""
    return rule_type_dir(rule_type, settings) / RULE_FILE


@dataclass(frozen=True)
class DatabaseTypeEnvironment:
    """A backend kind and whether this run targets it."""

    database_type: DatabaseType
    enabled: bool

    @property
    def name(self) -> str:
        return self.database_type.name


class IntegrateTestEnvironment:
    """
    The rule types and backend kinds of one test run, derived from Settings.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    @property
    def rule_types(self) -> List[str]:
        return self.settings.rule_type_names()

    def enabled_database_types(self) -> List[DatabaseType]:
        """Enabled backends; unknown names raise ConfigError."""
        return [get_database_type(name) for name in self.settings.database_type_names()]

    def database_type_environments(self) -> List[DatabaseTypeEnvironment]:
        """Every registered backend, flagged with whether it is enabled."""
        enabled = {database_type.name for database_type in self.enabled_database_types()}
        return [
            DatabaseTypeEnvironment(get_database_type(name), name in enabled)
            for name in registered_database_types()
        ]

    def database_type_environment(self, name: str) -> DatabaseTypeEnvironment:
        database_type = get_database_type(name)
        enabled = database_type.name in self.settings.database_type_names()
        return DatabaseTypeEnvironment(database_type, enabled)


def resolve_expected_data_file(
    path: str,
    rule_type: str,
    database_type: str,
    expected_data_file: Optional[str],
) -> Optional[str]:
    """
    Locate an expected-results file for a case file at ``path``.

    The ``dataset`` directory sits beside the directory holding the case file.
    Candidates, most specific first::

        <dir>/dataset/<rule_type>/<database_type>/<file>
        <dir>/dataset/<rule_type>/<file>
        <dir>/dataset/<file>

    The first existing candidate wins; the last one is returned when none exists.
    Returns None when ``expected_data_file`` is None.
    """
    if expected_data_file is None:
        return None
    prefix = os.path.dirname(os.path.dirname(path))
    dataset = f"{prefix.rstrip('/')}/dataset" if prefix else "dataset"
    candidates = [
        "/".join([dataset, rule_type, database_type.lower(), expected_data_file]),
        "/".join([dataset, rule_type, expected_data_file]),
    ]
    for candidate in candidates:
        if Path(candidate).exists():
            return candidate
    return "/".join([dataset, expected_data_file])


__all__ = [
    "RULE_FILE",
    "SCHEMA_FILE",
    "DatabaseTypeEnvironment",
    "IntegrateTestEnvironment",
    "resolve_expected_data_file",
    "rule_resource_file",
    "rule_type_dir",
    "schema_resource_file",
]
