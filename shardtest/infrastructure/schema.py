"""
Create and drop the databases and tables a rule type declares.

Every operation runs for each enabled backend kind, on short-lived autocommit
connections. Failures propagate: ConfigError for a bad schema file, OSError for
file access, and the backend driver's own error for failed DDL.
"""

from __future__ import annotations

from typing import List, Optional

from shardtest.config import Settings, get_settings
from shardtest.domain.rules import SchemaConfiguration, load_yaml_model
from shardtest.env import IntegrateTestEnvironment, schema_resource_file
from shardtest.infrastructure.database_types import DatabaseType
from shardtest.utils.logging import get_logger

log = get_logger(__name__)


class SchemaEnvironmentManager:
    """Schema-level environment operations for one test run."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.environment = IntegrateTestEnvironment(self.settings)

    def load_schema(self, rule_type: str) -> SchemaConfiguration:
        return load_yaml_model(schema_resource_file(rule_type, self.settings), SchemaConfiguration)

    def get_data_source_names(self, rule_type: str) -> List[str]:
        """Logical data source names of ``rule_type``, in declaration order."""
        return list(self.load_schema(rule_type).databases)

    def _database_types(self) -> List[DatabaseType]:
        return self.environment.enabled_database_types()

    def create_database(self, rule_type: str) -> None:
        schema = self.load_schema(rule_type)
        for database_type in self._database_types():
            for database in schema.databases:
                log.debug(
                    f"[SCHEMA] CREATE DATABASE {database} on {database_type.name}",
                    extra={"rule_type": rule_type, "database": database},
                )
                database_type.create_database(database, self.settings)

    def drop_database(self, rule_type: str) -> None:
        schema = self.load_schema(rule_type)
        for database_type in self._database_types():
            for database in schema.databases:
                log.debug(
                    f"[SCHEMA] DROP DATABASE {database} on {database_type.name}",
                    extra={"rule_type": rule_type, "database": database},
                )
                database_type.drop_database(database, self.settings)

    def create_table(self, rule_type: str) -> None:
        schema = self.load_schema(rule_type)
        for database_type in self._database_types():
            for database in schema.databases:
                with database_type.connect(database, self.settings) as conn:
                    for ddl in schema.tables.values():
                        conn.execute(ddl)
                log.debug(
                    f"[SCHEMA] Created {len(schema.tables)} table(s) in {database}",
                    extra={"rule_type": rule_type, "database": database},
                )

    def drop_table(self, rule_type: str) -> None:
        schema = self.load_schema(rule_type)
        for database_type in self._database_types():
            for database in schema.databases:
                with database_type.connect(database, self.settings) as conn:
                    for table in schema.tables:
                        database_type.drop_table(conn, table)
                log.debug(
                    f"[SCHEMA] Dropped {len(schema.tables)} table(s) in {database}",
                    extra={"rule_type": rule_type, "database": database},
                )


__all__ = ["SchemaEnvironmentManager"]
