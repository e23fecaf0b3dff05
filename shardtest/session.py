"""
Per test case harness session.

A session is either Disabled (its backend is not enabled for this run: nothing
is opened and teardown does nothing) or Active (logical data sources built, the
routed data source assembled and the instance map computed). The state is fixed
at construction; there is no transition back to Disabled.

Example
-------
    environment = IntegrateTestEnvironment().database_type_environment("sqlite")
    with HarnessSession("db", environment) as session:
        if session.is_active:
            with session.data_source.connection() as conn:
                ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Callable, Dict, Optional, Union

from shardtest.config import Settings, get_settings
from shardtest.domain.models import InstanceIdentity, is_master_slave
from shardtest.env import DatabaseTypeEnvironment, resolve_expected_data_file, rule_resource_file
from shardtest.infrastructure.database_types import DataSource, DatabaseType
from shardtest.infrastructure.db_factory import create_data_source
from shardtest.infrastructure.routing import (
    RoutedDataSource,
    ShardingDataSource,
    create_routed_data_source,
)
from shardtest.infrastructure.schema import SchemaEnvironmentManager
from shardtest.topology import build_instance_map
from shardtest.utils.logging import get_logger

log = get_logger(__name__)

NOT_VERIFY_FLAG = "NOT_VERIFY"

DataSourceFactory = Callable[[DatabaseType, str, Settings], DataSource]


@dataclass(frozen=True)
class Disabled:
    """No resources: the backend is not enabled for this run."""


@dataclass
class Active:
    """Everything an enabled session owns or references."""

    data_source_map: Dict[str, DataSource]
    data_source: RoutedDataSource
    instance_data_source_map: Dict[str, DataSource]
    instance_identities: Dict[str, InstanceIdentity] = field(default_factory=dict)


SessionState = Union[Disabled, Active]


class HarnessSession:
    """
    Connections, routed data source and instance map for one rule type and backend.

    Construction errors (data source build, rule file, metadata read) propagate:
    a session that cannot be built fails its test case.
    """

    def __init__(
        self,
        rule_type: str,
        environment: DatabaseTypeEnvironment,
        settings: Optional[Settings] = None,
        schema_manager: Optional[SchemaEnvironmentManager] = None,
        data_source_factory: DataSourceFactory = create_data_source,
    ) -> None:
        self.rule_type = rule_type
        self.environment = environment
        self.settings = settings or get_settings()
        self._schema_manager = schema_manager or SchemaEnvironmentManager(self.settings)
        self._data_source_factory = data_source_factory
        self._closed = False
        self.state: SessionState = self._activate() if environment.enabled else Disabled()

    def _activate(self) -> Active:
        database_type = self.environment.database_type
        names = self._schema_manager.get_data_source_names(self.rule_type)
        data_source_map = {
            name: self._data_source_factory(database_type, name, self.settings) for name in names
        }
        data_source = create_routed_data_source(
            self.rule_type,
            data_source_map,
            rule_resource_file(self.rule_type, self.settings),
            executor_size=self.settings.executor_size,
        )
        try:
            instance_map, identities = build_instance_map(
                self.rule_type, data_source_map, database_type
            )
        except Exception:
            data_source.close()
            raise
        log.info(
            f"[SESSION] {self.rule_type} on {database_type.name} active",
            extra={
                "rule_type": self.rule_type,
                "database_type": database_type.name,
                "data_sources": list(data_source_map),
                "instances": list(instance_map),
            },
        )
        return Active(data_source_map, data_source, instance_map, identities)

    @property
    def is_active(self) -> bool:
        return isinstance(self.state, Active)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_master_slave(self) -> bool:
        return is_master_slave(self.rule_type)

    @property
    def time_zone(self) -> tzinfo:
        """Zone every timestamp assertion of this run compares in."""
        return self.settings.tzinfo

    @property
    def data_source_map(self) -> Dict[str, DataSource]:
        return dict(self.state.data_source_map) if isinstance(self.state, Active) else {}

    @property
    def data_source(self) -> Optional[RoutedDataSource]:
        return self.state.data_source if isinstance(self.state, Active) else None

    @property
    def instance_data_source_map(self) -> Dict[str, DataSource]:
        if isinstance(self.state, Active):
            return dict(self.state.instance_data_source_map)
        return {}

    @property
    def instance_identities(self) -> Dict[str, InstanceIdentity]:
        return dict(self.state.instance_identities) if isinstance(self.state, Active) else {}

    @staticmethod
    def not_verify_flag() -> str:
        return NOT_VERIFY_FLAG

    def get_expected_data_file(self, path: str, expected_data_file: Optional[str]) -> Optional[str]:
        """Expected-results file for a case file, most specific dataset first."""
        return resolve_expected_data_file(
            path, self.rule_type, self.environment.name, expected_data_file
        )

    def close(self) -> None:
        """
        Tear the session down.

        Closes the execution engine of a sharding data source. Logical data
        sources belong to the test process and stay open. Idempotent; a no-op
        for Disabled sessions.
        """
        if self._closed:
            return
        self._closed = True
        routed = self.state.data_source if isinstance(self.state, Active) else None
        if isinstance(routed, ShardingDataSource):
            routed.runtime_context.execute_engine.close()
            log.debug(
                f"[SESSION] {self.rule_type} execute engine closed",
                extra={"rule_type": self.rule_type},
            )

    def __enter__(self) -> "HarnessSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        del exc_type, exc, tb
        self.close()


__all__ = [
    "NOT_VERIFY_FLAG",
    "Active",
    "Disabled",
    "HarnessSession",
    "SessionState",
]
