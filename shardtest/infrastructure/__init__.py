"""
Infrastructure package for the sharding integration-test harness.

Centralizes backend concerns: backend kinds, logical data source factories and
caching, and routed data sources. Keep this layer focused on I/O and resource
management, decoupled from session and lifecycle logic.
"""

from shardtest.infrastructure.database_types import (
    DataSource,
    DatabaseType,
    get_database_type,
    register_database_type,
)
from shardtest.infrastructure.db_factory import close_all_data_sources, create_data_source
from shardtest.infrastructure.routing import (
    MasterSlaveDataSource,
    ShardingDataSource,
    create_routed_data_source,
)

__all__ = [
    "DataSource",
    "DatabaseType",
    "MasterSlaveDataSource",
    "ShardingDataSource",
    "close_all_data_sources",
    "create_data_source",
    "create_routed_data_source",
    "get_database_type",
    "register_database_type",
]
