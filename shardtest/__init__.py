"""
shardtest - bootstrap layer of a database-sharding integration-test harness.

Given the logical data sources a rule type declares (one per shard or replica),
this package:

- Builds live data sources for an enabled backend kind
- Assembles a routed data source from a declarative rule file
- Collapses logical data sources that share one physical database instance
- Creates and drops databases and tables before and after test runs
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from shardtest.config import Settings, get_settings
from shardtest.domain.models import HostPort, LifecycleOutcome, SchemaName
from shardtest.env import DatabaseTypeEnvironment, IntegrateTestEnvironment
from shardtest.errors import ConfigError, HarnessConnectionError, HarnessError
from shardtest.lifecycle import (
    create_databases,
    create_databases_and_tables,
    create_tables,
    drop_databases,
    drop_tables,
)
from shardtest.session import HarnessSession
from shardtest.topology import dedupe_instances, resolve_instance_identity
from shardtest.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Environment
    "DatabaseTypeEnvironment",
    "IntegrateTestEnvironment",
    # Errors
    "ConfigError",
    "HarnessConnectionError",
    "HarnessError",
    # Topology
    "HostPort",
    "SchemaName",
    "dedupe_instances",
    "resolve_instance_identity",
    # Lifecycle
    "LifecycleOutcome",
    "create_databases",
    "create_databases_and_tables",
    "create_tables",
    "drop_databases",
    "drop_tables",
    # Session
    "HarnessSession",
    # Logging
    "configure_logging",
    "get_logger",
]
