"""
Domain package for the sharding integration-test harness.

Exports identity variants, lifecycle outcomes and the rule/schema file models.
Keep this package focused on data definitions and validation concerns.
"""

from shardtest.domain.models import (
    MASTER_SLAVE_RULE_TYPE,
    ConnectionMetadata,
    HostPort,
    InstanceIdentity,
    LifecycleOutcome,
    SchemaName,
    is_master_slave,
)
from shardtest.domain.rules import (
    DataNode,
    MasterSlaveRuleFile,
    SchemaConfiguration,
    ShardingRuleFile,
    expand_inline_expression,
    load_yaml_model,
)

__all__ = [
    "MASTER_SLAVE_RULE_TYPE",
    "ConnectionMetadata",
    "DataNode",
    "HostPort",
    "InstanceIdentity",
    "LifecycleOutcome",
    "MasterSlaveRuleFile",
    "SchemaConfiguration",
    "SchemaName",
    "ShardingRuleFile",
    "expand_inline_expression",
    "is_master_slave",
    "load_yaml_model",
]
