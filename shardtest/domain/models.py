"""
Domain models for the sharding integration-test harness.

Defines the physical-instance identity variants, the raw connection metadata
they are derived from, and the per rule type outcome recorded by bulk
environment operations.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

MASTER_SLAVE_RULE_TYPE = "masterslave"


def is_master_slave(rule_type: str) -> bool:
    """Whether the rule type denotes master/replica splitting."""
    return rule_type == MASTER_SLAVE_RULE_TYPE


class HostPort(BaseModel):
    """
    Identity of a networked database server.

    Two values are equal iff both host and port match exactly.
    """

    kind: Literal["host_port"] = "host_port"
    host: str = Field(..., description="Host name or socket directory.")
    port: int = Field(..., description="TCP port.")

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


class SchemaName(BaseModel):
    """
    Identity of an embedded database lacking a network address.
    """

    kind: Literal["schema"] = "schema"
    name: str = Field(..., description="Logical schema name.")

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return self.name


InstanceIdentity = Annotated[Union[HostPort, SchemaName], Field(discriminator="kind")]


@dataclass(frozen=True)
class ConnectionMetadata:
    """What a live connection reports about itself."""

    url: str
    user_name: Optional[str] = None


class LifecycleOutcome(BaseModel):
    """
    Result of one bulk environment operation for one rule type.
    """

    rule_type: str = Field(..., description="Rule type the operation ran for.")
    operation: str = Field(..., description="Manager operation name, e.g. drop_table.")
    succeeded: bool = Field(..., description="Whether the operation completed.")
    error: Optional[str] = Field(None, description="Error message when it failed.")
    error_type: Optional[str] = Field(None, description="Exception class name when it failed.")
    finished_at: datetime = Field(..., description="Completion time in the configured zone.")

    model_config = {"frozen": True}


__all__ = [
    "MASTER_SLAVE_RULE_TYPE",
    "ConnectionMetadata",
    "HostPort",
    "InstanceIdentity",
    "LifecycleOutcome",
    "SchemaName",
    "is_master_slave",
]
