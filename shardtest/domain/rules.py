"""
Declarative rule and schema file models.

Rule files (``sharding-rule.yaml``) describe how a routed data source spreads
logic tables over logical data sources; schema files (``schema.yaml``) declare
the logical databases of a rule type, in order, and the tables created in each.
Both are YAML loaded with ``yaml.safe_load`` and validated with Pydantic; any
failure surfaces as :class:`~shardtest.errors.ConfigError`.
"""
from __future__ import annotations

import itertools
import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

import yaml
from pydantic import BaseModel, Field, ValidationError

from shardtest.errors import ConfigError

_INLINE = re.compile(r"\$\{(.+?)\}")
_RANGE = re.compile(r"^\s*(-?\d+)\s*\.\.\s*(-?\d+)\s*$")

ModelT = TypeVar("ModelT", bound=BaseModel)


def split_expressions(text: str) -> List[str]:
    """Split on commas that are not inside a ``${...}`` placeholder."""
    pieces: List[str] = []
    current: List[str] = []
    depth = 0
    for char in text:
        if char == "{":
            depth += 1
        elif char == "}":
            depth = max(0, depth - 1)
        if char == "," and depth == 0:
            pieces.append("".join(current))
            current = []
            continue
        current.append(char)
    pieces.append("".join(current))
    return [piece.strip() for piece in pieces if piece.strip()]


def expand_inline_expression(expression: str) -> List[str]:
    """
    Expand ``${0..1}`` ranges and ``${[a, b]}`` / ``${a, b}`` lists.

    Several placeholders in one expression expand as a Cartesian product, left
    to right, e.g. ``db_${0..1}.t_${[a, b]}`` gives four values.
    """
    parts = _INLINE.split(expression)
    literals = parts[0::2]
    choices: List[List[str]] = []
    for body in parts[1::2]:
        match = _RANGE.match(body)
        if match:
            start, end = int(match.group(1)), int(match.group(2))
            step = 1 if end >= start else -1
            choices.append([str(value) for value in range(start, end + step, step)])
            continue
        items = [item.strip() for item in body.strip().strip("[]").split(",")]
        items = [item.strip("'\"") for item in items if item]
        if not items:
            raise ConfigError(f"Empty inline expression in '{expression}'")
        choices.append(items)

    results: List[str] = []
    for combination in itertools.product(*choices):
        pieces = [literals[0]]
        for value, literal in zip(combination, literals[1:]):
            pieces.append(value)
            pieces.append(literal)
        results.append("".join(pieces))
    return results


class DataNode(BaseModel):
    """One physical table inside one logical data source."""

    data_source: str
    table: str

    model_config = {"frozen": True}

    @classmethod
    def parse(cls, text: str) -> "DataNode":
        data_source, sep, table = text.strip().partition(".")
        if not sep or not data_source or not table:
            raise ConfigError(f"Invalid data node '{text}', expected '<data_source>.<table>'")
        return cls(data_source=data_source, table=table)

    def __str__(self) -> str:
        return f"{self.data_source}.{self.table}"


class TableRuleConfiguration(BaseModel):
    actual_data_nodes: Optional[str] = Field(None, alias="actualDataNodes")
    database_strategy: Optional[Dict[str, Any]] = Field(None, alias="databaseStrategy")
    table_strategy: Optional[Dict[str, Any]] = Field(None, alias="tableStrategy")
    key_generator: Optional[Dict[str, Any]] = Field(None, alias="keyGenerator")

    model_config = {"populate_by_name": True, "extra": "forbid"}


class ShardingRuleConfiguration(BaseModel):
    tables: Dict[str, TableRuleConfiguration] = Field(default_factory=dict)
    binding_tables: List[str] = Field(default_factory=list, alias="bindingTables")
    broadcast_tables: List[str] = Field(default_factory=list, alias="broadcastTables")
    default_data_source_name: Optional[str] = Field(None, alias="defaultDataSourceName")
    default_database_strategy: Optional[Dict[str, Any]] = Field(
        None, alias="defaultDatabaseStrategy"
    )
    default_table_strategy: Optional[Dict[str, Any]] = Field(None, alias="defaultTableStrategy")

    model_config = {"populate_by_name": True, "extra": "forbid"}


class MasterSlaveRuleConfiguration(BaseModel):
    name: str
    master_data_source_name: str = Field(..., alias="masterDataSourceName")
    slave_data_source_names: List[str] = Field(..., min_length=1, alias="slaveDataSourceNames")
    load_balance_algorithm_type: Literal["ROUND_ROBIN", "RANDOM"] = Field(
        "ROUND_ROBIN", alias="loadBalanceAlgorithmType"
    )

    model_config = {"populate_by_name": True, "extra": "forbid"}


class ShardingRuleFile(BaseModel):
    """Top level of a sharding ``sharding-rule.yaml``."""

    sharding_rule: ShardingRuleConfiguration = Field(..., alias="shardingRule")
    props: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True, "extra": "ignore"}


class MasterSlaveRuleFile(BaseModel):
    """Top level of a master/slave ``sharding-rule.yaml``."""

    master_slave_rule: MasterSlaveRuleConfiguration = Field(..., alias="masterSlaveRule")
    props: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True, "extra": "ignore"}


class SchemaConfiguration(BaseModel):
    """
    Top level of a ``schema.yaml``.

    ``databases`` order is the declaration order of the rule type's logical data
    sources and is preserved everywhere downstream.
    """

    databases: List[str] = Field(..., min_length=1)
    tables: Dict[str, str] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}


def load_yaml_model(path: Path, model: Type[ModelT]) -> ModelT:
    """
    Parse ``path`` as YAML and validate it against ``model``.

    Raises
    ------
    ConfigError
        When the file is missing, is not valid YAML, or does not match the model.
    """
    try:
        with Path(path).open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(f"Configuration file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Malformed YAML in {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Expected a mapping at the top of {path}")
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid {model.__name__} in {path}: {exc}") from exc


__all__ = [
    "DataNode",
    "MasterSlaveRuleConfiguration",
    "MasterSlaveRuleFile",
    "SchemaConfiguration",
    "ShardingRuleConfiguration",
    "ShardingRuleFile",
    "TableRuleConfiguration",
    "expand_inline_expression",
    "load_yaml_model",
    "split_expressions",
]
