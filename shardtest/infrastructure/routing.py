"""
Routed (virtual) data sources built from a rule file and a map of logical ones.

Two variants exist. :class:`ShardingDataSource` spreads logic tables over data
nodes and owns an execution engine (a thread pool) that must be closed when the
data source is no longer used. :class:`MasterSlaveDataSource` sends writes to the
master and balances reads over the slaves; it owns nothing beyond the logical
data sources it was given. SQL routing and rewriting are not implemented here:
the variants expose the resolved topology and connection access only.
"""

from __future__ import annotations

import itertools
import random
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
    Union,
)

from shardtest.domain.models import is_master_slave
from shardtest.domain.rules import (
    DataNode,
    MasterSlaveRuleConfiguration,
    MasterSlaveRuleFile,
    ShardingRuleConfiguration,
    ShardingRuleFile,
    expand_inline_expression,
    load_yaml_model,
    split_expressions,
)
from shardtest.errors import ConfigError
from shardtest.infrastructure.database_types import DataSource
from shardtest.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

EXECUTOR_SIZE_PROP = "executor.size"


class ExecuteEngine:
    """
    Thread pool fanning work out over logical data sources.

    ``close`` is idempotent; submitting after close raises RuntimeError.
    """

    def __init__(self, size: int) -> None:
        self.size = size
        self._executor = ThreadPoolExecutor(max_workers=size, thread_name_prefix="shardtest-exec")
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def execute_group(self, tasks: Mapping[str, Callable[[], T]]) -> Dict[str, T]:
        """Run every task and collect results keyed like ``tasks``, in input order."""
        with self._lock:
            if self._closed:
                raise RuntimeError("Execute engine is closed")
            futures = {key: self._executor.submit(task) for key, task in tasks.items()}
        return {key: future.result() for key, future in futures.items()}

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=True)


class RuntimeContext:
    """Parsed rule, properties and the execution engine of a sharding data source."""

    def __init__(
        self,
        rule: ShardingRuleConfiguration,
        props: Mapping[str, Any],
        table_nodes: Mapping[str, List[DataNode]],
        execute_engine: ExecuteEngine,
    ) -> None:
        self.rule = rule
        self.props = dict(props)
        self.table_nodes = dict(table_nodes)
        self.execute_engine = execute_engine

    def close(self) -> None:
        self.execute_engine.close()


class ShardingDataSource:
    """Routed data source for every non master/slave rule type."""

    def __init__(self, data_source_map: Mapping[str, DataSource], runtime_context: RuntimeContext):
        self.data_source_map: Dict[str, DataSource] = dict(data_source_map)
        self.runtime_context = runtime_context

    @property
    def execute_engine(self) -> ExecuteEngine:
        return self.runtime_context.execute_engine

    def logic_tables(self) -> List[str]:
        return list(self.runtime_context.table_nodes)

    def actual_data_nodes(self, logic_table: str) -> List[DataNode]:
        try:
            return list(self.runtime_context.table_nodes[logic_table])
        except KeyError:
            raise ConfigError(f"No sharding rule for table '{logic_table}'") from None

    @contextmanager
    def connection(self, data_source_name: Optional[str] = None) -> Iterator[Any]:
        """Borrow a connection from one logical data source (default one when omitted)."""
        name = data_source_name or self.runtime_context.rule.default_data_source_name
        if name is None:
            name = next(iter(self.data_source_map))
        if name not in self.data_source_map:
            raise ConfigError(f"Unknown data source '{name}'")
        with self.data_source_map[name].connection() as conn:
            yield conn

    def execute_all(self, statement: str, params: Optional[Sequence[Any]] = None) -> Dict[str, int]:
        """
        Execute ``statement`` once on every logical data source through the engine.

        Returns the affected row count per data source name.
        """

        def _run(data_source: DataSource) -> int:
            with data_source.connection() as conn:
                cursor = conn.execute(statement, params) if params else conn.execute(statement)
                return cursor.rowcount

        tasks = {
            name: (lambda data_source=data_source: _run(data_source))
            for name, data_source in self.data_source_map.items()
        }
        return self.execute_engine.execute_group(tasks)

    def close(self) -> None:
        self.runtime_context.close()


class MasterSlaveDataSource:
    """Routed data source for the master/slave rule type."""

    def __init__(
        self, data_source_map: Mapping[str, DataSource], rule: MasterSlaveRuleConfiguration
    ) -> None:
        self.data_source_map: Dict[str, DataSource] = dict(data_source_map)
        self.rule = rule
        self._round_robin = itertools.cycle(rule.slave_data_source_names)
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self.rule.name

    @property
    def master_data_source(self) -> DataSource:
        return self.data_source_map[self.rule.master_data_source_name]

    @property
    def slave_data_sources(self) -> List[DataSource]:
        return [self.data_source_map[name] for name in self.rule.slave_data_source_names]

    def _next_slave(self) -> DataSource:
        if self.rule.load_balance_algorithm_type == "RANDOM":
            return self.data_source_map[random.choice(self.rule.slave_data_source_names)]
        with self._lock:
            return self.data_source_map[next(self._round_robin)]

    @contextmanager
    def connection(self, read_only: bool = False) -> Iterator[Any]:
        data_source = self._next_slave() if read_only else self.master_data_source
        with data_source.connection() as conn:
            yield conn

    def close(self) -> None:
        return None


RoutedDataSource = Union[ShardingDataSource, MasterSlaveDataSource]


def _check_known(
    names: Sequence[str], data_source_map: Mapping[str, DataSource], where: str
) -> None:
    unknown = [name for name in names if name not in data_source_map]
    if unknown:
        raise ConfigError(
            f"{where} references undeclared data source(s) {', '.join(unknown)}; "
            f"declared: {', '.join(data_source_map)}"
        )


def _resolve_table_nodes(
    rule: ShardingRuleConfiguration, data_source_map: Mapping[str, DataSource]
) -> Dict[str, List[DataNode]]:
    table_nodes: Dict[str, List[DataNode]] = {}
    for logic_table, table_rule in rule.tables.items():
        if table_rule.actual_data_nodes:
            nodes = [
                DataNode.parse(text)
                for expression in split_expressions(table_rule.actual_data_nodes)
                for text in expand_inline_expression(expression)
            ]
        else:
            nodes = [DataNode(data_source=name, table=logic_table) for name in data_source_map]
        where = f"Table '{logic_table}'"
        _check_known([node.data_source for node in nodes], data_source_map, where)
        table_nodes[logic_table] = nodes
    return table_nodes


def create_sharding_data_source(
    data_source_map: Mapping[str, DataSource],
    rule_file: Union[Path, str],
    executor_size: int = 4,
) -> ShardingDataSource:
    """
    Build a sharding data source from ``rule_file``.

    Raises
    ------
    ConfigError
        When the rule file is malformed or references undeclared data sources.
    """
    parsed = load_yaml_model(Path(rule_file), ShardingRuleFile)
    rule = parsed.sharding_rule
    if rule.default_data_source_name is not None:
        _check_known([rule.default_data_source_name], data_source_map, "defaultDataSourceName")
    table_nodes = _resolve_table_nodes(rule, data_source_map)
    try:
        size = int(parsed.props.get(EXECUTOR_SIZE_PROP, executor_size))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {EXECUTOR_SIZE_PROP} in {rule_file}") from exc
    if size < 1:
        raise ConfigError(f"{EXECUTOR_SIZE_PROP} must be positive in {rule_file}")
    log.debug(
        f"[ROUTING] Sharding data source over {len(data_source_map)} data source(s)",
        extra={"rule_file": str(rule_file), "tables": list(table_nodes), "executor_size": size},
    )
    return ShardingDataSource(
        data_source_map, RuntimeContext(rule, parsed.props, table_nodes, ExecuteEngine(size))
    )


def create_master_slave_data_source(
    data_source_map: Mapping[str, DataSource], rule_file: Union[Path, str]
) -> MasterSlaveDataSource:
    """
    Build a master/slave data source from ``rule_file``.

    Raises
    ------
    ConfigError
        When the rule file is malformed or references undeclared data sources.
    """
    rule = load_yaml_model(Path(rule_file), MasterSlaveRuleFile).master_slave_rule
    _check_known(
        [rule.master_data_source_name, *rule.slave_data_source_names],
        data_source_map,
        f"Master/slave rule '{rule.name}'",
    )
    log.debug(
        f"[ROUTING] Master/slave data source {rule.name}",
        extra={"rule_file": str(rule_file), "master": rule.master_data_source_name},
    )
    return MasterSlaveDataSource(data_source_map, rule)


def create_routed_data_source(
    rule_type: str,
    data_source_map: Mapping[str, DataSource],
    rule_file: Union[Path, str],
    executor_size: int = 4,
) -> RoutedDataSource:
    """Pick the replica-aware factory for master/slave rule types, the sharding one otherwise."""
    if is_master_slave(rule_type):
        return create_master_slave_data_source(data_source_map, rule_file)
    return create_sharding_data_source(data_source_map, rule_file, executor_size)


__all__ = [
    "ExecuteEngine",
    "MasterSlaveDataSource",
    "RoutedDataSource",
    "RuntimeContext",
    "ShardingDataSource",
    "create_master_slave_data_source",
    "create_routed_data_source",
    "create_sharding_data_source",
]
