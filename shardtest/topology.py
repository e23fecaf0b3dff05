"""
Physical-instance discovery for a set of logical data sources.

Several logical data sources (shards) usually live on the same database server.
Instance-scoped assertions need one connection per server, so this module
resolves an identity for every logical data source and keeps one representative
per identity.

The representative for a physical instance is the logical name that comes first
in the input mapping. Callers must pass data sources in the declaration order of
the rule type's schema file; any other order silently changes which name is kept.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Mapping, Tuple

from shardtest.domain.models import InstanceIdentity, is_master_slave
from shardtest.errors import HarnessConnectionError
from shardtest.infrastructure.database_types import DataSource, DatabaseType
from shardtest.utils.logging import get_logger

log = get_logger(__name__)


def resolve_instance_identity(
    data_source: DataSource, database_type: DatabaseType
) -> InstanceIdentity:
    """
    Identify the physical instance behind ``data_source``.

    The connection used for the metadata read is released before returning,
    whether the read succeeds or not.

    Raises
    ------
    HarnessConnectionError
        If no connection can be opened or its metadata cannot be read.
    """
    try:
        with data_source.connection() as conn:
            metadata = database_type.read_metadata(conn)
    except database_type.driver_errors + (OSError,) as exc:
        raise HarnessConnectionError(
            f"Cannot read metadata of data source '{data_source.name}': {exc}"
        ) from exc
    return database_type.identify(metadata)


def resolve_instance_identities(
    data_source_map: Mapping[str, DataSource], database_type: DatabaseType
) -> Dict[str, InstanceIdentity]:
    """Identity of every data source, keyed and ordered like ``data_source_map``."""
    return {
        name: resolve_instance_identity(data_source, database_type)
        for name, data_source in data_source_map.items()
    }


def dedupe_instances(
    data_source_map: Mapping[str, DataSource],
    identity_of: Callable[[str], InstanceIdentity],
) -> Dict[str, DataSource]:
    """
    Keep one logical data source per physical instance.

    Candidates are visited in ``data_source_map`` order and compared against
    every identity accepted so far; the first name seen for an identity wins.
    """
    result: Dict[str, DataSource] = {}
    accepted: List[InstanceIdentity] = []
    for name, data_source in data_source_map.items():
        identity = identity_of(name)
        if any(identity == existing for existing in accepted):
            continue
        accepted.append(identity)
        result[name] = data_source
    return result


def build_instance_map(
    rule_type: str,
    data_source_map: Mapping[str, DataSource],
    database_type: DatabaseType,
) -> Tuple[Dict[str, DataSource], Dict[str, InstanceIdentity]]:
    """
    Instance map for a session, plus the identities it was computed from.

    Master/slave rule types keep every logical name, since each denotes a role,
    and no metadata is read for them.
    """
    if is_master_slave(rule_type):
        return dict(data_source_map), {}
    identities = resolve_instance_identities(data_source_map, database_type)
    instance_map = dedupe_instances(data_source_map, identities.__getitem__)
    log.debug(
        f"[TOPOLOGY] {len(data_source_map)} data source(s) on {len(instance_map)} instance(s)",
        extra={"rule_type": rule_type, "instances": list(instance_map)},
    )
    return instance_map, identities


__all__ = [
    "build_instance_map",
    "dedupe_instances",
    "resolve_instance_identities",
    "resolve_instance_identity",
]
