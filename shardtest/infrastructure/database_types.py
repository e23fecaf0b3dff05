"""
Backend kinds supported by the harness.

A :class:`DatabaseType` knows how to build a logical data source for its
backend, open short-lived admin connections, create and drop databases, and
turn what a live connection reports about itself into an
:class:`~shardtest.domain.models.InstanceIdentity`. New backends plug in through
:func:`register_database_type`; nothing else in the harness branches on the
backend name.
"""

from __future__ import annotations

import abc
import math
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import (
    Any,
    ContextManager,
    Dict,
    Hashable,
    Iterator,
    List,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
)
from urllib.parse import quote, unquote, urlsplit

import psycopg
from psycopg import sql
from psycopg.conninfo import make_conninfo
from psycopg_pool import ConnectionPool

from shardtest.config import Settings
from shardtest.domain.models import ConnectionMetadata, HostPort, InstanceIdentity, SchemaName
from shardtest.errors import ConfigError, HarnessConnectionError


@runtime_checkable
class DataSource(Protocol):
    """
    A named logical data source.

    Attributes
    ----------
    name : str
        Logical name as declared in the rule type's schema file.
    database_type : DatabaseType
        Backend kind the data source belongs to.
    """

    name: str
    database_type: "DatabaseType"

    def connection(self) -> ContextManager[Any]:
        """Borrow a live connection, released when the block exits."""
        ...

    def close(self) -> None:
        """Release every resource held by the data source."""
        ...


class PooledDataSource:
    """Logical data source backed by a psycopg ConnectionPool."""

    def __init__(self, name: str, database_type: "DatabaseType", pool: ConnectionPool) -> None:
        self.name = name
        self.database_type = database_type
        self._pool = pool

    @property
    def closed(self) -> bool:
        return self._pool.closed

    @contextmanager
    def connection(self) -> Iterator[psycopg.Connection]:
        with self._pool.connection() as conn:
            yield conn

    def close(self) -> None:
        self._pool.close()

    def __repr__(self) -> str:
        return f"PooledDataSource(name={self.name!r})"


class EmbeddedDataSource:
    """Logical data source backed by a sqlite database file."""

    def __init__(
        self, name: str, database_type: "DatabaseType", path: Path, timeout: float = 5.0
    ) -> None:
        self.name = name
        self.database_type = database_type
        self.path = path
        self._timeout = timeout
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        if self._closed:
            raise sqlite3.ProgrammingError(f"Data source '{self.name}' is closed")
        conn = sqlite3.connect(str(self.path), timeout=self._timeout, isolation_level=None)
        try:
            yield conn
        finally:
            conn.close()

    def close(self) -> None:
        self._closed = True

    def __repr__(self) -> str:
        return f"EmbeddedDataSource(name={self.name!r}, path={str(self.path)!r})"


class DatabaseType(abc.ABC):
    """
    Capabilities of one backend kind.

    Subclasses set `name` and `driver_errors` and implement every abstract method.
    """

    name: str
    driver_errors: Tuple[type, ...] = ()

    @abc.abstractmethod
    def create_data_source(self, name: str, settings: Settings) -> DataSource:
        """Build the logical data source ``name``."""

    @abc.abstractmethod
    def location(self, name: str, settings: Settings) -> Hashable:
        """Where ``name`` lives under ``settings``; equal locations share a data source."""

    @abc.abstractmethod
    def connect(self, database: str, settings: Settings) -> ContextManager[Any]:
        """Open a short-lived autocommit connection to ``database``."""

    @abc.abstractmethod
    def create_database(self, name: str, settings: Settings) -> None:
        """Create the physical database backing logical data source ``name``."""

    @abc.abstractmethod
    def drop_database(self, name: str, settings: Settings) -> None:
        """Drop the physical database backing ``name`` if it exists."""

    @abc.abstractmethod
    def drop_table(self, connection: Any, table: str) -> None:
        """Drop ``table`` on an open connection if it exists."""

    @abc.abstractmethod
    def read_metadata(self, connection: Any) -> ConnectionMetadata:
        """Read the URL and user a live connection reports."""

    @abc.abstractmethod
    def identify(self, metadata: ConnectionMetadata) -> InstanceIdentity:
        """Derive the physical-instance identity from connection metadata."""


class PostgreSQLDatabaseType(DatabaseType):
    """PostgreSQL via psycopg 3; one database per logical data source."""

    name = "postgresql"
    driver_errors = (psycopg.Error,)
    default_port = 5432

    def conninfo(self, database: str, settings: Settings) -> str:
        return make_conninfo(
            host=settings.db_host,
            port=settings.db_port,
            user=settings.db_user,
            password=settings.db_password,
            dbname=database,
            connect_timeout=max(1, math.ceil(settings.connect_timeout)),
        )

    def location(self, name: str, settings: Settings) -> Hashable:
        return (self.conninfo(name, settings), settings.pool_min_size, settings.pool_max_size)

    def create_data_source(self, name: str, settings: Settings) -> PooledDataSource:
        pool = ConnectionPool(
            conninfo=self.conninfo(name, settings),
            min_size=settings.pool_min_size,
            max_size=settings.pool_max_size,
            open=False,
            timeout=settings.connect_timeout,
            name=f"shardtest-{name}",
        )
        try:
            pool.open(wait=True, timeout=settings.connect_timeout)
        except Exception:
            pool.close()
            raise
        return PooledDataSource(name, self, pool)

    @contextmanager
    def connect(self, database: str, settings: Settings) -> Iterator[psycopg.Connection]:
        with psycopg.connect(self.conninfo(database, settings), autocommit=True) as conn:
            yield conn

    def create_database(self, name: str, settings: Settings) -> None:
        with self.connect(settings.db_admin_database, settings) as conn:
            conn.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(name)))

    def drop_database(self, name: str, settings: Settings) -> None:
        with self.connect(settings.db_admin_database, settings) as conn:
            conn.execute(
                sql.SQL("DROP DATABASE IF EXISTS {} WITH (FORCE)").format(sql.Identifier(name))
            )

    def drop_table(self, connection: psycopg.Connection, table: str) -> None:
        connection.execute(sql.SQL("DROP TABLE IF EXISTS {}").format(sql.Identifier(table)))

    def read_metadata(self, connection: psycopg.Connection) -> ConnectionMetadata:
        info = connection.info
        # Socket directories and IPv6 literals are kept intact by encoding the host.
        host = quote(info.host or "", safe="")
        return ConnectionMetadata(
            url=f"postgresql://{host}:{info.port}/{info.dbname}",
            user_name=info.user,
        )

    def identify(self, metadata: ConnectionMetadata) -> HostPort:
        parts = urlsplit(metadata.url)
        try:
            port = parts.port or self.default_port
        except ValueError as exc:
            raise HarnessConnectionError(f"Invalid port in URL '{metadata.url}'") from exc
        host = self._host(parts.netloc)
        if not host:
            raise HarnessConnectionError(f"No host in URL '{metadata.url}'")
        return HostPort(host=unquote(host), port=port)

    @staticmethod
    def _host(netloc: str) -> str:
        # Host taken verbatim; urlsplit().hostname lower-cases it.
        authority = netloc.rpartition("@")[2]
        if authority.startswith("["):
            return authority[1 : authority.find("]")]
        return authority.rpartition(":")[0] if ":" in authority else authority


class SQLiteDatabaseType(DatabaseType):
    """Embedded sqlite; one database file per logical data source."""

    name = "sqlite"
    driver_errors = (sqlite3.Error,)
    url_prefix = "sqlite:///"
    memory_url = "sqlite::memory:"

    def database_path(self, name: str, settings: Settings) -> Path:
        return Path(settings.embedded_dir) / f"{name}.db"

    def location(self, name: str, settings: Settings) -> Hashable:
        return str(self.database_path(name, settings).absolute())

    def create_data_source(self, name: str, settings: Settings) -> EmbeddedDataSource:
        path = self.database_path(name, settings)
        path.parent.mkdir(parents=True, exist_ok=True)
        return EmbeddedDataSource(name, self, path, timeout=settings.connect_timeout)

    @contextmanager
    def connect(self, database: str, settings: Settings) -> Iterator[sqlite3.Connection]:
        path = self.database_path(database, settings)
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(path), timeout=settings.connect_timeout, isolation_level=None)
        try:
            yield conn
        finally:
            conn.close()

    def create_database(self, name: str, settings: Settings) -> None:
        path = self.database_path(name, settings)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch(exist_ok=True)

    def drop_database(self, name: str, settings: Settings) -> None:
        self.database_path(name, settings).unlink(missing_ok=True)

    def drop_table(self, connection: sqlite3.Connection, table: str) -> None:
        quoted = table.replace('"', '""')
        connection.execute(f'DROP TABLE IF EXISTS "{quoted}"')

    def read_metadata(self, connection: sqlite3.Connection) -> ConnectionMetadata:
        for _, schema, file in connection.execute("PRAGMA database_list").fetchall():
            if schema == "main":
                url = f"{self.url_prefix}{file}" if file else self.memory_url
                return ConnectionMetadata(url=url)
        raise HarnessConnectionError("sqlite connection reports no main database")

    def identify(self, metadata: ConnectionMetadata) -> SchemaName:
        if metadata.url == self.memory_url:
            return SchemaName(name="memory")
        if metadata.url.startswith(self.url_prefix):
            return SchemaName(name=metadata.url[len(self.url_prefix) :])
        raise HarnessConnectionError(f"Not a sqlite URL: '{metadata.url}'")


_registry: Dict[str, DatabaseType] = {}
_registry_lock = threading.Lock()


def register_database_type(database_type: DatabaseType) -> None:
    """Make a backend kind available under its (lower-cased) name."""
    with _registry_lock:
        _registry[database_type.name.lower()] = database_type


def get_database_type(name: str) -> DatabaseType:
    with _registry_lock:
        found: Optional[DatabaseType] = _registry.get(name.lower())
    if found is None:
        raise ConfigError(
            f"Unknown database type '{name}'. Available: {', '.join(registered_database_types())}"
        )
    return found


def registered_database_types() -> List[str]:
    """Registered backend names, in registration order."""
    with _registry_lock:
        return list(_registry)


register_database_type(PostgreSQLDatabaseType())
register_database_type(SQLiteDatabaseType())


__all__ = [
    "DataSource",
    "DatabaseType",
    "EmbeddedDataSource",
    "PooledDataSource",
    "PostgreSQLDatabaseType",
    "SQLiteDatabaseType",
    "get_database_type",
    "register_database_type",
    "registered_database_types",
]
