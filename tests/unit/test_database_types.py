from __future__ import annotations

import sqlite3
from pathlib import Path
from types import SimpleNamespace

import pytest
from psycopg import sql

from shardtest.domain.models import ConnectionMetadata, HostPort, SchemaName
from shardtest.errors import ConfigError, HarnessConnectionError
from shardtest.infrastructure.database_types import (
    DataSource,
    EmbeddedDataSource,
    PostgreSQLDatabaseType,
    SQLiteDatabaseType,
    get_database_type,
    registered_database_types,
)

DEFAULT_POSTGRES_PORT = 5432
CUSTOM_PORT = 6543


class _FakePgConnection:
    def __init__(self, host: str, port: int, dbname: str, user: str) -> None:
        self.info = SimpleNamespace(host=host, port=port, dbname=dbname, user=user)


def test_postgres_read_metadata_builds_url_from_connection_info() -> None:
    database_type = PostgreSQLDatabaseType()

    metadata = database_type.read_metadata(_FakePgConnection("db1", CUSTOM_PORT, "db_0", "root"))

    assert metadata == ConnectionMetadata(url="postgresql://db1:6543/db_0", user_name="root")
    assert database_type.identify(metadata) == HostPort(host="db1", port=CUSTOM_PORT)


def test_postgres_identify_defaults_port() -> None:
    identity = PostgreSQLDatabaseType().identify(ConnectionMetadata(url="postgresql://db1/db_0"))

    assert identity == HostPort(host="db1", port=DEFAULT_POSTGRES_PORT)


def test_postgres_socket_directory_round_trips() -> None:
    database_type = PostgreSQLDatabaseType()
    conn = _FakePgConnection("/var/run/postgresql", DEFAULT_POSTGRES_PORT, "db_0", "root")

    identity = database_type.identify(database_type.read_metadata(conn))

    assert identity == HostPort(host="/var/run/postgresql", port=DEFAULT_POSTGRES_PORT)


def test_postgres_identify_rejects_url_without_host() -> None:
    with pytest.raises(HarnessConnectionError):
        PostgreSQLDatabaseType().identify(ConnectionMetadata(url="postgresql:///db_0"))


def test_sqlite_identity_is_database_file(tmp_path: Path) -> None:
    database_type = SQLiteDatabaseType()
    path = tmp_path / "db_0.db"
    conn = sqlite3.connect(str(path))
    try:
        metadata = database_type.read_metadata(conn)
    finally:
        conn.close()

    identity = database_type.identify(metadata)

    assert isinstance(identity, SchemaName)
    assert Path(identity.name).resolve() == path.resolve()


def test_sqlite_in_memory_identity() -> None:
    database_type = SQLiteDatabaseType()
    conn = sqlite3.connect(":memory:")
    try:
        metadata = database_type.read_metadata(conn)
    finally:
        conn.close()

    assert metadata.url == "sqlite::memory:"
    assert database_type.identify(metadata) == SchemaName(name="memory")


def test_sqlite_create_and_drop_database(sqlite_settings) -> None:
    database_type = SQLiteDatabaseType()
    path = database_type.database_path("db_x", sqlite_settings)

    database_type.create_database("db_x", sqlite_settings)
    assert path.exists()

    database_type.drop_database("db_x", sqlite_settings)
    database_type.drop_database("db_x", sqlite_settings)
    assert not path.exists()


def test_embedded_data_source_refuses_connections_after_close(sqlite_settings) -> None:
    data_source = SQLiteDatabaseType().create_data_source("db_x", sqlite_settings)
    assert isinstance(data_source, EmbeddedDataSource)
    assert isinstance(data_source, DataSource)

    data_source.close()

    with pytest.raises(sqlite3.ProgrammingError):
        with data_source.connection():
            pass


def test_registry_lookup_is_case_insensitive() -> None:
    assert get_database_type("PostgreSQL").name == "postgresql"
    assert {"postgresql", "sqlite"} <= set(registered_database_types())


def test_registry_rejects_unknown_backend() -> None:
    with pytest.raises(ConfigError, match="oracle"):
        get_database_type("oracle")


def test_postgres_identify_keeps_socket_directory_case() -> None:
    database_type = PostgreSQLDatabaseType()
    conn = _FakePgConnection("/tmp/PgSock", DEFAULT_POSTGRES_PORT, "db_0", "root")

    identity = database_type.identify(database_type.read_metadata(conn))

    assert identity == HostPort(host="/tmp/PgSock", port=DEFAULT_POSTGRES_PORT)
    assert identity != HostPort(host="/tmp/pgsock", port=DEFAULT_POSTGRES_PORT)


def test_postgres_identify_reads_bracketed_ipv6_host() -> None:
    identity = PostgreSQLDatabaseType().identify(
        ConnectionMetadata(url="postgresql://[::1]:6543/db_0")
    )

    assert identity == HostPort(host="::1", port=CUSTOM_PORT)


class _RecordingConnection:
    def __init__(self) -> None:
        self.statements = []

    def execute(self, statement) -> None:
        self.statements.append(statement)


def test_postgres_drop_table_quotes_identifier() -> None:
    conn = _RecordingConnection()

    PostgreSQLDatabaseType().drop_table(conn, 't_order"; DROP TABLE x; --')

    [statement] = conn.statements
    assert isinstance(statement, sql.Composed)
    assert sql.Identifier('t_order"; DROP TABLE x; --') in statement.seq


def test_sqlite_drop_table_quotes_identifier(sqlite_settings) -> None:
    database_type = SQLiteDatabaseType()
    with database_type.connect("db_x", sqlite_settings) as conn:
        conn.execute('CREATE TABLE "order ""items""" (id INT)')
        conn.execute("CREATE TABLE t_keep (id INT)")

        database_type.drop_table(conn, 'order "items"')
        database_type.drop_table(conn, 'order "items"')

        tables = [row[0] for row in conn.execute("SELECT name FROM sqlite_master")]
    assert tables == ["t_keep"]
