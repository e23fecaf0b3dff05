"""
Pytest configuration for the sharding integration-test harness.

Provides fixtures for:
- Settings pointed at throwaway sqlite databases under tmp_path
- Settings for PostgreSQL integration tests (from environment variables)
- Fake data sources and backend kinds for topology tests
- Clearing the process-wide data source cache between tests
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Iterator, List

import pytest

from shardtest.config import Settings
from shardtest.domain.models import ConnectionMetadata
from shardtest.env import DatabaseTypeEnvironment, IntegrateTestEnvironment
from shardtest.infrastructure.database_types import PostgreSQLDatabaseType
from shardtest.infrastructure.db_factory import close_all_data_sources
from shardtest.infrastructure.schema import SchemaEnvironmentManager
from shardtest.lifecycle import create_databases_and_tables


@pytest.fixture(autouse=True)
def clean_data_source_cache() -> Generator[None, None, None]:
    """
    Start and finish every test with an empty data source cache.
    """
    close_all_data_sources()
    yield
    close_all_data_sources()


@pytest.fixture
def sqlite_settings(tmp_path: Path) -> Settings:
    """
    Settings for the embedded backend, with database files under tmp_path.
    """
    return Settings(
        database_types="sqlite",
        rule_types="db,tbl,masterslave",
        embedded_dir=tmp_path / "sqlite",
        log_level="DEBUG",
    )


@pytest.fixture
def sqlite_environment(sqlite_settings: Settings) -> DatabaseTypeEnvironment:
    return IntegrateTestEnvironment(sqlite_settings).database_type_environment("sqlite")


@pytest.fixture
def sqlite_manager(sqlite_settings: Settings) -> SchemaEnvironmentManager:
    return SchemaEnvironmentManager(sqlite_settings)


@pytest.fixture
def prepared_sqlite(sqlite_manager: SchemaEnvironmentManager) -> SchemaEnvironmentManager:
    """
    Create every rule type's databases and tables before the test.
    """
    outcomes = create_databases_and_tables(sqlite_manager)
    assert all(outcome.succeeded for outcome in outcomes), outcomes
    return sqlite_manager


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture for PostgreSQL integration tests.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        database_types="postgresql",
        rule_types="db,tbl,masterslave",
        log_level="DEBUG",
    )


class FakeConnection:
    def __init__(self, url: str) -> None:
        self.url = url


class FakeDataSource:
    """Data source whose connections report a fixed URL and count open/release."""

    def __init__(self, name: str, url: str, fail: bool = False) -> None:
        self.name = name
        self.url = url
        self.fail = fail
        self.database_type = UrlDatabaseType()
        self.opened = 0
        self.released = 0
        self.closed = False

    @contextmanager
    def connection(self) -> Iterator[FakeConnection]:
        if self.fail:
            raise OSError(f"{self.name} is unreachable")
        self.opened += 1
        try:
            yield FakeConnection(self.url)
        finally:
            self.released += 1

    def close(self) -> None:
        self.closed = True


class UrlDatabaseType(PostgreSQLDatabaseType):
    """PostgreSQL identity rules over FakeConnection URLs."""

    def __init__(self) -> None:
        self.metadata_reads: List[str] = []

    def read_metadata(self, connection: FakeConnection) -> ConnectionMetadata:
        self.metadata_reads.append(connection.url)
        return ConnectionMetadata(url=connection.url, user_name="root")


@pytest.fixture
def url_database_type() -> UrlDatabaseType:
    return UrlDatabaseType()


@pytest.fixture
def make_data_source():
    """
    Factory for FakeDataSource instances.
    """

    def _make(name: str, url: str, fail: bool = False) -> FakeDataSource:
        return FakeDataSource(name, url, fail=fail)

    return _make
