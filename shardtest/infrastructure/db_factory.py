"""
Data source factory utilities for the sharding integration-test harness.

Builds one logical data source per ``(backend kind, logical name, location)``
and caches it process-wide: data sources are owned by the test process, not by
any single harness session, so every session for the same rule type and
settings reuses them. The DataSourceCache singleton closes them all on
interpreter exit.

The connection-build boundary is bounded by ``Settings.connect_timeout`` and may
be retried with tenacity when ``Settings.connect_attempts`` is above one.
"""

from __future__ import annotations

import atexit
import sqlite3
import threading
from typing import Callable, Dict, Hashable, Optional, Tuple, Union

import psycopg
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from shardtest.config import Settings, get_settings
from shardtest.errors import HarnessConnectionError
from shardtest.infrastructure.database_types import DataSource, DatabaseType, get_database_type
from shardtest.utils.logging import get_logger

log = get_logger(__name__)

_TRANSIENT_ERRORS = (psycopg.OperationalError, sqlite3.OperationalError)

CacheKey = Tuple[str, str, Hashable]


class DataSourceCache:
    """
    Thread-safe singleton caching logical data sources.

    Handles lifecycle management with automatic cleanup via atexit hook.
    """

    _instance: Optional["DataSourceCache"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "DataSourceCache":
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._data_sources: Dict[CacheKey, DataSource] = {}
                # Register cleanup on exit
                atexit.register(cls._instance.close_all)
            return cls._instance

    @staticmethod
    def key(database_type: DatabaseType, name: str, settings: Settings) -> CacheKey:
        """Backend kind, logical name and where the data source points to."""
        return (database_type.name.lower(), name, database_type.location(name, settings))

    def get(
        self, database_type: DatabaseType, name: str, settings: Settings
    ) -> Optional[DataSource]:
        with self._lock:
            return self._data_sources.get(self.key(database_type, name, settings))

    def get_or_create(
        self,
        database_type: DatabaseType,
        name: str,
        settings: Settings,
        factory: Callable[[], DataSource],
    ) -> DataSource:
        """
        Return the cached data source, building it with ``factory`` when absent.

        Settings pointing ``name`` at another server or file get their own entry.
        A cached data source that has since been closed is replaced.
        """
        key = self.key(database_type, name, settings)
        with self._lock:
            cached = self._data_sources.get(key)
            if cached is not None and not getattr(cached, "closed", False):
                return cached
            data_source = factory()
            self._data_sources[key] = data_source
            return data_source

    def close_all(self) -> None:
        """
        Close all cached data sources and forget them.

        This is called automatically on exit via atexit hook.
        """
        with self._lock:
            data_sources = list(self._data_sources.values())
            self._data_sources.clear()
        for data_source in data_sources:
            try:
                data_source.close()
            except Exception:  # noqa: BLE001 - closing the rest matters more
                log.warning(
                    f"[CLEANUP] Failed to close data source {data_source.name}",
                    exc_info=True,
                    extra={"data_source": data_source.name},
                )


def _build_data_source(database_type: DatabaseType, name: str, settings: Settings) -> DataSource:
    log.debug(
        f"[DATA SOURCE] Building {database_type.name}/{name}",
        extra={"database_type": database_type.name, "data_source": name},
    )
    retrying = Retrying(
        stop=stop_after_attempt(settings.connect_attempts),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        reraise=True,
    )
    try:
        return retrying(database_type.create_data_source, name, settings)
    except database_type.driver_errors + (OSError,) as exc:
        raise HarnessConnectionError(
            f"Cannot build data source '{name}' for {database_type.name}: {exc}"
        ) from exc


def create_data_source(
    database_type: Union[DatabaseType, str],
    name: str,
    settings: Optional[Settings] = None,
) -> DataSource:
    """
    Get or build the logical data source ``name`` for a backend kind.

    Parameters
    ----------
    database_type : DatabaseType | str
        Backend kind, or its registered name.
    name : str
        Logical data source name.
    settings : Settings | None
        Connection settings; defaults to the process settings.

    Returns
    -------
    DataSource
        The cached (or newly built) data source.

    Raises
    ------
    HarnessConnectionError
        If the backend is unreachable or misconfigured after every attempt.
    """
    settings = settings or get_settings()
    if isinstance(database_type, str):
        database_type = get_database_type(database_type)
    resolved = database_type
    return DataSourceCache().get_or_create(
        resolved, name, settings, lambda: _build_data_source(resolved, name, settings)
    )


def close_all_data_sources() -> None:
    """Close every cached data source (test teardown helper)."""
    DataSourceCache().close_all()


__all__ = [
    "DataSourceCache",
    "close_all_data_sources",
    "create_data_source",
]
