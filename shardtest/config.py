"""
Configuration settings for the sharding integration-test harness.

Uses Pydantic Settings to load environment variables for the backend servers,
the enabled backend kinds and rule types, resource locations and logging. The
settings object is frozen: it is built once at process entry and threaded
explicitly into the components that need it (including the time zone used for
every timestamp the harness produces).
"""
from __future__ import annotations

from datetime import timezone, tzinfo
from functools import lru_cache
from pathlib import Path
from typing import List
from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_RESOURCES_DIR = Path(__file__).parent / "resources"


def _split_names(raw: str) -> List[str]:
    names: List[str] = []
    for item in raw.split(","):
        name = item.strip()
        if name and name not in names:
            names.append(name)
    return names


class Settings(BaseSettings):
    # PostgreSQL server shared by every logical data source
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_admin_database: str = Field("postgres", alias="DB_ADMIN_DATABASE")

    # Integration environment
    database_types: str = Field("sqlite", alias="INTEGRATE_DATABASE_TYPES")
    rule_types: str = Field("db,tbl,masterslave", alias="INTEGRATE_RULE_TYPES")
    resources_dir: Path = Field(DEFAULT_RESOURCES_DIR, alias="INTEGRATE_RESOURCES_DIR")
    embedded_dir: Path = Field(Path(".integrate") / "sqlite", alias="INTEGRATE_EMBEDDED_DIR")

    # Connection build
    connect_timeout: float = Field(5.0, gt=0, alias="CONNECT_TIMEOUT")
    connect_attempts: int = Field(1, ge=1, alias="CONNECT_ATTEMPTS")
    pool_min_size: int = Field(1, ge=0, alias="POOL_MIN_SIZE")
    pool_max_size: int = Field(4, ge=1, alias="POOL_MAX_SIZE")
    executor_size: int = Field(4, ge=1, alias="EXECUTOR_SIZE")

    # Application
    time_zone: str = Field("UTC", alias="TIME_ZONE")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    def rule_type_names(self) -> List[str]:
        """Rule types in registry order, blanks and duplicates removed."""
        return _split_names(self.rule_types)

    def database_type_names(self) -> List[str]:
        """Enabled backend kinds, lower-cased, in declaration order."""
        return _split_names(self.database_types.lower())

    @property
    def tzinfo(self) -> tzinfo:
        if self.time_zone.upper() == "UTC":
            return timezone.utc
        return ZoneInfo(self.time_zone)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["DEFAULT_RESOURCES_DIR", "Settings", "get_settings"]
