"""
Structured logging utilities for the sharding integration-test harness.

This module centralizes logging configuration to keep the CLI, lifecycle
orchestrator and harness sessions consistent. It favors standard library logging
with a human-readable formatter by default and an optional JSON formatter for
structured logs (useful for CI). Timestamps are rendered in the configured time
zone rather than the process-local one.

Usage:
    from shardtest.utils.logging import configure_logging, get_logger

    configure_logging(level="INFO", json_logs=False, time_zone=settings.tzinfo)
    log = get_logger(__name__)
    log.info("message", extra={"rule_type": "db"})
"""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "extra"}


def _json_formatter(record: logging.LogRecord, time_zone: tzinfo = timezone.utc) -> str:
    """Render a log record as JSON string."""
    payload: Dict[str, Any] = {
        "timestamp": datetime.fromtimestamp(record.created, tz=time_zone).isoformat(),
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
    }
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    if record.stack_info:
        payload["stack_info"] = record.stack_info
    for key, value in vars(record).items():
        if key not in _STANDARD_ATTRS:
            payload[key] = value
    if hasattr(record, "extra") and isinstance(record.extra, dict):
        payload.update(record.extra)
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter for structured logs."""

    def __init__(self, time_zone: tzinfo = timezone.utc) -> None:
        super().__init__()
        self._time_zone = time_zone

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record, self._time_zone)


class ZonedFormatter(logging.Formatter):
    """Console formatter whose ``asctime`` is rendered in a fixed time zone."""

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        time_zone: tzinfo = timezone.utc,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._time_zone = time_zone

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        moment = datetime.fromtimestamp(record.created, tz=self._time_zone)
        return moment.strftime(datefmt or "%Y-%m-%d %H:%M:%S")


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    force: bool = True,
    time_zone: tzinfo = timezone.utc,
) -> None:
    """
    Configure root logging.

    Parameters
    ----------
    level : str
        Logging level name (e.g., "DEBUG", "INFO", "WARNING").
    json_logs : bool
        Whether to emit logs as JSON. If False, uses a concise human formatter.
    force : bool
        Whether to override existing logging configuration (recommended in CLI apps).
    time_zone : tzinfo
        Zone log timestamps are rendered in.
    """
    formatter_name = "json" if json_logs else "console"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {
                    "()": ZonedFormatter,
                    "fmt": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                    "time_zone": time_zone,
                },
                "json": {
                    "()": JsonFormatter,
                    "time_zone": time_zone,
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": formatter_name,
                    "level": level,
                }
            },
            "root": {
                "handlers": ["default"],
                "level": level,
            },
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger with the given name. If name is None, returns the root logger.
    """
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "JsonFormatter", "ZonedFormatter"]
