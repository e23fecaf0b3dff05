from __future__ import annotations

import json
import logging
from zoneinfo import ZoneInfo

from shardtest.utils.logging import ZonedFormatter, _json_formatter

EXPECTED_DATA_SOURCES = 4
CREATED_AT = 0.0


def _record(msg: str = "hello") -> logging.LogRecord:
    record = logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    record.created = CREATED_AT
    return record


def test_json_formatter_promotes_extra_fields() -> None:
    record = _record()
    record.rule_type = "db"
    record.data_sources = EXPECTED_DATA_SOURCES

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "hello"
    assert payload["rule_type"] == "db"
    assert payload["data_sources"] == EXPECTED_DATA_SOURCES


def test_json_formatter_supports_legacy_nested_extra_field() -> None:
    record = _record()
    record.extra = {"database_type": "sqlite"}

    payload = json.loads(_json_formatter(record))

    assert payload["database_type"] == "sqlite"


def test_json_timestamp_uses_configured_zone() -> None:
    payload = json.loads(_json_formatter(_record(), ZoneInfo("Asia/Tokyo")))

    assert payload["timestamp"] == "1970-01-01T09:00:00+09:00"


def test_console_formatter_renders_time_in_configured_zone() -> None:
    formatter = ZonedFormatter(fmt="%(asctime)s %(message)s", time_zone=ZoneInfo("Asia/Tokyo"))

    assert formatter.format(_record()) == "1970-01-01 09:00:00 hello"
