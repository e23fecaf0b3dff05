"""Exception hierarchy shared by the harness layers."""

from __future__ import annotations


class HarnessError(RuntimeError):
    """Base class for harness failures."""


class ConfigError(HarnessError):
    """Raised when a rule file, schema file or backend name cannot be used."""


class HarnessConnectionError(HarnessError):
    """Raised when a data source cannot be built or its metadata cannot be read."""


__all__ = ["ConfigError", "HarnessConnectionError", "HarnessError"]
