from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration or harvest input is missing or invalid."""


class BrowserError(RuntimeError):
    """Raised when the browser collaborator cannot open or drive a page."""


class SinkError(RuntimeError):
    """Raised when pushing records to the output sink fails."""


class StorageError(RuntimeError):
    """Raised when reading or writing the identity pool state file fails."""
