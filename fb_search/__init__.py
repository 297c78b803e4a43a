from __future__ import annotations

from .config import config_sha256, load_config, resolve_runtime_secrets
from .config_schema import AppConfig, HarvestInput
from .errors import BrowserError, ConfigError, SinkError, StorageError
from .runner import HarvestRunResult, run_harvest

__all__ = [
    "AppConfig",
    "BrowserError",
    "ConfigError",
    "HarvestInput",
    "HarvestRunResult",
    "SinkError",
    "StorageError",
    "config_sha256",
    "load_config",
    "resolve_runtime_secrets",
    "run_harvest",
]
