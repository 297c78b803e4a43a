from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from .config_schema import AppConfig
from .errors import ConfigError


@dataclass(frozen=True)
class RuntimeSecrets:
    apify_token: str | None = None


def load_config(path: str | Path) -> AppConfig:
    """
    Load a YAML (or JSON) config file and validate it into a typed AppConfig.

    Raises ConfigError with a readable validation message on failure.
    """
    p = Path(path)

    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")

    try:
        raw_text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {p}") from e

    try:
        data = yaml.safe_load(raw_text)
    except Exception as e:  # PyYAML can raise multiple exception types
        raise ConfigError(f"Failed to parse YAML in {p}: {e}") from e

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML in {p} must be a mapping/object")

    return config_from_mapping(data, source=str(p))


def config_from_mapping(data: Mapping[str, Any], *, source: str = "<input>") -> AppConfig:
    try:
        return AppConfig.model_validate(dict(data))
    except ValidationError as e:
        raise ConfigError(_format_pydantic_errors(e, source)) from e


def resolve_runtime_secrets(
    config: AppConfig, *, environ: Mapping[str, str] | None = None
) -> RuntimeSecrets:
    """
    Validate that the environment variables the selected sink needs are present.

    The JSONL sink needs nothing; the Apify dataset sink needs an API token.
    """
    env = os.environ if environ is None else environ

    if config.sink.kind != "apify":
        return RuntimeSecrets()

    token_env = config.sink.token_env
    token = (env.get(token_env) or "").strip()
    if not token:
        raise ConfigError(f"Missing required environment variables: {token_env}")

    return RuntimeSecrets(apify_token=token)


def config_sha256(config: AppConfig) -> str:
    """
    Compute a stable SHA-256 hash of the config values, cookies excluded.
    """
    dumped = config.model_dump(mode="json")
    dumped.get("input", {}).pop("cookies", None)
    dumped.get("input", {}).pop("cookies_json", None)
    payload = json.dumps(
        dumped,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def _format_pydantic_errors(err: ValidationError, source: str) -> str:
    lines: list[str] = [f"Invalid configuration in {source}:"]
    for item in err.errors():
        loc = ".".join(str(part) for part in item.get("loc", [])) or "<root>"
        msg = item.get("msg", "invalid value")
        lines.append(f"- {loc}: {msg}")
    return "\n".join(lines)
