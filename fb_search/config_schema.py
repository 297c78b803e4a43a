from __future__ import annotations

import re
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .dates import to_epoch

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

MAX_RESULTS_LIMIT = 5000
MAX_POOL_SIZE_LIMIT = 200


def _clamp_int(value: Any, *, low: int, high: int, default: int, falsy_default: bool = False) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        return default
    if falsy_default and number == 0:
        return default
    return min(max(number, low), high)


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


PositiveInt = Annotated[int, Field(ge=1)]
NonNegativeInt = Annotated[int, Field(ge=0)]


class SessionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    max_pool_size: int = Field(20, alias="maxPoolSize")
    persist_state: bool = Field(True, alias="persistState")
    retire_on_blocked: bool = Field(True, alias="retireOnBlocked")

    @field_validator("max_pool_size", mode="before")
    @classmethod
    def _clamp_pool_size(cls, v: Any) -> int:
        return _clamp_int(v, low=1, high=MAX_POOL_SIZE_LIMIT, default=20)


class HarvestInput(BaseModel):
    """Actor-style harvest input; camelCase keys are accepted as aliases."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    query: str
    max_results: int = Field(100, alias="maxResults")
    recent_posts: bool = False
    start_date: str | None = None
    end_date: str | None = None
    cookies: Any = None
    cookies_json: Any = None
    proxy: Any = None
    session: SessionConfig = Field(default_factory=SessionConfig)

    @field_validator("query", mode="before")
    @classmethod
    def _query_must_be_present(cls, v: Any) -> str:
        query = str(v if v is not None else "").strip()
        if not query:
            raise ValueError("`query` is required")
        return query

    @field_validator("max_results", mode="before")
    @classmethod
    def _clamp_max_results(cls, v: Any) -> int:
        return _clamp_int(v, low=1, high=MAX_RESULTS_LIMIT, default=100, falsy_default=True)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _date_as_text(cls, v: Any) -> str | None:
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @field_validator("session", mode="before")
    @classmethod
    def _session_defaults(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def start_epoch(self) -> int | None:
        return to_epoch(self.start_date)

    @property
    def end_epoch(self) -> int | None:
        return to_epoch(self.end_date)

    def invalid_dates(self) -> dict[str, str]:
        """Date bounds that were given but cannot be read; they are not applied."""
        out: dict[str, str] = {}
        for name, text in (("start_date", self.start_date), ("end_date", self.end_date)):
            if text is not None and to_epoch(text) is None:
                out[name] = text
        return out


class BrowserConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    headless: bool = True
    user_agent: str = (
        "Mozilla/5.0 (Linux; Android 10; SM-G973F) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/119.0.0.0 Mobile Safari/537.36"
    )
    locale: str = "en-US"
    accept_language: str = "en-US,en;q=0.9"
    viewport_width: PositiveInt = 390
    viewport_height: PositiveInt = 844
    launch_args: list[str] = Field(
        default_factory=lambda: ["--no-sandbox", "--disable-dev-shm-usage"]
    )
    blocked_resource_types: list[str] = Field(default_factory=lambda: ["font", "media"])
    blocked_url_fragments: list[str] = Field(
        default_factory=lambda: [
            "google-analytics.com",
            "googletagmanager.com",
            "doubleclick.net",
            "connect.facebook.net/en_US/fbevents",
            "/ajax/bz",
            "/ajax/bnzai",
        ]
    )
    navigation_timeout_ms: PositiveInt = 60000

    @field_validator("blocked_resource_types")
    @classmethod
    def _lowercase_types(cls, v: list[str]) -> list[str]:
        return [t.strip().lower() for t in v if (t or "").strip()]


class PacingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    search_settle_ms: NonNegativeInt = 1500
    scroll_settle_ms: NonNegativeInt = 900
    scroll_jitter_ms: NonNegativeInt = 600
    click_settle_ms: NonNegativeInt = 1200
    click_jitter_ms: NonNegativeInt = 800
    max_idle_rounds: PositiveInt = 3
    request_handler_timeout_secs: PositiveInt = 1200
    navigation_attempts: PositiveInt = 3


class SinkConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["jsonl", "apify"] = "jsonl"
    jsonl_filename: str = "posts.jsonl"
    dataset_id: str | None = None
    token_env: str = "APIFY_TOKEN"

    @field_validator("token_env")
    @classmethod
    def _token_env_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)

    @model_validator(mode="after")
    def _apify_needs_dataset(self) -> "SinkConfig":
        if self.kind == "apify" and not (self.dataset_id or "").strip():
            raise ValueError("dataset_id is required when kind is 'apify'")
        return self


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    input: HarvestInput
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    pacing: PacingConfig = Field(default_factory=PacingConfig)
    sink: SinkConfig = Field(default_factory=SinkConfig)
