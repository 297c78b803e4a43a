from __future__ import annotations

import json
from pathlib import Path
from threading import Lock
from typing import Any, Mapping, TextIO

from apify_client import ApifyClient
from apify_client.errors import ApifyApiError

from .errors import SinkError
from .retry import OnRetryFn, RetryConfig, SleepFn, call_with_retries
from .transient import is_retryable_apify_exception

_DEFAULT_APIFY_RETRY = RetryConfig(
    max_attempts=9,
    base_delay_seconds=0.5,
    max_delay_seconds=20.0,
    jitter_ratio=0.0,
    retry_after_cap_seconds=0.0,
)


def _json_dumps(value: Any) -> str:
    return json.dumps(
        value,
        ensure_ascii=False,
        sort_keys=False,
        separators=(",", ":"),
        default=str,
    )


class MemorySink:
    """Collects records in a list; used by offline runs and tests."""

    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []

    def push(self, record: Mapping[str, Any]) -> None:
        self.records.append(dict(record))

    def close(self) -> None:
        return None


class JsonlSink:
    """Appends one JSON object per line to a local file."""

    def __init__(self, path: str | Path, *, overwrite: bool = True) -> None:
        self._path = Path(path)
        self._overwrite = bool(overwrite)
        self._fp: TextIO | None = None
        self._lock = Lock()
        self._opened = False
        self.count = 0

    @property
    def path(self) -> Path:
        return self._path

    def __enter__(self) -> "JsonlSink":
        self._ensure_open()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def _ensure_open(self) -> None:
        if self._fp is not None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fp = self._path.open(
                "w" if self._overwrite and not self._opened else "a", encoding="utf-8", newline="\n"
            )
            self._opened = True
        except OSError as e:
            raise SinkError(f"Failed to open output file: {self._path}: {e}") from e

    def push(self, record: Mapping[str, Any]) -> None:
        self._ensure_open()
        line = _json_dumps(dict(record))
        with self._lock:
            if self._fp is None:
                raise SinkError(f"Output file is closed: {self._path}")
            try:
                self._fp.write(line + "\n")
                self._fp.flush()
            except OSError as e:
                raise SinkError(f"Failed to write output file: {self._path}: {e}") from e
            self.count += 1

    def close(self) -> None:
        with self._lock:
            if self._fp is not None:
                try:
                    self._fp.flush()
                finally:
                    self._fp.close()
                self._fp = None


class ApifyDatasetSink:
    """
    Pushes records to an Apify dataset, one item per call, with our own retry policy.
    """

    def __init__(
        self,
        token: str,
        dataset_id: str,
        *,
        client: ApifyClient | None = None,
        retry: RetryConfig | None = None,
        on_retry: OnRetryFn | None = None,
        sleep_fn: SleepFn | None = None,
    ) -> None:
        ds = (dataset_id or "").strip()
        if not ds:
            raise SinkError("dataset_id must be a non-empty string")

        self._dataset_id = ds
        self._retry = retry or _DEFAULT_APIFY_RETRY
        self._on_retry = on_retry
        self._sleep_fn = sleep_fn
        self.count = 0

        if client is not None:
            self._client = client
        else:
            # Disable client-level retries so we can apply our own policy uniformly.
            try:
                self._client = ApifyClient(token=token, max_retries=0)
            except TypeError:
                self._client = ApifyClient(token=token)

    def push(self, record: Mapping[str, Any]) -> None:
        payload = dict(record)

        def _do_push() -> None:
            self._client.dataset(self._dataset_id).push_items(payload)

        try:
            call_with_retries(
                _do_push,
                cfg=self._retry,
                is_retryable=is_retryable_apify_exception,
                operation=f"apify.dataset.push_items:{self._dataset_id}",
                on_retry=self._on_retry,
                sleep_fn=self._sleep_fn,
            )
        except ApifyApiError as e:
            raise SinkError(f"Failed to push dataset item ({self._dataset_id}): {e}") from e
        except Exception as e:
            raise SinkError(
                f"Unexpected error while pushing to dataset ({self._dataset_id}): {e}"
            ) from e
        self.count += 1

    def close(self) -> None:
        return None
