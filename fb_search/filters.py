from __future__ import annotations

import time
from dataclasses import dataclass, field

from .dates import SECONDS_PER_DAY
from .extract import CandidateItem

RECENT_WINDOW_DAYS = 30


@dataclass
class CrawlState:
    """Mutable state of one harvesting attempt; never shared across attempts."""

    max_results: int
    start_epoch: int | None = None
    end_epoch: int | None = None
    recent_only: bool = False
    seen_urls: set[str] = field(default_factory=set)
    total_emitted: int = 0

    def __post_init__(self) -> None:
        if self.max_results <= 0:
            raise ValueError("max_results must be positive")

    @property
    def target_reached(self) -> bool:
        return self.total_emitted >= self.max_results

    @property
    def has_explicit_window(self) -> bool:
        return bool(self.start_epoch) or bool(self.end_epoch)


@dataclass(frozen=True)
class Admission:
    accepted: bool
    reason: str | None = None


def date_rejection(
    timestamp: int | None,
    state: CrawlState,
    *,
    now: float | None = None,
) -> str | None:
    """Return the date rule an item violates, or None. Undated items always pass."""
    if not timestamp:
        return None

    if state.recent_only and not state.has_explicit_window:
        current = time.time() if now is None else float(now)
        cutoff = int(current) - RECENT_WINDOW_DAYS * SECONDS_PER_DAY
        if timestamp < cutoff:
            return "older_than_recent_window"

    if state.start_epoch and timestamp < state.start_epoch:
        return "before_start_date"

    # end_date covers its whole day.
    if state.end_epoch and timestamp > state.end_epoch + SECONDS_PER_DAY - 1:
        return "after_end_date"

    return None


def admit(item: CandidateItem, state: CrawlState, *, now: float | None = None) -> Admission:
    """
    Decide whether a candidate may be emitted; accepted urls join state.seen_urls.
    """
    if not item.url:
        return Admission(False, "missing_url")
    if item.url in state.seen_urls:
        return Admission(False, "duplicate_url")

    reason = date_rejection(item.timestamp, state, now=now)
    if reason is not None:
        return Admission(False, reason)

    state.seen_urls.add(item.url)
    return Admission(True)
