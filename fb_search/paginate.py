from __future__ import annotations

import random
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable

from .browser import LOAD_MORE_PATTERN, PageDriver
from .config_schema import PacingConfig
from .emit import PostSink, build_post, emit
from .extract import extract_batch
from .filters import CrawlState, admit
from .run_log import RunLogger

LOAD_MORE_SELECTOR = "a, button"

STOP_MAX_RESULTS = "max_results"
STOP_STALLED = "stalled"
STOP_IDLE = "idle"


@dataclass
class PaginationResult:
    rounds: int = 0
    stop_reason: str = STOP_MAX_RESULTS
    rejected: Counter[str] = field(default_factory=Counter)


def is_stalled(rendered: int, seen: int) -> bool:
    """True when fewer containers are rendered than half the urls already seen."""
    return rendered < seen / 2


def nothing_left_to_load(before: int, rendered: int, clicked: bool) -> bool:
    """True when the page is empty, or load-more neither clicked nor grew the result list."""
    return rendered == 0 or (not clicked and rendered <= before)


async def load_more(page: PageDriver, *, pacing: PacingConfig, rng: random.Random) -> bool:
    """
    Scroll to the bottom, then click the first "see more"-style control if any.

    Returns True when a control was activated.
    """
    await page.scroll_to_bottom()
    await page.sleep(pacing.scroll_settle_ms + rng.random() * pacing.scroll_jitter_ms)

    clicked = await page.click_first_matching(LOAD_MORE_SELECTOR, LOAD_MORE_PATTERN)
    if clicked:
        await page.sleep(pacing.click_settle_ms + rng.random() * pacing.click_jitter_ms)
    return clicked


async def harvest_results(
    page: PageDriver,
    state: CrawlState,
    sink: PostSink,
    *,
    pacing: PacingConfig,
    logger: RunLogger | None = None,
    rng: random.Random | None = None,
    clock: Callable[[], float] = time.time,
) -> PaginationResult:
    """
    Extract, filter and emit posts from the current page until max_results is
    reached or loading more stops yielding new content.
    """
    rand = rng or random.Random()
    result = PaginationResult()
    idle_rounds = 0

    while not state.target_reached:
        result.rounds += 1
        accepted = 0

        batch = await extract_batch(page)
        for item in batch:
            admission = admit(item, state, now=clock())
            if not admission.accepted:
                result.rejected[admission.reason or "rejected"] += 1
                continue

            emit(build_post(item), state, sink)
            accepted += 1
            if state.target_reached:
                break

        if logger is not None:
            logger.info(
                "batch_processed",
                round=result.rounds,
                rendered=len(batch),
                accepted=accepted,
                total=state.total_emitted,
            )

        if state.target_reached:
            result.stop_reason = STOP_MAX_RESULTS
            break

        clicked = await load_more(page, pacing=pacing, rng=rand)

        rendered = await page.count_result_containers()
        if is_stalled(rendered, len(state.seen_urls)):
            result.stop_reason = STOP_STALLED
            break

        # Rejected-only rounds keep going while new containers render.
        idle_rounds = idle_rounds + 1 if nothing_left_to_load(len(batch), rendered, clicked) else 0
        if idle_rounds >= pacing.max_idle_rounds:
            result.stop_reason = STOP_IDLE
            if logger is not None:
                logger.info("pagination_idle", rounds=result.rounds, rendered=rendered)
            break

    return result
