from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Callable, Sequence
from urllib.parse import urlencode

from .browser import PageDriver
from .classify import Classification, PageClassification, classify_page
from .config_schema import HarvestInput, PacingConfig
from .cookies import NormalizedCookie, audit_session_cookies
from .emit import PostSink
from .errors import BrowserError
from .filters import CrawlState
from .paginate import harvest_results
from .retry import RetryConfig, RetryEvent, acall_with_retries
from .run_log import RunLogger
from .session import Identity, SessionState
from .transient import is_retryable_navigation_exception

SITE_URL = "https://m.facebook.com/"
SEARCH_URL = "https://m.facebook.com/search/posts/"

STATUS_COMPLETED = "completed"
STATUS_BLOCKED = "blocked"

RetireFn = Callable[[Identity, str], None]


@dataclass(frozen=True)
class AttemptResult:
    status: str
    emitted: int
    classification: PageClassification | None = None
    rounds: int = 0
    stop_reason: str | None = None


def search_url(query: str) -> str:
    return f"{SEARCH_URL}?{urlencode({'q': query})}"


def crawl_state_for(harvest_input: HarvestInput) -> CrawlState:
    return CrawlState(
        max_results=harvest_input.max_results,
        start_epoch=harvest_input.start_epoch,
        end_epoch=harvest_input.end_epoch,
        recent_only=harvest_input.recent_posts,
    )


async def apply_cookies(
    page: PageDriver,
    identity: Identity,
    cookies: Sequence[NormalizedCookie],
    *,
    logger: RunLogger,
) -> bool:
    """
    Inject cookies once per identity and audit what the target host can see.

    Returns True when cookies were injected by this call.
    """
    if not cookies:
        return False
    if identity.cookies_applied:
        logger.info("cookies_already_applied")
        return False

    descriptors = [c.to_browser() for c in cookies]
    try:
        await page.add_cookies(descriptors)
    except BrowserError as e:
        logger.warning("cookie_injection_failed", error=str(e))
        return False

    identity.mark_cookies_applied()
    identity.cookie_jar = descriptors
    identity.lifecycle.transition(SessionState.AUTH_PENDING)
    logger.info("cookies_applied", count=len(cookies))

    try:
        visible = await page.cookies(SITE_URL)
    except BrowserError as e:
        logger.warning("cookie_readback_failed", error=str(e))
        return True

    if visible:
        identity.cookie_jar = [dict(c) for c in visible]

    for warning in audit_session_cookies(visible):
        logger.warning("cookie_audit", detail=warning)
    return True


async def navigate(page: PageDriver, url: str, *, pacing: PacingConfig, logger: RunLogger) -> None:
    def _on_retry(event: RetryEvent) -> None:
        logger.warning(
            "navigation_retry",
            url=event.context_url,
            attempt=event.failure_attempt,
            delay_seconds=round(event.delay_seconds, 2),
            reason=event.reason,
            error=event.error_message,
        )

    try:
        await acall_with_retries(
            lambda: page.goto(url),
            cfg=RetryConfig(
                max_attempts=pacing.navigation_attempts,
                base_delay_seconds=1.0,
                max_delay_seconds=10.0,
            ),
            is_retryable=is_retryable_navigation_exception,
            operation="page.goto",
            on_retry=_on_retry,
            context_url=url,
        )
    except BrowserError:
        raise
    except Exception as e:
        if not is_retryable_navigation_exception(e)[0]:
            raise
        raise BrowserError(f"Navigation failed: {url}: {e}") from e


def _block(
    identity: Identity,
    verdict: Classification,
    *,
    retire: RetireFn | None,
    retire_on_blocked: bool,
    logger: RunLogger,
    url: str,
) -> None:
    identity.lifecycle.transition(SessionState.BLOCKED, reason=verdict.state.value)
    logger.warning(
        "page_blocked",
        url=url,
        classification=verdict.state.value,
        evidence=verdict.evidence,
    )
    if retire is not None and retire_on_blocked:
        retire(identity, verdict.state.value)
        logger.warning("identity_retired", reason=verdict.state.value)


async def run_attempt(
    page: PageDriver,
    identity: Identity,
    state: CrawlState,
    *,
    harvest_input: HarvestInput,
    cookies: Sequence[NormalizedCookie],
    sink: PostSink,
    pacing: PacingConfig,
    logger: RunLogger,
    retire: RetireFn | None = None,
    rng: random.Random | None = None,
    clock: Callable[[], float] = time.time,
) -> AttemptResult:
    """
    One harvesting attempt bound to one identity.

    Without cookies the homepage authentication check is skipped and the search
    page is classified directly.
    """
    retire_on_blocked = harvest_input.session.retire_on_blocked

    await apply_cookies(page, identity, cookies, logger=logger)

    if cookies:
        await navigate(page, SITE_URL, pacing=pacing, logger=logger)
        verdict = await classify_page(page, search_page=False)
        logger.info("homepage_classified", url=page.url, classification=verdict.state.value)
        if not verdict.ok:
            _block(identity, verdict, retire=retire, retire_on_blocked=retire_on_blocked, logger=logger, url=page.url)
            return AttemptResult(status=STATUS_BLOCKED, emitted=state.total_emitted, classification=verdict.state)
        identity.lifecycle.transition(SessionState.AUTHENTICATED)

    target = search_url(harvest_input.query)
    await navigate(page, target, pacing=pacing, logger=logger)
    await page.sleep(pacing.search_settle_ms)

    verdict = await classify_page(page, search_page=True)
    if not verdict.ok:
        _block(identity, verdict, retire=retire, retire_on_blocked=retire_on_blocked, logger=logger, url=page.url)
        return AttemptResult(status=STATUS_BLOCKED, emitted=state.total_emitted, classification=verdict.state)
    identity.lifecycle.transition(SessionState.AUTHENTICATED)

    pagination = await harvest_results(
        page,
        state,
        sink,
        pacing=pacing,
        logger=logger,
        rng=rng,
        clock=clock,
    )

    logger.info(
        "posts_collected",
        url=target,
        total=state.total_emitted,
        rounds=pagination.rounds,
        stop_reason=pagination.stop_reason,
        rejected=dict(pagination.rejected),
    )

    try:
        identity.cookie_jar = await page.cookies(SITE_URL)
    except BrowserError as e:
        logger.warning("cookie_jar_save_failed", error=str(e))

    return AttemptResult(
        status=STATUS_COMPLETED,
        emitted=state.total_emitted,
        classification=verdict.state,
        rounds=pagination.rounds,
        stop_reason=pagination.stop_reason,
    )
