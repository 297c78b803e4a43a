from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Callable

from .browser import BrowserFactory
from .config import config_sha256
from .config_schema import AppConfig
from .cookies import NormalizedCookie, normalize_cookies, parse_cookie_input
from .emit import PostSink, RunSummary
from .harvest import STATUS_BLOCKED, AttemptResult, crawl_state_for, run_attempt
from .run_log import RunLogger
from .session import Identity, IdentityPool, proxy_urls_from_input

STATUS_TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class HarvestRunResult:
    run_id: str
    status: str
    total: int
    rounds: int
    stop_reason: str | None
    identity_id: str
    identity_retired: bool
    summary: dict


def _pkg_version(name: str) -> str:
    try:
        return version(name)
    except PackageNotFoundError:
        return "unknown"


def resolve_cookies(config: AppConfig, *, logger: RunLogger) -> list[NormalizedCookie]:
    """Parse and normalize the cookie input, logging every fallback taken."""
    harvest_input = config.input
    parsed = parse_cookie_input(harvest_input.cookies, harvest_input.cookies_json)
    for warning in parsed.warnings:
        logger.warning("cookie_input_fallback", detail=warning)

    cookies = normalize_cookies(parsed.raw)
    dropped = len(parsed.raw) - len(cookies)
    logger.info(
        "cookies_normalized",
        source=parsed.source,
        count=len(cookies),
        dropped=dropped,
        names=sorted(c.name for c in cookies),
    )
    return cookies


def build_identity_pool(config: AppConfig, *, state_path: str | Path | None) -> IdentityPool:
    session_cfg = config.input.session
    return IdentityPool(
        max_pool_size=session_cfg.max_pool_size,
        proxy_urls=proxy_urls_from_input(config.input.proxy),
        state_path=state_path if session_cfg.persist_state else None,
    )


def run_summary(config: AppConfig, total: int) -> RunSummary:
    harvest_input = config.input
    return RunSummary(
        query=harvest_input.query,
        total=total,
        max_results=harvest_input.max_results,
        start_date=harvest_input.start_date,
        end_date=harvest_input.end_date,
        recent_posts=harvest_input.recent_posts,
    )


async def run_harvest(
    config: AppConfig,
    *,
    sink: PostSink,
    browser: BrowserFactory,
    logger: RunLogger,
    state_path: str | Path | None = None,
    rng: random.Random | None = None,
    clock: Callable[[], float] = time.time,
) -> HarvestRunResult:
    """
    Run one harvest: a single attempt bound to one identity from the pool,
    followed by the summary record.
    """
    harvest_input = config.input
    logger.info(
        "run_started",
        query=harvest_input.query,
        max_results=harvest_input.max_results,
        recent_posts=harvest_input.recent_posts,
        start_date=harvest_input.start_date,
        end_date=harvest_input.end_date,
        config_sha256=config_sha256(config),
        playwright_version=_pkg_version("playwright"),
    )

    for name, text in harvest_input.invalid_dates().items():
        logger.warning("invalid_date_ignored", field=name, value=text)

    try:
        cookies = resolve_cookies(config, logger=logger)

        pool = build_identity_pool(config, state_path=state_path)
        restored = pool.load()
        if restored:
            logger.info("session_pool_restored", identities=restored)

        identity = pool.acquire()
        logger.set_identity(identity.id)
        logger.info("identity_acquired", proxy=bool(identity.proxy_url), usage_count=identity.usage_count)

        def _retire(target: Identity, reason: str) -> None:
            pool.retire(target, reason=reason)

        state = crawl_state_for(harvest_input)
        timeout = config.pacing.request_handler_timeout_secs

        attempt: AttemptResult
        async with browser.open_page(identity) as page:
            try:
                attempt = await asyncio.wait_for(
                    run_attempt(
                        page,
                        identity,
                        state,
                        harvest_input=harvest_input,
                        cookies=cookies,
                        sink=sink,
                        pacing=config.pacing,
                        logger=logger,
                        retire=_retire,
                        rng=rng,
                        clock=clock,
                    ),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("attempt_timed_out", timeout_secs=timeout, total=state.total_emitted)
                attempt = AttemptResult(status=STATUS_TIMED_OUT, emitted=state.total_emitted)

        summary = run_summary(config, state.total_emitted)
        sink.push(summary.to_dict())
        pool.persist()

        retired = identity in pool.retired
        logger.info(
            "run_completed",
            status=attempt.status,
            total=state.total_emitted,
            rounds=attempt.rounds,
            stop_reason=attempt.stop_reason,
            identity_retired=retired,
        )
        if attempt.status == STATUS_BLOCKED:
            logger.warning("run_ended_blocked", classification=getattr(attempt.classification, "value", None))

        return HarvestRunResult(
            run_id=logger.run_id,
            status=attempt.status,
            total=state.total_emitted,
            rounds=attempt.rounds,
            stop_reason=attempt.stop_reason,
            identity_id=identity.id,
            identity_retired=retired,
            summary=summary.to_dict(),
        )
    except Exception as e:
        logger.exception("run_failed", exc=e, query=harvest_input.query)
        raise
