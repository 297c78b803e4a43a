from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from .browser import PageDriver

LOGIN_FORM_SELECTOR = (
    'form#login_form, form[action*="/login"], input[name="email"], '
    'input#m_login_email, input[name="pass"]'
)
CHECKPOINT_SELECTOR = 'form[action*="/checkpoint"], a[href*="/checkpoint/"]'
ACCOUNT_MENU_SELECTOR = (
    'a[href*="/bookmarks"], a[href="/menu/bookmarks/"], [aria-label="Menu"], '
    '[aria-label="Account"], a[href*="/me/"]'
)
FEED_SELECTOR = '#m_news_feed_stream, [role="feed"], [data-pagelet="MainFeed"]'
COMPOSER_SELECTOR = '#MComposer, [aria-label*="Create a post"], [aria-label*="What\'s on your mind"]'

_LOGIN_PATH_RE = re.compile(r"^/(?:login(?:\.php)?|login/.*)$", re.IGNORECASE)
_CHECKPOINT_PATH_RE = re.compile(r"^/checkpoint(?:/|$)", re.IGNORECASE)

_BLOCKED_HTML_RE = re.compile(
    r"you(?:'|&#039;|’)re temporarily blocked"
    r"|log in to continue"
    r"|id=\"login_form\""
    r"|enter the characters you see",
    re.IGNORECASE,
)

EVIDENCE_LIMIT = 400


class PageClassification(str, enum.Enum):
    AUTHENTICATED = "authenticated"
    LOGIN_REQUIRED = "login_required"
    CHECKPOINT = "checkpoint"
    BLOCKED = "blocked"

    @property
    def ok(self) -> bool:
        return self is PageClassification.AUTHENTICATED


@dataclass(frozen=True)
class PageMarkers:
    login_form: bool = False
    checkpoint: bool = False
    account_menu: bool = False
    feed: bool = False
    composer: bool = False
    blocked_text: bool = False

    @property
    def authenticated(self) -> bool:
        return self.account_menu or self.feed or self.composer


@dataclass(frozen=True)
class Classification:
    state: PageClassification
    evidence: str = ""

    @property
    def ok(self) -> bool:
        return self.state.ok


def evidence_snippet(html: str, *, limit: int = EVIDENCE_LIMIT) -> str:
    return re.sub(r"\s+", " ", (html or "")[:limit]).strip()


def classify_url(url: str) -> PageClassification | None:
    try:
        path = urlsplit(url or "").path or "/"
    except ValueError:
        return None
    if _CHECKPOINT_PATH_RE.match(path):
        return PageClassification.CHECKPOINT
    if _LOGIN_PATH_RE.match(path):
        return PageClassification.LOGIN_REQUIRED
    return None


def classify_html(html: str) -> bool:
    """Raw-markup check for login walls, checkpoints and temporary blocks."""
    return bool(_BLOCKED_HTML_RE.search(html or ""))


def decide(
    url: str,
    markers: PageMarkers,
    *,
    search_page: bool,
    container_count: int = 0,
) -> PageClassification:
    by_url = classify_url(url)
    if by_url is not None:
        return by_url

    if search_page:
        # Rendered results win over a stray login prompt.
        if container_count > 0:
            return PageClassification.AUTHENTICATED
        if markers.login_form or markers.checkpoint or markers.blocked_text:
            return PageClassification.BLOCKED
        return PageClassification.AUTHENTICATED

    if markers.login_form:
        return PageClassification.LOGIN_REQUIRED
    if markers.checkpoint:
        return PageClassification.CHECKPOINT
    if not markers.authenticated:
        return PageClassification.LOGIN_REQUIRED
    return PageClassification.AUTHENTICATED


async def probe_markers(page: PageDriver, *, html: str = "") -> PageMarkers:
    return PageMarkers(
        login_form=await page.is_visible(LOGIN_FORM_SELECTOR),
        checkpoint=await page.is_visible(CHECKPOINT_SELECTOR),
        account_menu=await page.is_visible(ACCOUNT_MENU_SELECTOR),
        feed=await page.is_visible(FEED_SELECTOR),
        composer=await page.is_visible(COMPOSER_SELECTOR),
        blocked_text=classify_html(html),
    )


async def classify_page(page: PageDriver, *, search_page: bool) -> Classification:
    """
    Classify a freshly loaded page and return the state with an evidence snippet.
    """
    url = page.url
    by_url = classify_url(url)
    if by_url is not None:
        return Classification(state=by_url, evidence=f"url={url}")

    html = await page.content()
    markers = await probe_markers(page, html=html)
    count = await page.count_result_containers() if search_page else 0
    state = decide(url, markers, search_page=search_page, container_count=count)

    evidence = "" if state.ok else evidence_snippet(html)
    return Classification(state=state, evidence=evidence)
