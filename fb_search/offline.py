from __future__ import annotations

import html
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Sequence

from .classify import ACCOUNT_MENU_SELECTOR, FEED_SELECTOR, LOGIN_FORM_SELECTOR
from .extract import (
    AUTHOR_SELECTOR,
    IMAGE_SELECTOR,
    MESSAGE_SELECTOR,
    PERMALINK_SELECTOR,
    PROFILE_PICTURE_SELECTOR,
    TIMESTAMP_SELECTOR,
    VIDEO_LINK_SELECTOR,
)
from .harvest import SEARCH_URL
from .session import Identity

_HOME_HTML = '<html><body><div id="m_news_feed_stream"></div></body></html>'
_SEARCH_HTML = '<html><body><div role="feed">{articles}</div></body></html>'
_LOGIN_HTML = (
    '<html><body><form id="login_form" action="/login/device-based/regular/login/">'
    '<input name="email"><input name="pass"></form>'
    "<p>Log in to continue</p></body></html>"
)


@dataclass(frozen=True)
class OfflinePost:
    """Canned content of one rendered search result."""

    permalink: str | None
    text: str
    message: str | None = None
    author_href: str | None = None
    author_name: str | None = None
    profile_picture: str | None = None
    utime: int | None = None
    image: dict[str, Any] | None = None
    video_href: str | None = None


class OfflineContainer:
    """ContainerHandle over an OfflinePost."""

    def __init__(self, post: OfflinePost) -> None:
        self._post = post

    async def attribute(self, selector: str, name: str) -> str | None:
        p = self._post
        if selector == PERMALINK_SELECTOR and name == "href":
            return p.permalink
        if selector == AUTHOR_SELECTOR and name == "href":
            return p.author_href
        if selector == PROFILE_PICTURE_SELECTOR and name == "src":
            return p.profile_picture
        if selector == TIMESTAMP_SELECTOR and name == "data-utime":
            return str(p.utime) if p.utime is not None else None
        if selector == VIDEO_LINK_SELECTOR and name == "href":
            return p.video_href
        return None

    async def text(self, selector: str) -> str | None:
        if selector == AUTHOR_SELECTOR:
            return self._post.author_name
        if selector == MESSAGE_SELECTOR:
            return self._post.message
        return None

    async def inner_text(self) -> str:
        return self._post.text

    async def image(self, selector: str) -> dict[str, Any] | None:
        if selector == IMAGE_SELECTOR and self._post.image:
            return dict(self._post.image)
        return None


@dataclass
class OfflineSite:
    """
    What the offline pages render.

    `batches[0]` is visible right after the search navigation; each successful
    load-more click reveals the next batch. With `logged_out` both pages show a
    login wall and no results.
    """

    batches: list[list[OfflinePost]] = field(default_factory=list)
    logged_out: bool = False
    search_redirect: str | None = None


class OfflinePage:
    """PageDriver over an OfflineSite; records navigations, cookies and waits."""

    def __init__(self, site: OfflineSite) -> None:
        self._site = site
        self._url = "about:blank"
        self._revealed = 0
        self.visited: list[str] = []
        self.sleeps: list[float] = []
        self.scrolls = 0
        self.clicks = 0
        self.jar: list[dict[str, Any]] = []

    @property
    def url(self) -> str:
        return self._url

    @property
    def _on_search(self) -> bool:
        return self._url.startswith(SEARCH_URL)

    def _rendered(self) -> list[OfflinePost]:
        if not self._on_search or self._site.logged_out:
            return []
        out: list[OfflinePost] = []
        for batch in self._site.batches[: self._revealed]:
            out.extend(batch)
        return out

    async def goto(self, url: str) -> None:
        self.visited.append(url)
        if url.startswith(SEARCH_URL) and self._site.search_redirect:
            self._url = self._site.search_redirect
        else:
            self._url = url
        self._revealed = 1 if self._on_search and self._site.batches else 0

    async def content(self) -> str:
        if self._site.logged_out:
            return _LOGIN_HTML
        if self._on_search:
            articles = "".join(f"<article>{html.escape(p.text)}</article>" for p in self._rendered())
            return _SEARCH_HTML.format(articles=articles)
        return _HOME_HTML

    async def query_result_containers(self) -> Sequence[OfflineContainer]:
        return [OfflineContainer(p) for p in self._rendered()]

    async def count_result_containers(self) -> int:
        return len(self._rendered())

    async def is_visible(self, selector: str) -> bool:
        if self._site.logged_out:
            return selector == LOGIN_FORM_SELECTOR
        if self._on_search:
            return selector == FEED_SELECTOR
        return selector in (ACCOUNT_MENU_SELECTOR, FEED_SELECTOR)

    async def scroll_to_bottom(self) -> None:
        self.scrolls += 1

    async def click_first_matching(self, selector: str, pattern: str) -> bool:
        if not self._on_search or self._revealed >= len(self._site.batches):
            return False
        self._revealed += 1
        self.clicks += 1
        return True

    async def add_cookies(self, cookies: Sequence[dict[str, Any]]) -> None:
        self.jar.extend(dict(c) for c in cookies)

    async def cookies(self, url: str) -> list[dict[str, Any]]:
        return [dict(c) for c in self.jar]

    async def sleep(self, ms: float) -> None:
        self.sleeps.append(float(ms))


class OfflineBrowser:
    """BrowserFactory serving OfflinePages; keeps every page it opened."""

    def __init__(self, site: OfflineSite | None = None) -> None:
        self._site = site if site is not None else OfflineSite(batches=default_offline_batches())
        self.pages: list[OfflinePage] = []

    @asynccontextmanager
    async def open_page(self, identity: Identity) -> AsyncIterator[OfflinePage]:
        page = OfflinePage(self._site)
        page.jar.extend(dict(c) for c in identity.cookie_jar)
        self.pages.append(page)
        yield page


def default_offline_batches(now: float | None = None) -> list[list[OfflinePost]]:
    """Two pages of recent results; the second repeats one url from the first."""
    current = int(time.time() if now is None else now)
    hour = 3600

    first = [
        OfflinePost(
            permalink="/story.php?story_fbid=1000000001&id=100000000000001",
            message="Weekend trail run along the coast.",
            text="Weekend trail run along the coast.\nAll reactions: 1.2K\n34 comments\n5 shares\n900 Like\n300 Love",
            author_href="/profile.php?id=100000000000001",
            author_name="Avery Stone",
            profile_picture="https://scontent.example/avery.jpg",
            utime=current - 2 * hour,
            image={"src": "https://scontent.example/trail.jpg", "width": 720, "height": 540},
        ),
        OfflinePost(
            permalink="/groups/runners/posts/2000000002/",
            message="Does anyone have shoe recommendations?",
            text="Does anyone have shoe recommendations?\n12 comments",
            author_href="/jordan.lee",
            author_name="Jordan Lee",
            utime=current - 5 * hour,
        ),
    ]
    second = [
        first[1],
        OfflinePost(
            permalink="/reel/3000000003",
            message="Sunrise intervals.",
            text="Sunrise intervals.\n87 reactions\n3 comments\nLove: 80\nWow: 7",
            author_href="/100000000000003",
            author_name="Sam Rivera",
            utime=current - 26 * hour,
            image={"src": "https://scontent.example/reel-thumb.jpg", "width": 390, "height": 690},
            video_href="/reel/3000000003",
        ),
    ]
    return [first, second]
