from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Sequence
from urllib.parse import unquote, urlsplit

from playwright.async_api import (
    Browser,
    BrowserContext,
    ElementHandle,
    Page,
    Route,
    async_playwright,
)
from playwright.async_api import Error as PlaywrightError

from .browser import RESULT_CONTAINER_SELECTOR
from .config_schema import BrowserConfig
from .errors import BrowserError
from .session import Identity

_IMAGE_JS = """
(el) => ({
  src: el.currentSrc || el.src || el.getAttribute('src'),
  width: el.naturalWidth || el.width || null,
  height: el.naturalHeight || el.height || null,
})
"""

_CLICK_MATCHING_JS = """
([selector, pattern]) => {
  const re = new RegExp(pattern, 'i');
  const el = Array.from(document.querySelectorAll(selector)).find(
    (e) => re.test(e.textContent || ''),
  );
  if (el) {
    el.click();
    return true;
  }
  return false;
}
"""


class PlaywrightContainer:
    """ContainerHandle over a Playwright element; field errors degrade to None."""

    def __init__(self, element: ElementHandle) -> None:
        self._el = element

    async def _first(self, selector: str) -> ElementHandle | None:
        try:
            return await self._el.query_selector(selector)
        except PlaywrightError:
            return None

    async def attribute(self, selector: str, name: str) -> str | None:
        node = await self._first(selector)
        if node is None:
            return None
        try:
            return await node.get_attribute(name)
        except PlaywrightError:
            return None

    async def text(self, selector: str) -> str | None:
        node = await self._first(selector)
        if node is None:
            return None
        try:
            return await node.inner_text()
        except PlaywrightError:
            return None

    async def inner_text(self) -> str:
        try:
            return await self._el.inner_text()
        except PlaywrightError:
            return ""

    async def image(self, selector: str) -> dict[str, Any] | None:
        node = await self._first(selector)
        if node is None:
            return None
        try:
            return await node.evaluate(_IMAGE_JS)
        except PlaywrightError:
            return None


class PlaywrightPage:
    """PageDriver backed by a Playwright page."""

    def __init__(self, page: Page) -> None:
        self._page = page

    @property
    def url(self) -> str:
        return self._page.url

    async def goto(self, url: str) -> None:
        await self._page.goto(url, wait_until="domcontentloaded")

    async def content(self) -> str:
        try:
            return await self._page.content()
        except PlaywrightError as e:
            raise BrowserError(f"Failed to read page content: {e}") from e

    async def query_result_containers(self) -> Sequence[PlaywrightContainer]:
        try:
            handles = await self._page.query_selector_all(RESULT_CONTAINER_SELECTOR)
        except PlaywrightError as e:
            raise BrowserError(f"Failed to query result containers: {e}") from e
        return [PlaywrightContainer(h) for h in handles]

    async def count_result_containers(self) -> int:
        try:
            return await self._page.locator(RESULT_CONTAINER_SELECTOR).count()
        except PlaywrightError as e:
            raise BrowserError(f"Failed to count result containers: {e}") from e

    async def is_visible(self, selector: str) -> bool:
        try:
            return await self._page.locator(selector).first.is_visible()
        except PlaywrightError:
            return False

    async def scroll_to_bottom(self) -> None:
        try:
            await self._page.evaluate("() => window.scrollBy(0, document.body.scrollHeight)")
        except PlaywrightError as e:
            raise BrowserError(f"Failed to scroll: {e}") from e

    async def click_first_matching(self, selector: str, pattern: str) -> bool:
        try:
            return bool(await self._page.evaluate(_CLICK_MATCHING_JS, [selector, pattern]))
        except PlaywrightError as e:
            raise BrowserError(f"Failed to activate load-more control: {e}") from e

    async def add_cookies(self, cookies: Sequence[dict[str, Any]]) -> None:
        try:
            await self._page.context.add_cookies(list(cookies))
        except PlaywrightError as e:
            raise BrowserError(f"Failed to set cookies: {e}") from e

    async def cookies(self, url: str) -> list[dict[str, Any]]:
        try:
            return [dict(c) for c in await self._page.context.cookies(url)]
        except PlaywrightError as e:
            raise BrowserError(f"Failed to read cookies: {e}") from e

    async def sleep(self, ms: float) -> None:
        await self._page.wait_for_timeout(float(ms))


def proxy_settings(proxy_url: str) -> dict[str, str]:
    """Split credentials out of a proxy URL into Playwright's proxy settings."""
    parts = urlsplit(proxy_url)
    if not parts.hostname:
        return {"server": proxy_url}

    server = f"{parts.scheme or 'http'}://{parts.hostname}"
    if parts.port:
        server += f":{parts.port}"

    out = {"server": server}
    if parts.username:
        out["username"] = unquote(parts.username)
    if parts.password:
        out["password"] = unquote(parts.password)
    return out


def should_block_request(resource_type: str, url: str, cfg: BrowserConfig) -> bool:
    if (resource_type or "").lower() in cfg.blocked_resource_types:
        return True
    return any(fragment in (url or "") for fragment in cfg.blocked_url_fragments)


class PlaywrightBrowser:
    """Launches one Chromium context per identity with its proxy and saved cookies."""

    def __init__(self, cfg: BrowserConfig) -> None:
        self._cfg = cfg

    async def _prepare_context(self, context: BrowserContext, identity: Identity) -> None:
        cfg = self._cfg

        async def _route(route: Route) -> None:
            request = route.request
            if should_block_request(request.resource_type, request.url, cfg):
                await route.abort()
            else:
                await route.continue_()

        await context.route("**/*", _route)
        await context.set_extra_http_headers({"Accept-Language": cfg.accept_language})
        context.set_default_navigation_timeout(float(cfg.navigation_timeout_ms))

        if identity.cookie_jar:
            await context.add_cookies(list(identity.cookie_jar))

    async def _new_page(self, browser: Browser, identity: Identity) -> Page:
        cfg = self._cfg
        try:
            context = await browser.new_context(
                user_agent=cfg.user_agent,
                locale=cfg.locale,
                viewport={"width": cfg.viewport_width, "height": cfg.viewport_height},
                ignore_https_errors=True,
            )
            await self._prepare_context(context, identity)
            return await context.new_page()
        except PlaywrightError as e:
            raise BrowserError(f"Failed to prepare browser context: {e}") from e

    @asynccontextmanager
    async def open_page(self, identity: Identity) -> AsyncIterator[PlaywrightPage]:
        cfg = self._cfg
        launch_kwargs: dict[str, Any] = {"headless": cfg.headless, "args": list(cfg.launch_args)}
        if identity.proxy_url:
            launch_kwargs["proxy"] = proxy_settings(identity.proxy_url)

        async with async_playwright() as pw:
            try:
                browser = await pw.chromium.launch(**launch_kwargs)
            except PlaywrightError as e:
                raise BrowserError(f"Failed to launch browser: {e}") from e

            try:
                page = await self._new_page(browser, identity)
                yield PlaywrightPage(page)
            finally:
                await browser.close()
