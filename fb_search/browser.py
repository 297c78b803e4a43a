from __future__ import annotations

from typing import TYPE_CHECKING, Any, AsyncContextManager, Protocol, Sequence

if TYPE_CHECKING:
    from .session import Identity

RESULT_CONTAINER_SELECTOR = "article"
LOAD_MORE_PATTERN = r"see more|more results|show more|next"


class ContainerHandle(Protocol):
    """Field accessors over one rendered result container."""

    async def attribute(self, selector: str, name: str) -> str | None:
        """Attribute `name` of the first descendant matching `selector`."""
        ...

    async def text(self, selector: str) -> str | None:
        """Visible text of the first descendant matching `selector`."""
        ...

    async def inner_text(self) -> str:
        """Full visible text of the container."""
        ...

    async def image(self, selector: str) -> dict[str, Any] | None:
        """`{src, width, height}` of the first image matching `selector`."""
        ...


class PageDriver(Protocol):
    """Capability surface of one browser page used by the harvester."""

    @property
    def url(self) -> str: ...

    async def goto(self, url: str) -> None: ...

    async def content(self) -> str: ...

    async def query_result_containers(self) -> Sequence[ContainerHandle]: ...

    async def count_result_containers(self) -> int: ...

    async def is_visible(self, selector: str) -> bool: ...

    async def scroll_to_bottom(self) -> None: ...

    async def click_first_matching(self, selector: str, pattern: str) -> bool:
        """Click the first element under `selector` whose text matches `pattern`."""
        ...

    async def add_cookies(self, cookies: Sequence[dict[str, Any]]) -> None: ...

    async def cookies(self, url: str) -> list[dict[str, Any]]: ...

    async def sleep(self, ms: float) -> None: ...


class BrowserFactory(Protocol):
    """Opens a page bound to one identity's proxy and cookie jar."""

    def open_page(self, identity: "Identity") -> AsyncContextManager[PageDriver]: ...
