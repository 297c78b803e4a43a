from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qs, urljoin, urlsplit

from .browser import ContainerHandle, PageDriver

PERMALINK_SELECTOR = (
    'a[href*="story.php"], a[href*="/posts/"], a[href*="/permalink/"], '
    'a[href*="/reel/"], a[href*="/videos/"]'
)
VIDEO_LINK_SELECTOR = 'a[href*="/reel/"], a[href*="/videos/"]'
AUTHOR_SELECTOR = 'header a[href^="/"]'
PROFILE_PICTURE_SELECTOR = "image, img"
MESSAGE_SELECTOR = '[data-ad-preview="message"], div[dir="auto"] p, div[dir="auto"] span'
TIMESTAMP_SELECTOR = "abbr[data-utime], time"
IMAGE_SELECTOR = "img"

POST_ID_RE = re.compile(
    r"(?:story\.php.*[?&]story_fbid=|posts/|permalink/|reel/|videos/)(\d{6,})"
)
_NUMERIC_PROFILE_RE = re.compile(r"^/(\d{6,})(?:/|$)")


@dataclass(frozen=True)
class Author:
    id: str | None = None
    name: str | None = None
    url: str | None = None
    profile_picture_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "profile_picture_url": self.profile_picture_url,
        }


@dataclass(frozen=True)
class CandidateItem:
    """An unvalidated record extracted from one result container."""

    url: str | None = None
    post_id: str | None = None
    message: str | None = None
    timestamp: int | None = None
    raw_text: str = ""
    image: dict[str, Any] | None = None
    video: str | None = None
    video_thumbnail: str | None = None
    author: Author = field(default_factory=Author)


def absolute_url(href: str | None, origin: str) -> str | None:
    value = (href or "").strip()
    if not value:
        return None
    try:
        resolved = urljoin(origin, value)
    except ValueError:
        return None
    parts = urlsplit(resolved)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return resolved


def derive_post_id(url: str | None) -> str | None:
    if not url:
        return None
    m = POST_ID_RE.search(url)
    return m.group(1) if m else None


def derive_author_id(url: str | None) -> str | None:
    if not url:
        return None
    try:
        parts = urlsplit(url)
    except ValueError:
        return None

    if parts.path.rstrip("/").endswith("profile.php"):
        ids = parse_qs(parts.query).get("id") or []
        if ids and ids[0].isdigit():
            return ids[0]

    m = _NUMERIC_PROFILE_RE.match(parts.path or "")
    return m.group(1) if m else None


def _coerce_dimension(value: Any) -> int | None:
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        return None
    return number or None


def _coerce_timestamp(value: str | None) -> int | None:
    text = (value or "").strip()
    if not text.isdigit():
        return None
    return int(text) or None


def _clean_text(value: str | None) -> str | None:
    text = (value or "").strip()
    return text or None


async def extract_candidate(handle: ContainerHandle, *, origin: str) -> CandidateItem:
    """
    Best-effort extraction of one CandidateItem; missing fields degrade to None.
    """
    url = absolute_url(await handle.attribute(PERMALINK_SELECTOR, "href"), origin)

    author_url = absolute_url(await handle.attribute(AUTHOR_SELECTOR, "href"), origin)
    author = Author(
        id=derive_author_id(author_url),
        name=_clean_text(await handle.text(AUTHOR_SELECTOR)),
        url=author_url,
        profile_picture_url=_clean_text(await handle.attribute(PROFILE_PICTURE_SELECTOR, "src")),
    )

    timestamp = _coerce_timestamp(await handle.attribute(TIMESTAMP_SELECTOR, "data-utime"))

    raw_image = await handle.image(IMAGE_SELECTOR)
    image: dict[str, Any] | None = None
    if raw_image and raw_image.get("src"):
        image = {
            "uri": raw_image.get("src"),
            "height": _coerce_dimension(raw_image.get("height")),
            "width": _coerce_dimension(raw_image.get("width")),
            "id": None,
        }

    return CandidateItem(
        url=url,
        post_id=derive_post_id(url),
        message=_clean_text(await handle.text(MESSAGE_SELECTOR)),
        timestamp=timestamp,
        raw_text=await handle.inner_text() or "",
        image=image,
        video=absolute_url(await handle.attribute(VIDEO_LINK_SELECTOR, "href"), origin),
        video_thumbnail=image["uri"] if image else None,
        author=author,
    )


def page_origin(url: str) -> str:
    parts = urlsplit(url or "")
    if not parts.scheme or not parts.netloc:
        return "https://m.facebook.com"
    return f"{parts.scheme}://{parts.netloc}"


async def extract_batch(page: PageDriver) -> list[CandidateItem]:
    origin = page_origin(page.url)
    handles = await page.query_result_containers()
    return [await extract_candidate(h, origin=origin) for h in handles]
