from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Protocol

from .counts import pick_counts, reactions_mapping
from .extract import CandidateItem, derive_post_id
from .filters import CrawlState

POST_TYPE = "post"


class PostSink(Protocol):
    def push(self, record: Mapping[str, Any]) -> None: ...


@dataclass(frozen=True)
class Post:
    """The fixed-schema output record; immutable once built."""

    post_id: str | None
    url: str
    message: str | None
    timestamp: int | None
    comments_count: int | None
    reactions_count: int | None
    reshare_count: int | None
    reactions: Mapping[str, int] | None
    author: Mapping[str, Any]
    image: Mapping[str, Any] | None
    video: str | None
    video_thumbnail: str | None
    scraped_at: str
    type: str = POST_TYPE

    def to_dict(self) -> dict[str, Any]:
        return {
            "post_id": self.post_id,
            "type": self.type,
            "url": self.url,
            "message": self.message,
            "timestamp": self.timestamp,
            "comments_count": self.comments_count,
            "reactions_count": self.reactions_count,
            "reshare_count": self.reshare_count,
            "reactions": dict(self.reactions) if self.reactions is not None else None,
            "author": dict(self.author),
            "image": dict(self.image) if self.image is not None else None,
            "video": self.video,
            "album_preview": None,
            "video_files": None,
            "video_thumbnail": self.video_thumbnail,
            "external_url": None,
            "attached_event": None,
            "attached_post": None,
            "attached_post_url": None,
            "text_format_metadata": None,
            "scrapedAt": self.scraped_at,
        }


def _iso_utc(now: datetime | None) -> str:
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def build_post(item: CandidateItem, *, now: datetime | None = None) -> Post:
    """
    Assemble the output record; the scalar counts and the reaction mapping are
    parsed independently from the same text.
    """
    if not item.url:
        raise ValueError("cannot build a post without a url")

    counts = pick_counts(item.raw_text)

    return Post(
        post_id=item.post_id or derive_post_id(item.url),
        url=item.url,
        message=item.message or None,
        timestamp=item.timestamp or None,
        comments_count=counts.comments,
        reactions_count=counts.reactions,
        reshare_count=counts.shares,
        reactions=reactions_mapping(item.raw_text),
        author=item.author.to_dict(),
        image=item.image,
        video=item.video,
        video_thumbnail=item.video_thumbnail or None,
        scraped_at=_iso_utc(now),
    )


def emit(post: Post, state: CrawlState, sink: PostSink) -> None:
    sink.push(post.to_dict())
    state.total_emitted += 1


@dataclass(frozen=True)
class RunSummary:
    query: str
    total: int
    max_results: int
    start_date: str | None
    end_date: str | None
    recent_posts: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "_summary": {
                "query": self.query,
                "total": self.total,
                "maxResults": self.max_results,
                "start_date": self.start_date,
                "end_date": self.end_date,
                "recent_posts": self.recent_posts,
            }
        }
