from __future__ import annotations

import re
from dataclasses import dataclass

REACTION_TYPES: tuple[str, ...] = ("like", "love", "haha", "wow", "sad", "angry", "care")

_NUM = r"(\d+(?:[.,]\d+)*(?:\s?[KMB](?![a-z]))?)"

_SUFFIX_MULTIPLIERS = {"k": 1_000, "m": 1_000_000, "b": 1_000_000_000}

_COMMENTS_RE = re.compile(_NUM + r"\s*comments?\b", re.IGNORECASE)
_SHARES_RE = re.compile(_NUM + r"\s*(?:re)?shares?\b", re.IGNORECASE)
_REACTIONS_RES = (
    re.compile(r"\ball reactions:?\s*" + _NUM, re.IGNORECASE),
    re.compile(_NUM + r"\s*reactions?\b", re.IGNORECASE),
)

_BREAKDOWN_RES: dict[str, tuple[re.Pattern[str], ...]] = {
    kind: (
        re.compile(_NUM + r"\s+" + kind + r"s?\b", re.IGNORECASE),
        re.compile(r"\b" + kind + r"s?:\s*" + _NUM, re.IGNORECASE),
    )
    for kind in REACTION_TYPES
}


@dataclass(frozen=True)
class EngagementCounts:
    reactions: int | None = None
    comments: int | None = None
    shares: int | None = None


def parse_count_token(token: str) -> int | None:
    """
    Parse a compact count such as `87`, `1,234`, `1.2K` or `3M` into an integer.
    """
    text = (token or "").strip().replace(" ", "")
    if not text:
        return None

    multiplier = 1
    suffix = text[-1].casefold()
    if suffix in _SUFFIX_MULTIPLIERS:
        multiplier = _SUFFIX_MULTIPLIERS[suffix]
        text = text[:-1]
        # "1,2K" uses a decimal comma.
        if "," in text and "." not in text:
            text = text.replace(",", ".")

    text = text.replace(",", "")
    try:
        value = float(text)
    except ValueError:
        return None
    return int(round(value * multiplier))


def _first_count(patterns: tuple[re.Pattern[str], ...], text: str) -> int | None:
    for pattern in patterns:
        m = pattern.search(text)
        if m:
            value = parse_count_token(m.group(1))
            if value is not None:
                return value
    return None


def pick_counts(raw_text: str | None) -> EngagementCounts:
    """
    Extract the scalar engagement counts from a container's visible text.

    A metric without a parseable number is None, never zero.
    """
    text = raw_text or ""
    if not text.strip():
        return EngagementCounts()

    return EngagementCounts(
        reactions=_first_count(_REACTIONS_RES, text),
        comments=_first_count((_COMMENTS_RE,), text),
        shares=_first_count((_SHARES_RE,), text),
    )


def parse_reactions_breakdown(raw_text: str | None) -> dict[str, int]:
    """Return counts only for the reaction types detectable in the text."""
    text = raw_text or ""
    out: dict[str, int] = {}
    if not text.strip():
        return out

    for kind, patterns in _BREAKDOWN_RES.items():
        value = _first_count(patterns, text)
        if value is not None:
            out[kind] = value
    return out


def reactions_mapping(raw_text: str | None) -> dict[str, int] | None:
    if not raw_text:
        return None
    mapping = {kind: 0 for kind in REACTION_TYPES}
    mapping.update(parse_reactions_breakdown(raw_text))
    return mapping
