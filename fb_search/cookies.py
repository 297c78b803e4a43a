from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence
from urllib.parse import unquote

CANONICAL_COOKIE_DOMAIN = ".facebook.com"

SESSION_IDENTITY_COOKIE = "c_user"
SIGNED_SESSION_COOKIE = "xs"

_PERCENT_ENCODED_RE = re.compile(r"%[0-9A-Fa-f]{2}")
_AUTH_TOKEN_NAME_RE = re.compile(r"^(?:xs|fr|datr|sb)$|sess|token|auth", re.IGNORECASE)
_EPOCH_SEGMENT_RE = re.compile(r"(?<!\d)(1\d{9})(?!\d)")

_SAME_SITE_ALIASES = {
    "strict": "Strict",
    "lax": "Lax",
    "none": "None",
    "no_restriction": "None",
    "norestriction": "None",
    "unspecified": "Lax",
}


@dataclass(frozen=True)
class NormalizedCookie:
    name: str
    value: str
    domain: str = CANONICAL_COOKIE_DOMAIN
    path: str = "/"
    expires: float | None = None
    http_only: bool = False
    secure: bool = True
    same_site: str = "Lax"

    def to_browser(self) -> dict[str, Any]:
        """Render the descriptor accepted by a browser context's add_cookies()."""
        out: dict[str, Any] = {
            "name": self.name,
            "value": self.value,
            "domain": self.domain,
            "path": self.path,
            "httpOnly": self.http_only,
            "secure": self.secure,
            "sameSite": self.same_site,
        }
        if self.expires is not None:
            out["expires"] = self.expires
        return out


@dataclass(frozen=True)
class CookieParseResult:
    raw: list[dict[str, Any]]
    source: str
    warnings: tuple[str, ...] = ()


def decode_if_encoded(value: Any) -> str:
    text = "" if value is None else str(value)
    if _PERCENT_ENCODED_RE.search(text):
        return unquote(text)
    return text


def normalize_same_site(value: Any) -> str:
    key = str(value or "").strip().casefold().replace("-", "_")
    return _SAME_SITE_ALIASES.get(key, "Lax")


def is_auth_token_name(name: str) -> bool:
    return bool(_AUTH_TOKEN_NAME_RE.search(name or ""))


def parse_cookie_header(header: str) -> list[dict[str, Any]]:
    """Split a `name=value; name2=value2` header into name/value mappings."""
    out: list[dict[str, Any]] = []
    for part in (header or "").split(";"):
        part = part.strip()
        if not part or "=" not in part:
            continue
        name, value = part.split("=", 1)
        if not name.strip():
            continue
        out.append({"name": name.strip(), "value": value.strip()})
    return out


def _array_items(values: Iterable[Any]) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for v in values:
        if isinstance(v, Mapping):
            out.append(dict(v))
        elif isinstance(v, str):
            out.extend(parse_cookie_header(v))
    return out


def _bag_items(bag: Mapping[Any, Any]) -> list[dict[str, Any]]:
    """A single cookie object, or a plain `{name: value}` bag."""
    if "name" in bag:
        return [dict(bag)]
    return [
        {"name": str(k), "value": str(v)}
        for k, v in bag.items()
        if v is not None and not isinstance(v, (Mapping, list, tuple))
    ]


def _parse_cookie_string(text: str) -> tuple[list[dict[str, Any]], str, list[str]]:
    warnings: list[str] = []
    try:
        parsed = json.loads(text)
    except ValueError as e:
        warnings.append(f"cookie string is not JSON ({e}); using header parser")
        return parse_cookie_header(text), "header", warnings

    if isinstance(parsed, list):
        return _array_items(parsed), "json", warnings

    warnings.append("cookie JSON is not an array; using header parser")
    return parse_cookie_header(text), "header", warnings


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, Mapping)):
        return not value
    return False


def parse_cookie_input(cookies: Any = None, cookies_json: Any = None) -> CookieParseResult:
    """
    Resolve raw cookie input into a list of cookie mappings.

    The first non-empty field wins, `cookies` before `cookies_json`. Arrays and
    key/value bags are taken as they are; strings are parsed as a JSON array and
    then as a raw cookie header. Array entries may be cookie objects or
    `name=value` strings. Input of any other shape is skipped with a warning.
    Never raises.
    """
    warnings: list[str] = []
    for field, candidate in (("cookies", cookies), ("cookies_json", cookies_json)):
        if _is_empty(candidate):
            continue
        if isinstance(candidate, (list, tuple)):
            return CookieParseResult(raw=_array_items(candidate), source="array", warnings=tuple(warnings))
        if isinstance(candidate, Mapping):
            return CookieParseResult(raw=_bag_items(candidate), source="bag", warnings=tuple(warnings))
        if isinstance(candidate, str):
            raw, source, parse_warnings = _parse_cookie_string(candidate.strip())
            return CookieParseResult(raw=raw, source=source, warnings=tuple(warnings + parse_warnings))
        warnings.append(f"{field} has unsupported type {type(candidate).__name__}; ignored")

    return CookieParseResult(raw=[], source="none", warnings=tuple(warnings))


def _coerce_expires(item: Mapping[str, Any]) -> float | None:
    for key in ("expires", "expirationDate", "expiry"):
        value = item.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)) and value > 0:
            return float(value)
    return None


def normalize_cookie(item: Mapping[str, Any]) -> NormalizedCookie | None:
    name = str(item.get("name") or "").strip()
    value = decode_if_encoded(item.get("value")).strip()
    if not name or not value:
        return None

    same_site = normalize_same_site(item.get("sameSite", item.get("same_site")))

    http_only_raw = item.get("httpOnly", item.get("http_only"))
    if isinstance(http_only_raw, bool):
        http_only = http_only_raw
    else:
        http_only = is_auth_token_name(name)

    secure = item.get("secure") is not False
    if same_site == "None":
        secure = True

    path = str(item.get("path") or "").strip() or "/"

    return NormalizedCookie(
        name=name,
        value=value,
        domain=CANONICAL_COOKIE_DOMAIN,
        path=path,
        expires=_coerce_expires(item),
        http_only=http_only,
        secure=secure,
        same_site=same_site,
    )


def normalize_cookies(raw: Iterable[Mapping[str, Any]]) -> list[NormalizedCookie]:
    out: list[NormalizedCookie] = []
    for item in raw:
        cookie = normalize_cookie(item)
        if cookie is not None:
            out.append(cookie)
    return out


def _embedded_epochs(value: str) -> list[int]:
    return [int(m) for m in _EPOCH_SEGMENT_RE.findall(decode_if_encoded(value))]


def audit_session_cookies(
    visible: Sequence[Mapping[str, Any]],
    *,
    now: float | None = None,
) -> list[str]:
    """
    Inspect cookies visible to the target host after injection.

    Returns human-readable warnings; an empty list means the session cookies look usable.
    """
    current = time.time() if now is None else float(now)
    by_name = {str(c.get("name") or ""): c for c in visible}

    warnings: list[str] = []
    missing = [n for n in (SESSION_IDENTITY_COOKIE, SIGNED_SESSION_COOKIE) if n not in by_name]
    if missing:
        warnings.append(
            "session cookies missing after injection: "
            + ", ".join(missing)
            + "; authentication will likely fail"
        )

    for name in (SESSION_IDENTITY_COOKIE, SIGNED_SESSION_COOKIE):
        cookie = by_name.get(name)
        if cookie is None:
            continue

        expires = cookie.get("expires")
        if isinstance(expires, (int, float)) and 0 < expires < current:
            warnings.append(f"cookie {name} expired at {int(expires)}")
            continue

        # c_user is a bare numeric id; only the signed token carries timestamps.
        if name != SIGNED_SESSION_COOKIE:
            continue
        stale = [e for e in _embedded_epochs(str(cookie.get("value") or "")) if e < current]
        if stale:
            warnings.append(f"cookie {name} carries a past timestamp segment ({max(stale)})")

    return warnings
