from __future__ import annotations

import enum
import json
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from .errors import StorageError


class SessionState(str, enum.Enum):
    FRESH = "fresh"
    AUTH_PENDING = "auth_pending"
    AUTHENTICATED = "authenticated"
    BLOCKED = "blocked"
    RETIRED = "retired"


_ALLOWED: dict[SessionState, frozenset[SessionState]] = {
    SessionState.FRESH: frozenset(
        {SessionState.AUTH_PENDING, SessionState.AUTHENTICATED, SessionState.BLOCKED, SessionState.RETIRED}
    ),
    SessionState.AUTH_PENDING: frozenset(
        {SessionState.AUTHENTICATED, SessionState.BLOCKED, SessionState.RETIRED}
    ),
    SessionState.AUTHENTICATED: frozenset({SessionState.BLOCKED, SessionState.RETIRED}),
    SessionState.BLOCKED: frozenset({SessionState.RETIRED}),
    SessionState.RETIRED: frozenset(),
}


@dataclass
class SessionLifecycle:
    """One-way state machine of a network identity."""

    state: SessionState = SessionState.FRESH
    reason: str | None = None

    def can_transition(self, target: SessionState) -> bool:
        return target == self.state or target in _ALLOWED[self.state]

    def transition(self, target: SessionState, *, reason: str | None = None) -> SessionState:
        if target == self.state:
            return self.state
        if target not in _ALLOWED[self.state]:
            raise ValueError(f"invalid session transition {self.state.value} -> {target.value}")
        self.state = target
        if reason:
            self.reason = reason
        return self.state

    @property
    def usable(self) -> bool:
        return self.state not in (SessionState.BLOCKED, SessionState.RETIRED)


@dataclass
class Identity:
    """A network identity: proxy, persisted cookies and its lifecycle."""

    id: str
    proxy_url: str | None = None
    cookies_applied: bool = False
    cookie_jar: list[dict[str, Any]] = field(default_factory=list)
    usage_count: int = 0
    lifecycle: SessionLifecycle = field(default_factory=SessionLifecycle)

    def mark_cookies_applied(self) -> bool:
        """Return False when cookies were already applied to this identity."""
        if self.cookies_applied:
            return False
        self.cookies_applied = True
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "proxy_url": self.proxy_url,
            "cookies_applied": self.cookies_applied,
            "cookie_jar": list(self.cookie_jar),
            "usage_count": self.usage_count,
            "state": self.lifecycle.state.value,
            "reason": self.lifecycle.reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Identity":
        state = SessionState(str(data.get("state") or SessionState.FRESH.value))
        jar = data.get("cookie_jar")
        return cls(
            id=str(data["id"]),
            proxy_url=data.get("proxy_url") or None,
            cookies_applied=bool(data.get("cookies_applied")),
            cookie_jar=[dict(c) for c in jar] if isinstance(jar, list) else [],
            usage_count=int(data.get("usage_count") or 0),
            lifecycle=SessionLifecycle(state=state, reason=data.get("reason")),
        )


def proxy_urls_from_input(proxy: Any) -> list[str]:
    """
    Read proxy URLs from the opaque `proxy` input.

    Accepts a URL string, a list of URLs, or a mapping with `proxyUrls`.
    """
    if proxy is None:
        return []
    if isinstance(proxy, str):
        values: Iterable[Any] = [proxy]
    elif isinstance(proxy, dict):
        raw = proxy.get("proxyUrls") or proxy.get("proxy_urls") or []
        values = raw if isinstance(raw, list) else [raw]
    elif isinstance(proxy, (list, tuple)):
        values = proxy
    else:
        return []

    out: list[str] = []
    for v in values:
        url = str(v or "").strip()
        if url and url not in out:
            out.append(url)
    return out


class IdentityPool:
    """
    Rotating pool of identities, bounded by max_pool_size.

    Retired identities leave the pool; a replacement is created on the next acquire().
    """

    def __init__(
        self,
        *,
        max_pool_size: int = 20,
        proxy_urls: Iterable[str] = (),
        state_path: str | Path | None = None,
    ) -> None:
        if max_pool_size <= 0:
            raise ValueError("max_pool_size must be positive")
        self._max = int(max_pool_size)
        self._proxies = list(proxy_urls)
        self._state_path = Path(state_path) if state_path is not None else None
        self._identities: list[Identity] = []
        self._created = 0
        self._cursor = 0
        self.retired: list[Identity] = []

    def __len__(self) -> int:
        return len(self._identities)

    @property
    def identities(self) -> list[Identity]:
        return list(self._identities)

    def _next_proxy(self) -> str | None:
        if not self._proxies:
            return None
        return self._proxies[self._created % len(self._proxies)]

    def _create(self) -> Identity:
        identity = Identity(id=f"session_{uuid.uuid4().hex[:10]}", proxy_url=self._next_proxy())
        self._created += 1
        self._identities.append(identity)
        return identity

    def acquire(self) -> Identity:
        if len(self._identities) < self._max:
            identity = self._create()
        else:
            identity = self._identities[self._cursor % len(self._identities)]
            self._cursor += 1
        identity.usage_count += 1
        return identity

    def retire(self, identity: Identity, *, reason: str | None = None) -> None:
        identity.lifecycle.transition(SessionState.RETIRED, reason=reason)
        if identity in self._identities:
            self._identities.remove(identity)
        self.retired.append(identity)

    def load(self) -> int:
        """Restore usable identities from the state file; returns how many were loaded."""
        if self._state_path is None or not self._state_path.exists():
            return 0
        try:
            data = json.loads(self._state_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read session pool state: {self._state_path}: {e}") from e

        items = data.get("identities") if isinstance(data, dict) else None
        if not isinstance(items, list):
            return 0

        loaded = 0
        for item in items:
            if not isinstance(item, dict) or "id" not in item:
                continue
            identity = Identity.from_dict(item)
            if not identity.lifecycle.usable or len(self._identities) >= self._max:
                continue
            self._identities.append(identity)
            loaded += 1
        self._created += loaded
        return loaded

    def persist(self) -> None:
        if self._state_path is None:
            return
        payload = {"identities": [i.to_dict() for i in self._identities]}
        try:
            self._state_path.parent.mkdir(parents=True, exist_ok=True)
            self._state_path.write_text(
                json.dumps(payload, ensure_ascii=False, indent=2, default=str),
                encoding="utf-8",
            )
        except OSError as e:
            raise StorageError(f"Failed to write session pool state: {self._state_path}: {e}") from e
