import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from extractly.core.metrics import cache_lookups_total

logger = logging.getLogger(__name__)

KEY_SEPARATOR = "::"


def cache_key(route: str | None, target: str | None, expression: str | None) -> str:
    """Join the non-empty key parts; absent parts leave no empty segment."""
    return KEY_SEPARATOR.join(part for part in (route, target, expression) if part)


def content_hash(body: str | bytes) -> str:
    """SHA256 of submitted markup, used in place of a URL for raw-HTML keys."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return hashlib.sha256(body).hexdigest()


@dataclass
class CacheEntry:
    payload: Any
    expires_at: float


class TTLCache:
    """In-process key -> payload store with lazy expiry.

    Entries are only purged when a lookup finds them stale; there is no
    capacity bound. Not thread-safe: it relies on every mutation happening
    between two await points of a single event loop.
    """

    def __init__(
        self,
        default_ttl: float = 60,
        clock: Callable[[], float] = time.monotonic,
        enabled: bool = True,
    ):
        self.default_ttl = default_ttl
        self.enabled = enabled
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Any | None:
        if not self.enabled:
            return None

        entry = self._entries.get(key)
        if entry is None:
            cache_lookups_total.labels(result="miss").inc()
            return None

        if self._clock() >= entry.expires_at:
            del self._entries[key]
            cache_lookups_total.labels(result="expired").inc()
            logger.debug(f"Cache entry expired for {key}")
            return None

        cache_lookups_total.labels(result="hit").inc()
        return entry.payload

    def set(self, key: str, payload: Any, ttl: float | None = None) -> None:
        if not self.enabled:
            return
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(payload=payload, expires_at=self._clock() + ttl)
        logger.debug(f"Cached {key} (TTL={ttl}s)")

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
