from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import threading
import time
from typing import Any, Protocol, runtime_checkable

__all__ = [
    "DEFAULT_CACHE_TTL_SECONDS",
    "InMemoryReadCache",
    "ReadCache",
    "user_cache_key",
]

DEFAULT_CACHE_TTL_SECONDS = 30.0

ACCOUNTS_NAMESPACE = "accounts"
TRANSACTIONS_NAMESPACE = "transactions"
CATEGORIES_NAMESPACE = "categories"


def user_cache_key(namespace: str, user_id: str) -> str:
    """Build the per-user key for a read namespace, e.g. ``accounts:u1``."""
    if not namespace or ":" in namespace:
        raise ValueError("namespace must be a non-empty string without ':'")
    return f"{namespace}:{user_id}"


@runtime_checkable
class ReadCache(Protocol):
    """
    Short-lived key/value store for list reads.

    Readers may see data at most one TTL stale. Every write path must
    invalidate the keys it affects before returning to its caller.
    """

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl: float | None = None) -> None: ...

    def invalidate(self, *keys: str) -> None: ...


@dataclass(slots=True)
class _Entry:
    value: Any
    expires_at: float


class InMemoryReadCache:
    """
    Process-local TTL cache guarded by a lock.

    - Expired entries are dropped lazily on read.
    - Concurrent writers are last-write-wins.
    - The clock is injectable so expiry can be tested without sleeping.
    """

    def __init__(
        self,
        *,
        default_ttl: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl_seconds = self._default_ttl if ttl is None else ttl
        if ttl_seconds <= 0:
            raise ValueError("ttl must be positive")
        with self._lock:
            self._entries[key] = _Entry(
                value=value, expires_at=self._clock() + ttl_seconds
            )

    def invalidate(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
