from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InMemoryEntry:
    value: str
    expires_at: float


class InMemoryCacheBackend:
    """Dict-backed cache store with lazy expiry; ``sweep`` evicts expired entries in bulk.

    Implements the ``CacheBackend`` protocol. Every operation completes without
    awaiting, so each one is atomic with respect to other coroutines.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, InMemoryEntry] = {}
        self._hashes: dict[str, dict[str, int]] = {}
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        return entry.value

    async def set_ex(self, key: str, ttl_seconds: int, value: str) -> None:
        self._entries[key] = InMemoryEntry(value=value, expires_at=self._clock() + ttl_seconds)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._entries.pop(key, None) is not None:
                removed += 1
            elif self._hashes.pop(key, None) is not None:
                removed += 1
        return removed

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        counters = self._hashes.setdefault(key, {})
        counters[field] = counters.get(field, 0) + amount
        return counters[field]

    async def hgetall(self, key: str) -> dict[str, str]:
        return {field: str(value) for field, value in self._hashes.get(key, {}).items()}

    async def keys(self, prefix: str) -> list[str]:
        return [key for key in self._entries if key.startswith(prefix)]

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._entries.clear()
        self._hashes.clear()

    def sweep(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

