"""Content-addressed store for finished analyses.

Entries live in a primary backend (Redis) when one is configured and in an
in-process map otherwise. The first primary failure trips a flag that routes
all traffic to the in-memory backend until a background probe sees the
primary answer again.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

from pydantic import ValidationError

from detective_d.cache.memory import InMemoryCacheBackend
from detective_d.config import Settings
from detective_d.core.ports.cache import CacheBackend
from detective_d.models import CacheEntry, CacheKey, FileType

logger = logging.getLogger(__name__)

T = TypeVar("T")

CACHE_PREFIX = "detective-d:cache:"
STATS_KEY = "detective-d:cache:stats"
STAT_FIELDS = ("hits", "misses", "invalidations", "total_requests")


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]


def make_cache_key(content: str, file_type: FileType, max_errors: int) -> tuple[str, CacheKey]:
    key = CacheKey(content_hash=content_hash(content), max_errors=max_errors, file_type=file_type)
    return f"{CACHE_PREFIX}{file_type}:{key.content_hash}:{max_errors}", key


@dataclass(frozen=True)
class CacheStats:
    hits: int = 0
    misses: int = 0
    invalidations: int = 0
    total_requests: int = 0

    @property
    def hit_rate(self) -> float:
        return self.hits / self.total_requests if self.total_requests else 0.0


class ResultCache:
    def __init__(
        self,
        fallback: InMemoryCacheBackend | None = None,
        primary: CacheBackend | None = None,
        *,
        ttl_seconds: int = 86400,
        model_version: str,
        rag_version: str,
        enabled: bool = True,
        sweep_interval: float = 300.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._fallback = fallback or InMemoryCacheBackend()
        self._primary = primary
        self._primary_available = primary is not None
        self.ttl_seconds = ttl_seconds
        self._versions = {"model": model_version, "rag": rag_version}
        self.enabled = enabled
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> ResultCache:
        primary: CacheBackend | None = None
        if settings.redis_url:
            from detective_d.cache.redis_backend import RedisCacheBackend

            primary = RedisCacheBackend.from_url(settings.redis_url)
        return cls(
            InMemoryCacheBackend(),
            primary,
            ttl_seconds=settings.cache_ttl_seconds,
            model_version=settings.model_version,
            rag_version=settings.rag_version,
            enabled=settings.cache_enabled,
            sweep_interval=settings.sweep_interval_seconds,
        )

    @property
    def primary_configured(self) -> bool:
        return self._primary is not None

    @property
    def primary_available(self) -> bool:
        return self._primary is not None and self._primary_available

    @property
    def backend_name(self) -> str:
        return "redis" if self.primary_available else "memory"

    @property
    def model_version(self) -> str:
        return self._versions["model"]

    @property
    def rag_version(self) -> str:
        return self._versions["rag"]

    def versions(self) -> dict[str, str]:
        return dict(self._versions)

    # --- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._maintain())
        logger.info("Result cache started (backend=%s, ttl=%ds)", self.backend_name, self.ttl_seconds)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        if self._primary is not None:
            await self._primary.close()
        logger.info("Result cache stopped")

    async def _maintain(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self._fallback.sweep()
            if self._primary is not None and not self._primary_available:
                await self.ping()

    async def ping(self) -> bool:
        """Probe the primary backend and update the availability flag."""
        if self._primary is None:
            return True
        alive = await self._primary.ping()
        if alive and not self._primary_available:
            logger.info("Primary cache backend reachable again")
        self._primary_available = alive
        return alive

    # --- backend routing ---------------------------------------------------

    async def _call(self, operation: Callable[[CacheBackend], Awaitable[T]]) -> T:
        if self._primary is not None and self._primary_available:
            try:
                return await operation(self._primary)
            except Exception:
                self._primary_available = False
                logger.warning("Primary cache backend failed; using in-memory cache", exc_info=True)
        return await operation(self._fallback)

    async def _count(self, field: str) -> None:
        await self._call(lambda backend: backend.hincrby(STATS_KEY, field, 1))

    # --- entries -----------------------------------------------------------

    async def lookup(self, key: str) -> CacheEntry | None:
        """Return the live entry for ``key``; stale or mismatched entries count as misses."""
        if not self.enabled:
            return None
        await self._count("total_requests")
        raw = await self._call(lambda backend: backend.get(key))
        if raw is None:
            await self._count("misses")
            logger.debug("Cache miss for %s", key)
            return None

        try:
            entry = CacheEntry.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable cache entry %s", key)
            await self._call(lambda backend: backend.delete(key))
            await self._count("misses")
            return None

        if entry.created_at + entry.ttl_seconds <= self._clock():
            await self._call(lambda backend: backend.delete(key))
            await self._count("misses")
            return None

        if entry.model_version != self.model_version or entry.rag_version != self.rag_version:
            logger.info(
                "Invalidating cache entry %s (model %s -> %s, rag %s -> %s)",
                key,
                entry.model_version,
                self.model_version,
                entry.rag_version,
                self.rag_version,
            )
            await self._call(lambda backend: backend.delete(key))
            await self._count("invalidations")
            await self._count("misses")
            return None

        await self._count("hits")
        logger.info("Cache hit for %s", key)
        return entry

    async def store(
        self, key: str, cache_key: CacheKey, response: dict[str, Any], *, request_id: str, model: str
    ) -> None:
        if not self.enabled:
            return
        entry = CacheEntry(
            request_id=request_id,
            cache_key=cache_key,
            response=response,
            model=model,
            model_version=self.model_version,
            rag_version=self.rag_version,
            created_at=self._clock(),
            ttl_seconds=self.ttl_seconds,
        )
        await self._call(lambda backend: backend.set_ex(key, self.ttl_seconds, entry.model_dump_json()))
        logger.debug("Cached analysis under %s", key)

    # --- administration ----------------------------------------------------

    async def stats(self) -> CacheStats:
        raw = await self._call(lambda backend: backend.hgetall(STATS_KEY))
        return CacheStats(**{field: int(raw.get(field, 0)) for field in STAT_FIELDS})

    async def reset_stats(self) -> None:
        await self._call(lambda backend: backend.delete(STATS_KEY))

    async def _invalidate_prefix(self, prefix: str) -> int:
        keys = [key for key in await self._call(lambda backend: backend.keys(prefix)) if key != STATS_KEY]
        if not keys:
            return 0
        return await self._call(lambda backend: backend.delete(*keys))

    async def invalidate_all(self) -> int:
        removed = await self._invalidate_prefix(CACHE_PREFIX)
        logger.info("Invalidated %d cache entries", removed)
        return removed

    async def invalidate_file_type(self, file_type: FileType) -> int:
        removed = await self._invalidate_prefix(f"{CACHE_PREFIX}{file_type}:")
        logger.info("Invalidated %d %s cache entries", removed, file_type)
        return removed

    def update_version(self, kind: Literal["model", "rag"], version: str) -> None:
        """Change the running version; entries written under the old one become misses."""
        if kind not in self._versions:
            raise ValueError(f"Unknown version kind: {kind}")
        logger.info("Cache %s version %s -> %s", kind, self._versions[kind], version)
        self._versions[kind] = version
