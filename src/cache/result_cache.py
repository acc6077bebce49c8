"""Result cache for generated workflows.

Reads and writes go through a :class:`CacheStore`. A store that cannot be
reached never fails a request: reads become misses, writes are dropped, and a
circuit breaker stops touching the store until its cooldown has passed.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field

from src.cache.stores import CacheEntry, CacheStore, InMemoryCacheStore, SqlCacheStore
from src.exceptions import CacheUnavailable, ConfigurationError
from src.llm.circuit_breaker import CircuitBreaker
from src.settings import Settings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600


class CachedResult(BaseModel):
    workflow: dict[str, Any]
    metadata: dict[str, Any] = Field(default_factory=dict)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ResultCache:
    def __init__(
        self,
        store: CacheStore,
        *,
        default_ttl_seconds: int = DEFAULT_TTL_SECONDS,
        circuit_breaker: CircuitBreaker | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=1, cooldown_seconds=60, name="result-cache"
        )

    @property
    def available(self) -> bool:
        return self._circuit_breaker.can_attempt()

    def _degrade(self, operation: str, error: CacheUnavailable) -> None:
        self._circuit_breaker.record_failure()
        logger.warning("Cache %s unavailable, continuing without cache: %s", operation, error)

    async def get(self, key: str) -> CachedResult | None:
        if not self.available:
            return None
        try:
            entry = await self.store.read(key, self._clock())
        except CacheUnavailable as e:
            self._degrade("read", e)
            return None
        self._circuit_breaker.record_success()
        if entry is None:
            return None

        logger.info("Cache hit %s (%d hits)", key[:12], entry.hits)
        return CachedResult(
            workflow=entry.workflow,
            metadata={
                **entry.metadata,
                "cached_at": entry.created_at.isoformat(),
                "hits": entry.hits,
            },
        )

    async def set(
        self,
        key: str,
        value: CachedResult,
        ttl_seconds: int | None = None,
        *,
        platform: str,
        input_hash: str,
    ) -> None:
        """Store value under key; a later write for the same key replaces it."""
        if not self.available:
            return
        if ttl_seconds is None:
            ttl_seconds = self.default_ttl_seconds
        now = self._clock()
        entry = CacheEntry(
            key=key,
            platform=platform,
            input_hash=input_hash,
            workflow=value.workflow,
            metadata=value.metadata,
            created_at=now,
            last_accessed=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )
        try:
            await self.store.upsert(entry)
        except CacheUnavailable as e:
            self._degrade("write", e)
            return
        self._circuit_breaker.record_success()
        logger.debug("Cached %s for %ss", key[:12], ttl_seconds)

    async def cleanup(self) -> int:
        """Delete expired entries; returns the number removed."""
        if not self.available:
            return 0
        try:
            removed = await self.store.delete_expired(self._clock())
        except CacheUnavailable as e:
            self._degrade("cleanup", e)
            return 0
        logger.info("Removed %d expired cache entries", removed)
        return removed

    async def stats(self) -> dict[str, Any]:
        empty = {"total_entries": 0, "total_hits": 0, "avg_hits_per_entry": 0.0, "platform_breakdown": {}}
        if not self.available:
            return {**empty, "available": False}
        try:
            raw = await self.store.stats()
        except CacheUnavailable as e:
            self._degrade("stats", e)
            return {**empty, "available": False}
        total = raw.get("total_entries", 0)
        hits = raw.get("total_hits", 0)
        return {
            "total_entries": total,
            "total_hits": hits,
            "avg_hits_per_entry": hits / total if total else 0.0,
            "platform_breakdown": raw.get("platform_breakdown", {}),
            "available": True,
        }


def build_result_cache(settings: Settings | None = None) -> ResultCache | None:
    """ResultCache for the configured backend, or None when caching is off."""
    settings = settings or get_settings()
    backend = settings.cache_backend
    if backend == "none":
        return None
    if backend == "memory":
        store: CacheStore = InMemoryCacheStore()
    elif backend == "database":
        store = SqlCacheStore()
    else:
        raise ConfigurationError(f"Unknown cache backend: {backend}")
    return ResultCache(store, default_ttl_seconds=settings.cache_ttl_seconds)
