"""Backing stores for the result cache.

Stores raise :class:`CacheUnavailable` when the backend cannot be reached;
the cache layer above turns that into a miss.
"""

import copy
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import CacheUnavailable

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    key: str
    platform: str
    input_hash: str
    workflow: dict[str, Any]
    created_at: datetime
    expires_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)
    hits: int = 0
    last_accessed: datetime | None = None


class CacheStore(Protocol):
    async def read(self, key: str, now: datetime) -> CacheEntry | None:
        """Return the unexpired entry for key with its hit counted, or None."""
        ...

    async def upsert(self, entry: CacheEntry) -> None: ...

    async def delete_expired(self, before: datetime) -> int: ...

    async def stats(self) -> dict[str, Any]: ...


def _breakdown(entries: list[CacheEntry]) -> dict[str, dict[str, int]]:
    breakdown: dict[str, dict[str, int]] = {}
    for entry in entries:
        bucket = breakdown.setdefault(entry.platform, {"count": 0, "hits": 0})
        bucket["count"] += 1
        bucket["hits"] += entry.hits
    return breakdown


class InMemoryCacheStore:
    """Process-local store for tests and single-process use."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    async def read(self, key: str, now: datetime) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None or entry.expires_at <= now:
            return None
        entry.hits += 1
        entry.last_accessed = now
        return copy.deepcopy(entry)

    async def upsert(self, entry: CacheEntry) -> None:
        self._entries[entry.key] = replace(
            copy.deepcopy(entry), hits=0, last_accessed=entry.created_at
        )

    async def delete_expired(self, before: datetime) -> int:
        expired = [k for k, e in self._entries.items() if e.expires_at < before]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def stats(self) -> dict[str, Any]:
        entries = list(self._entries.values())
        return {
            "total_entries": len(entries),
            "total_hits": sum(e.hits for e in entries),
            "platform_breakdown": _breakdown(entries),
        }


class SqlCacheStore:
    """Store backed by the ``workflow_cache`` table."""

    def __init__(self, session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]] | None = None):
        if session_factory is None:
            from src.storage import get_session

            session_factory = get_session
        self._session_factory = session_factory

    async def read(self, key: str, now: datetime) -> CacheEntry | None:
        from src.dal.workflow_cache import WorkflowCacheRepository

        try:
            async with self._session_factory() as session:
                row = await WorkflowCacheRepository(session).get_live(key, now)
        except (SQLAlchemyError, OSError) as e:
            raise CacheUnavailable(f"Cache read failed: {e}") from e
        if row is None:
            return None
        return CacheEntry(
            key=row.cache_key,
            platform=row.platform,
            input_hash=row.input_hash,
            workflow=row.workflow,
            metadata=row.entry_metadata or {},
            hits=row.hits,
            created_at=row.created_at,
            last_accessed=row.last_accessed,
            expires_at=row.expires_at,
        )

    async def upsert(self, entry: CacheEntry) -> None:
        from src.dal.workflow_cache import WorkflowCacheRepository

        try:
            async with self._session_factory() as session:
                await WorkflowCacheRepository(session).upsert(
                    entry.key,
                    platform=entry.platform,
                    input_hash=entry.input_hash,
                    workflow=entry.workflow,
                    metadata=entry.metadata,
                    created_at=entry.created_at,
                    expires_at=entry.expires_at,
                )
        except (SQLAlchemyError, OSError) as e:
            raise CacheUnavailable(f"Cache write failed: {e}") from e

    async def delete_expired(self, before: datetime) -> int:
        from src.dal.workflow_cache import WorkflowCacheRepository

        try:
            async with self._session_factory() as session:
                return await WorkflowCacheRepository(session).delete_expired(before)
        except (SQLAlchemyError, OSError) as e:
            raise CacheUnavailable(f"Cache cleanup failed: {e}") from e

    async def stats(self) -> dict[str, Any]:
        from src.dal.workflow_cache import WorkflowCacheRepository

        try:
            async with self._session_factory() as session:
                return await WorkflowCacheRepository(session).get_stats()
        except (SQLAlchemyError, OSError) as e:
            raise CacheUnavailable(f"Cache stats failed: {e}") from e
