"""Workflow cache data access layer."""

from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.storage.entities.workflow_cache import WorkflowCache


class WorkflowCacheRepository:
    """Repository for cached generation results."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_live(self, cache_key: str, now: datetime) -> WorkflowCache | None:
        """Fetch an unexpired entry and count the hit.

        Args:
            cache_key: Cache key
            now: Reference time for expiry

        Returns:
            The refreshed entry, or None when missing or expired
        """
        result = await self.session.execute(
            update(WorkflowCache)
            .where(WorkflowCache.cache_key == cache_key, WorkflowCache.expires_at > now)
            .values(hits=WorkflowCache.hits + 1, last_accessed=now)
            .returning(WorkflowCache)
        )
        entry = result.scalar_one_or_none()
        await self.session.commit()
        return entry

    async def upsert(
        self,
        cache_key: str,
        *,
        platform: str,
        input_hash: str,
        workflow: dict[str, Any],
        metadata: dict[str, Any],
        created_at: datetime,
        expires_at: datetime,
    ) -> None:
        """Insert or replace an entry; the last writer wins."""
        stmt = insert(WorkflowCache).values(
            cache_key=cache_key,
            platform=platform,
            input_hash=input_hash,
            workflow=workflow,
            entry_metadata=metadata,
            hits=0,
            created_at=created_at,
            last_accessed=created_at,
            expires_at=expires_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["cache_key"],
            set_={
                "platform": stmt.excluded.platform,
                "input_hash": stmt.excluded.input_hash,
                "workflow": stmt.excluded.workflow,
                "entry_metadata": stmt.excluded.entry_metadata,
                "hits": 0,
                "created_at": stmt.excluded.created_at,
                "last_accessed": stmt.excluded.last_accessed,
                "expires_at": stmt.excluded.expires_at,
            },
        )
        await self.session.execute(stmt)
        await self.session.commit()

    async def delete_expired(self, before: datetime) -> int:
        result = await self.session.execute(delete(WorkflowCache).where(WorkflowCache.expires_at < before))
        await self.session.commit()
        return result.rowcount or 0

    async def get_stats(self) -> dict[str, Any]:
        """Entry and hit totals plus a per-platform entry count."""
        totals = await self.session.execute(
            select(
                func.count(WorkflowCache.id).label("total_entries"),
                func.coalesce(func.sum(WorkflowCache.hits), 0).label("total_hits"),
            )
        )
        row = totals.one()
        platforms = await self.session.execute(
            select(
                WorkflowCache.platform,
                func.count(WorkflowCache.id).label("entries"),
                func.coalesce(func.sum(WorkflowCache.hits), 0).label("hits"),
            ).group_by(WorkflowCache.platform)
        )
        return {
            "total_entries": row.total_entries,
            "total_hits": int(row.total_hits),
            "platform_breakdown": {r.platform: {"count": r.entries, "hits": int(r.hits)} for r in platforms},
        }
