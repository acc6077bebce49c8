"""Cached generation results.

One row per cache key (SHA-256 of the normalized request). Rows carry their
own expiry so stale entries can be skipped on read and purged in bulk.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.storage.models import Base, UUIDMixin


class WorkflowCache(Base, UUIDMixin):
    """A generated workflow keyed by its normalized request."""

    __tablename__ = "workflow_cache"
    __table_args__ = (
        Index("ix_workflow_cache_expires_at", "expires_at"),
        Index("ix_workflow_cache_platform", "platform"),
    )

    cache_key: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        doc="SHA-256 hex of normalized input, platform, complexity and provider",
    )
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    input_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        doc="SHA-256 hex of the normalized input alone",
    )
    workflow: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    entry_metadata: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
    )
    hits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    last_accessed: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<WorkflowCache(key={self.cache_key[:12]!r}, platform={self.platform!r}, hits={self.hits})>"
