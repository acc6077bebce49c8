"""Platform documentation chunks used for retrieval.

The ``embedding`` vector column and the ``search_similar_docs`` function are
created by the initial migration (pgvector); the ORM maps the text columns only.
"""

from typing import Any

from sqlalchemy import Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.storage.models import Base, TimestampMixin, UUIDMixin


class RagDocument(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "platform_docs"
    __table_args__ = (Index("ix_platform_docs_platform_doc_type", "platform", "doc_type"),)

    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    doc_type: Mapped[str] = mapped_column(String(30), nullable=False, default="general")
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    content: Mapped[str] = mapped_column(Text, nullable=False)
    doc_metadata: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<RagDocument(platform={self.platform!r}, title={self.title!r})>"
