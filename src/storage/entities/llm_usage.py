"""LLM usage entity model.

Tracks individual LLM API calls for usage auditing and cost estimation.
Each row represents one LLM invocation with token counts and cost.
"""

from sqlalchemy import Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.storage.models import Base, TimestampMixin, UUIDMixin


class LLMUsage(Base, UUIDMixin, TimestampMixin):
    """Tracks individual LLM API calls for usage and cost auditing."""

    __tablename__ = "llm_usage"
    __table_args__ = (
        Index("ix_llm_usage_created_at", "created_at"),
        Index("ix_llm_usage_model", "model"),
    )

    provider: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="LLM provider (anthropic, openai)",
    )
    model: Mapped[str] = mapped_column(String(100), nullable=False)

    # Token counts
    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    cost_usd: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
        doc="Estimated cost in USD (null if pricing unknown)",
    )
    latency_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    platform: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
        doc="Target workflow platform (n8n, zapier, make)",
    )
    request_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="generate",
        doc="Type of request (generate, regenerate)",
    )

    def __repr__(self) -> str:
        return (
            f"<LLMUsage(model={self.model!r}, "
            f"tokens={self.total_tokens}, "
            f"cost=${self.cost_usd or 0:.4f})>"
        )
