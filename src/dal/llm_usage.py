"""Token and cost records for model calls.

One row per completion, written fire-and-forget by src.llm.usage and read
back by the ``flowforge usage`` command.
"""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.storage.entities.llm_usage import LLMUsage

_CALLS = func.count(LLMUsage.id)
_TOKENS = func.coalesce(func.sum(LLMUsage.total_tokens), 0)
_COST = func.coalesce(func.sum(LLMUsage.cost_usd), 0.0)


class LLMUsageRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        provider: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        total_tokens: int,
        cost_usd: float | None = None,
        latency_ms: int | None = None,
        platform: str | None = None,
        request_type: str = "generate",
    ) -> LLMUsage:
        """Insert and commit one usage row.

        Args:
            provider: completion provider ("anthropic", "openai")
            model: model that served the call
            cost_usd: None when the model has no known price
            platform: workflow platform the call was generating for
            request_type: "generate" for first passes, "regenerate" for repairs
        """
        usage = LLMUsage(
            id=str(uuid4()),
            provider=provider,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total_tokens,
            cost_usd=cost_usd,
            latency_ms=latency_ms,
            platform=platform,
            request_type=request_type,
        )
        self.session.add(usage)
        await self.session.commit()
        return usage

    async def get_summary(self, days: int = 30) -> dict[str, Any]:
        """Totals for the last ``days`` days, broken down by model and by request type."""
        since = datetime.now(UTC) - timedelta(days=days)

        totals = (
            await self.session.execute(
                select(
                    _CALLS.label("total_calls"),
                    func.coalesce(func.sum(LLMUsage.input_tokens), 0).label("total_input_tokens"),
                    func.coalesce(func.sum(LLMUsage.output_tokens), 0).label("total_output_tokens"),
                    _TOKENS.label("total_tokens"),
                    _COST.label("total_cost_usd"),
                ).where(LLMUsage.created_at >= since)
            )
        ).one()

        per_model = await self.session.execute(
            select(
                LLMUsage.model,
                LLMUsage.provider,
                _CALLS.label("calls"),
                _TOKENS.label("tokens"),
                _COST.label("cost_usd"),
            )
            .where(LLMUsage.created_at >= since)
            .group_by(LLMUsage.model, LLMUsage.provider)
            .order_by(_COST.desc())
        )

        per_type = await self.session.execute(
            select(LLMUsage.request_type, _CALLS.label("calls"), _COST.label("cost_usd"))
            .where(LLMUsage.created_at >= since)
            .group_by(LLMUsage.request_type)
        )

        return {
            "period_days": days,
            "total_calls": totals.total_calls,
            "total_input_tokens": totals.total_input_tokens,
            "total_output_tokens": totals.total_output_tokens,
            "total_tokens": totals.total_tokens,
            "total_cost_usd": round(float(totals.total_cost_usd), 4),
            "by_model": [
                {
                    "model": r.model,
                    "provider": r.provider,
                    "calls": r.calls,
                    "tokens": r.tokens,
                    "cost_usd": round(float(r.cost_usd), 4),
                }
                for r in per_model
            ],
            "by_request_type": {
                r.request_type: {"calls": r.calls, "cost_usd": round(float(r.cost_usd), 4)} for r in per_type
            },
        }
