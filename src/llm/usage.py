"""LLM usage logging."""

import asyncio
import logging
from typing import Any

from src.llm.providers import Completion

logger = logging.getLogger(__name__)


def log_usage_async(
    completion: Completion,
    latency_ms: int,
    request_type: str = "generate",
    platform: str | None = None,
) -> None:
    """Log LLM token usage asynchronously (fire-and-forget).

    Writes a usage record via the LLMUsageRepository. Non-blocking: errors
    are logged but do not propagate.
    """
    usage = completion.usage
    if usage.total_tokens == 0:
        return

    from src.llm_pricing import calculate_cost

    cost_usd = calculate_cost(completion.model, usage.input_tokens, usage.output_tokens)

    try:
        # Intentionally not storing task reference - this is fire-and-forget logging
        asyncio.ensure_future(  # noqa: RUF006
            _write_usage_record(
                provider=completion.provider,
                model=completion.model,
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens,
                total_tokens=usage.total_tokens,
                cost_usd=cost_usd,
                latency_ms=latency_ms,
                platform=platform,
                request_type=request_type,
            )
        )
    except RuntimeError as e:
        # No running loop (sync caller)
        logger.debug("Failed to schedule LLM usage record: %s", e)


async def _write_usage_record(**kwargs: Any) -> None:
    """Write a usage record to the database. Failures are only logged."""
    try:
        from src.dal.llm_usage import LLMUsageRepository
        from src.storage import get_session

        async with get_session() as session:
            repo = LLMUsageRepository(session)
            await repo.record(**kwargs)
    except Exception as e:
        logger.debug("Failed to write usage record: %s", e)
