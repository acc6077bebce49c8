"""LLM model pricing and token estimation.

Maps model names to per-token costs (USD per 1M tokens).
Prices are approximate and should be periodically updated.

Configurable via LLM_PRICING_FILE env var pointing to a JSON override file.
"""

import json
import logging
import math
import os
from pathlib import Path
from typing import TypedDict

logger = logging.getLogger(__name__)


class ModelPricing(TypedDict):
    """Pricing for a single model."""

    input_per_1m: float  # USD per 1M input tokens
    output_per_1m: float  # USD per 1M output tokens


# Model used for cost estimates when the requested model has no entry
DEFAULT_COST_MODEL = "claude-3-7-sonnet-20250219"

# Characters per token for the length-based approximation
CHARS_PER_TOKEN = 4

DEFAULT_PRICING: dict[str, ModelPricing] = {
    # Anthropic
    "claude-3-7-sonnet-20250219": {"input_per_1m": 3.00, "output_per_1m": 15.00},
    "claude-3-5-sonnet-20241022": {"input_per_1m": 3.00, "output_per_1m": 15.00},
    "claude-3-5-haiku-20241022": {"input_per_1m": 0.80, "output_per_1m": 4.00},
    "claude-3-haiku-20240307": {"input_per_1m": 0.25, "output_per_1m": 1.25},
    "claude-3-opus-20240229": {"input_per_1m": 15.00, "output_per_1m": 75.00},
    "claude-sonnet-4": {"input_per_1m": 3.00, "output_per_1m": 15.00},
    # OpenAI
    "gpt-4o": {"input_per_1m": 2.50, "output_per_1m": 10.00},
    "gpt-4o-mini": {"input_per_1m": 0.15, "output_per_1m": 0.60},
    "gpt-4.1": {"input_per_1m": 2.00, "output_per_1m": 8.00},
    "gpt-4.1-mini": {"input_per_1m": 0.40, "output_per_1m": 1.60},
    "gpt-4-turbo": {"input_per_1m": 10.00, "output_per_1m": 30.00},
}

# Cached pricing table (loaded once)
_pricing_cache: dict[str, ModelPricing] | None = None


def _load_pricing() -> dict[str, ModelPricing]:
    """Load pricing table, merging defaults with optional JSON override."""
    global _pricing_cache
    if _pricing_cache is not None:
        return _pricing_cache

    pricing = dict(DEFAULT_PRICING)

    override_path = os.environ.get("LLM_PRICING_FILE")
    if override_path:
        path = Path(override_path)
        if path.is_file():
            try:
                with path.open() as f:
                    overrides = json.load(f)
                pricing.update(overrides)
                logger.info("Loaded %d pricing overrides from %s", len(overrides), override_path)
            except (OSError, ValueError) as e:
                logger.warning("Failed to load pricing overrides: %s", e)

    _pricing_cache = pricing
    return pricing


def get_model_pricing(model: str) -> ModelPricing | None:
    """Get pricing for a specific model.

    Args:
        model: Model name (e.g. "claude-3-7-sonnet-20250219", "gpt-4o")

    Returns:
        ModelPricing dict with input_per_1m and output_per_1m, or None if unknown
    """
    return _load_pricing().get(model)


def calculate_cost(
    model: str,
    input_tokens: int,
    output_tokens: int,
    *,
    fallback_model: str | None = None,
) -> float | None:
    """Calculate estimated cost for an LLM call.

    Args:
        model: Model name
        input_tokens: Number of input tokens
        output_tokens: Number of output tokens
        fallback_model: Model whose pricing applies when ``model`` is unknown

    Returns:
        Cost in USD, or None if neither model has known pricing
    """
    pricing = get_model_pricing(model)
    if pricing is None and fallback_model:
        pricing = get_model_pricing(fallback_model)
    if pricing is None:
        return None

    input_cost = (input_tokens / 1_000_000) * pricing["input_per_1m"]
    output_cost = (output_tokens / 1_000_000) * pricing["output_per_1m"]
    return round(input_cost + output_cost, 6)


def estimate_tokens(text: str | None) -> int:
    """Approximate a token count from text length (ceil(len / 4))."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def list_known_models() -> list[str]:
    """List all models with known pricing."""
    return sorted(_load_pricing().keys())
