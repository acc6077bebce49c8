"""Generation client with bounded retry, backoff and circuit breaking."""

import asyncio
import logging
import time

from src.exceptions import ProviderError, RateLimitError
from src.llm.circuit_breaker import _get_circuit_breaker
from src.llm.providers import Completion, CompletionProvider
from src.llm.usage import log_usage_async
from src.llm_pricing import DEFAULT_COST_MODEL, calculate_cost, estimate_tokens
from src.settings import get_settings

logger = logging.getLogger(__name__)

RATE_LIMIT_SUGGESTIONS = [
    "The provider is rate limiting requests; wait a minute and try again.",
    "Lower request volume or raise the account's rate limit tier.",
]
SERVER_ERROR_SUGGESTIONS = [
    "The provider is having trouble; retry shortly.",
    "Switch to another provider if the outage persists.",
]
CONNECTION_SUGGESTIONS = [
    "Check network connectivity to the provider endpoint.",
    "Increase LLM_TIMEOUT_SECONDS for very large generations.",
]
AUTH_SUGGESTIONS = [
    "Verify the provider API key is set and valid.",
]
CIRCUIT_OPEN_SUGGESTIONS = [
    "The provider failed repeatedly and is paused; try again after the cooldown.",
]


def _suggestions_for(error: ProviderError) -> list[str]:
    if error.status_code == 429:
        return RATE_LIMIT_SUGGESTIONS
    if error.status_code in (401, 403):
        return AUTH_SUGGESTIONS
    if error.status_code is None:
        return CONNECTION_SUGGESTIONS
    if error.status_code >= 500:
        return SERVER_ERROR_SUGGESTIONS
    return []


class GenerationClient:
    """Invokes a completion provider with retry-with-backoff.

    Backoff per failed attempt n (1-based):
    - HTTP 429: the Retry-After header when present, else base_delay * n
    - HTTP 5xx and transport errors: base_delay * n
    - any other status: raised immediately
    """

    def __init__(
        self,
        provider: CompletionProvider,
        *,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        max_retries: int | None = None,
        base_delay: float | None = None,
        record_usage: bool = True,
    ):
        settings = get_settings()
        self.provider = provider
        self.model = model or settings.llm_model
        self.max_tokens = max_tokens or settings.llm_max_tokens
        self.temperature = temperature if temperature is not None else settings.llm_temperature
        self.max_retries = max_retries or settings.llm_max_retries
        self.base_delay = base_delay if base_delay is not None else settings.llm_retry_base_delay
        self.record_usage = record_usage
        self._circuit_breaker = _get_circuit_breaker(provider.name)

    def _delay_for(self, error: ProviderError, attempt: int) -> float:
        if error.status_code == 429 and error.retry_after is not None:
            return error.retry_after
        return self.base_delay * attempt

    async def generate(
        self,
        prompt: str,
        *,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        system_prompt: str | None = None,
        request_type: str = "generate",
        platform: str | None = None,
    ) -> Completion:
        """Run one completion, retrying transient provider failures.

        Raises:
            RateLimitError: still rate limited after max_retries
            ProviderError: fatal status, open circuit, or retries exhausted
        """
        model = model or self.model
        max_tokens = max_tokens or self.max_tokens
        temperature = temperature if temperature is not None else self.temperature

        start = time.perf_counter()
        last_error: ProviderError | None = None
        for attempt in range(1, self.max_retries + 1):
            if not self._circuit_breaker.can_attempt():
                raise ProviderError(
                    f"Circuit breaker open for {self.provider.name}",
                    provider=self.provider.name,
                    retry_after=self._circuit_breaker.retry_in(),
                    suggestions=CIRCUIT_OPEN_SUGGESTIONS,
                )
            try:
                completion = await self.provider.complete(
                    prompt, system_prompt, model, max_tokens, temperature
                )
            except ProviderError as e:
                last_error = e
                if not e.retryable:
                    logger.error("Fatal provider error from %s: %s", self.provider.name, e)
                    e.suggestions = e.suggestions or _suggestions_for(e)
                    raise
                self._circuit_breaker.record_failure()
                if attempt < self.max_retries:
                    delay = self._delay_for(e, attempt)
                    logger.warning(
                        "Generation failed (attempt %d/%d): %s. Retrying in %.1fs...",
                        attempt,
                        self.max_retries,
                        e,
                        delay,
                    )
                    await asyncio.sleep(delay)
                continue

            self._circuit_breaker.record_success()
            latency_ms = int((time.perf_counter() - start) * 1000)
            logger.info(
                "Generated %d chars with %s in %dms (attempt %d)",
                len(completion.content),
                completion.model,
                latency_ms,
                attempt,
            )
            if self.record_usage:
                log_usage_async(completion, latency_ms, request_type=request_type, platform=platform)
            return completion

        assert last_error is not None
        logger.error("All %d retries exhausted for %s: %s", self.max_retries, self.provider.name, last_error)
        error_cls = RateLimitError if last_error.status_code == 429 else ProviderError
        raise error_cls(
            f"{self.provider.name} failed after {self.max_retries} attempts: {last_error}",
            provider=self.provider.name,
            status_code=last_error.status_code,
            retry_after=last_error.retry_after,
            suggestions=_suggestions_for(last_error),
        ) from last_error

    @staticmethod
    def estimate_tokens(text: str | None) -> int:
        """Length-based token approximation."""
        return estimate_tokens(text)

    @staticmethod
    def calculate_cost(input_tokens: int, output_tokens: int, model: str) -> float:
        """Estimated USD cost; unknown models are priced as the default model."""
        cost = calculate_cost(model, input_tokens, output_tokens, fallback_model=DEFAULT_COST_MODEL)
        return cost or 0.0
