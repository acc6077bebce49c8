"""Consecutive-failure circuit breaker shared by the provider clients and the result cache."""

import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """Opens after ``failure_threshold`` failures in a row and stays open for ``cooldown_seconds``.

    While open, can_attempt() is False. The first call after the cooldown is let
    through with the failure count cleared; one more failure below the threshold
    keeps it closed. ``time_func`` can be swapped for a fake clock in tests.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60,
        time_func: Callable[[], float] | None = None,
        name: str = "default",
    ):
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self.name = name
        self._now = time_func or time.monotonic
        self.failure_count = 0
        self.opened_at: float | None = None

    @property
    def circuit_open(self) -> bool:
        return self.opened_at is not None

    def retry_in(self) -> float:
        """Seconds until the cooldown ends; 0 when closed."""
        if self.opened_at is None:
            return 0.0
        return max(0.0, self.opened_at + self.cooldown_seconds - self._now())

    def record_success(self) -> None:
        self.failure_count = 0
        self.opened_at = None

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.circuit_open or self.failure_count < self.failure_threshold:
            return
        self.opened_at = self._now()
        logger.warning(
            "Circuit breaker %r opened after %d failures; retrying after %ss cooldown",
            self.name,
            self.failure_count,
            self.cooldown_seconds,
        )

    def can_attempt(self) -> bool:
        if not self.circuit_open:
            return True
        if self.retry_in() > 0:
            return False
        logger.info("Circuit breaker %r cooldown expired, attempting call", self.name)
        self.record_success()
        return True


# One breaker per completion provider, shared by every client for that provider
_circuit_breakers: dict[str, CircuitBreaker] = {}


def _get_circuit_breaker(provider: str) -> CircuitBreaker:
    if provider not in _circuit_breakers:
        _circuit_breakers[provider] = CircuitBreaker(name=provider)
    return _circuit_breakers[provider]
