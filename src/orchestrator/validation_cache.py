"""In-memory cache of successful validation outcomes.

Keyed by the SHA-256 of the workflow's canonical JSON, so two workflows that
differ only in key order share an entry.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from src.orchestrator.loop import ValidationOutcome

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60
DEFAULT_MAX_SIZE = 100


def workflow_key(workflow: Any, platform: str = "n8n") -> str:
    canonical = json.dumps([platform, workflow], sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class _CacheEntry:
    """Internal cache entry with TTL tracking."""

    outcome: ValidationOutcome
    stored_at: float = field(default_factory=time.monotonic)


class ValidationCache:
    """Bounded TTL cache; the oldest entry is evicted when full."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_size: int = DEFAULT_MAX_SIZE,
        time_func: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._time = time_func
        self._entries: OrderedDict[str, _CacheEntry] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, workflow: Any, platform: str = "n8n") -> ValidationOutcome | None:
        key = workflow_key(workflow, platform)
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self._time() - entry.stored_at > self.ttl_seconds:
            del self._entries[key]
            self.misses += 1
            return None
        self.hits += 1
        logger.debug("Validation cache hit %s", key[:12])
        return entry.outcome.model_copy(deep=True)

    def put(self, workflow: Any, outcome: ValidationOutcome, platform: str = "n8n") -> None:
        key = workflow_key(workflow, platform)
        self._entries.pop(key, None)
        while len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
        self._entries[key] = _CacheEntry(outcome=outcome.model_copy(deep=True), stored_at=self._time())

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def get_stats(self) -> dict[str, Any]:
        lookups = self.hits + self.misses
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / lookups if lookups else 0.0,
        }
