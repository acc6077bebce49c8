"""Unit tests for the in-memory validation cache."""

from src.orchestrator import ValidationCache, ValidationOutcome, workflow_key
from src.validation.issues import ValidationReport


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _outcome(attempts=1):
    return ValidationOutcome(
        success=True,
        attempts=attempts,
        workflow={"name": "Cached"},
        report=ValidationReport.from_issues([], []),
    )


class TestWorkflowKey:
    """Tests for workflow_key."""

    def test_key_order_independent(self):
        """Test that key order does not change the hash."""
        assert workflow_key({"a": 1, "b": [1, 2]}) == workflow_key({"b": [1, 2], "a": 1})

    def test_content_sensitive(self):
        """Test that different content hashes differently."""
        assert workflow_key({"a": 1}) != workflow_key({"a": 2})

    def test_platform_sensitive(self):
        """Test that the same document validated for another platform gets its own key."""
        assert workflow_key({"a": 1}) != workflow_key({"a": 1}, "zapier")


class TestValidationCache:
    """Tests for ValidationCache."""

    def test_miss_then_hit(self):
        """Test a basic put/get cycle and counters."""
        cache = ValidationCache()
        workflow = {"name": "W"}

        assert cache.get(workflow) is None
        cache.put(workflow, _outcome())

        assert cache.get(workflow).attempts == 1
        assert cache.get_stats() == {"size": 1, "max_size": 100, "hits": 1, "misses": 1, "hit_rate": 0.5}

    def test_returns_copies(self):
        """Test that callers cannot mutate the stored outcome."""
        cache = ValidationCache()
        cache.put({"name": "W"}, _outcome())

        first = cache.get({"name": "W"})
        first.workflow["name"] = "Changed"

        assert cache.get({"name": "W"}).workflow["name"] == "Cached"

    def test_ttl_expiry(self):
        """Test that entries older than the TTL are dropped."""
        clock = FakeClock()
        cache = ValidationCache(ttl_seconds=60, time_func=clock)
        cache.put({"name": "W"}, _outcome())

        clock.now += 61

        assert cache.get({"name": "W"}) is None
        assert cache.get_stats()["size"] == 0

    def test_oldest_evicted_when_full(self):
        """Test FIFO eviction at max_size."""
        cache = ValidationCache(max_size=2)
        for i in range(3):
            cache.put({"n": i}, _outcome(attempts=i + 1))

        assert cache.get({"n": 0}) is None
        assert cache.get({"n": 2}).attempts == 3
        assert cache.get_stats()["size"] == 2

    def test_clear(self):
        """Test that clear resets entries and counters."""
        cache = ValidationCache()
        cache.put({"n": 1}, _outcome())
        cache.get({"n": 1})

        cache.clear()

        assert cache.get_stats()["size"] == 0
        assert cache.get_stats()["hits"] == 0
