"""
Rate Limiter Tests

Covers:
1. Fixed-window admission and denial
2. Window reset
3. Table bounds (sweep + LRU eviction)
4. enforce() raising RateLimitExceeded

Run with:
    python -m pytest tests/test_rate_limiter.py -v
"""

import threading

import pytest

from core.errors import RateLimitExceeded
from core.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class TestAdmission:
    """Fixed-window counting per client."""

    def setup_method(self):
        self.clock = FakeClock()
        self.limiter = RateLimiter(window_seconds=60, max_requests=3, clock=self.clock)

    def test_first_request_creates_entry(self):
        decision = self.limiter.admit("10.0.0.1")

        assert decision.allowed
        assert decision.count == 1
        assert decision.remaining == 2
        assert decision.reset_at == 1060.0
        assert self.limiter.get_entry("10.0.0.1").count == 1

    def test_cap_then_deny(self):
        """cap admissions succeed; the (cap+1)th is denied."""
        decisions = [self.limiter.admit("10.0.0.1") for _ in range(4)]

        assert [d.allowed for d in decisions] == [True, True, True, False]
        denied = decisions[-1]
        assert denied.remaining == 0
        assert denied.retry_after == pytest.approx(60.0)

    def test_denied_requests_do_not_increment(self):
        for _ in range(10):
            self.limiter.admit("10.0.0.1")

        assert self.limiter.get_entry("10.0.0.1").count == 3
        assert self.limiter.total_allowed == 3
        assert self.limiter.total_denied == 7

    def test_window_reset_restarts_at_one(self):
        for _ in range(4):
            self.limiter.admit("10.0.0.1")

        self.clock.advance(60.5)
        decision = self.limiter.admit("10.0.0.1")

        assert decision.allowed
        assert decision.count == 1
        assert decision.reset_at == pytest.approx(1060.5 + 60)

    def test_request_exactly_at_reset_is_same_window(self):
        for _ in range(3):
            self.limiter.admit("10.0.0.1")

        self.clock.advance(60)
        assert not self.limiter.admit("10.0.0.1").allowed

    def test_clients_are_independent(self):
        for _ in range(3):
            self.limiter.admit("10.0.0.1")

        assert not self.limiter.admit("10.0.0.1").allowed
        assert self.limiter.admit("10.0.0.2").allowed

    def test_burst_across_boundary_admits_twice_the_cap(self):
        """No carry-over between windows."""
        for _ in range(3):
            assert self.limiter.admit("10.0.0.1").allowed
        self.clock.advance(61)
        for _ in range(3):
            assert self.limiter.admit("10.0.0.1").allowed

    def test_invalid_settings(self):
        with pytest.raises(ValueError):
            RateLimiter(window_seconds=0)
        with pytest.raises(ValueError):
            RateLimiter(max_requests=0)


class TestEnforce:
    """enforce() raises on deny."""

    def test_enforce_raises_with_retry_after(self):
        clock = FakeClock()
        limiter = RateLimiter(window_seconds=30, max_requests=1, clock=clock)
        limiter.enforce("client")
        clock.advance(10)

        with pytest.raises(RateLimitExceeded) as exc_info:
            limiter.enforce("client")

        assert exc_info.value.http_status == 429
        assert exc_info.value.retry_after == pytest.approx(20.0)
        assert exc_info.value.public_message == "Too many requests. Please try again later."


class TestBounds:
    """The table never grows past max_entries."""

    def test_sweep_removes_expired(self):
        clock = FakeClock()
        limiter = RateLimiter(window_seconds=10, max_requests=5, clock=clock)
        limiter.admit("a")
        clock.advance(5)
        limiter.admit("b")
        clock.advance(6)

        assert limiter.sweep() == 1
        assert limiter.get_entry("a") is None
        assert limiter.get_entry("b") is not None

    def test_lru_eviction_when_full(self):
        clock = FakeClock()
        limiter = RateLimiter(window_seconds=60, max_requests=5, max_entries=2, clock=clock)
        limiter.admit("a")
        limiter.admit("b")
        limiter.admit("a")  # a is now most recently used
        limiter.admit("c")

        assert len(limiter) == 2
        assert limiter.get_entry("b") is None
        assert limiter.get_entry("a") is not None
        assert limiter.total_evicted == 1

    def test_expired_entries_swept_before_eviction(self):
        clock = FakeClock()
        limiter = RateLimiter(window_seconds=10, max_requests=5, max_entries=2, clock=clock)
        limiter.admit("old")
        clock.advance(11)
        limiter.admit("fresh")
        limiter.admit("new")

        assert limiter.get_entry("old") is None
        assert limiter.get_entry("fresh") is not None
        assert limiter.get_entry("new") is not None

    def test_reset(self):
        limiter = RateLimiter()
        limiter.admit("a")
        limiter.admit("b")

        limiter.reset("a")
        assert limiter.get_entry("a") is None
        limiter.reset()
        assert len(limiter) == 0

    def test_get_status(self):
        limiter = RateLimiter(window_seconds=60, max_requests=2)
        limiter.admit("a")

        status = limiter.get_status()
        assert status["tracked_clients"] == 1
        assert status["max_requests"] == 2
        assert status["total_allowed"] == 1


class TestConcurrency:
    """Check-and-increment is atomic."""

    def test_threads_never_exceed_cap(self):
        limiter = RateLimiter(window_seconds=60, max_requests=50)
        results = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                decision = limiter.admit("shared")
                with lock:
                    results.append(decision.allowed)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(results) == 50
        assert limiter.get_entry("shared").count == 50
