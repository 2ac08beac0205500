"""Unit tests for the sliding-window rate limiter."""
import pytest

from legacy_release.rate_limiter import SlidingWindowRateLimiter


class TestSlidingWindowRateLimiter:
    """Test admission decisions."""

    def test_admits_up_to_limit_then_rejects(self, rate_limiter):
        results = [rate_limiter.allow("10.0.0.1") for _ in range(21)]
        assert results[:20] == [True] * 20
        assert results[20] is False

    def test_rejected_requests_are_not_recorded(self, rate_limiter, clock):
        for _ in range(20):
            rate_limiter.allow("10.0.0.1")
        for _ in range(5):
            assert not rate_limiter.allow("10.0.0.1")

        # Only the 20 admitted requests occupy the window
        clock.advance(60.001)
        assert rate_limiter.remaining("10.0.0.1") == 20

    def test_window_slides(self, clock):
        limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60, clock=clock)
        assert limiter.allow("a")
        clock.advance(30)
        assert limiter.allow("a")
        assert not limiter.allow("a")

        clock.advance(30)
        # First request sits exactly on the window edge and is evicted
        assert limiter.allow("a")
        assert not limiter.allow("a")

    def test_keys_are_independent(self, clock):
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60, clock=clock)
        assert limiter.allow("a")
        assert limiter.allow("b")
        assert not limiter.allow("a")

    def test_retry_after(self, clock):
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60, clock=clock)
        assert limiter.retry_after("a") == 0
        limiter.allow("a")
        clock.advance(15)
        assert limiter.retry_after("a") == pytest.approx(45)

    def test_remaining(self, clock):
        limiter = SlidingWindowRateLimiter(max_requests=3, window_seconds=60, clock=clock)
        assert limiter.remaining("a") == 3
        limiter.allow("a")
        assert limiter.remaining("a") == 2

    def test_reset(self, clock):
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60, clock=clock)
        limiter.allow("a")
        limiter.reset("a")
        assert limiter.allow("a")

    def test_stale_keys_purged(self, clock):
        limiter = SlidingWindowRateLimiter(
            max_requests=1, window_seconds=10, clock=clock, max_tracked_keys=5
        )
        for i in range(6):
            limiter.allow(f"caller-{i}")
        clock.advance(11)
        limiter.allow("fresh")
        assert len(limiter._requests) <= 5

    @pytest.mark.parametrize("max_requests,window", [(0, 60), (5, 0), (-1, 60)])
    def test_rejects_invalid_limits(self, max_requests, window):
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(max_requests=max_requests, window_seconds=window)
