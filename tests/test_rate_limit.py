"""Tests for the keyed token bucket rate limiter and its middleware."""

import threading
import time
from urllib.parse import urlsplit

import pytest

from conduit import RateLimiter, RateLimitMiddleware, Request, Response

# =============================================================================
# RateLimiter
# =============================================================================


class TestRateLimiterInit:
    """Tests for constructor validation."""

    def test_rejects_non_positive_max_requests(self, clock):
        with pytest.raises(AssertionError, match="max_requests must be greater than 0"):
            RateLimiter(0, 1.0, clock=clock)

    def test_rejects_non_positive_per_seconds(self, clock):
        with pytest.raises(AssertionError, match="per_seconds must be greater than 0"):
            RateLimiter(1, 0, clock=clock)

    def test_refill_rate(self, clock):
        assert RateLimiter(10, 5.0, clock=clock).refill_rate == 2.0


class TestRateLimiterAttempt:
    """Tests for token consumption and blocking."""

    def test_burst_up_to_capacity_without_waiting(self, clock):
        """Should let max_requests calls through immediately."""
        limiter = RateLimiter(3, 1.0, clock=clock)

        for _ in range(3):
            assert limiter.attempt() is True

        assert clock.sleeps == []

    def test_blocks_when_bucket_is_empty(self, clock):
        """Should wait for one token's refill time once the burst is spent."""
        limiter = RateLimiter(2, 1.0, clock=clock)

        limiter.attempt()
        limiter.attempt()
        limiter.attempt()

        assert clock.sleeps == [pytest.approx(0.5)]

    def test_waits_only_for_missing_fraction(self, clock):
        """Should wait only for the part of the token not yet refilled."""
        limiter = RateLimiter(2, 1.0, clock=clock)
        limiter.attempt()
        limiter.attempt()

        clock.advance(0.25)  # half a token refilled
        limiter.attempt()

        assert clock.sleeps == [pytest.approx(0.25)]

    def test_refills_over_time(self, clock):
        """Should not wait again after enough time has passed."""
        limiter = RateLimiter(2, 1.0, clock=clock)
        limiter.attempt()
        limiter.attempt()

        clock.advance(1.0)
        limiter.attempt()
        limiter.attempt()

        assert clock.sleeps == []

    def test_tokens_never_exceed_capacity(self, clock):
        limiter = RateLimiter(2, 1.0, clock=clock)
        limiter.attempt()

        clock.advance(100)

        assert limiter.tokens() == 2.0

    def test_keys_have_independent_buckets(self, clock):
        """Should never let one key's usage delay another key."""
        limiter = RateLimiter(1, 1.0, clock=clock)

        limiter.attempt("api.example.com")
        limiter.attempt("other.example.com")

        assert clock.sleeps == []
        assert not limiter.check("api.example.com")
        assert not limiter.check("other.example.com")

    def test_logs_when_blocked(self, clock, caplog):
        limiter = RateLimiter(1, 2.0, clock=clock)
        limiter.attempt("search")

        with caplog.at_level("DEBUG", logger="conduit._rate_limit"):
            limiter.attempt("search")

        assert "key='search'" in caplog.text
        assert "waiting 2.000s" in caplog.text


class TestRateLimiterCheckAndReset:
    """Tests for the non-consuming check and reset."""

    def test_check_unknown_key_is_true(self, clock):
        assert RateLimiter(1, 1.0, clock=clock).check("never-used") is True

    def test_check_does_not_consume(self, clock):
        limiter = RateLimiter(1, 1.0, clock=clock)

        assert limiter.check()
        assert limiter.check()
        limiter.attempt()

        assert clock.sleeps == []
        assert limiter.check() is False

    def test_check_reflects_refill(self, clock):
        limiter = RateLimiter(1, 1.0, clock=clock)
        limiter.attempt()

        clock.advance(1.0)

        assert limiter.check() is True

    def test_reset_restores_full_bucket(self, clock):
        limiter = RateLimiter(2, 10.0, clock=clock)
        limiter.attempt()
        limiter.attempt()

        limiter.reset()

        assert limiter.check() is True
        assert limiter.tokens() == 2.0

    def test_reset_only_affects_given_key(self, clock):
        limiter = RateLimiter(1, 10.0, clock=clock)
        limiter.attempt("a")
        limiter.attempt("b")

        limiter.reset("a")

        assert limiter.check("a") is True
        assert limiter.check("b") is False

    def test_reset_releases_per_key_lock(self, clock):
        limiter = RateLimiter(5, 1.0, clock=clock)
        for i in range(100):
            limiter.attempt(f"/items/{i}")
            limiter.reset(f"/items/{i}")

        assert limiter._key_locks == {}
        assert limiter._buckets == {}


class TestRateLimiterConcurrency:
    """Thread-safety with the real clock."""

    def test_concurrent_callers_are_spaced_out(self):
        """Should admit the burst, then pace the remaining callers."""
        limiter = RateLimiter(max_requests=5, per_seconds=0.1)
        barrier = threading.Barrier(10)

        def worker():
            barrier.wait()
            limiter.attempt("shared")

        threads = [threading.Thread(target=worker) for _ in range(10)]
        start = time.monotonic()
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        elapsed = time.monotonic() - start

        # 5 immediate + 5 paced at 0.02s each
        assert elapsed >= 0.08


# =============================================================================
# RateLimitMiddleware
# =============================================================================


class TestRateLimitMiddleware:
    """Tests for the middleware wrapper."""

    def _request(self, uri="https://api.example.com/items"):
        return Request.create("GET", uri)

    def test_consumes_token_and_calls_next(self, clock):
        limiter = RateLimiter(1, 1.0, clock=clock)
        middleware = RateLimitMiddleware(limiter)
        response = Response.build(200)

        result = middleware.handle(self._request(), lambda request: response)

        assert result is response
        assert limiter.check() is False

    def test_uses_static_key(self, clock):
        limiter = RateLimiter(1, 1.0, clock=clock)
        middleware = RateLimitMiddleware(limiter, key="search")

        middleware.handle(self._request(), lambda request: Response.build(200))

        assert limiter.check("default") is True
        assert limiter.check("search") is False

    def test_key_function_derives_bucket_from_request(self, clock):
        limiter = RateLimiter(1, 1.0, clock=clock)
        middleware = RateLimitMiddleware(limiter, key=lambda r: urlsplit(r.uri).netloc)

        middleware.handle(self._request("https://a.example.com/x"), lambda request: Response.build(200))
        middleware.handle(self._request("https://b.example.com/x"), lambda request: Response.build(200))

        assert clock.sleeps == []
        assert limiter.check("a.example.com") is False

    def test_third_call_waits_with_two_per_second(self, clock):
        limiter = RateLimiter(2, 1.0, clock=clock)
        middleware = RateLimitMiddleware(limiter)

        for _ in range(3):
            middleware.handle(self._request(), lambda request: Response.build(200))

        assert clock.sleeps == [pytest.approx(0.5)]
