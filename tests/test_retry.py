"""Tests for retry utilities."""

import unittest

import pytest
from fakes import FakeClock, StubTransport

from conduit import (
    HttpStatusError,
    Request,
    ResilientTransport,
    Response,
    RetriesExhaustedError,
    RetryAttempt,
    Retrying,
    RetryPolicy,
    TransportError,
)
from conduit._retry import DEFAULT_RETRYABLE_STATUS_CODES, parse_status_codes


class TestRetryPolicy(unittest.TestCase):
    """Tests for RetryPolicy."""

    def test_defaults(self):
        """Should default to 3 attempts, exponential backoff, 1s base and 30s cap."""
        policy = RetryPolicy()
        self.assertEqual(policy.max_attempts, 3)
        self.assertTrue(policy.exponential_backoff)
        self.assertEqual(policy.base_delay_ms, 1000)
        self.assertEqual(policy.max_delay_ms, 30000)
        self.assertEqual(policy.retryable_status_codes, frozenset({408, 429, 500, 502, 503, 504}))

    def test_exponential_delays_double_until_cap(self):
        """Should double the delay after each attempt and cap it at max_delay_ms."""
        policy = RetryPolicy(base_delay_ms=1000, max_delay_ms=30000)
        delays = [policy.get_delay(n) for n in range(1, 8)]
        self.assertEqual(delays, [1000, 2000, 4000, 8000, 16000, 30000, 30000])

    def test_linear_delay_is_constant(self):
        """Should always return base_delay_ms when backoff is linear."""
        policy = RetryPolicy(exponential_backoff=False, base_delay_ms=250)
        self.assertEqual({policy.get_delay(n) for n in range(1, 10)}, {250})

    def test_linear_delay_is_capped_by_max_delay(self):
        """Should not exceed max_delay_ms even when base_delay_ms is larger."""
        policy = RetryPolicy(exponential_backoff=False, base_delay_ms=5000, max_delay_ms=1000)
        self.assertEqual([policy.get_delay(n) for n in range(1, 4)], [1000, 1000, 1000])

    def test_delays_are_non_decreasing_and_bounded(self):
        """Should never shrink between attempts nor exceed max_delay_ms."""
        policy = RetryPolicy(base_delay_ms=300, max_delay_ms=5000)
        delays = [policy.get_delay(n) for n in range(1, 20)]
        self.assertEqual(delays, sorted(delays))
        self.assertTrue(all(d <= 5000 for d in delays))

    def test_get_delay_rejects_attempt_zero(self):
        """Should require a 1-based attempt number."""
        with self.assertRaises(AssertionError):
            RetryPolicy().get_delay(0)

    def test_should_retry_only_configured_codes(self):
        """Should retry only the configured status codes."""
        policy = RetryPolicy(retryable_status_codes=[503])
        self.assertTrue(policy.should_retry(503))
        self.assertFalse(policy.should_retry(500))
        self.assertFalse(policy.should_retry(404))

    def test_status_codes_are_frozen(self):
        """Should accept any iterable and store a frozenset."""
        policy = RetryPolicy(retryable_status_codes=[500, 503, 503])
        self.assertEqual(policy.retryable_status_codes, frozenset({500, 503}))

    def test_no_retry_policy_has_single_attempt(self):
        self.assertEqual(RetryPolicy.no_retry().max_attempts, 1)

    def test_rejects_invalid_max_attempts(self):
        """Should reject max_attempts < 1."""
        with self.assertRaises(AssertionError):
            RetryPolicy(max_attempts=0)

    def test_is_frozen(self):
        """Should be immutable."""
        policy = RetryPolicy()
        with self.assertRaises(AttributeError):
            policy.max_attempts = 5  # type: ignore


class TestRetryAttempt(unittest.TestCase):
    """Tests for RetryAttempt dataclass."""

    def test_is_last_attempt(self):
        self.assertFalse(RetryAttempt(attempt_number=1, max_attempts=3).is_last_attempt)
        self.assertTrue(RetryAttempt(attempt_number=3, max_attempts=3).is_last_attempt)


def _error(status_code: int) -> HttpStatusError:
    return HttpStatusError(Response.build(status_code))


class TestRetryingLoop(unittest.TestCase):
    """Tests for the Retrying context manager loop."""

    def setUp(self):
        self.clock = FakeClock()

    def test_success_on_first_attempt(self):
        """Should run the block once when it succeeds."""
        call_count = 0
        for attempt in Retrying(RetryPolicy(), sleep=self.clock.sleep):
            with attempt:
                call_count += 1
                break

        self.assertEqual(call_count, 1)
        self.assertEqual(self.clock.sleeps, [])

    def test_retries_retryable_status_then_succeeds(self):
        """Should suppress retryable errors until the block succeeds."""
        outcomes = [_error(503), _error(503), "ok"]
        results = []

        for attempt in Retrying(RetryPolicy(max_attempts=3), sleep=self.clock.sleep):
            with attempt:
                outcome = outcomes.pop(0)
                if isinstance(outcome, Exception):
                    raise outcome
                results.append(outcome)
                break

        self.assertEqual(results, ["ok"])
        self.assertEqual(self.clock.sleeps, [1.0, 2.0])

    def test_raises_retries_exhausted_after_last_attempt(self):
        """Should raise RetriesExhaustedError carrying the last status."""
        retrying = Retrying(RetryPolicy(max_attempts=3), sleep=self.clock.sleep)

        with self.assertRaises(RetriesExhaustedError) as ctx:
            for attempt in retrying:
                with attempt:
                    raise _error(503)

        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(ctx.exception.attempts, 3)
        self.assertEqual(ctx.exception.last_exception.status_code, 503)
        self.assertEqual(retrying.attempts_made, 3)
        self.assertEqual(self.clock.sleeps, [1.0, 2.0])

    def test_exhausted_error_is_an_http_status_error(self):
        """Should be catchable as HttpStatusError."""
        with self.assertRaises(HttpStatusError):
            for attempt in Retrying(RetryPolicy(max_attempts=2), sleep=self.clock.sleep):
                with attempt:
                    raise _error(500)

    def test_non_retryable_status_propagates_immediately(self):
        """Should not retry statuses outside the retryable set."""
        call_count = 0
        with self.assertRaises(HttpStatusError) as ctx:
            for attempt in Retrying(RetryPolicy(max_attempts=5), sleep=self.clock.sleep):
                with attempt:
                    call_count += 1
                    raise _error(404)

        self.assertNotIsInstance(ctx.exception, RetriesExhaustedError)
        self.assertEqual(call_count, 1)
        self.assertEqual(self.clock.sleeps, [])

    def test_other_exceptions_propagate_immediately(self):
        """Should not retry exceptions that are not HTTP status errors."""
        call_count = 0
        with self.assertRaises(TransportError):
            for attempt in Retrying(RetryPolicy(max_attempts=5), sleep=self.clock.sleep):
                with attempt:
                    call_count += 1
                    raise TransportError("connection refused")

        self.assertEqual(call_count, 1)

    def test_single_attempt_raises_original_error(self):
        """Should raise the original error unwrapped when max_attempts is 1."""
        original = _error(503)
        with self.assertRaises(HttpStatusError) as ctx:
            for attempt in Retrying(RetryPolicy.no_retry(), sleep=self.clock.sleep):
                with attempt:
                    raise original

        self.assertIs(ctx.exception, original)

    def test_linear_backoff_sleeps_base_delay(self):
        """Should wait base_delay_ms between every attempt with linear backoff."""
        policy = RetryPolicy(max_attempts=4, exponential_backoff=False, base_delay_ms=500)
        with self.assertRaises(RetriesExhaustedError):
            for attempt in Retrying(policy, sleep=self.clock.sleep):
                with attempt:
                    raise _error(429)

        self.assertEqual(self.clock.sleeps, [0.5, 0.5, 0.5])

    def test_logs_each_failed_attempt_and_exhaustion(self):
        """Should log a warning per retry and an error on exhaustion."""
        with self.assertLogs("conduit._retry", level="WARNING") as logs:
            with self.assertRaises(RetriesExhaustedError):
                for attempt in Retrying(RetryPolicy(max_attempts=2), sleep=self.clock.sleep, logger_prefix="GET /x"):
                    with attempt:
                        raise _error(503)

        self.assertTrue(any("GET /x | Attempt 1/2 failed" in line for line in logs.output))
        self.assertTrue(any(line.startswith("ERROR") and "Max attempts (2)" in line for line in logs.output))


class TestResilientTransport:
    """Retry behaviour of the terminal transport stage."""

    def _send(self, transport: StubTransport, policy: RetryPolicy, clock: FakeClock):
        stage = ResilientTransport(transport, policy, clock=clock)
        return stage(Request.create("GET", "https://api.example.com/items"))

    def test_retries_503_three_times_then_raises(self, clock):
        transport = StubTransport(Response.build(503))

        with pytest.raises(RetriesExhaustedError) as exc_info:
            self._send(transport, RetryPolicy(max_attempts=3), clock)

        assert transport.call_count == 3
        assert exc_info.value.status_code == 503
        assert clock.sleeps == [1.0, 2.0]

    def test_404_is_attempted_once(self, clock):
        transport = StubTransport(Response.build(404))

        with pytest.raises(HttpStatusError) as exc_info:
            self._send(transport, RetryPolicy(max_attempts=3), clock)

        assert transport.call_count == 1
        assert exc_info.value.status_code == 404
        assert not isinstance(exc_info.value, RetriesExhaustedError)

    def test_transport_errors_are_not_retried(self, clock):
        transport = StubTransport(TransportError("connection refused"))

        with pytest.raises(TransportError):
            self._send(transport, RetryPolicy(max_attempts=5), clock)

        assert transport.call_count == 1
        assert clock.sleeps == []

    def test_recovers_after_transient_failures(self, clock):
        transport = StubTransport(Response.build(502), Response.build(503), Response.build(200, body="ok"))

        response = self._send(transport, RetryPolicy(max_attempts=3), clock)

        assert response.status_code == 200
        assert response.text == "ok"
        assert transport.call_count == 3

    def test_defaults_to_single_attempt(self, clock):
        transport = StubTransport(Response.build(503))
        stage = ResilientTransport(transport, clock=clock)

        with pytest.raises(HttpStatusError) as exc_info:
            stage(Request.create("GET", "https://api.example.com/items"))

        assert not isinstance(exc_info.value, RetriesExhaustedError)
        assert transport.call_count == 1


class TestParseStatusCodes:
    def test_parses_comma_separated_string(self):
        assert parse_status_codes("500, 503,504") == (500, 503, 504)

    def test_ignores_empty_parts(self):
        assert parse_status_codes("429,,") == (429,)

    def test_accepts_iterables(self):
        assert parse_status_codes([503, 500]) == (503, 500)

    def test_rejects_non_numeric_values(self):
        with pytest.raises(ValueError):
            parse_status_codes("500,abc")

    def test_default_codes(self):
        assert DEFAULT_RETRYABLE_STATUS_CODES == frozenset({408, 429, 500, 502, 503, 504})
