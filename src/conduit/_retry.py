"""
Retry utilities with configurable backoff.

Inspired by Tenacity's Retrying class, this module provides a retry policy and
a context manager loop that re-runs a block while it fails with a retryable
HTTP status code.

Only HTTP status failures are retried. Transport errors (connection refused,
DNS, timeouts) propagate on the first occurrence.

Example:
    >>> from conduit._retry import Retrying, RetryPolicy
    >>> policy = RetryPolicy(max_attempts=3, retryable_status_codes={503})
    >>> for attempt in Retrying(policy):
    ...     with attempt:
    ...         response = transport.execute("GET", url, headers, None)
    ...         if response.status_code >= 400:
    ...             raise HttpStatusError.from_response(response)
    ...         return response
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator, Iterable
from dataclasses import dataclass, field

from conduit._clock import SYSTEM_CLOCK
from conduit._exceptions import HttpStatusError, RetriesExhaustedError

logger = logging.getLogger(__name__)

DEFAULT_RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    """
    Decides whether and how long to wait before re-attempting a failed call.

    Attributes:
        max_attempts: Total number of attempts, including the first one (>= 1).
        retryable_status_codes: HTTP status codes that trigger a retry.
            Defaults to 408, 429, 500, 502, 503 and 504.
        exponential_backoff: When True, the delay doubles after each attempt.
            When False, every retry waits `base_delay_ms`.
        base_delay_ms: Delay before the second attempt, in milliseconds.
        max_delay_ms: Upper bound for any single delay, in milliseconds.

    Example:
        >>> policy = RetryPolicy(base_delay_ms=100, max_delay_ms=1000)
        >>> [policy.get_delay(n) for n in range(1, 6)]
        [100, 200, 400, 800, 1000]
    """

    max_attempts: int = 3
    retryable_status_codes: frozenset[int] = field(default=DEFAULT_RETRYABLE_STATUS_CODES)
    exponential_backoff: bool = True
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000

    def __post_init__(self) -> None:
        assert self.max_attempts >= 1, f"max_attempts must be >= 1, got {self.max_attempts}"
        assert self.base_delay_ms >= 0, f"base_delay_ms must be >= 0, got {self.base_delay_ms}"
        assert self.max_delay_ms >= 0, f"max_delay_ms must be >= 0, got {self.max_delay_ms}"
        assert self.retryable_status_codes is not None, "retryable_status_codes cannot be None"
        # Accept any iterable of ints (list, set, tuple) and freeze it
        object.__setattr__(self, "retryable_status_codes", frozenset(self.retryable_status_codes))

    @classmethod
    def no_retry(cls) -> RetryPolicy:
        """Return a policy that performs a single attempt."""
        return cls(max_attempts=1)

    def should_retry(self, status_code: int) -> bool:
        """Return True if the status code is configured as retryable."""
        return status_code in self.retryable_status_codes

    def get_delay(self, attempt: int) -> int:
        """
        Return the delay in milliseconds to wait after the given attempt.

        Args:
            attempt: The 1-based number of the attempt that just failed.
                The delay before attempt 2 is `get_delay(1)`.

        Returns:
            `min(base_delay_ms, max_delay_ms)` when backoff is linear, otherwise
            `min(base_delay_ms * 2 ** (attempt - 1), max_delay_ms)`.
        """
        assert attempt >= 1, f"attempt must be >= 1, got {attempt}"

        if not self.exponential_backoff:
            return min(self.base_delay_ms, self.max_delay_ms)

        return min(self.base_delay_ms * (2 ** (attempt - 1)), self.max_delay_ms)


@dataclass(frozen=True)
class RetryAttempt:
    """
    Represents a single attempt within a retry loop.

    Attributes:
        attempt_number: 1-based index of the current attempt.
        max_attempts: Total number of attempts allowed by the policy.

    Example:
        >>> for attempt_ctx in Retrying(RetryPolicy(max_attempts=3)):
        ...     with attempt_ctx as attempt:
        ...         print(f"Attempt {attempt.attempt_number}/{attempt.max_attempts}")
    """

    attempt_number: int
    max_attempts: int

    @property
    def is_last_attempt(self) -> bool:
        """Return True if this is the last allowed attempt."""
        return self.attempt_number >= self.max_attempts


class Retrying:
    """
    Context manager loop for retrying on retryable HTTP status codes.

    Usage:
        >>> for attempt in Retrying(policy):
        ...     with attempt:
        ...         return do_call()

    State machine per attempt:
        - No exception: the block returned/broke out, the loop ends.
        - HttpStatusError with a retryable status and attempts left: sleep
          `policy.get_delay(attempt)` ms and try again.
        - HttpStatusError with a retryable status on the last attempt: raise
          RetriesExhaustedError (or the original error when `max_attempts == 1`).
        - Anything else (non-retryable status, TransportError, ...): re-raise at once.

    Args:
        policy: The retry policy.
        sleep: Function used to wait between attempts, in seconds.
            Defaults to the system clock.
        logger_prefix: Prefix for log messages (e.g., "GET https://api.example.com").
    """

    def __init__(
        self,
        policy: RetryPolicy,
        sleep: Callable[[float], None] | None = None,
        logger_prefix: str = "",
    ):
        assert policy is not None, "policy cannot be None"

        self.policy = policy
        self.sleep = sleep or SYSTEM_CLOCK.sleep
        self.logger_prefix = logger_prefix

        self.attempts_made = 0

    def __iter__(self) -> Generator[_RetryContext, None, None]:
        """Yield retry contexts for each attempt."""
        for attempt_number in range(1, self.policy.max_attempts + 1):
            self.attempts_made = attempt_number
            yield _RetryContext(self, attempt_number)

    def _should_retry(self, exception: Exception) -> bool:
        """
        Determine if an exception should trigger a retry.

        Only HttpStatusError carrying a status in `retryable_status_codes` is
        retried. Transport errors are never retried.
        """
        if not isinstance(exception, HttpStatusError):
            return False
        return self.policy.should_retry(exception.status_code)

    def _handle_retry(self, exception: HttpStatusError, attempt_number: int) -> None:
        """Log the failure and wait before the next attempt."""
        delay_ms = self.policy.get_delay(attempt_number)

        prefix = f"{self.logger_prefix} | " if self.logger_prefix else ""
        logger.warning(
            f"{prefix}Attempt {attempt_number}/{self.policy.max_attempts} failed: {exception}"
        )
        logger.warning(f"{prefix}Retrying in {delay_ms / 1000:.1f}s...")
        self.sleep(delay_ms / 1000)

    def _handle_exhausted(self, exception: HttpStatusError) -> None:
        """
        Handle when all attempts are exhausted.

        Raises:
            RetriesExhaustedError: Always, wrapping the last error.
        """
        prefix = f"{self.logger_prefix} | " if self.logger_prefix else ""
        logger.error(
            f"{prefix}Max attempts ({self.policy.max_attempts}) exceeded. Last error: {exception}"
        )
        raise RetriesExhaustedError(
            last_exception=exception,
            attempts=self.policy.max_attempts,
        ) from exception


class _RetryContext:
    """
    Context for a single attempt (internal).

    On success (no exception): exits normally.
    On retryable exception with attempts left: suppresses it, loop continues.
    On non-retryable exception: re-raises it, loop exits.
    On exhausted attempts: raises RetriesExhaustedError.
    """

    def __init__(self, retrying: Retrying, attempt_number: int):
        self._retrying = retrying
        self.attempt_number = attempt_number

    def __enter__(self) -> RetryAttempt:
        return RetryAttempt(
            attempt_number=self.attempt_number,
            max_attempts=self._retrying.policy.max_attempts,
        )

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> bool:
        """
        Returns:
            True to suppress the exception and retry, False to propagate it.
        """
        if exc_val is None:
            return False

        # Only handle Exception, not BaseException (KeyboardInterrupt, etc.)
        if not isinstance(exc_val, Exception):
            return False

        if not self._retrying._should_retry(exc_val):
            return False

        assert isinstance(exc_val, HttpStatusError)

        # Single-attempt policy: let the original error propagate unwrapped
        if self._retrying.policy.max_attempts == 1:
            return False

        if self.attempt_number >= self._retrying.policy.max_attempts:
            self._retrying._handle_exhausted(exc_val)
            return False  # Never reached

        self._retrying._handle_retry(exc_val, self.attempt_number)
        return True


def parse_status_codes(value: str | Iterable[int]) -> tuple[int, ...]:
    """
    Parse status codes from a comma-separated string or an iterable.

    Example:
        >>> parse_status_codes("500, 503")
        (500, 503)
    """
    if isinstance(value, str):
        return tuple(int(part) for part in value.split(",") if part.strip())
    return tuple(int(code) for code in value)
