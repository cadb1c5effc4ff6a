"""
Time sources for the conduit SDK.

Rate limiting, retries and cache expiration all depend on time. Components take
a `Clock` so tests can drive time by hand instead of sleeping.

Example:
    >>> from conduit._clock import SystemClock
    >>> clock = SystemClock()
    >>> start = clock.monotonic()
    >>> clock.sleep(0.1)
    >>> clock.monotonic() - start >= 0.1
    True
"""

import time
from abc import ABC, abstractmethod
from typing import override


class Clock(ABC):
    """
    Abstract time source.

    - `monotonic()` measures elapsed time (token buckets, cache TTLs, durations).
    - `time()` returns wall-clock epoch seconds (cookie expiration dates).
    - `sleep()` blocks the calling thread.
    """

    @abstractmethod
    def monotonic(self) -> float:
        """Return a monotonic timestamp in seconds."""
        pass

    @abstractmethod
    def time(self) -> float:
        """Return the current wall-clock time as Unix epoch seconds."""
        pass

    @abstractmethod
    def sleep(self, seconds: float) -> None:
        """Block the calling thread for the given number of seconds."""
        pass


class SystemClock(Clock):
    """Clock backed by the `time` module."""

    @override
    def monotonic(self) -> float:
        return time.monotonic()

    @override
    def time(self) -> float:
        return time.time()

    @override
    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


SYSTEM_CLOCK = SystemClock()
