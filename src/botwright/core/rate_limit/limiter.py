# src/botwright/core/rate_limit/limiter.py
"""Client-side throttling of compiler submissions with pyrate-limiter."""

from __future__ import annotations

import re
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from pyrate_limiter import (  # type: ignore[attr-defined]
    BucketFullException,
    Duration,
    InMemoryBucket,
    Limiter,
    Rate,
)

if TYPE_CHECKING:
    from types import TracebackType

_NAME = re.compile(r"[a-zA-Z][a-zA-Z0-9_]*")


def _has_room(bucket: InMemoryBucket, weight: int) -> bool:
    used = bucket.count()
    return all(used + weight <= rate.limit for rate in bucket.rates)


@contextmanager
def _no_wait(limiter: Limiter) -> Iterator[None]:
    saved = limiter.max_delay
    limiter.max_delay = None
    try:
        yield
    finally:
        limiter.max_delay = saved


class RateLimiter:
    """Blocking or non-blocking throttle with per-second and per-minute rates.

    Each rate has its own bucket and Limiter; a single bucket holding both
    rates can let a burst through the minute rate while the second rate
    still has room.

    Example:
        with RateLimiter("compiler", requests_per_second=1, requests_per_minute=20) as limiter:
            limiter.acquire()
            client.submit(...)
    """

    def __init__(self, name: str, requests_per_second: int, requests_per_minute: int | None = None) -> None:
        """
        Raises:
            ValueError: If name is not an identifier-like string or a rate is not positive
        """
        if not _NAME.fullmatch(name):
            raise ValueError(f"Invalid rate limiter name: {name!r} (letters, digits and underscores, starting with a letter)")
        for label, rate in (("requests_per_second", requests_per_second), ("requests_per_minute", requests_per_minute)):
            if rate is not None and rate <= 0:
                raise ValueError(f"{label} must be positive, got {rate}")

        self.name = name
        self._lock = threading.Lock()
        rates = [Rate(requests_per_second, Duration.SECOND)]
        if requests_per_minute is not None:
            rates.append(Rate(requests_per_minute, Duration.MINUTE))
        self._buckets = [InMemoryBucket([rate]) for rate in rates]
        self._limiters = [Limiter(bucket, max_delay=Duration.MINUTE, raise_when_fail=True) for bucket in self._buckets]

    def acquire(self, weight: int = 1) -> None:
        """Wait (up to a minute per rate) until every rate admits the request."""
        for limiter in self._limiters:
            limiter.try_acquire(self.name, weight=weight)

    def try_acquire(self, weight: int = 1) -> bool:
        """Take tokens only if every rate has room right now.

        Nothing is consumed when any rate is full.
        """
        with self._lock:
            if not all(_has_room(bucket, weight) for bucket in self._buckets):
                return False
            for limiter in self._limiters:
                with _no_wait(limiter):
                    try:
                        limiter.try_acquire(self.name, weight=weight)
                    except BucketFullException:
                        return False
            return True

    def close(self) -> None:
        for limiter, bucket in zip(self._limiters, self._buckets, strict=True):
            limiter.dispose(bucket)

    def __enter__(self) -> RateLimiter:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


class NoOpLimiter:
    """Stand-in used when rate_limit.enabled is false."""

    def acquire(self, weight: int = 1) -> None:
        pass

    def try_acquire(self, weight: int = 1) -> bool:
        return True

    def close(self) -> None:
        pass

    def __enter__(self) -> NoOpLimiter:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
