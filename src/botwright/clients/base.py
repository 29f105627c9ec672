# src/botwright/clients/base.py
"""Base class for clients of external services."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from botwright.core.rate_limit import NoOpLimiter, RateLimiter


class ClientBase:
    """Common infrastructure for external-service clients.

    Rate Limiting:
        Clients optionally accept a rate limiter. When provided,
        _acquire_rate_limit() blocks until the limiter allows the request.
        When None, no throttling occurs. Subclasses call
        _acquire_rate_limit() before every external request.
    """

    def __init__(self, *, limiter: RateLimiter | NoOpLimiter | None = None) -> None:
        self._limiter = limiter

    def _acquire_rate_limit(self) -> None:
        """Block until the rate limiter allows the next request."""
        if self._limiter is not None:
            self._limiter.acquire()

    def close(self) -> None:
        """Release any resources held by the client.

        Default implementation is a no-op.
        """
        pass
