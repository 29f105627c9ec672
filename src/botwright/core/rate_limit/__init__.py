"""Rate limiting for external calls, backed by pyrate-limiter."""

from botwright.core.rate_limit.limiter import NoOpLimiter, RateLimiter

__all__ = ["NoOpLimiter", "RateLimiter"]
