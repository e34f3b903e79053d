"""
Provider Rate Limiting

Token bucket limiter applied to every page request so a full inventory sweep
stays under each provider's published API rate.
"""

import asyncio
import time

import structlog

logger = structlog.get_logger()


class RateLimiter:
    """Token bucket rate limiter shared by all units calling one provider."""

    def __init__(self, rate_per_second: float):
        if rate_per_second <= 0:
            raise ValueError("rate_per_second must be > 0")
        self.rate = rate_per_second
        self.tokens = rate_per_second
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a token is available."""
        async with self._lock:
            now = time.monotonic()
            elapsed = max(0.0, now - self.last_update)

            # Refill tokens
            self.tokens = min(self.rate, self.tokens + elapsed * self.rate)
            self.last_update = now

            if self.tokens < 1:
                wait_time = (1 - self.tokens) / self.rate
                logger.debug("rate_limit_waiting", wait_seconds=round(wait_time, 3))
                await asyncio.sleep(wait_time)
                self.tokens = 0
                self.last_update = time.monotonic()
            else:
                self.tokens -= 1


# Registry of provider-specific limiters
_limiters: dict[str, RateLimiter] = {}


def get_rate_limiter(provider: str, rate_per_second: float) -> RateLimiter:
    """Get or create the process-wide limiter for ``provider``."""
    key = provider.lower()
    limiter = _limiters.get(key)
    if limiter is None or limiter.rate != rate_per_second:
        limiter = RateLimiter(rate_per_second=rate_per_second)
        _limiters[key] = limiter
    return limiter


def reset_rate_limiters() -> None:
    _limiters.clear()
