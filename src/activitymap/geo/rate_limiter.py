"""
Minimum-interval rate limiting for the geocoding tiers.

Each geocoding service gets one IntervalRateLimiter. Callers await
acquire() before issuing a request; concurrent callers queue on the
limiter's lock so consecutive request starts are always at least
min_interval apart, no matter which sync or detail fetch issued them.
"""
import asyncio
import time
from typing import Awaitable, Callable, Dict, Optional

GOOGLE_MIN_INTERVAL = 0.1
NOMINATIM_MIN_INTERVAL = 1.1  # Nominatim usage policy: max 1 request/second


class IntervalRateLimiter:
    """Serializes calls so that starts are spaced by at least min_interval seconds."""

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_call: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def last_call(self) -> Optional[float]:
        return self._last_call

    async def acquire(self) -> None:
        """Wait until the interval since the previous acquire has elapsed."""
        async with self._lock:
            if self._last_call is not None:
                elapsed = self._clock() - self._last_call
                if elapsed < self.min_interval:
                    await self._sleep(self.min_interval - elapsed)
            self._last_call = self._clock()


_default_limiters: Optional[Dict[str, IntervalRateLimiter]] = None


def default_limiters() -> Dict[str, IntervalRateLimiter]:
    """Return the process-wide limiter per geocoding tier, creating them on first call."""
    global _default_limiters
    if _default_limiters is None:
        _default_limiters = {
            "google": IntervalRateLimiter(GOOGLE_MIN_INTERVAL),
            "nominatim": IntervalRateLimiter(NOMINATIM_MIN_INTERVAL),
        }
    return _default_limiters
