"""Fixed-window rate limiter keyed by client identity."""

import math
import time
from typing import Callable, Optional

import structlog

from seoreport.config import get_settings
from seoreport.metrics import metrics
from seoreport.models import RateLimitDecision, RateLimitEntry
from seoreport.repository import RateLimitStore, get_store

logger = structlog.get_logger()


class RateLimiter:
    """
    Admits at most ``limit`` requests per identity per fixed window.

    Windows start at an identity's first request and are only rolled over
    lazily, the next time that identity makes a request after the window
    has passed.
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        limit: Optional[int] = None,
        window_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        settings = get_settings()
        self._store = store if store is not None else get_store()
        self._limit = limit if limit is not None else settings.rate_limit
        self._window = window_seconds if window_seconds is not None else settings.rate_limit_window_seconds
        self._clock = clock

    @property
    def limit(self) -> int:
        return self._limit

    async def check(self, identity: str) -> RateLimitDecision:
        """Count a request for ``identity`` if it fits in the current window."""
        async with self._store.lock(identity):
            now = self._clock()
            entry = await self._store.get(identity)

            if entry is None:
                entry = RateLimitEntry(identity=identity, count=0, window_reset_at=now + self._window)
            elif now > entry.window_reset_at:
                entry.count = 0
                entry.window_reset_at = now + self._window

            if entry.count >= self._limit:
                decision = RateLimitDecision.rejected(
                    limit=self._limit,
                    retry_after_seconds=self._retry_after(entry.window_reset_at - now),
                    reset_at=entry.window_reset_at,
                )
                # Persist so a freshly created entry still opens its window
                await self._store.set(entry, ttl_seconds=self._ttl(entry, now))
            else:
                entry.count += 1
                await self._store.set(entry, ttl_seconds=self._ttl(entry, now))
                decision = RateLimitDecision.admitted(
                    limit=self._limit,
                    remaining=self._limit - entry.count,
                    reset_at=entry.window_reset_at,
                )

        metrics.rate_limit_total.labels(result="allowed" if decision.allowed else "blocked").inc()
        logger.info(
            "rate_limit_checked",
            identity=identity,
            allow=decision.allowed,
            remaining=decision.remaining,
            retry_after=decision.retry_after_seconds,
        )
        return decision

    @staticmethod
    def _ttl(entry: RateLimitEntry, now: float) -> float:
        # Kept one second past the reset so the boundary request still sees it
        return entry.window_reset_at - now + 1

    def _retry_after(self, seconds_left: float) -> int:
        # Rounded up to whole minutes, never past the window length
        minutes = math.ceil(max(seconds_left, 0) / 60)
        return min(minutes * 60, self._window)


# Singleton instance
_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get the rate limiter singleton."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter
