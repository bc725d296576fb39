"""
Fixed-window attempt tracker for login throttling.

attempt() - counts one attempt, or raises RateLimited when the key has used
            its window. A rejected attempt is not counted; an expired window
            starts over at one. The decision and the write are one store call.
reset()   - forgets the key (called after a successful authentication).
sweep()   - drops entries whose last attempt is older than max_age.

The window is anchored at the *last* attempt:
remainingTime = window - (now - last_attempt).
"""

from __future__ import annotations

from datetime import timedelta

from errors import RateLimited
from infrastructure.ratelimit.attempt_store import AttemptStore
from shared.datetime_utils import Clock, format_wait, utcnow
from shared.logging import get_logger

log = get_logger(__name__)


class AttemptTracker:
    def __init__(
        self,
        store: AttemptStore,
        max_attempts: int = 5,
        window_seconds: int = 900,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._max_attempts = max_attempts
        self._window = timedelta(seconds=window_seconds)
        self._clock = clock

    async def attempt(self, key: str) -> int:
        """Count one attempt and return how many remain in the window."""
        now = self._clock()
        result = await self._store.hit(key, now, self._window, self._max_attempts)
        if result.allowed:
            return max(0, self._max_attempts - result.record.attempts)

        elapsed = now - result.record.last_attempt
        remaining_ms = max(0, int((self._window - elapsed).total_seconds() * 1000))
        raise RateLimited(
            f"Too many login attempts. Please try again in {format_wait(remaining_ms)}",
            remaining_ms=remaining_ms,
            attempts_remaining=0,
        )

    async def reset(self, key: str) -> None:
        await self._store.delete(key)

    async def sweep(self, max_age_seconds: int) -> int:
        removed = await self._store.sweep(self._clock() - timedelta(seconds=max_age_seconds))
        if removed:
            log.info("attempt_ledger_swept", removed=removed)
        return removed
