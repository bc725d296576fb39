"""Attempt ledger storage.

AttemptStore is the protocol AttemptTracker depends on. hit() is the only
write path: it reads the entry, decides, and counts the attempt as one atomic
step, so parallel attempts on the same key cannot all read the same count.

- InMemoryAttemptStore: dict inside the process; the default. hit() never
  awaits, so it cannot interleave with another hit() on the event loop.
- RedisAttemptStore: one hash per key with a TTL, shared across processes.
  hit() runs under WATCH/MULTI and retries when another client wrote the key
  in between. Redis expires old keys on its own, so sweep() is a no-op there.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol

import redis.asyncio as aioredis
from redis.exceptions import WatchError

from shared.datetime_utils import as_utc
from shared.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class AttemptRecord:
    attempts: int
    last_attempt: datetime


@dataclass(frozen=True)
class HitResult:
    allowed: bool
    # the entry after the hit; on rejection, the unchanged entry
    record: AttemptRecord


def apply_hit(
    record: Optional[AttemptRecord],
    now: datetime,
    window: timedelta,
    max_attempts: int,
) -> HitResult:
    """Decide one attempt against *record*. Rejections leave the count as is."""
    if record is None or now - record.last_attempt >= window:
        return HitResult(True, AttemptRecord(attempts=1, last_attempt=now))
    if record.attempts >= max_attempts:
        return HitResult(False, record)
    return HitResult(True, AttemptRecord(attempts=record.attempts + 1, last_attempt=now))


class AttemptStore(Protocol):
    async def get(self, key: str) -> Optional[AttemptRecord]: ...

    async def hit(
        self, key: str, now: datetime, window: timedelta, max_attempts: int
    ) -> HitResult: ...

    async def delete(self, key: str) -> None: ...

    async def sweep(self, older_than: datetime) -> int: ...


class InMemoryAttemptStore:
    def __init__(self) -> None:
        self._entries: dict[str, AttemptRecord] = {}

    async def get(self, key: str) -> Optional[AttemptRecord]:
        return self._entries.get(key)

    async def hit(
        self, key: str, now: datetime, window: timedelta, max_attempts: int
    ) -> HitResult:
        result = apply_hit(self._entries.get(key), now, window, max_attempts)
        if result.allowed:
            self._entries[key] = result.record
        return result

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def sweep(self, older_than: datetime) -> int:
        stale = [k for k, r in self._entries.items() if r.last_attempt < older_than]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)


class RedisAttemptStore:
    KEY_PREFIX = "login_attempts:"

    def __init__(self, client: aioredis.Redis, ttl_seconds: int = 3600) -> None:
        self._redis = client
        self._ttl = ttl_seconds

    def _key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}{key}"

    @staticmethod
    def _parse(data: dict) -> Optional[AttemptRecord]:
        if not data:
            return None
        return AttemptRecord(
            attempts=int(data["attempts"]),
            last_attempt=as_utc(datetime.fromisoformat(data["last_attempt"])),
        )

    async def get(self, key: str) -> Optional[AttemptRecord]:
        return self._parse(await self._redis.hgetall(self._key(key)))

    async def hit(
        self, key: str, now: datetime, window: timedelta, max_attempts: int
    ) -> HitResult:
        redis_key = self._key(key)
        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(redis_key)
                    result = apply_hit(
                        self._parse(await pipe.hgetall(redis_key)), now, window, max_attempts
                    )
                    if not result.allowed:
                        await pipe.unwatch()
                        return result
                    pipe.multi()
                    pipe.hset(
                        redis_key,
                        mapping={
                            "attempts": result.record.attempts,
                            "last_attempt": result.record.last_attempt.isoformat(),
                        },
                    )
                    pipe.expire(redis_key, timedelta(seconds=self._ttl))
                    await pipe.execute()
                    return result
                except WatchError:
                    log.debug("attempt_ledger_write_conflict")
                    continue

    async def delete(self, key: str) -> None:
        await self._redis.delete(self._key(key))

    async def sweep(self, older_than: datetime) -> int:
        return 0
