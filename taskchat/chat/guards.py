from __future__ import annotations

import math
import threading
import time
import uuid
from typing import Protocol, cast

import redis

from taskchat.config import Settings

LOCK_TTL_S = 60
# headroom over the agent timeout for history load and the two appends
LOCK_TTL_MARGIN_S = 30

# delete the key only while it still holds the releasing turn's token
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class TurnLock(Protocol):
    """Single-flight guard: at most one turn in progress per conversation.

    `acquire` returns an owner token, or None when the conversation is busy.
    `release` is a no-op unless the token still owns the lock.
    """

    def acquire(self, conversation_id: int) -> str | None: ...

    def release(self, conversation_id: int, token: str) -> None: ...


def lock_ttl_for(agent_timeout_s: float) -> int:
    return max(LOCK_TTL_S, math.ceil(agent_timeout_s) + LOCK_TTL_MARGIN_S)


class InMemoryTurnLock:
    def __init__(self) -> None:
        self._held: dict[int, str] = {}
        self._mutex = threading.Lock()

    def acquire(self, conversation_id: int) -> str | None:
        with self._mutex:
            if conversation_id in self._held:
                return None
            token = uuid.uuid4().hex
            self._held[conversation_id] = token
            return token

    def release(self, conversation_id: int, token: str) -> None:
        with self._mutex:
            if self._held.get(conversation_id) == token:
                del self._held[conversation_id]


class RedisTurnLock:
    """Cross-process lock via SET NX EX; the TTL frees a lock left by a crashed process."""

    def __init__(
        self, client: redis.Redis, *, key_prefix: str = "taskchat", ttl_s: int = LOCK_TTL_S
    ) -> None:
        self._redis = client
        self._prefix = key_prefix.rstrip(":")
        self._ttl_s = ttl_s
        self._release = client.register_script(_RELEASE_SCRIPT)

    @property
    def ttl_s(self) -> int:
        return self._ttl_s

    def _key(self, conversation_id: int) -> str:
        return f"{self._prefix}:lock:turn:{conversation_id}"

    def acquire(self, conversation_id: int) -> str | None:
        token = uuid.uuid4().hex
        if self._redis.set(self._key(conversation_id), token, nx=True, ex=self._ttl_s):
            return token
        return None

    def release(self, conversation_id: int, token: str) -> None:
        self._release(keys=[self._key(conversation_id)], args=[token])


class RateLimiter(Protocol):
    def check_and_increment(self, owner: str) -> bool: ...


class InMemoryRateLimiter:
    """Fixed one-minute window per owner."""

    def __init__(self, max_requests_per_minute: int = 20) -> None:
        self.max_requests = max_requests_per_minute
        self._counters: dict[str, tuple[int, int]] = {}
        self._mutex = threading.Lock()

    def check_and_increment(self, owner: str) -> bool:
        minute = int(time.time() // 60)
        with self._mutex:
            count, window = self._counters.get(owner, (0, minute))
            if window != minute:
                count = 0
            if count >= self.max_requests:
                self._counters[owner] = (count, minute)
                return False
            self._counters[owner] = (count + 1, minute)
            return True


class RedisRateLimiter:
    def __init__(
        self,
        client: redis.Redis,
        max_requests_per_minute: int = 20,
        *,
        key_prefix: str = "taskchat",
    ) -> None:
        self._redis = client
        self.max_requests = max_requests_per_minute
        self._prefix = key_prefix.rstrip(":")

    def check_and_increment(self, owner: str) -> bool:
        minute = int(time.time() // 60)
        key = f"{self._prefix}:rate:{owner}:{minute}"
        p = self._redis.pipeline()
        p.incr(key)
        p.expire(key, 120)
        count = int(cast(list[int], p.execute())[0])
        return count <= self.max_requests


def build_guards(
    settings: Settings, client: redis.Redis | None = None
) -> tuple[TurnLock, RateLimiter | None]:
    """Redis-backed guards when a Redis URL is configured, in-memory otherwise."""
    if client is None and settings.redis_url:
        client = redis.Redis.from_url(settings.redis_url)
    limit = settings.rate_limit_per_minute
    if client is not None:
        lock: TurnLock = RedisTurnLock(
            client,
            key_prefix=settings.store_key_prefix,
            ttl_s=lock_ttl_for(settings.agent_timeout_s),
        )
        limiter: RateLimiter | None = (
            RedisRateLimiter(client, limit, key_prefix=settings.store_key_prefix)
            if limit > 0
            else None
        )
        return lock, limiter
    return InMemoryTurnLock(), (InMemoryRateLimiter(limit) if limit > 0 else None)


__all__ = [
    "LOCK_TTL_S",
    "LOCK_TTL_MARGIN_S",
    "lock_ttl_for",
    "TurnLock",
    "InMemoryTurnLock",
    "RedisTurnLock",
    "RateLimiter",
    "InMemoryRateLimiter",
    "RedisRateLimiter",
    "build_guards",
]
