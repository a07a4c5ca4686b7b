import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, Dict, Optional

import redis.asyncio as redis
from redis.exceptions import NoScriptError, RedisError

from archetype_quiz.config import RateLimitSettings, rate_limit_settings, redis_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: Optional[float] = None  # epoch seconds when the oldest attempt leaves the window

    @property
    def retry_after(self) -> Optional[int]:
        if self.reset_at is None:
            return None
        return max(0, int(round(self.reset_at - time.time())))


class RateLimiter(ABC):
    """Sliding-window attempt limiter keyed by client identity."""

    def __init__(self, max_attempts: int, window_seconds: float):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive.")
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds

    @classmethod
    def from_settings(cls, settings: Optional[RateLimitSettings] = None, **kwargs):
        settings = settings or rate_limit_settings
        return cls(max_attempts=settings.max_attempts, window_seconds=settings.window_seconds, **kwargs)

    @abstractmethod
    async def hit(self, identity: str) -> RateLimitDecision:
        """Records an attempt for `identity` if allowed, and reports the decision."""


class InMemoryRateLimiter(RateLimiter):
    """
    Process-wide sliding window held in a dict guarded by a lock.

    Each identity keeps at most `max_attempts` timestamps. Expired timestamps
    are purged lazily on every hit, and identities whose window empties out
    are dropped from the table.
    """

    def __init__(self, max_attempts: int, window_seconds: float, clock: Callable[[], float] = time.time):
        super().__init__(max_attempts, window_seconds)
        self._clock = clock
        self._windows: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def _purge(self, identity: str, now: float) -> Deque[float]:
        window_start = now - self.window_seconds
        attempts = self._windows.get(identity)
        if attempts is None:
            return deque(maxlen=self.max_attempts)
        while attempts and attempts[0] <= window_start:
            attempts.popleft()
        if not attempts:
            del self._windows[identity]
        return attempts

    async def hit(self, identity: str) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            attempts = self._purge(identity, now)

            if len(attempts) >= self.max_attempts:
                reset_at = attempts[0] + self.window_seconds
                logger.warning(f"Rate limit exceeded for {identity}. Count: {len(attempts)}, Limit: {self.max_attempts}")
                return RateLimitDecision(allowed=False, remaining=0, reset_at=reset_at)

            attempts.append(now)
            self._windows[identity] = attempts
            remaining = self.max_attempts - len(attempts)

        logger.debug(f"Rate limit check passed for {identity}. Remaining: {remaining}")
        return RateLimitDecision(allowed=True, remaining=remaining)

    def attempts_for(self, identity: str) -> int:
        """Number of attempts currently counted for `identity` (no purge)."""
        with self._lock:
            return len(self._windows.get(identity, ()))

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


# Atomic purge/count/record over a sorted set of attempt timestamps (ms)
LUA_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[4]
redis.call("ZREMRANGEBYSCORE", key, "-inf", now - window)
local count = redis.call("ZCARD", key)
if count >= limit then
    local oldest = redis.call("ZRANGE", key, 0, 0, "WITHSCORES")
    return {0, count, oldest[2]}
end
redis.call("ZADD", key, now, member)
redis.call("PEXPIRE", key, window)
return {1, count + 1, 0}
"""


class RedisRateLimiter(RateLimiter):
    """
    Sliding window shared between processes through Redis.

    Fails open: if Redis is unreachable or errors, the attempt is allowed
    and the failure is logged.
    """

    def __init__(
        self,
        max_attempts: int,
        window_seconds: float,
        redis_factory: Optional[Callable[[], Awaitable[Optional[redis.Redis]]]] = None,
        namespace: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(max_attempts, window_seconds)
        if redis_factory is None:
            from archetype_quiz.cache.connection import get_redis
            redis_factory = get_redis
        self._redis_factory = redis_factory
        self._namespace = namespace if namespace is not None else redis_settings.namespace
        self._clock = clock
        self._lua_sha: Optional[str] = None

    def _key(self, identity: str) -> str:
        return f"{self._namespace}rl:{identity}"

    async def _run_script(self, redis_conn: redis.Redis, key: str, *args: str):
        if self._lua_sha is None:
            try:
                self._lua_sha = await redis_conn.script_load(LUA_SCRIPT)
                logger.info(f"Loaded rate limiting Lua script with SHA: {self._lua_sha}")
            except RedisError as e:
                logger.warning(f"Failed to load Lua script into Redis, using EVAL: {e}")
                return await redis_conn.eval(LUA_SCRIPT, 1, key, *args)
        try:
            return await redis_conn.evalsha(self._lua_sha, 1, key, *args)
        except NoScriptError:
            # Script cache was flushed (restart or SCRIPT FLUSH); reload on the next hit
            logger.warning(f"Rate limiting Lua script {self._lua_sha} missing from Redis, using EVAL")
            self._lua_sha = None
            return await redis_conn.eval(LUA_SCRIPT, 1, key, *args)

    async def hit(self, identity: str) -> RateLimitDecision:
        redis_conn = await self._redis_factory()
        if not redis_conn:
            logger.warning("Redis unavailable, skipping rate limiting.")
            return RateLimitDecision(allowed=True, remaining=self.max_attempts - 1)

        now_ms = int(self._clock() * 1000)
        window_ms = int(self.window_seconds * 1000)
        member = f"{now_ms}-{uuid.uuid4().hex}"

        try:
            allowed, count, oldest = await self._run_script(
                redis_conn, self._key(identity), str(now_ms), str(window_ms), str(self.max_attempts), member
            )
        except RedisError as e:
            logger.error(f"Redis error during rate limiting for {identity}: {e}. Allowing request.")
            return RateLimitDecision(allowed=True, remaining=self.max_attempts - 1)

        count = int(count)
        if not int(allowed):
            reset_at = (float(oldest) + window_ms) / 1000.0
            logger.warning(f"Rate limit exceeded for {identity}. Count: {count}, Limit: {self.max_attempts}")
            return RateLimitDecision(allowed=False, remaining=0, reset_at=reset_at)

        return RateLimitDecision(allowed=True, remaining=max(0, self.max_attempts - count))
