import asyncio
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import NoScriptError, RedisError

from archetype_quiz.config import RateLimitSettings
from archetype_quiz.services.rate_limiter import InMemoryRateLimiter, RedisRateLimiter

WINDOW = 3600


# --- In-memory sliding window ---

@pytest.mark.asyncio
async def test_fourth_attempt_in_window_is_denied(rate_limiter, clock):
    start = clock()
    decisions = []
    for _ in range(4):
        decisions.append(await rate_limiter.hit("1.2.3.4"))
        clock.advance(10)

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.remaining for d in decisions] == [2, 1, 0, 0]
    assert decisions[3].reset_at == start + WINDOW


@pytest.mark.asyncio
async def test_attempts_allowed_again_after_window(rate_limiter, clock):
    for _ in range(3):
        await rate_limiter.hit("1.2.3.4")
    assert not (await rate_limiter.hit("1.2.3.4")).allowed

    clock.advance(WINDOW)
    decision = await rate_limiter.hit("1.2.3.4")

    assert decision.allowed
    assert rate_limiter.attempts_for("1.2.3.4") == 1


@pytest.mark.asyncio
async def test_window_slides_one_attempt_at_a_time(rate_limiter, clock):
    await rate_limiter.hit("ip")
    clock.advance(1000)
    await rate_limiter.hit("ip")
    await rate_limiter.hit("ip")

    clock.advance(WINDOW - 1000)  # only the first attempt has expired
    assert (await rate_limiter.hit("ip")).allowed
    assert not (await rate_limiter.hit("ip")).allowed


@pytest.mark.asyncio
async def test_denied_attempts_are_not_recorded(rate_limiter, clock):
    for _ in range(3):
        await rate_limiter.hit("ip")
    for _ in range(5):
        await rate_limiter.hit("ip")

    assert rate_limiter.attempts_for("ip") == 3


@pytest.mark.asyncio
async def test_identities_are_independent(rate_limiter):
    for _ in range(3):
        await rate_limiter.hit("a")

    assert not (await rate_limiter.hit("a")).allowed
    assert (await rate_limiter.hit("b")).allowed
    assert len(rate_limiter) == 2


@pytest.mark.asyncio
async def test_expired_attempts_are_purged_on_next_hit(clock):
    limiter = InMemoryRateLimiter(max_attempts=1, window_seconds=60, clock=clock)
    await limiter.hit("a")
    assert not (await limiter.hit("a")).allowed

    clock.advance(60)
    decision = await limiter.hit("a")

    assert decision.allowed
    assert decision.remaining == 0
    assert len(limiter) == 1
    assert limiter.attempts_for("a") == 1


def test_from_settings_uses_configured_limits():
    limiter = InMemoryRateLimiter.from_settings(RateLimitSettings(max_attempts=5, window_seconds=60))

    assert limiter.max_attempts == 5
    assert limiter.window_seconds == 60


@pytest.mark.parametrize("max_attempts, window", [(0, 60), (3, 0)])
def test_invalid_limits_rejected(max_attempts, window):
    with pytest.raises(ValueError):
        InMemoryRateLimiter(max_attempts=max_attempts, window_seconds=window)


# --- Redis sliding window ---

def make_redis_limiter(redis_conn, clock, max_attempts=3):
    async def factory():
        return redis_conn

    return RedisRateLimiter(
        max_attempts=max_attempts,
        window_seconds=WINDOW,
        redis_factory=factory,
        namespace="test:",
        clock=clock,
    )


@pytest.mark.asyncio
async def test_redis_allowed_attempt(clock):
    redis_conn = AsyncMock()
    redis_conn.script_load.return_value = "sha123"
    redis_conn.evalsha.return_value = [1, 1, 0]
    limiter = make_redis_limiter(redis_conn, clock)

    decision = await limiter.hit("1.2.3.4")

    assert decision.allowed
    assert decision.remaining == 2
    args = redis_conn.evalsha.await_args.args
    assert args[0] == "sha123"
    assert args[2] == "test:rl:1.2.3.4"
    assert args[3] == str(int(clock() * 1000))
    assert args[4] == str(WINDOW * 1000)


@pytest.mark.asyncio
async def test_redis_denied_attempt_reports_reset(clock):
    oldest_ms = int(clock() * 1000) - 5000
    redis_conn = AsyncMock()
    redis_conn.script_load.return_value = "sha123"
    redis_conn.evalsha.return_value = [0, 3, str(oldest_ms).encode()]
    limiter = make_redis_limiter(redis_conn, clock)

    decision = await limiter.hit("1.2.3.4")

    assert not decision.allowed
    assert decision.remaining == 0
    assert decision.reset_at == pytest.approx((oldest_ms + WINDOW * 1000) / 1000.0)


@pytest.mark.asyncio
async def test_redis_script_is_loaded_once(clock):
    redis_conn = AsyncMock()
    redis_conn.script_load.return_value = "sha123"
    redis_conn.evalsha.return_value = [1, 1, 0]
    limiter = make_redis_limiter(redis_conn, clock)

    await limiter.hit("a")
    await limiter.hit("b")

    redis_conn.script_load.assert_awaited_once()
    assert redis_conn.evalsha.await_count == 2


@pytest.mark.asyncio
async def test_redis_falls_back_to_eval_when_script_load_fails(clock):
    redis_conn = AsyncMock()
    redis_conn.script_load.side_effect = RedisError("NOSCRIPT")
    redis_conn.eval.return_value = [1, 2, 0]
    limiter = make_redis_limiter(redis_conn, clock)

    decision = await limiter.hit("a")

    assert decision.allowed
    assert decision.remaining == 1
    redis_conn.eval.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_error_fails_open(clock):
    redis_conn = AsyncMock()
    redis_conn.script_load.return_value = "sha123"
    redis_conn.evalsha.side_effect = RedisError("connection reset")
    limiter = make_redis_limiter(redis_conn, clock)

    decision = await limiter.hit("a")

    assert decision.allowed


@pytest.mark.asyncio
async def test_redis_unavailable_fails_open(clock):
    limiter = make_redis_limiter(None, clock)

    decision = await limiter.hit("a")

    assert decision.allowed
    assert decision.remaining == 2


@pytest.mark.asyncio
async def test_redis_flushed_script_cache_keeps_limiting(clock):
    oldest_ms = int(clock() * 1000)
    redis_conn = AsyncMock()
    redis_conn.script_load.return_value = "sha123"
    redis_conn.evalsha.side_effect = NoScriptError("No matching script. Please use EVAL.")
    redis_conn.eval.return_value = [0, 3, str(oldest_ms).encode()]
    limiter = make_redis_limiter(redis_conn, clock)

    decisions = [await limiter.hit("1.2.3.4") for _ in range(3)]

    assert [d.allowed for d in decisions] == [False, False, False]
    assert redis_conn.eval.await_count == 3
    # The cached SHA is dropped, so each hit tries to reload the script
    assert redis_conn.script_load.await_count == 3


@pytest.mark.asyncio
async def test_concurrent_hits_allow_exactly_the_cap(clock):
    limiter = InMemoryRateLimiter(max_attempts=3, window_seconds=WINDOW, clock=clock)

    decisions = await asyncio.gather(*(limiter.hit("1.2.3.4") for _ in range(20)))

    assert sum(d.allowed for d in decisions) == 3
    assert limiter.attempts_for("1.2.3.4") == 3


def test_threaded_hits_allow_exactly_the_cap(clock):
    limiter = InMemoryRateLimiter(max_attempts=3, window_seconds=WINDOW, clock=clock)

    def hit_once():
        return asyncio.run(limiter.hit("1.2.3.4"))

    with ThreadPoolExecutor(max_workers=8) as pool:
        decisions = list(pool.map(lambda _: hit_once(), range(40)))

    assert sum(d.allowed for d in decisions) == 3
