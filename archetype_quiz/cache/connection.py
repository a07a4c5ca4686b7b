import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from archetype_quiz.config import redis_settings

_log = logging.getLogger(__name__)

_client: Optional[aioredis.Redis] = None


async def get_redis() -> Optional[aioredis.Redis]:
    """
    Returns the shared Redis client, creating it on first use.

    The client connects on its first command, so an unreachable server shows
    up as a RedisError there. None means the client could not be built at all
    (e.g. a malformed URL) and callers should treat Redis as unavailable.
    """
    global _client
    if _client is None:
        try:
            _client = aioredis.from_url(
                redis_settings.url,
                decode_responses=False,
                socket_connect_timeout=1,
                socket_timeout=2,
            )
            _log.info("Created Redis client for rate limiting")
        except (RedisError, ValueError) as e:
            _log.error(f"Could not create Redis client; rate limiting will allow all attempts ({e})")
            return None
    return _client


async def close_redis() -> None:
    """Closes and forgets the shared client. A no-op when none was created."""
    global _client
    client, _client = _client, None
    if client is None:
        return
    try:
        await client.aclose()
        _log.info("Redis connection pool closed")
    except RedisError as e:
        _log.warning(f"Error closing Redis connection: {e}")
