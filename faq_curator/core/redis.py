"""Redis connection pool with degraded mode fallback.

The application works without Redis (degraded mode):
- FAQ generation falls back to FastAPI BackgroundTasks (in-process)
- Review, search and lifecycle endpoints continue normally
- Health endpoint reports Redis as unavailable
"""

import logging

from arq.connections import ArqRedis, RedisSettings, create_pool
from redis.exceptions import RedisError

from faq_curator.config import get_settings

logger = logging.getLogger(__name__)

_redis_pool: ArqRedis | None = None
_redis_checked: bool = False  # True after first connection attempt

# redis-py errors do not derive from the builtin ConnectionError
REDIS_ERRORS = (ConnectionError, OSError, RedisError)


def parse_redis_settings(fast_fail: bool = True) -> RedisSettings:
    """Parse redis_url into ARQ RedisSettings.

    The API side fails fast so degraded mode is detected quickly; workers
    keep ARQ's default reconnect behaviour.
    """
    settings = get_settings()
    base = RedisSettings.from_dsn(settings.redis_url)
    if not fast_fail:
        return base
    return RedisSettings(
        host=base.host,
        port=base.port,
        unix_socket_path=base.unix_socket_path,
        database=base.database,
        password=base.password,
        ssl=base.ssl,
        conn_timeout=2,
        conn_retries=0,
        conn_retry_delay=0,
    )


async def get_redis_pool() -> ArqRedis | None:
    """Get or create the Redis connection pool.

    Returns None if Redis is unavailable (degraded mode). Only attempts the
    connection once; after a failure it returns None without retrying.
    """
    global _redis_pool, _redis_checked
    if _redis_pool is not None:
        return _redis_pool
    if _redis_checked:
        return None

    _redis_checked = True
    try:
        _redis_pool = await create_pool(parse_redis_settings())
        logger.info("Redis connection pool created")
        return _redis_pool
    except REDIS_ERRORS as e:
        logger.warning(f"Redis unavailable, running in degraded mode: {e}")
        return None


async def close_redis_pool() -> None:
    """Close the Redis connection pool on shutdown."""
    global _redis_pool, _redis_checked
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None
        logger.info("Redis connection pool closed")
    _redis_checked = False


async def is_redis_available() -> bool:
    """Check if Redis is connected and responding.

    Unlike get_redis_pool(), this makes a fresh connection attempt whenever
    no pool is cached, so the health endpoint notices Redis coming back.
    """
    global _redis_pool, _redis_checked

    if _redis_pool is None:
        _redis_checked = False
    pool = await get_redis_pool()
    if pool is None:
        return False

    try:
        await pool.ping()
        return True
    except REDIS_ERRORS as e:
        logger.warning(f"Redis ping failed: {e}")
        _redis_pool = None
        _redis_checked = False
        return False
