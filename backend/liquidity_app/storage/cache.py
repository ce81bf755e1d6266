"""Redis connection for the latest-price cache.

One pooled client per process. When Redis cannot be reached at startup
the client stays None and price reads fall back to memory.
"""

from __future__ import annotations

import logging
from typing import Any

import orjson
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from liquidity_app.config import get_settings

logger = logging.getLogger(__name__)

_pool: ConnectionPool | None = None
_client: redis.Redis | None = None

KEY_PREFIX_PRICE = "price:"  # price:{pair}


async def init_cache(redis_url: str | None = None) -> None:
    """Connect to Redis, leaving the cache disabled if ping fails."""
    global _pool, _client

    if _client is not None:
        return

    settings = get_settings()
    url = redis_url or settings.redis_url
    _pool = ConnectionPool.from_url(
        url,
        max_connections=20,
        decode_responses=False,  # orjson works on bytes
        socket_timeout=settings.request_timeout,
        socket_connect_timeout=settings.request_timeout,
    )
    _client = redis.Redis(connection_pool=_pool)

    try:
        await _client.ping()
        logger.info(f"Redis connected: {url}")
    except (redis.ConnectionError, redis.TimeoutError) as e:
        logger.warning(f"Redis unavailable ({e}), prices stay in memory")
        await _client.aclose()
        await _pool.disconnect()
        _client = None
        _pool = None


async def close_cache() -> None:
    global _pool, _client

    if _client is not None:
        await _client.aclose()
        _client = None

    if _pool is not None:
        await _pool.disconnect()
        _pool = None

    logger.info("Redis connection closed")


def get_client() -> redis.Redis | None:
    return _client


def is_cache_available() -> bool:
    return _client is not None


async def get_json(key: str) -> Any | None:
    """Read and decode a JSON value. Misses, Redis errors and bad JSON give None."""
    if _client is None:
        return None

    try:
        data = await _client.get(key)
    except redis.RedisError as e:
        logger.warning(f"Redis GET {key} failed: {e}")
        return None

    if data is None:
        return None

    try:
        return orjson.loads(data)
    except orjson.JSONDecodeError as e:
        logger.warning(f"Bad JSON under {key}: {e}")
        return None
