"""
Redis connection factory.

Redis backs the aggregate cache and the ranking index, but it is optional:
when REDIS_URL is unset or the server does not answer a PING at startup,
connect_redis() returns None and callers fall back to in-process or no-op
implementations.
"""
import logging
import os
from typing import Optional

import redis

logger = logging.getLogger(__name__)


def connect_redis(url: Optional[str] = None) -> Optional[redis.Redis]:
    """
    Create a Redis client and verify it is reachable.

    Args:
        url: Redis URL (defaults to REDIS_URL environment variable)

    Returns:
        Connected client, or None when Redis is not configured/reachable
    """
    url = url or os.getenv("REDIS_URL")
    if not url:
        logger.info("REDIS_URL not set, running without Redis")
        return None

    timeout = float(os.getenv("REDIS_SOCKET_TIMEOUT", "2"))
    client = redis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=timeout,
        socket_timeout=timeout,
    )

    try:
        client.ping()
    except redis.RedisError as e:
        logger.warning(f"Failed to connect to Redis at startup, continuing without it: {e}")
        client.close()
        return None

    logger.info("Redis connected successfully")
    return client
