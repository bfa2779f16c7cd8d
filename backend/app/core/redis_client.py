"""
Redis connection pool used by rate limiting.

Configuration:
- REDIS_URL: connection URL (default: redis://redis:6379)

Redis is optional. When it cannot be reached at startup the client stays
None and rate limiting fails open.
"""
import os
from typing import Optional

import redis.asyncio as redis_async

from app.core.logging import get_logger

logger = get_logger(__name__)

_redis_client: Optional[redis_async.Redis] = None


def get_redis_url() -> str:
    """Get Redis URL from environment."""
    return os.getenv("REDIS_URL", "redis://redis:6379")


async def initialize_redis() -> bool:
    """
    Initialize Redis connection pool.

    Returns:
        True if initialization successful, False otherwise
    """
    global _redis_client

    redis_url = get_redis_url()
    logger.info("redis_initializing", url=redis_url)
    client = redis_async.from_url(
        redis_url,
        max_connections=20,
        socket_connect_timeout=5,
        socket_timeout=5,
        retry_on_timeout=True,
        decode_responses=True,
    )
    try:
        await client.ping()
    except Exception as e:
        logger.error(
            "redis_initialization_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        await client.aclose()
        _redis_client = None
        return False

    _redis_client = client
    logger.info("redis_initialized")
    return True


async def close_redis() -> None:
    """Close Redis connection pool."""
    global _redis_client

    if _redis_client:
        try:
            await _redis_client.aclose()
            logger.info("redis_closed")
        except Exception as e:
            logger.error(
                "redis_close_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
        finally:
            _redis_client = None


def get_redis_client() -> Optional[redis_async.Redis]:
    """Get Redis client (None when Redis is unavailable)."""
    return _redis_client
