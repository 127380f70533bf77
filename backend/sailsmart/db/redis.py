"""Shared Redis client for the notification outbox and AI rate limits."""

import redis.asyncio as redis
import structlog

from sailsmart.core.config import get_settings

logger = structlog.get_logger(__name__)

_client: redis.Redis | None = None


async def init_redis(url: str | None = None) -> None:
    """Connect once per process and fail fast when Redis is unreachable."""
    global _client

    if _client is not None:
        return

    client = redis.from_url(
        url or get_settings().redis_url,
        decode_responses=True,
        health_check_interval=30,
        socket_connect_timeout=5,
    )
    await client.ping()
    _client = client
    logger.info("redis_connected")


async def close_redis() -> None:
    global _client

    client, _client = _client, None
    if client is not None:
        await client.aclose()


def get_redis() -> redis.Redis:
    if _client is None:
        raise RuntimeError("init_redis() must run before Redis is used")
    return _client
