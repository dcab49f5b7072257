"""Valkey client connection management."""

from __future__ import annotations

import asyncio

from redis.asyncio import ConnectionPool, Redis

from finora.core.config import Settings
from finora.core.logging import get_logger


logger = get_logger("cache.client")


def create_valkey_client(settings: Settings) -> Redis:
    """Create a Valkey client backed by its own connection pool."""
    pool = ConnectionPool.from_url(
        settings.valkey_url,
        max_connections=settings.valkey_max_connections,
        decode_responses=True,
        socket_timeout=5.0,
        socket_connect_timeout=5.0,
        retry_on_timeout=True,
        health_check_interval=30,
    )
    logger.info(
        "Valkey connection pool initialized",
        extra={"url": settings.valkey_url},
    )
    return Redis(connection_pool=pool)


async def close_valkey_client(client: Redis) -> None:
    """Close Valkey client and its connection pool."""
    await client.aclose()
    await client.connection_pool.disconnect()
    logger.info("Valkey connection pool closed")


async def valkey_healthcheck(client: Redis) -> bool:
    """Check Valkey connection health."""
    try:
        result = await asyncio.wait_for(client.ping(), timeout=5.0)
        return result is True or result == "PONG"
    except Exception as e:
        logger.warning(f"Valkey healthcheck failed: {e}")
        return False
