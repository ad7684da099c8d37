"""Valkey client for the resolution lease and event publishing.

Connections are not shareable across event loops, so each running loop
gets its own client. Nothing here caches contest data.
"""

from __future__ import annotations

import asyncio

from redis.asyncio import Redis
from redis.exceptions import RedisError

from arena.core.config import settings
from arena.core.logging import get_logger


logger = get_logger("cache.client")

_clients: dict[int, Redis] = {}


def _loop_key() -> int:
    try:
        return id(asyncio.get_running_loop())
    except RuntimeError:
        return 0


async def get_valkey_client() -> Redis:
    """Client bound to the running loop, created on first use."""
    key = _loop_key()
    client = _clients.get(key)
    if client is None:
        client = Redis.from_url(
            settings.valkey_url,
            max_connections=settings.valkey_max_connections,
            decode_responses=True,
            socket_connect_timeout=5.0,
            socket_timeout=5.0,
        )
        _clients[key] = client
        logger.info("Valkey client created", extra={"url": settings.valkey_url})
    return client


async def close_valkey_client() -> None:
    client = _clients.pop(_loop_key(), None)
    if client is not None:
        await client.aclose()


async def valkey_healthcheck() -> bool:
    """True when Valkey answers PING within five seconds."""
    try:
        client = await get_valkey_client()
        return bool(await asyncio.wait_for(client.ping(), timeout=5.0))
    except (RedisError, OSError, asyncio.TimeoutError) as e:
        logger.warning(f"Valkey healthcheck failed: {e}")
        return False
