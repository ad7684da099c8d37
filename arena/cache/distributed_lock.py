"""Distributed locking using Valkey.

Serializes work that must not run twice at once across instances, such as
resolving a contest.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

from redis.exceptions import RedisError

from arena.core.exceptions import ConflictError, StorageFailureError
from arena.core.logging import get_logger

from .client import get_valkey_client


logger = get_logger("cache.lock")

LOCK_PREFIX = "arena:lock"

# Delete only if we still own the key
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class DistributedLock:
    """Lease on a Valkey key (SET NX EX, token-checked release)."""

    def __init__(
        self,
        name: str,
        timeout: int = 30,
        blocking: bool = True,
        blocking_timeout: float | None = None,
    ):
        """
        Args:
            name: Lock name (will be prefixed)
            timeout: Lock expiration in seconds (auto-release if holder dies)
            blocking: Whether to wait for the lock
            blocking_timeout: Max time to wait for lock (None = wait forever)
        """
        self.name = name
        self.key = f"{LOCK_PREFIX}:{name}"
        self.timeout = timeout
        self.blocking = blocking
        self.blocking_timeout = blocking_timeout
        self.token = str(uuid.uuid4())
        self._acquired = False

    async def acquire(self) -> bool:
        """Acquire the lock. Returns True if acquired, False otherwise."""
        client = await get_valkey_client()
        start_time = time.monotonic()

        while True:
            acquired = await client.set(self.key, self.token, ex=self.timeout, nx=True)
            if acquired:
                self._acquired = True
                logger.debug(f"Lock acquired: {self.name}")
                return True

            if not self.blocking:
                return False

            if self.blocking_timeout is not None:
                if time.monotonic() - start_time >= self.blocking_timeout:
                    logger.debug(f"Lock acquisition timeout: {self.name}")
                    return False

            await asyncio.sleep(0.1)

    async def release(self) -> bool:
        """Release the lock if we still hold it (token matches)."""
        if not self._acquired:
            return False

        client = await get_valkey_client()
        try:
            result = await client.eval(_RELEASE_SCRIPT, 1, self.key, self.token)
        except RedisError as e:
            logger.error(f"Lock release error: {e}")
            return False
        finally:
            self._acquired = False

        if result:
            logger.debug(f"Lock released: {self.name}")
            return True
        logger.warning(f"Lock release failed (token mismatch): {self.name}")
        return False


@asynccontextmanager
async def acquire_lock(
    name: str,
    timeout: int = 30,
    blocking: bool = True,
    blocking_timeout: float | None = None,
) -> AsyncIterator[DistributedLock]:
    """
    Context manager for distributed lock.

    Raises:
        ConflictError: Another holder kept the lock past ``blocking_timeout``
        StorageFailureError: Valkey is unreachable

    Usage:
        async with acquire_lock("contest-resolution:wk-42", timeout=300):
            ...
    """
    lock = DistributedLock(
        name,
        timeout=timeout,
        blocking=blocking,
        blocking_timeout=blocking_timeout,
    )
    try:
        acquired = await lock.acquire()
    except RedisError as e:
        raise StorageFailureError(
            message="Lock service unavailable", details={"lock": name}
        ) from e
    if not acquired:
        raise ConflictError(
            message="Operation already in progress", details={"lock": name}
        )
    try:
        yield lock
    finally:
        await lock.release()

