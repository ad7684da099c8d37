"""Valkey-backed infrastructure: client and distributed locks."""

from .client import close_valkey_client, get_valkey_client, valkey_healthcheck
from .distributed_lock import DistributedLock, acquire_lock


__all__ = [
    "DistributedLock",
    "acquire_lock",
    "close_valkey_client",
    "get_valkey_client",
    "valkey_healthcheck",
]
