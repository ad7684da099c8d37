"""Domain events emitted by the contest engine.

The engine only publishes; broadcasting to clients is left to whoever
consumes the channel.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol

from pydantic import BaseModel, Field

from arena.core.logging import get_logger


logger = get_logger("contest.events")


class DomainEventType(str, Enum):
    """Contest domain event types."""

    PREDICTION_SUBMITTED = "prediction_submitted"
    HOUSE_PREDICTION_RECORDED = "house_prediction_recorded"
    CONTEST_RESOLVED = "contest_resolved"
    LEADERBOARD_UPDATED = "leaderboard_updated"
    CONTEST_ACTIVATION_REQUESTED = "contest_activation_requested"


class DomainEvent(BaseModel):
    """Domain event payload."""

    type: DomainEventType
    contest_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: Optional[dict[str, Any]] = None

    model_config = {"use_enum_values": True}


class EventChannel(Protocol):
    async def publish(self, event: DomainEvent) -> None: ...


class InMemoryEventChannel:
    """
    In-process channel keeping a history and fanning out to subscriber queues.

    Subscriber queues are bounded; a subscriber that falls behind by
    ``max_queue`` events misses the newer ones until it catches up.
    """

    def __init__(self, max_history: int = 1000, max_queue: int = 100):
        self.history: list[DomainEvent] = []
        self.dropped = 0
        self._max_history = max_history
        self._max_queue = max_queue
        self._subscribers: list[asyncio.Queue[DomainEvent]] = []

    def subscribe(self) -> asyncio.Queue[DomainEvent]:
        queue: asyncio.Queue[DomainEvent] = asyncio.Queue(maxsize=self._max_queue)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[DomainEvent]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    async def publish(self, event: DomainEvent) -> None:
        self.history.append(event)
        if len(self.history) > self._max_history:
            del self.history[: len(self.history) - self._max_history]
        for queue in self._subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                self.dropped += 1
                logger.warning(
                    f"Subscriber queue full, dropped {event.type}",
                    extra={"contest_id": event.contest_id},
                )

    def of_type(self, event_type: DomainEventType) -> list[DomainEvent]:
        return [e for e in self.history if e.type == event_type.value]


class ValkeyEventChannel:
    """Publishes events to Valkey pub/sub, one channel per contest."""

    def __init__(self, prefix: Optional[str] = None):
        from arena.core.config import settings

        self.prefix = prefix or settings.event_channel_prefix

    def channel_for(self, contest_id: str) -> str:
        return f"{self.prefix}:{contest_id}"

    async def publish(self, event: DomainEvent) -> None:
        from arena.cache.client import get_valkey_client

        try:
            client = await get_valkey_client()
            receivers = await client.publish(
                self.channel_for(event.contest_id), event.model_dump_json()
            )
            logger.debug(f"Published {event.type} to {receivers} subscriber(s)")
        except Exception as e:
            # Best effort delivery
            logger.warning(
                f"Failed to publish {event.type}: {e}",
                extra={"contest_id": event.contest_id},
            )
