"""Tests for the resolution lease, event channels and engine configuration."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError

from arena.cache.client import close_valkey_client, get_valkey_client, valkey_healthcheck
from arena.cache.distributed_lock import LOCK_PREFIX, acquire_lock
from arena.contest.config import ContestConfig
from arena.contest.events import (
    DomainEvent,
    DomainEventType,
    InMemoryEventChannel,
    ValkeyEventChannel,
)
from arena.core.config import Settings
from arena.core.exceptions import ConflictError, StorageFailureError


def valkey(set_result=True) -> MagicMock:
    client = MagicMock()
    client.set = AsyncMock(return_value=set_result)
    client.eval = AsyncMock(return_value=1)
    client.publish = AsyncMock(return_value=2)
    return client


class TestAcquireLock:
    """Tests for acquire_lock()."""

    @pytest.mark.asyncio
    async def test_acquire_and_release(self):
        client = valkey()
        with patch(
            "arena.cache.distributed_lock.get_valkey_client", AsyncMock(return_value=client)
        ):
            async with acquire_lock("contest-resolution:wk-1", timeout=300) as lock:
                assert lock.key == f"{LOCK_PREFIX}:contest-resolution:wk-1"

        client.set.assert_awaited_once_with(lock.key, lock.token, ex=300, nx=True)
        client.eval.assert_awaited_once()
        assert client.eval.await_args.args[2:] == (lock.key, lock.token)

    @pytest.mark.asyncio
    async def test_held_elsewhere(self):
        client = valkey(set_result=None)
        with patch(
            "arena.cache.distributed_lock.get_valkey_client", AsyncMock(return_value=client)
        ):
            with pytest.raises(ConflictError):
                async with acquire_lock("busy", blocking=False):
                    pass
        client.eval.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_blocking_timeout(self):
        client = valkey(set_result=None)
        with patch(
            "arena.cache.distributed_lock.get_valkey_client", AsyncMock(return_value=client)
        ):
            with pytest.raises(ConflictError):
                async with acquire_lock("busy", blocking_timeout=0.15):
                    pass
        assert client.set.await_count >= 2

    @pytest.mark.asyncio
    async def test_valkey_down(self):
        client = valkey()
        client.set.side_effect = RedisConnectionError("refused")
        with patch(
            "arena.cache.distributed_lock.get_valkey_client", AsyncMock(return_value=client)
        ):
            with pytest.raises(StorageFailureError):
                async with acquire_lock("x"):
                    pass

    @pytest.mark.asyncio
    async def test_released_when_body_raises(self):
        client = valkey()
        with patch(
            "arena.cache.distributed_lock.get_valkey_client", AsyncMock(return_value=client)
        ):
            with pytest.raises(RuntimeError):
                async with acquire_lock("x"):
                    raise RuntimeError("boom")
        client.eval.assert_awaited_once()


class TestEventChannels:
    """Tests for the in-memory and Valkey event channels."""

    @pytest.mark.asyncio
    async def test_in_memory_fan_out(self):
        channel = InMemoryEventChannel(max_history=2)
        queue = channel.subscribe()

        for i in range(3):
            await channel.publish(
                DomainEvent(type=DomainEventType.PREDICTION_SUBMITTED, contest_id=f"wk-{i}")
            )

        assert [e.contest_id for e in channel.history] == ["wk-1", "wk-2"]
        assert queue.qsize() == 3
        first = await asyncio.wait_for(queue.get(), timeout=1)
        assert first.type == "prediction_submitted"

        channel.unsubscribe(queue)
        await channel.publish(DomainEvent(type=DomainEventType.CONTEST_RESOLVED, contest_id="wk-9"))
        assert queue.qsize() == 2
        assert len(channel.of_type(DomainEventType.CONTEST_RESOLVED)) == 1

    @pytest.mark.asyncio
    async def test_slow_subscriber_queue_is_bounded(self):
        channel = InMemoryEventChannel(max_queue=2)
        stalled = channel.subscribe()

        for i in range(5):
            await channel.publish(
                DomainEvent(type=DomainEventType.PREDICTION_SUBMITTED, contest_id=f"wk-{i}")
            )

        assert stalled.qsize() == 2
        assert channel.dropped == 3
        assert len(channel.history) == 5
        assert (await stalled.get()).contest_id == "wk-0"

    @pytest.mark.asyncio
    async def test_valkey_publishes_per_contest(self):
        client = valkey()
        channel = ValkeyEventChannel(prefix="arena:events")
        with patch("arena.cache.client.get_valkey_client", AsyncMock(return_value=client)):
            await channel.publish(
                DomainEvent(
                    type=DomainEventType.LEADERBOARD_UPDATED,
                    contest_id="wk-1",
                    data={"entries": 3},
                )
            )

        name, payload = client.publish.await_args.args
        assert name == "arena:events:wk-1"
        assert '"leaderboard_updated"' in payload

    @pytest.mark.asyncio
    async def test_valkey_failure_is_swallowed(self):
        client = valkey()
        client.publish.side_effect = RedisConnectionError("down")
        channel = ValkeyEventChannel(prefix="arena:events")
        with patch("arena.cache.client.get_valkey_client", AsyncMock(return_value=client)):
            await channel.publish(
                DomainEvent(type=DomainEventType.CONTEST_RESOLVED, contest_id="wk-1")
            )


class TestValkeyClient:
    """Tests for the per-loop Valkey client."""

    @pytest.mark.asyncio
    async def test_client_reused_within_loop(self):
        client = valkey()
        client.ping = AsyncMock(return_value=True)
        client.aclose = AsyncMock()
        with patch.dict("arena.cache.client._clients", clear=True), patch.object(
            Redis, "from_url", return_value=client
        ) as from_url:
            assert await get_valkey_client() is await get_valkey_client()
            assert await valkey_healthcheck() is True
            await close_valkey_client()

        from_url.assert_called_once()
        assert from_url.call_args.kwargs["decode_responses"] is True
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_healthcheck_reports_failure(self):
        client = valkey()
        client.ping = AsyncMock(side_effect=RedisConnectionError("refused"))
        client.aclose = AsyncMock()
        with patch.dict("arena.cache.client._clients", clear=True), patch.object(
            Redis, "from_url", return_value=client
        ):
            assert await valkey_healthcheck() is False
            await close_valkey_client()


class TestContestConfig:
    """Tests for ContestConfig."""

    def test_defaults(self):
        config = ContestConfig()
        assert config.price_target_tolerance == 0.02
        assert config.max_error_band == 0.10
        assert config.min_history == 20
        assert config.house_overwrite_policy == "on_revision_change"

    @pytest.mark.parametrize("tolerance,band", [(0.0, 0.1), (0.1, 0.1), (0.2, 0.1)])
    def test_tolerance_must_sit_inside_band(self, tolerance, band):
        with pytest.raises(ValueError):
            ContestConfig(price_target_tolerance=tolerance, max_error_band=band)

    def test_from_settings(self):
        settings = Settings(
            contest_price_target_tolerance=0.01,
            contest_max_error_band=0.2,
            house_model_revision="basic_momentum-v2",
            house_overwrite_policy="always",
        )
        config = ContestConfig.from_settings(settings)
        assert config.price_target_tolerance == 0.01
        assert config.max_error_band == 0.2
        assert config.house_model_revision == "basic_momentum-v2"
        assert config.house_overwrite_policy == "always"

    def test_min_history_cannot_drop_below_indicator_window(self):
        with pytest.raises(ValueError):
            Settings(contest_min_history=5)
