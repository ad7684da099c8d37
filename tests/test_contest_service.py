"""Tests for ContestService read paths against an in-memory SQLite store."""

from __future__ import annotations

from datetime import timedelta

import pytest

from arena.core.exceptions import InvalidInputError, NotFoundError
from arena.domain.contest import ContestPeriod, ContestState

from .conftest import AFTER, DEADLINE, END, START


class TestCurrentContest:
    """Tests for ContestService.get_current_contest()."""

    @pytest.mark.asyncio
    async def test_open_contest(self, service):
        info = await service.get_current_contest()
        assert info.period.id == "wk-1"
        assert info.state == ContestState.OPEN

    @pytest.mark.asyncio
    async def test_locked_contest_still_shown(self, service, clock):
        clock.now = DEADLINE + timedelta(hours=1)
        info = await service.get_current_contest()
        assert info.state == ContestState.LOCKED

    @pytest.mark.asyncio
    async def test_next_contest_after_resolution(self, service, repo, clock):
        week = timedelta(days=7)
        await repo.save_contest_period(
            ContestPeriod(
                id="wk-2", start_date=START + week,
                prediction_deadline=DEADLINE + week, end_date=END + week,
            )
        )
        clock.now = AFTER
        await service.resolve_contest("wk-1", {"stk-aapl": 50.0, "stk-msft": 400.0})

        info = await service.get_current_contest()

        assert info.period.id == "wk-2"
        assert info.state == ContestState.UPCOMING

    @pytest.mark.asyncio
    async def test_get_contest_reports_resolved(self, service, clock):
        clock.now = AFTER
        assert (await service.get_contest("wk-1")).state == ContestState.LOCKED

        await service.resolve_contest("wk-1", {"stk-aapl": 50.0, "stk-msft": 400.0})

        info = await service.get_contest("wk-1")
        assert info.state == ContestState.RESOLVED
        assert info.seconds_remaining is None

    @pytest.mark.asyncio
    async def test_unknown_contest(self, service):
        with pytest.raises(NotFoundError):
            await service.get_contest("wk-404")


class TestFeaturedStocks:
    """Tests for ContestService.get_featured_stocks_with_prices()."""

    @pytest.mark.asyncio
    async def test_joins_quotes(self, service, market):
        market.failing.add("MSFT")

        quotes = await service.get_featured_stocks_with_prices()

        assert [q.stock.symbol for q in quotes] == ["AAPL", "MSFT"]
        assert quotes[0].price == 50.0
        assert quotes[1].price is None


class TestLeaderboardAndStats:
    """Tests for leaderboard, user predictions and stock stats."""

    @pytest.mark.asyncio
    async def test_leaderboard_limit(self, service, clock):
        for user in ("alice", "bob", "carol"):
            await service.submit_prediction(user, "wk-1", "stk-aapl", "up", confidence=5)
        clock.now = AFTER
        await service.resolve_contest("wk-1", {"stk-aapl": 55.0, "stk-msft": 400.0})

        entries = await service.get_leaderboard("wk-1", limit=2)

        assert [e.user_id for e in entries] == ["alice", "bob"]
        assert all(e.rank_position == 1 for e in entries)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, 501])
    async def test_leaderboard_limit_bounds(self, service, limit):
        with pytest.raises(InvalidInputError):
            await service.get_leaderboard("wk-1", limit=limit)

    @pytest.mark.asyncio
    async def test_user_predictions(self, service):
        await service.submit_prediction("alice", "wk-1", "stk-aapl", "up")
        await service.submit_prediction("alice", "wk-1", "stk-msft", "down", target_price=390.0)
        await service.submit_prediction("bob", "wk-1", "stk-aapl", "down")

        mine = await service.get_user_predictions("wk-1", "alice")

        assert sorted(p.stock_id for p in mine) == ["stk-aapl", "stk-msft"]
        assert all(p.user_id == "alice" for p in mine)

    @pytest.mark.asyncio
    async def test_stock_stats(self, service):
        await service.submit_prediction("alice", "wk-1", "stk-aapl", "up", target_price=55.0)
        await service.submit_prediction("bob", "wk-1", "stk-aapl", "up", target_price=52.0)
        await service.submit_prediction("carol", "wk-1", "stk-aapl", "down")
        await service.generate_house_predictions("wk-1")

        stats = await service.get_stock_stats("wk-1", "stk-aapl")

        assert stats.total_predictions == 3
        assert stats.bullish_predictions == 2
        assert stats.avg_target_price == 53.5
        assert stats.sentiment_score == 0.33

    @pytest.mark.asyncio
    async def test_stock_stats_unknown_stock(self, service):
        with pytest.raises(NotFoundError):
            await service.get_stock_stats("wk-1", "stk-nope")

    @pytest.mark.asyncio
    async def test_resolution_roundtrip(self, service, clock):
        assert await service.get_resolution("wk-1") is None
        await service.submit_prediction("alice", "wk-1", "stk-aapl", "up")
        clock.now = AFTER

        await service.resolve_contest("wk-1", {"stk-aapl": 51.0, "stk-msft": 400.0})
        stored = await service.get_resolution("wk-1")

        assert stored.realized_prices == {"stk-aapl": 51.0, "stk-msft": 400.0}
        assert stored.leaderboard[0].user_id == "alice"
        assert stored.resolved_at == AFTER
