"""Contest service - caller-facing operations of the contest engine.

Composes the store, the market data provider and the prediction ledger.
Used by the HTTP routes and by scheduled jobs.

Usage:
    from arena.contest.service import ContestService

    service = ContestService(store=ContestRepository(), market_data=get_market_data_provider())
    info = await service.get_current_contest()
    prediction = await service.submit_prediction("user-1", info.period.id, "stk-aapl", "up", confidence=8)
"""

from __future__ import annotations

from typing import Mapping, Optional

from arena.core.exceptions import InvalidInputError, NotFoundError
from arena.core.logging import get_logger
from arena.domain.contest import (
    ContestInfo,
    ContestPeriod,
    ContestResolution,
    Direction,
    LeaderboardEntry,
    Prediction,
    StockQuote,
    StockStats,
)

from .config import ContestConfig
from .events import EventChannel
from .ledger import Clock, ContestStore, LockFactory, MarketDataSource, PredictionLedger, utcnow
from .lifecycle import describe, select_display_contest
from .scoring import stock_sentiment


logger = get_logger("contest.service")

MAX_LEADERBOARD_LIMIT = 500


class ContestService:
    """Contest operations with explicit dependencies."""

    def __init__(
        self,
        store: ContestStore,
        market_data: MarketDataSource,
        events: Optional[EventChannel] = None,
        config: Optional[ContestConfig] = None,
        clock: Clock = utcnow,
        lock_factory: Optional[LockFactory] = None,
    ):
        self.store = store
        self.market_data = market_data
        self.clock = clock
        self.ledger = PredictionLedger(
            store,
            market_data,
            events=events,
            config=config,
            clock=clock,
            lock_factory=lock_factory,
        )

    async def _require_contest(self, contest_id: str) -> ContestPeriod:
        period = await self.store.get_contest_period(contest_id)
        if period is None:
            raise NotFoundError(
                message=f"Contest '{contest_id}' not found",
                details={"contest_id": contest_id},
            )
        return period

    async def get_current_contest(self) -> Optional[ContestInfo]:
        """The open contest, else the locked or next upcoming one. None if nothing is scheduled."""
        periods = await self.store.list_contest_periods()
        resolved_ids = await self.store.list_resolved_contest_ids()
        now = self.clock()

        period = select_display_contest(periods, now, resolved_ids)
        if period is None:
            return None
        return describe(period, now, resolved=period.id in resolved_ids)

    async def get_contest(self, contest_id: str) -> ContestInfo:
        period = await self._require_contest(contest_id)
        resolved = await self.store.get_resolution(contest_id) is not None
        return describe(period, self.clock(), resolved=resolved)

    async def get_featured_stocks_with_prices(self) -> list[StockQuote]:
        """Featured stocks joined with their latest quote (price None when unavailable)."""
        stocks = await self.store.list_featured_stocks()
        quotes = await self.market_data.get_current_batch([s.symbol for s in stocks])

        joined = []
        for stock in stocks:
            quote = quotes.get(stock.symbol)
            joined.append(
                StockQuote(
                    stock=stock,
                    price=quote.price if quote else None,
                    change=quote.change if quote else None,
                    change_percent=quote.change_percent if quote else None,
                )
            )
        missing = sum(1 for q in joined if q.price is None)
        if missing:
            logger.warning(f"No quote for {missing}/{len(joined)} featured stocks")
        return joined

    async def submit_prediction(
        self,
        user_id: str,
        contest_id: str,
        stock_id: str,
        direction: Direction | str,
        target_price: Optional[float] = None,
        confidence: int = 5,
        reasoning: Optional[str] = None,
    ) -> Prediction:
        return await self.ledger.submit(
            user_id,
            stock_id,
            contest_id,
            direction,
            target_price=target_price,
            confidence=confidence,
            reasoning=reasoning,
        )

    async def generate_house_predictions(self, contest_id: str) -> list[Prediction]:
        return await self.ledger.generate_house_predictions(contest_id)

    async def resolve_contest(
        self,
        contest_id: str,
        realized_prices: Optional[Mapping[str, float]] = None,
    ) -> ContestResolution:
        """
        Resolve a finished contest.

        Realized prices are keyed by stock id. When omitted they are the closes
        observed at the contest end date in the provider history.
        """
        if realized_prices is None:
            return await self.ledger.resolve_from_market(contest_id)
        return await self.ledger.resolve(contest_id, realized_prices)

    async def get_resolution(self, contest_id: str) -> Optional[ContestResolution]:
        await self._require_contest(contest_id)
        return await self.store.get_resolution(contest_id)

    async def get_leaderboard(self, contest_id: str, limit: int = 50) -> list[LeaderboardEntry]:
        if not 1 <= limit <= MAX_LEADERBOARD_LIMIT:
            raise InvalidInputError(
                message=f"limit must be between 1 and {MAX_LEADERBOARD_LIMIT}",
                details={"limit": limit},
            )
        await self._require_contest(contest_id)
        return await self.store.list_leaderboard(contest_id, limit=limit)

    async def get_user_predictions(self, contest_id: str, user_id: str) -> list[Prediction]:
        await self._require_contest(contest_id)
        return await self.store.list_predictions(contest_id, user_id=user_id)

    async def get_stock_stats(self, contest_id: str, stock_id: str) -> StockStats:
        await self._require_contest(contest_id)
        if await self.store.get_stock(stock_id) is None:
            raise NotFoundError(
                message=f"Stock '{stock_id}' not found", details={"stock_id": stock_id}
            )
        predictions = await self.store.list_predictions(contest_id, stock_id=stock_id)
        return stock_sentiment(stock_id, contest_id, predictions)
