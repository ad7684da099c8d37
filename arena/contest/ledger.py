"""Prediction ledger.

Owns every write the engine makes: user submissions, the house prediction
per (stock, contest) and contest resolution. Storage, market data, the event
channel, the clock and the resolution lease are all passed in.
"""

from __future__ import annotations

import asyncio
import math
import uuid
from datetime import datetime, timezone
from typing import (
    Any,
    AsyncContextManager,
    Callable,
    Iterable,
    Mapping,
    Optional,
    Protocol,
    Sequence,
)

from arena.core.exceptions import (
    ContestClosedError,
    ContestNotEndedError,
    DuplicatePredictionError,
    IncompleteMarketDataError,
    InvalidConfidenceError,
    InvalidInputError,
    NotFoundError,
    UpstreamUnavailableError,
)
from arena.core.logging import get_logger
from arena.domain.contest import (
    AlgorithmicAuthor,
    ContestPeriod,
    ContestResolution,
    ContestState,
    Direction,
    HumanAuthor,
    LeaderboardEntry,
    Prediction,
    Stock,
)
from arena.domain.price import MarketData, PriceSample, closes

from .config import ContestConfig, get_contest_config
from .events import DomainEvent, DomainEventType, EventChannel, InMemoryEventChannel
from .lifecycle import activation_request, contest_state, ensure_open
from .predictor import HousePrediction, generate_house_prediction
from .scoring import build_leaderboard, grade, house_benchmark


logger = get_logger("contest.ledger")

Clock = Callable[[], datetime]
LockFactory = Callable[[str], AsyncContextManager[Any]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContestStore(Protocol):
    """Persistence operations the engine relies on. "Not found" is None."""

    async def list_contest_periods(self) -> list[ContestPeriod]: ...

    async def get_contest_period(self, contest_id: str) -> Optional[ContestPeriod]: ...

    async def list_featured_stocks(self) -> list[Stock]: ...

    async def get_stock(self, stock_id: str) -> Optional[Stock]: ...

    async def insert_prediction(self, prediction: Prediction) -> Prediction: ...

    async def find_prediction(
        self, user_id: str, stock_id: str, contest_id: str
    ) -> Optional[Prediction]: ...

    async def get_house_prediction(
        self, stock_id: str, contest_id: str
    ) -> Optional[Prediction]: ...

    async def upsert_house_prediction(self, prediction: Prediction) -> Prediction: ...

    async def list_predictions(
        self,
        contest_id: str,
        user_id: Optional[str] = None,
        stock_id: Optional[str] = None,
    ) -> list[Prediction]: ...

    async def apply_resolution(
        self, resolution: ContestResolution, graded: Sequence[Prediction]
    ) -> None: ...

    async def get_resolution(self, contest_id: str) -> Optional[ContestResolution]: ...

    async def list_resolved_contest_ids(self) -> set[str]: ...

    async def list_leaderboard(
        self, contest_id: str, limit: Optional[int] = None
    ) -> list[LeaderboardEntry]: ...


class MarketDataSource(Protocol):
    async def get_current(self, symbol: str) -> Optional[MarketData]: ...

    async def get_current_batch(
        self, symbols: Iterable[str]
    ) -> dict[str, Optional[MarketData]]: ...

    async def get_history(
        self, symbol: str, interval: str = "1d", range_: str = "3mo"
    ) -> list[PriceSample]: ...


def _usable_price(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(price) or math.isinf(price) or price <= 0:
        return None
    return price


def _parse_direction(direction: Direction | str) -> Direction:
    try:
        return Direction(direction)
    except ValueError:
        raise InvalidInputError(
            message="Direction must be 'up' or 'down'",
            details={"direction": str(direction)},
        ) from None


def _check_confidence(confidence: Any) -> int:
    if isinstance(confidence, bool) or not isinstance(confidence, int):
        raise InvalidConfidenceError(details={"confidence": confidence})
    if not 1 <= confidence <= 10:
        raise InvalidConfidenceError(details={"confidence": confidence})
    return confidence


class PredictionLedger:
    """User and house predictions plus contest resolution."""

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
        self.events = events or InMemoryEventChannel()
        self.config = config or get_contest_config()
        self.clock = clock
        self.lock_factory = lock_factory or self._valkey_lock

    def _valkey_lock(self, name: str) -> AsyncContextManager[Any]:
        from arena.cache.distributed_lock import acquire_lock

        return acquire_lock(
            name,
            timeout=self.config.resolution_lock_timeout,
            blocking_timeout=self.config.resolution_lock_wait,
        )

    async def _require_contest(self, contest_id: str) -> ContestPeriod:
        period = await self.store.get_contest_period(contest_id)
        if period is None:
            raise NotFoundError(
                message=f"Contest '{contest_id}' not found",
                details={"contest_id": contest_id},
            )
        return period

    async def _emit(self, event_type: DomainEventType, contest_id: str, **data: Any) -> None:
        await self.events.publish(DomainEvent(type=event_type, contest_id=contest_id, data=data))

    # ------------------------------------------------------------------
    # User predictions
    # ------------------------------------------------------------------

    async def submit(
        self,
        user_id: str,
        stock_id: str,
        contest_id: str,
        direction: Direction | str,
        target_price: Optional[float] = None,
        confidence: int = 5,
        reasoning: Optional[str] = None,
    ) -> Prediction:
        """
        Record a user's prediction.

        The entry price is fetched at call time and stored with the
        prediction. A concurrent duplicate is rejected by the storage
        unique constraint. An existing prediction for the same key is
        reported as a duplicate before the new payload is validated.

        Raises:
            InvalidInputError / InvalidConfidenceError: Malformed input
            NotFoundError: Unknown contest or stock
            ContestClosedError: Contest is not open
            DuplicatePredictionError: Already predicted this stock
            UpstreamUnavailableError: No current price available
        """
        if not user_id:
            raise InvalidInputError(message="User id is required")

        period = await self._require_contest(contest_id)
        ensure_open(period, self.clock())

        stock = await self.store.get_stock(stock_id)
        if stock is None:
            raise NotFoundError(
                message=f"Stock '{stock_id}' not found", details={"stock_id": stock_id}
            )
        if not stock.is_active:
            raise InvalidInputError(
                message=f"{stock.symbol} is not available for predictions",
                details={"stock_id": stock_id},
            )

        if await self.store.find_prediction(user_id, stock_id, contest_id) is not None:
            raise DuplicatePredictionError(
                details={"stock_id": stock_id, "contest_id": contest_id}
            )

        direction = _parse_direction(direction)
        confidence = _check_confidence(confidence)
        if target_price is not None and _usable_price(target_price) is None:
            raise InvalidInputError(
                message="Target price must be a positive number",
                details={"target_price": target_price},
            )

        quote = await self.market_data.get_current(stock.symbol)
        if quote is None or _usable_price(quote.price) is None:
            raise UpstreamUnavailableError(
                message=f"No current price for {stock.symbol}",
                details={"symbol": stock.symbol},
            )

        now = self.clock()
        ensure_open(period, now)

        prediction = await self.store.insert_prediction(
            Prediction(
                id=str(uuid.uuid4()),
                author=HumanAuthor(user_id=user_id),
                stock_id=stock_id,
                contest_id=contest_id,
                direction=direction,
                target_price=target_price,
                confidence_level=confidence,
                reasoning=reasoning,
                price_at_prediction=quote.price,
                created_at=now,
            )
        )
        logger.info(
            f"Prediction submitted: {stock.symbol} {direction.value}",
            extra={"contest_id": contest_id, "stock_id": stock_id, "user_id": user_id},
        )
        await self._emit(
            DomainEventType.PREDICTION_SUBMITTED,
            contest_id,
            prediction_id=prediction.id,
            user_id=user_id,
            stock_id=stock_id,
            direction=direction.value,
        )
        return prediction

    # ------------------------------------------------------------------
    # House predictions
    # ------------------------------------------------------------------

    async def _ensure_house_writable(self, period: ContestPeriod) -> None:
        """House rows are written before the deadline and never after resolution."""
        resolved = await self.store.get_resolution(period.id) is not None
        state = contest_state(period, self.clock(), resolved)
        if resolved or state not in (ContestState.UPCOMING, ContestState.OPEN):
            raise ContestClosedError(
                message="Contest no longer accepts house predictions",
                details={"contest_id": period.id, "state": state.value},
            )

    def _should_overwrite(self, existing: Prediction, revision: str) -> bool:
        policy = self.config.house_overwrite_policy
        if policy == "always":
            return True
        if policy == "on_revision_change":
            return existing.author.model_revision != revision
        return False

    async def record_house_prediction(
        self,
        stock_id: str,
        contest_id: str,
        output: HousePrediction,
        price_at_prediction: Optional[float] = None,
        model_revision: Optional[str] = None,
    ) -> Prediction:
        """
        Upsert the single house prediction for (stock, contest).

        Identical input is a no-op. A differing payload replaces the stored
        row according to ``house_overwrite_policy``. Only upcoming and open
        contests without a resolution accept writes; otherwise the entry
        price would be taken after the deadline or a graded row replaced.

        Raises:
            NotFoundError: Unknown contest
            ContestClosedError: Contest is locked or resolved
        """
        period = await self._require_contest(contest_id)
        await self._ensure_house_writable(period)
        revision = model_revision or self.config.house_model_revision
        price = _usable_price(price_at_prediction or output.current_price)
        if price is None:
            raise InvalidInputError(
                message="House prediction needs a positive entry price",
                details={"stock_id": stock_id},
            )

        fields = {
            "direction": output.direction,
            "target_price": output.target_price,
            "confidence_level": output.confidence_level,
            "reasoning": output.reasoning.value,
            "price_at_prediction": price,
        }

        existing = await self.store.get_house_prediction(stock_id, contest_id)
        if existing is not None:
            unchanged = existing.author.model_revision == revision and all(
                getattr(existing, k) == v for k, v in fields.items()
            )
            if unchanged:
                return existing
            if not self._should_overwrite(existing, revision):
                logger.debug(
                    f"Keeping house prediction for {stock_id} "
                    f"(policy={self.config.house_overwrite_policy})"
                )
                return existing

        prediction = await self.store.upsert_house_prediction(
            Prediction(
                id=existing.id if existing else str(uuid.uuid4()),
                author=AlgorithmicAuthor(model_revision=revision),
                stock_id=stock_id,
                contest_id=contest_id,
                created_at=self.clock(),
                **fields,
            )
        )
        await self._emit(
            DomainEventType.HOUSE_PREDICTION_RECORDED,
            contest_id,
            prediction_id=prediction.id,
            stock_id=stock_id,
            model_revision=revision,
            reasoning=output.reasoning.value,
        )
        return prediction

    async def _house_for(self, stock: Stock, contest_id: str) -> Prediction:
        history, quote = await asyncio.gather(
            self.market_data.get_history(
                stock.symbol, self.config.history_interval, self.config.history_range
            ),
            self.market_data.get_current(stock.symbol),
        )
        series = closes(history)
        current = quote.price if quote is not None else (series[-1] if series else None)
        if _usable_price(current) is None:
            raise UpstreamUnavailableError(
                message=f"No current price for {stock.symbol}",
                details={"symbol": stock.symbol},
            )
        output = generate_house_prediction(
            current, series, stock.symbol, min_history=self.config.min_history
        )
        return await self.record_house_prediction(stock.id, contest_id, output, current)

    async def generate_house_predictions(self, contest_id: str) -> list[Prediction]:
        """
        Record a house prediction for every featured stock.

        Each stock is fetched independently; one failure is logged and
        does not affect the others. Nothing is fetched once the contest is
        locked or resolved.
        """
        period = await self._require_contest(contest_id)
        await self._ensure_house_writable(period)
        stocks = await self.store.list_featured_stocks()
        results = await asyncio.gather(
            *(self._house_for(stock, contest_id) for stock in stocks),
            return_exceptions=True,
        )

        recorded: list[Prediction] = []
        for stock, result in zip(stocks, results):
            if isinstance(result, BaseException):
                logger.warning(
                    f"House prediction failed for {stock.symbol}: {result}",
                    extra={"contest_id": contest_id, "stock_id": stock.id},
                )
                continue
            recorded.append(result)

        logger.info(
            f"House predictions recorded: {len(recorded)}/{len(stocks)}",
            extra={"contest_id": contest_id},
        )
        return recorded

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def _required_stocks(
        self, contest_id: str
    ) -> tuple[list[Prediction], dict[str, Optional[Stock]]]:
        predictions = await self.store.list_predictions(contest_id)
        required: dict[str, Optional[Stock]] = {
            s.id: s for s in await self.store.list_featured_stocks() if s.is_active
        }
        for stock_id in {p.stock_id for p in predictions} - set(required):
            required[stock_id] = await self.store.get_stock(stock_id)
        return predictions, required

    def _ensure_ended(self, period: ContestPeriod) -> None:
        if self.clock() < period.end_date:
            raise ContestNotEndedError(
                details={
                    "contest_id": period.id,
                    "end_date": period.end_date.isoformat(),
                }
            )

    async def resolve(
        self, contest_id: str, realized_prices: Mapping[str, float]
    ) -> ContestResolution:
        """
        Grade every prediction of a finished contest and rebuild its leaderboard.

        All-or-nothing: a missing or non-positive realized price for any
        required stock (featured and active, or referenced by a prediction)
        fails with IncompleteMarketDataError before anything is written.
        Running it again recomputes everything from the ledger.

        Args:
            contest_id: Contest to resolve
            realized_prices: Closing price per stock id
        """
        period = await self._require_contest(contest_id)
        self._ensure_ended(period)

        async with self.lock_factory(f"contest-resolution:{contest_id}"):
            predictions, required = await self._required_stocks(contest_id)

            prices = {sid: _usable_price(realized_prices.get(sid)) for sid in required}
            missing = sorted(sid for sid, price in prices.items() if price is None)
            if missing:
                raise IncompleteMarketDataError(
                    details={"contest_id": contest_id, "missing_stock_ids": missing}
                )

            resolved_at = self.clock()
            graded = [
                grade(
                    p,
                    prices[p.stock_id],
                    resolved_at,
                    self.config.price_target_tolerance,
                    self.config.max_error_band,
                )
                for p in predictions
            ]
            leaderboard = build_leaderboard(contest_id, graded)
            resolution = ContestResolution(
                contest_id=contest_id,
                resolved_at=resolved_at,
                realized_prices=dict(sorted(prices.items())),
                predictions_graded=len(graded),
                house_benchmark=house_benchmark(graded, leaderboard),
                leaderboard=leaderboard,
            )
            await self.store.apply_resolution(resolution, graded)

        logger.info(
            f"Contest resolved: {len(graded)} predictions, {len(leaderboard)} users",
            extra={"contest_id": contest_id},
        )
        await self._emit(
            DomainEventType.CONTEST_RESOLVED,
            contest_id,
            predictions_graded=len(graded),
            house_points=resolution.house_benchmark.total_points,
        )
        await self._emit(
            DomainEventType.LEADERBOARD_UPDATED,
            contest_id,
            entries=len(leaderboard),
            leader=leaderboard[0].user_id if leaderboard else None,
        )
        request = activation_request(period, resolved_at, resolved=True)
        if request is not None:
            await self.events.publish(request)
        return resolution

    async def _close_at_end(self, stock: Stock, period: ContestPeriod) -> Optional[float]:
        """Close of the last bar inside the contest window, None if there is none."""
        history = await self.market_data.get_history(
            stock.symbol, self.config.history_interval, self.config.history_range
        )
        closing = None
        for sample in history:
            if period.start_date <= sample.timestamp <= period.end_date:
                closing = sample.close
        return closing

    async def resolve_from_market(self, contest_id: str) -> ContestResolution:
        """
        Resolve with the prices observed at contest close.

        The realized price of each required stock is the close of its last
        history bar at or before ``end_date``, never the live quote. A stock
        without such a bar counts as missing, which fails the resolution.
        """
        period = await self._require_contest(contest_id)
        self._ensure_ended(period)

        _, required = await self._required_stocks(contest_id)
        stocks = [s for s in required.values() if s is not None]
        results = await asyncio.gather(
            *(self._close_at_end(stock, period) for stock in stocks),
            return_exceptions=True,
        )

        realized: dict[str, float] = {}
        for stock, result in zip(stocks, results):
            if isinstance(result, BaseException):
                logger.warning(
                    f"Closing price unavailable for {stock.symbol}: {result}",
                    extra={"contest_id": contest_id, "stock_id": stock.id},
                )
            elif result is not None:
                realized[stock.id] = result
        return await self.resolve(contest_id, realized)
