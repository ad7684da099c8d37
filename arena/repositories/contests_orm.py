"""Contest repository using SQLAlchemy ORM.

Implements the store the contest engine writes through. Rows are converted
to domain records here and nowhere else. Every call is bounded by
``settings.storage_timeout``; database errors surface as
StorageFailureError and "not found" as None.

Usage:
    from arena.repositories.contests_orm import ContestRepository

    repo = ContestRepository()
    period = await repo.get_contest_period("wk-42")
    entries = await repo.list_leaderboard("wk-42", limit=10)
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena.core.config import settings
from arena.core.exceptions import AppException, DuplicatePredictionError, StorageFailureError
from arena.core.logging import get_logger
from arena.database import orm
from arena.database.connection import get_session_factory
from arena.domain.contest import (
    AlgorithmicAuthor,
    ContestPeriod,
    ContestResolution,
    HouseBenchmark,
    HumanAuthor,
    LeaderboardEntry,
    Prediction,
    Stock,
)


logger = get_logger("repositories.contests_orm")

T = TypeVar("T")


# =============================================================================
# ROW <-> DOMAIN CONVERSION
# =============================================================================

def _to_prediction(row: orm.Prediction) -> Prediction:
    if row.user_id is not None:
        author = HumanAuthor(user_id=row.user_id)
    else:
        author = AlgorithmicAuthor(model_revision=row.model_revision)
    return Prediction(
        id=row.id,
        author=author,
        stock_id=row.stock_id,
        contest_id=row.contest_id,
        direction=row.direction,
        target_price=row.target_price,
        confidence_level=row.confidence_level,
        reasoning=row.reasoning,
        price_at_prediction=row.price_at_prediction,
        created_at=row.created_at,
        realized_price=row.realized_price,
        is_correct=row.is_correct,
        accuracy_score=row.accuracy_score,
        points_earned=row.points_earned,
        resolved_at=row.resolved_at,
    )


def _prediction_values(prediction: Prediction) -> dict[str, Any]:
    house = prediction.is_house
    return {
        "user_id": prediction.user_id,
        "model_revision": prediction.author.model_revision if house else None,
        "house_slot": orm.HOUSE_SLOT if house else None,
        "stock_id": prediction.stock_id,
        "contest_id": prediction.contest_id,
        "direction": prediction.direction.value,
        "target_price": prediction.target_price,
        "confidence_level": prediction.confidence_level,
        "reasoning": prediction.reasoning,
        "price_at_prediction": prediction.price_at_prediction,
        "created_at": prediction.created_at,
        "realized_price": prediction.realized_price,
        "is_correct": prediction.is_correct,
        "accuracy_score": prediction.accuracy_score,
        "points_earned": prediction.points_earned,
        "resolved_at": prediction.resolved_at,
    }


def _resolution_fields(graded: Prediction) -> dict[str, Any]:
    return {
        "realized_price": graded.realized_price,
        "is_correct": graded.is_correct,
        "accuracy_score": graded.accuracy_score,
        "points_earned": graded.points_earned,
        "resolved_at": graded.resolved_at,
    }


class ContestRepository:
    """Contest store backed by an async SQLAlchemy session factory."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        timeout: Optional[float] = None,
    ):
        self._session_factory = session_factory
        self.timeout = timeout or settings.storage_timeout

    async def _factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = await get_session_factory()
        return self._session_factory

    async def _call(
        self, operation: str, fn: Callable[[AsyncSession], Awaitable[T]]
    ) -> T:
        """Run ``fn`` in a fresh session, bounded and with typed failures."""
        factory = await self._factory()

        async def run() -> T:
            async with factory() as session:
                return await fn(session)

        try:
            return await asyncio.wait_for(run(), timeout=self.timeout)
        except AppException:
            raise
        except asyncio.TimeoutError as e:
            logger.error(f"Storage timeout during {operation}")
            raise StorageFailureError(
                message="Storage operation timed out",
                details={"operation": operation, "timeout": self.timeout},
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Storage error during {operation}: {e}")
            raise StorageFailureError(details={"operation": operation}) from e

    # =========================================================================
    # REFERENCE DATA
    # =========================================================================

    async def list_contest_periods(self) -> list[ContestPeriod]:
        async def op(session: AsyncSession) -> list[ContestPeriod]:
            result = await session.execute(
                select(orm.ContestPeriod).order_by(
                    orm.ContestPeriod.start_date, orm.ContestPeriod.id
                )
            )
            return [ContestPeriod.model_validate(r) for r in result.scalars()]

        return await self._call("list_contest_periods", op)

    async def get_contest_period(self, contest_id: str) -> Optional[ContestPeriod]:
        async def op(session: AsyncSession) -> Optional[ContestPeriod]:
            row = await session.get(orm.ContestPeriod, contest_id)
            return ContestPeriod.model_validate(row) if row else None

        return await self._call("get_contest_period", op)

    async def save_contest_period(self, period: ContestPeriod) -> ContestPeriod:
        """Insert or update a contest period (catalog maintenance and fixtures)."""
        async def op(session: AsyncSession) -> ContestPeriod:
            await session.merge(orm.ContestPeriod(**period.model_dump()))
            await session.commit()
            return period

        return await self._call("save_contest_period", op)

    async def list_featured_stocks(self) -> list[Stock]:
        async def op(session: AsyncSession) -> list[Stock]:
            result = await session.execute(
                select(orm.Stock)
                .where(orm.Stock.is_featured.is_(True), orm.Stock.is_active.is_(True))
                .order_by(orm.Stock.symbol)
            )
            return [Stock.model_validate(r) for r in result.scalars()]

        return await self._call("list_featured_stocks", op)

    async def get_stock(self, stock_id: str) -> Optional[Stock]:
        async def op(session: AsyncSession) -> Optional[Stock]:
            row = await session.get(orm.Stock, stock_id)
            return Stock.model_validate(row) if row else None

        return await self._call("get_stock", op)

    async def save_stock(self, stock: Stock) -> Stock:
        """Insert or update a stock (catalog maintenance and fixtures)."""
        async def op(session: AsyncSession) -> Stock:
            await session.merge(orm.Stock(**stock.model_dump()))
            await session.commit()
            return stock

        return await self._call("save_stock", op)

    # =========================================================================
    # PREDICTIONS
    # =========================================================================

    async def insert_prediction(self, prediction: Prediction) -> Prediction:
        """Insert a user prediction. The unique constraint rejects duplicates."""
        async def op(session: AsyncSession) -> Prediction:
            session.add(orm.Prediction(id=prediction.id, **_prediction_values(prediction)))
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                logger.info(
                    "Duplicate prediction rejected by storage",
                    extra={"stock_id": prediction.stock_id, "contest_id": prediction.contest_id},
                )
                raise DuplicatePredictionError(
                    details={
                        "stock_id": prediction.stock_id,
                        "contest_id": prediction.contest_id,
                    }
                ) from e
            return prediction

        return await self._call("insert_prediction", op)

    async def find_prediction(
        self, user_id: str, stock_id: str, contest_id: str
    ) -> Optional[Prediction]:
        async def op(session: AsyncSession) -> Optional[Prediction]:
            result = await session.execute(
                select(orm.Prediction).where(
                    orm.Prediction.user_id == user_id,
                    orm.Prediction.stock_id == stock_id,
                    orm.Prediction.contest_id == contest_id,
                )
            )
            row = result.scalar_one_or_none()
            return _to_prediction(row) if row else None

        return await self._call("find_prediction", op)

    async def get_house_prediction(
        self, stock_id: str, contest_id: str
    ) -> Optional[Prediction]:
        async def op(session: AsyncSession) -> Optional[Prediction]:
            row = await self._house_row(session, stock_id, contest_id)
            return _to_prediction(row) if row else None

        return await self._call("get_house_prediction", op)

    @staticmethod
    async def _house_row(
        session: AsyncSession, stock_id: str, contest_id: str
    ) -> Optional[orm.Prediction]:
        result = await session.execute(
            select(orm.Prediction).where(
                orm.Prediction.stock_id == stock_id,
                orm.Prediction.contest_id == contest_id,
                orm.Prediction.house_slot == orm.HOUSE_SLOT,
            )
        )
        return result.scalar_one_or_none()

    async def _write_house_row(
        self, session: AsyncSession, prediction: Prediction, values: dict[str, Any]
    ) -> Prediction:
        row = await self._house_row(session, prediction.stock_id, prediction.contest_id)
        if row is None:
            row = orm.Prediction(id=prediction.id, **values)
            session.add(row)
        else:
            for key, value in values.items():
                setattr(row, key, value)
        await session.commit()
        return _to_prediction(row)

    async def upsert_house_prediction(self, prediction: Prediction) -> Prediction:
        """Insert or replace the house prediction of (stock, contest)."""
        values = _prediction_values(prediction)

        async def op(session: AsyncSession) -> Prediction:
            try:
                return await self._write_house_row(session, prediction, values)
            except IntegrityError:
                # A concurrent insert took the house key; update that row instead
                await session.rollback()
                return await self._write_house_row(session, prediction, values)

        return await self._call("upsert_house_prediction", op)

    async def list_predictions(
        self,
        contest_id: str,
        user_id: Optional[str] = None,
        stock_id: Optional[str] = None,
    ) -> list[Prediction]:
        async def op(session: AsyncSession) -> list[Prediction]:
            stmt = select(orm.Prediction).where(orm.Prediction.contest_id == contest_id)
            if user_id is not None:
                stmt = stmt.where(orm.Prediction.user_id == user_id)
            if stock_id is not None:
                stmt = stmt.where(orm.Prediction.stock_id == stock_id)
            stmt = stmt.order_by(orm.Prediction.created_at, orm.Prediction.id)
            result = await session.execute(stmt)
            return [_to_prediction(r) for r in result.scalars()]

        return await self._call("list_predictions", op)

    # =========================================================================
    # RESOLUTION & LEADERBOARD
    # =========================================================================

    async def apply_resolution(
        self, resolution: ContestResolution, graded: Sequence[Prediction]
    ) -> None:
        """
        Write graded predictions, the leaderboard and the resolution marker
        in a single transaction. The leaderboard is replaced, never merged.
        """
        async def op(session: AsyncSession) -> None:
            async with session.begin():
                for prediction in graded:
                    await session.execute(
                        update(orm.Prediction)
                        .where(orm.Prediction.id == prediction.id)
                        .values(**_resolution_fields(prediction))
                    )

                await session.execute(
                    delete(orm.LeaderboardEntry).where(
                        orm.LeaderboardEntry.contest_id == resolution.contest_id
                    )
                )
                session.add_all(
                    orm.LeaderboardEntry(**entry.model_dump())
                    for entry in resolution.leaderboard
                )

                await session.merge(
                    orm.ContestResolution(
                        contest_id=resolution.contest_id,
                        resolved_at=resolution.resolved_at,
                        realized_prices=resolution.realized_prices,
                        predictions_graded=resolution.predictions_graded,
                        house_benchmark=resolution.house_benchmark.model_dump(),
                    )
                )

        await self._call("apply_resolution", op)
        logger.debug(
            f"Resolution stored: {len(graded)} predictions, "
            f"{len(resolution.leaderboard)} leaderboard entries",
            extra={"contest_id": resolution.contest_id},
        )

    async def get_resolution(self, contest_id: str) -> Optional[ContestResolution]:
        async def op(session: AsyncSession) -> Optional[ContestResolution]:
            row = await session.get(orm.ContestResolution, contest_id)
            if row is None:
                return None
            entries = await self._leaderboard_rows(session, contest_id, None)
            return ContestResolution(
                contest_id=row.contest_id,
                resolved_at=row.resolved_at,
                realized_prices=row.realized_prices,
                predictions_graded=row.predictions_graded,
                house_benchmark=HouseBenchmark(**row.house_benchmark),
                leaderboard=entries,
            )

        return await self._call("get_resolution", op)

    async def list_resolved_contest_ids(self) -> set[str]:
        async def op(session: AsyncSession) -> set[str]:
            result = await session.execute(select(orm.ContestResolution.contest_id))
            return set(result.scalars())

        return await self._call("list_resolved_contest_ids", op)

    @staticmethod
    async def _leaderboard_rows(
        session: AsyncSession, contest_id: str, limit: Optional[int]
    ) -> list[LeaderboardEntry]:
        stmt = (
            select(orm.LeaderboardEntry)
            .where(orm.LeaderboardEntry.contest_id == contest_id)
            .order_by(orm.LeaderboardEntry.rank_position, orm.LeaderboardEntry.user_id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return [LeaderboardEntry.model_validate(r) for r in result.scalars()]

    async def list_leaderboard(
        self, contest_id: str, limit: Optional[int] = None
    ) -> list[LeaderboardEntry]:
        async def op(session: AsyncSession) -> list[LeaderboardEntry]:
            return await self._leaderboard_rows(session, contest_id, limit)

        return await self._call("list_leaderboard", op)
