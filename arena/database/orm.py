"""SQLAlchemy ORM models for the prediction arena.

Uses SQLAlchemy 2.0 declarative style with async support via asyncpg.
Stocks and contest periods are reference data maintained by external
processes; predictions, leaderboard entries and resolutions are written by
the contest engine.

Usage:
    from arena.database import orm
    from arena.database.connection import get_session

    async with get_session() as session:
        period = await session.get(orm.ContestPeriod, "wk-42")
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Naming convention for constraints and indexes (deterministic names for migrations)
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# JSONB on PostgreSQL, plain JSON elsewhere
JsonType = JSON().with_variant(JSONB(), "postgresql")

# Prices come back as float
Price = Numeric(12, 4, asdecimal=False)

# Marks the house row of a (stock, contest); NULL for human predictions
HOUSE_SLOT = 1


class Base(DeclarativeBase):
    """Base class for all ORM models with naming convention."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class Stock(Base):
    """Tracked security (catalog reference data)."""
    __tablename__ = "stocks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    symbol: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sector: Mapped[str | None] = mapped_column(String(100))
    market_cap: Mapped[int | None] = mapped_column(BigInteger)
    difficulty_level: Mapped[int] = mapped_column(Integer, default=1)
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("difficulty_level BETWEEN 1 AND 5", name="difficulty"),
        Index("idx_stocks_featured", "is_featured", "is_active"),
    )


class ContestPeriod(Base):
    """Contest window (reference data)."""
    __tablename__ = "contest_periods"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str | None] = mapped_column(String(100))
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    prediction_deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    total_participants: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        CheckConstraint(
            "start_date <= prediction_deadline AND prediction_deadline <= end_date",
            name="window",
        ),
        Index("idx_contest_periods_active", "is_active", "start_date"),
    )


class Prediction(Base):
    """User or house prediction, graded in place on resolution."""
    __tablename__ = "predictions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str | None] = mapped_column(String(64))
    model_revision: Mapped[str | None] = mapped_column(String(64))
    house_slot: Mapped[int | None] = mapped_column(Integer)
    stock_id: Mapped[str] = mapped_column(ForeignKey("stocks.id"), nullable=False)
    contest_id: Mapped[str] = mapped_column(ForeignKey("contest_periods.id"), nullable=False)
    direction: Mapped[str] = mapped_column(String(4), nullable=False)  # up, down
    target_price: Mapped[float | None] = mapped_column(Price)
    confidence_level: Mapped[int] = mapped_column(Integer, nullable=False)
    reasoning: Mapped[str | None] = mapped_column(Text)
    price_at_prediction: Mapped[float] = mapped_column(Price, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Resolution
    realized_price: Mapped[float | None] = mapped_column(Price)
    is_correct: Mapped[bool | None] = mapped_column(Boolean)
    accuracy_score: Mapped[float | None] = mapped_column(Numeric(6, 4, asdecimal=False))
    points_earned: Mapped[int | None] = mapped_column(Integer)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint("direction IN ('up', 'down')", name="direction"),
        CheckConstraint("confidence_level BETWEEN 1 AND 10", name="confidence"),
        CheckConstraint(
            "(user_id IS NOT NULL AND model_revision IS NULL AND house_slot IS NULL)"
            " OR (user_id IS NULL AND model_revision IS NOT NULL AND house_slot = 1)",
            name="author",
        ),
        UniqueConstraint("user_id", "stock_id", "contest_id", name="uq_prediction_user_stock"),
        UniqueConstraint("stock_id", "contest_id", "house_slot", name="uq_prediction_house"),
        Index("idx_predictions_contest", "contest_id"),
        Index("idx_predictions_contest_user", "contest_id", "user_id"),
    )


class LeaderboardEntry(Base):
    """Per-user contest aggregate. Replaced wholesale on every resolution."""
    __tablename__ = "leaderboard_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    contest_id: Mapped[str] = mapped_column(ForeignKey("contest_periods.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    total_predictions: Mapped[int] = mapped_column(Integer, nullable=False)
    correct_predictions: Mapped[int] = mapped_column(Integer, nullable=False)
    accuracy_percentage: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=False)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False)
    rank_position: Mapped[int] = mapped_column(Integer, nullable=False)
    percentile: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=False)

    __table_args__ = (
        UniqueConstraint("contest_id", "user_id", name="uq_leaderboard_contest_user"),
        Index("idx_leaderboard_rank", "contest_id", "rank_position"),
    )


class ContestResolution(Base):
    """Marker that a contest was resolved, with the prices it was graded against."""
    __tablename__ = "contest_resolutions"

    contest_id: Mapped[str] = mapped_column(ForeignKey("contest_periods.id"), primary_key=True)
    resolved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    realized_prices: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False)
    predictions_graded: Mapped[int] = mapped_column(Integer, default=0)
    house_benchmark: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False)
