"""Contest API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import Field

from arena.domain.contest import (
    ContestInfo,
    ContestResolution,
    LeaderboardEntry,
    Prediction,
    StockQuote,
    StockStats,
)

from .common import CamelModel


class ContestResponse(CamelModel):
    """Contest period with its computed state."""

    id: str
    name: Optional[str] = None
    start_date: datetime
    end_date: datetime
    prediction_deadline: datetime
    is_active: bool
    state: Literal["upcoming", "open", "locked", "resolved"]
    seconds_remaining: Optional[int] = None
    total_participants: int = 0
    market_open: bool = Field(..., description="Whether the US regular session is trading")
    next_market_open: datetime

    @classmethod
    def build(
        cls, info: ContestInfo, market_open: bool, next_market_open: datetime
    ) -> "ContestResponse":
        period = info.period
        return cls(
            id=period.id,
            name=period.name,
            start_date=period.start_date,
            end_date=period.end_date,
            prediction_deadline=period.prediction_deadline,
            is_active=period.is_active,
            state=info.state.value,
            seconds_remaining=info.seconds_remaining,
            total_participants=info.total_participants,
            market_open=market_open,
            next_market_open=next_market_open,
        )


class StockResponse(CamelModel):
    """Featured stock with its latest quote."""

    id: str
    symbol: str
    company_name: str
    sector: Optional[str] = None
    market_cap: Optional[int] = None
    difficulty_level: int
    current_price: Optional[float] = None
    price_change: Optional[float] = None
    price_change_percent: Optional[float] = None

    @classmethod
    def build(cls, quote: StockQuote) -> "StockResponse":
        stock = quote.stock
        return cls(
            id=stock.id,
            symbol=stock.symbol,
            company_name=stock.company_name,
            sector=stock.sector,
            market_cap=stock.market_cap,
            difficulty_level=stock.difficulty_level,
            current_price=quote.price,
            price_change=quote.change,
            price_change_percent=quote.change_percent,
        )


class StockListResponse(CamelModel):
    stocks: List[StockResponse]
    total: int


class PredictionRequest(CamelModel):
    """Prediction submission. Range checks happen in the ledger so they map to engine errors."""

    stock_id: str = Field(..., min_length=1)
    direction: str = Field(..., description="up or down")
    target_price: Optional[float] = None
    confidence_level: int = Field(..., description="1-10")
    reasoning: Optional[str] = Field(default=None, max_length=2000)


class PredictionResponse(CamelModel):
    id: str
    author_kind: Literal["human", "algorithmic"]
    user_id: Optional[str] = None
    model_revision: Optional[str] = None
    stock_id: str
    contest_id: str
    direction: Literal["up", "down"]
    target_price: Optional[float] = None
    confidence_level: int
    reasoning: Optional[str] = None
    price_at_prediction: float
    created_at: datetime
    realized_price: Optional[float] = None
    is_correct: Optional[bool] = None
    accuracy_score: Optional[float] = None
    points_earned: Optional[int] = None
    resolved_at: Optional[datetime] = None

    @classmethod
    def build(cls, prediction: Prediction) -> "PredictionResponse":
        data = prediction.model_dump(exclude={"author", "direction"})
        return cls(
            author_kind=prediction.author.kind,
            direction=prediction.direction.value,
            user_id=prediction.user_id,
            model_revision=getattr(prediction.author, "model_revision", None),
            **data,
        )


class PredictionListResponse(CamelModel):
    predictions: List[PredictionResponse]
    total: int


class ResolveRequest(CamelModel):
    """Realized prices keyed by stock id. Omit to fetch them from the market data provider."""

    realized_prices: Optional[Dict[str, float]] = None


class LeaderboardEntryResponse(CamelModel):
    user_id: str
    total_predictions: int
    correct_predictions: int
    accuracy_percentage: float
    total_points: int
    rank_position: int
    percentile: float

    @classmethod
    def build(cls, entry: LeaderboardEntry) -> "LeaderboardEntryResponse":
        return cls.model_validate(entry.model_dump(exclude={"contest_id"}))


class LeaderboardResponse(CamelModel):
    contest_id: str
    entries: List[LeaderboardEntryResponse]
    total: int


class HouseBenchmarkResponse(CamelModel):
    total_predictions: int
    correct_predictions: int
    total_points: int
    users_beating_house: int
    users_total: int


class ResolutionResponse(CamelModel):
    contest_id: str
    resolved_at: datetime
    realized_prices: Dict[str, float]
    predictions_graded: int
    house_benchmark: HouseBenchmarkResponse
    leaderboard: List[LeaderboardEntryResponse]

    @classmethod
    def build(cls, resolution: ContestResolution) -> "ResolutionResponse":
        return cls(
            contest_id=resolution.contest_id,
            resolved_at=resolution.resolved_at,
            realized_prices=resolution.realized_prices,
            predictions_graded=resolution.predictions_graded,
            house_benchmark=HouseBenchmarkResponse.model_validate(
                resolution.house_benchmark.model_dump()
            ),
            leaderboard=[LeaderboardEntryResponse.build(e) for e in resolution.leaderboard],
        )


class StockStatsResponse(CamelModel):
    stock_id: str
    contest_id: str
    total_predictions: int
    bullish_predictions: int
    bearish_predictions: int
    avg_target_price: Optional[float] = None
    sentiment_score: float

    @classmethod
    def build(cls, stats: StockStats) -> "StockStatsResponse":
        return cls.model_validate(stats.model_dump())
