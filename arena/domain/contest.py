"""Contest domain models.

Typed records for the reference data the engine reads (stocks, contest
periods) and the records it owns (predictions, leaderboard entries,
resolutions).
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and normalize aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"


class ContestState(str, Enum):
    """Temporal state of a contest period."""

    UPCOMING = "upcoming"
    OPEN = "open"
    LOCKED = "locked"
    RESOLVED = "resolved"


class Stock(BaseModel):
    """Tracked security. Authored by the external catalog."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    symbol: str = Field(..., min_length=1, max_length=20)
    company_name: str
    sector: Optional[str] = None
    market_cap: Optional[int] = None
    difficulty_level: int = Field(default=1, ge=1, le=5)
    is_featured: bool = False
    is_active: bool = True

    @field_validator("symbol")
    @classmethod
    def upper_symbol(cls, v: str) -> str:
        return v.strip().upper()


class ContestPeriod(BaseModel):
    """A bounded prediction window. Authored by the external store."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    name: Optional[str] = None
    start_date: datetime
    end_date: datetime
    prediction_deadline: datetime
    is_active: bool = True
    total_participants: int = 0

    @field_validator("start_date", "end_date", "prediction_deadline")
    @classmethod
    def as_utc(cls, v: datetime) -> datetime:
        return utc(v)

    @model_validator(mode="after")
    def check_window(self) -> "ContestPeriod":
        if not (self.start_date <= self.prediction_deadline <= self.end_date):
            raise ValueError(
                "contest period requires start_date <= prediction_deadline <= end_date"
            )
        return self


class HumanAuthor(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["human"] = "human"
    user_id: str = Field(..., min_length=1)


class AlgorithmicAuthor(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["algorithmic"] = "algorithmic"
    model_revision: str = Field(..., min_length=1)


Author = Annotated[Union[HumanAuthor, AlgorithmicAuthor], Field(discriminator="kind")]


class Prediction(BaseModel):
    """A forecast for one stock in one contest, plus its grading once resolved."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    author: Author
    stock_id: str
    contest_id: str
    direction: Direction
    target_price: Optional[float] = Field(default=None, gt=0)
    confidence_level: int = Field(..., ge=1, le=10)
    reasoning: Optional[str] = None
    price_at_prediction: float = Field(..., gt=0)
    created_at: datetime

    # Filled in by resolution
    realized_price: Optional[float] = None
    is_correct: Optional[bool] = None
    accuracy_score: Optional[float] = Field(default=None, ge=0, le=1)
    points_earned: Optional[int] = None
    resolved_at: Optional[datetime] = None

    @field_validator("created_at", "resolved_at")
    @classmethod
    def as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return utc(v) if v is not None else None

    @property
    def is_house(self) -> bool:
        return isinstance(self.author, AlgorithmicAuthor)

    @property
    def user_id(self) -> Optional[str]:
        return self.author.user_id if isinstance(self.author, HumanAuthor) else None

    @property
    def is_price_target(self) -> bool:
        return self.target_price is not None

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None


class LeaderboardEntry(BaseModel):
    """Derived per-user aggregate for one contest."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    user_id: str
    contest_id: str
    total_predictions: int = Field(..., ge=0)
    correct_predictions: int = Field(..., ge=0)
    accuracy_percentage: float = Field(..., ge=0, le=100)
    total_points: int
    rank_position: int = Field(..., ge=1)
    percentile: float = Field(..., ge=0, le=100)


class HouseBenchmark(BaseModel):
    """How the house predictions fared against the human field."""

    total_predictions: int = 0
    correct_predictions: int = 0
    total_points: int = 0
    users_beating_house: int = 0
    users_total: int = 0


class ContestResolution(BaseModel):
    """Engine-owned marker that a contest was resolved, with its outcome."""

    contest_id: str
    resolved_at: datetime
    realized_prices: dict[str, float]
    predictions_graded: int = 0
    house_benchmark: HouseBenchmark = Field(default_factory=HouseBenchmark)
    leaderboard: list[LeaderboardEntry] = Field(default_factory=list)

    @field_validator("resolved_at")
    @classmethod
    def as_utc(cls, v: datetime) -> datetime:
        return utc(v)


class StockStats(BaseModel):
    """Crowd sentiment on one stock in one contest."""

    stock_id: str
    contest_id: str
    total_predictions: int = 0
    bullish_predictions: int = 0
    bearish_predictions: int = 0
    avg_target_price: Optional[float] = None
    sentiment_score: float = Field(default=0.0, ge=-1, le=1)


class ContestInfo(BaseModel):
    """A contest period with its computed state."""

    period: ContestPeriod
    state: ContestState
    seconds_remaining: Optional[int] = None
    total_participants: int = 0


class StockQuote(BaseModel):
    """Featured stock joined with its latest quote (None when unavailable)."""

    stock: Stock
    price: Optional[float] = None
    change: Optional[float] = None
    change_percent: Optional[float] = None
