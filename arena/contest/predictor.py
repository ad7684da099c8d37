"""House prediction rule table.

Deterministic counter-prediction built from RSI(14), SMA(20) and 10-step
momentum over a closing price history. Same inputs always produce the same
output.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Sequence

from arena.core.logging import get_logger
from arena.core.technical_utils import momentum, rsi, sma
from arena.domain.contest import Direction
from arena.domain.price import round_half_up


logger = get_logger("contest.predictor")

MIN_HISTORY = 20
RSI_PERIOD = 14
SMA_PERIOD = 20
MOMENTUM_LOOKBACK = 10

OVERSOLD = 30.0
OVERBOUGHT = 70.0


class Reasoning(str, Enum):
    INSUFFICIENT_HISTORY = "insufficient-history"
    OVERSOLD_REVERSAL = "oversold-reversal"
    OVERBOUGHT_CORRECTION = "overbought-correction"
    UPTREND_CONTINUATION = "uptrend-continuation"
    DOWNTREND_CONTINUATION = "downtrend-continuation"
    NEUTRAL = "neutral"


EXPLANATIONS = {
    Reasoning.INSUFFICIENT_HISTORY: "Insufficient historical data for analysis",
    Reasoning.OVERSOLD_REVERSAL: "Oversold conditions suggest potential upside reversal",
    Reasoning.OVERBOUGHT_CORRECTION: "Overbought conditions suggest potential downside correction",
    Reasoning.UPTREND_CONTINUATION: "Uptrend momentum suggests continued strength",
    Reasoning.DOWNTREND_CONTINUATION: "Downtrend momentum suggests continued weakness",
    Reasoning.NEUTRAL: "Neutral market conditions",
}

# (target multiplier, confidence) per rule
_RULES = {
    Reasoning.INSUFFICIENT_HISTORY: ("1", "0.10"),
    Reasoning.OVERSOLD_REVERSAL: ("1.02", "0.70"),
    Reasoning.OVERBOUGHT_CORRECTION: ("0.98", "0.70"),
    Reasoning.UPTREND_CONTINUATION: ("1.015", "0.60"),
    Reasoning.DOWNTREND_CONTINUATION: ("0.985", "0.60"),
    Reasoning.NEUTRAL: ("1", "0.50"),
}


@dataclass(frozen=True)
class HousePrediction:
    """Output of the house predictor for one stock."""

    target_price: float
    confidence: float  # 0-1
    reasoning: Reasoning
    current_price: float

    @property
    def direction(self) -> Direction:
        return Direction.UP if self.target_price >= self.current_price else Direction.DOWN

    @property
    def confidence_level(self) -> int:
        """Confidence on the 1-10 scale used by predictions."""
        level = int(round_half_up(self.confidence * 10, 0))
        return max(1, min(10, level))

    @property
    def explanation(self) -> str:
        return EXPLANATIONS[self.reasoning]

    def to_dict(self) -> dict:
        return {
            "target_price": self.target_price,
            "confidence": self.confidence,
            "reasoning": self.reasoning.value,
            "direction": self.direction.value,
            "confidence_level": self.confidence_level,
            "explanation": self.explanation,
        }


def _classify(current_price: float, history: Sequence[float]) -> Reasoning:
    last_rsi = (rsi(history, RSI_PERIOD) or [None])[-1]
    last_sma = sma(history, SMA_PERIOD)[-1]
    trend = momentum(history, MOMENTUM_LOOKBACK) or 0.0

    if last_rsi is not None:
        if last_rsi < OVERSOLD and current_price < last_sma:
            return Reasoning.OVERSOLD_REVERSAL
        if last_rsi > OVERBOUGHT and current_price > last_sma:
            return Reasoning.OVERBOUGHT_CORRECTION
    if trend > 0 and current_price > last_sma:
        return Reasoning.UPTREND_CONTINUATION
    if trend < 0 and current_price < last_sma:
        return Reasoning.DOWNTREND_CONTINUATION
    return Reasoning.NEUTRAL


def generate_house_prediction(
    current_price: float,
    history: Sequence[float],
    symbol: str = "",
    min_history: int = MIN_HISTORY,
) -> HousePrediction:
    """
    Produce the house forecast for one stock.

    Args:
        current_price: Latest price
        history: Closing prices, oldest first
        symbol: Only used for log labeling
        min_history: Samples required before the indicator rules apply

    Returns:
        HousePrediction with target and confidence rounded to 2 decimals
    """
    if len(history) < max(min_history, SMA_PERIOD):
        reasoning = Reasoning.INSUFFICIENT_HISTORY
    else:
        reasoning = _classify(current_price, history)

    multiplier, confidence = _RULES[reasoning]
    target = Decimal(str(current_price)) * Decimal(multiplier)

    prediction = HousePrediction(
        target_price=round_half_up(target),
        confidence=round_half_up(Decimal(confidence)),
        reasoning=reasoning,
        current_price=current_price,
    )
    logger.debug(
        f"House prediction for {symbol or '?'}: {reasoning.value} "
        f"target={prediction.target_price} confidence={prediction.confidence}"
    )
    return prediction
