"""Prediction grading and leaderboard ranking.

Pure functions over domain records. Error arithmetic is done in Decimal so
that boundary cases (a target exactly at the tolerance) grade the same way
on every platform.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from fractions import Fraction
from typing import Iterable, Optional, Sequence

from arena.domain.contest import (
    Direction,
    HouseBenchmark,
    LeaderboardEntry,
    Prediction,
    StockStats,
)


POINTS_PER_CONFIDENCE = 10


def _dec(value: float | int) -> Decimal:
    return Decimal(str(value))


def _round(value: Decimal | Fraction, places: int = 2) -> float:
    if isinstance(value, Fraction):
        value = Decimal(value.numerator) / Decimal(value.denominator)
    return float(value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP))


def grade_call(
    direction: Direction,
    entry_price: float,
    realized_price: float,
    target_price: Optional[float],
    tolerance: float,
    max_error_band: float,
) -> tuple[bool, float]:
    """
    Grade a single call.

    Direction calls are correct when the move has the declared sign; a flat
    move is incorrect and scores zero accuracy. Target calls are correct
    when ``|realized - target| / entry <= tolerance``.

    On a miss the accuracy decays linearly with the excess error (adverse
    move for direction calls, error beyond the tolerance for target calls)
    and reaches 0 at ``max_error_band``.

    Returns:
        (is_correct, accuracy in [0, 1])
    """
    entry = _dec(entry_price)
    realized = _dec(realized_price)
    band = _dec(max_error_band)

    if target_price is None:
        move = (realized - entry) / entry
        if move == 0:
            return False, 0.0
        signed = move if direction == Direction.UP else -move
        if signed > 0:
            return True, 1.0
        excess = -signed
    else:
        error = abs(realized - _dec(target_price)) / entry
        tol = _dec(tolerance)
        if error <= tol:
            return True, 1.0
        excess = error - tol

    accuracy = max(Decimal(0), 1 - excess / band)
    return False, _round(accuracy, 4)


def points_for(accuracy: float, confidence_level: int) -> int:
    """``round_half_up(accuracy * confidence * 10)``."""
    raw = _dec(accuracy) * confidence_level * POINTS_PER_CONFIDENCE
    return int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def grade(
    prediction: Prediction,
    realized_price: float,
    resolved_at: datetime,
    tolerance: float,
    max_error_band: float,
) -> Prediction:
    """Return ``prediction`` with its resolution fields filled in."""
    is_correct, accuracy = grade_call(
        prediction.direction,
        prediction.price_at_prediction,
        realized_price,
        prediction.target_price,
        tolerance,
        max_error_band,
    )
    return prediction.model_copy(
        update={
            "realized_price": realized_price,
            "is_correct": is_correct,
            "accuracy_score": accuracy,
            "points_earned": points_for(accuracy, prediction.confidence_level),
            "resolved_at": resolved_at,
        }
    )


def build_leaderboard(contest_id: str, predictions: Iterable[Prediction]) -> list[LeaderboardEntry]:
    """
    Aggregate graded human predictions into a ranked leaderboard.

    Order: points desc, accuracy desc, user id asc. Equal (points, accuracy)
    pairs share a rank and the next distinct pair skips (1, 2, 2, 4).
    Ranking compares the exact accuracy ratio, not the rounded percentage.
    """
    totals: dict[str, list[int]] = defaultdict(lambda: [0, 0, 0])
    for p in predictions:
        if p.is_house or p.is_correct is None:
            continue
        row = totals[p.user_id]
        row[0] += 1
        row[1] += 1 if p.is_correct else 0
        row[2] += p.points_earned or 0

    rows = []
    for user_id, (total, correct, points) in totals.items():
        ratio = Fraction(correct, total) if total else Fraction(0)
        rows.append((user_id, total, correct, points, ratio))
    rows.sort(key=lambda r: (-r[3], -r[4], r[0]))

    n = len(rows)
    entries: list[LeaderboardEntry] = []
    rank = 0
    previous = None
    for i, (user_id, total, correct, points, ratio) in enumerate(rows):
        if (points, ratio) != previous:
            rank = i + 1
            previous = (points, ratio)
        entries.append(
            LeaderboardEntry(
                user_id=user_id,
                contest_id=contest_id,
                total_predictions=total,
                correct_predictions=correct,
                accuracy_percentage=_round(ratio * 100),
                total_points=points,
                rank_position=rank,
                percentile=_round(Fraction(100 * (n - rank + 1), n)),
            )
        )
    return entries


def house_benchmark(
    predictions: Iterable[Prediction], leaderboard: Sequence[LeaderboardEntry]
) -> HouseBenchmark:
    """Summarize the graded house predictions and count users who beat them."""
    house = [p for p in predictions if p.is_house and p.is_correct is not None]
    house_points = sum(p.points_earned or 0 for p in house)
    return HouseBenchmark(
        total_predictions=len(house),
        correct_predictions=sum(1 for p in house if p.is_correct),
        total_points=house_points,
        users_beating_house=sum(1 for e in leaderboard if e.total_points > house_points),
        users_total=len(leaderboard),
    )


def stock_sentiment(
    stock_id: str, contest_id: str, predictions: Iterable[Prediction]
) -> StockStats:
    """Crowd sentiment over the human predictions for one stock."""
    crowd = [
        p for p in predictions
        if not p.is_house and p.stock_id == stock_id and p.contest_id == contest_id
    ]
    if not crowd:
        return StockStats(stock_id=stock_id, contest_id=contest_id)

    bullish = sum(1 for p in crowd if p.direction == Direction.UP)
    bearish = len(crowd) - bullish
    targets = [_dec(p.target_price) for p in crowd if p.target_price is not None]
    return StockStats(
        stock_id=stock_id,
        contest_id=contest_id,
        total_predictions=len(crowd),
        bullish_predictions=bullish,
        bearish_predictions=bearish,
        avg_target_price=_round(sum(targets) / len(targets)) if targets else None,
        sentiment_score=_round(Fraction(bullish - bearish, len(crowd))),
    )
