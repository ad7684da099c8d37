"""
Simple Technical Indicator Utilities.

Lightweight indicator calculations over plain Python sequences. Every
function returns the full trailing series so callers can pick the latest
value or chart the whole window.

Usage:
    from arena.core.technical_utils import sma, rsi, momentum

    closes = [100.0, 101.5, 99.0, 102.0, ...]
    last_rsi = rsi(closes, period=14)[-1]
"""

from __future__ import annotations

from typing import Sequence


def _check_period(period: int) -> None:
    if period < 1:
        raise ValueError(f"period must be a positive integer, got {period}")


def sma(values: Sequence[float], period: int) -> list[float]:
    """
    Calculate the Simple Moving Average series.

    Element ``i`` is the mean of ``values[i : i + period]``.

    Args:
        values: Price or value series (oldest first)
        period: Window size

    Returns:
        List of length ``max(0, len(values) - period + 1)``
    """
    _check_period(period)
    if len(values) < period:
        return []

    out: list[float] = []
    window_sum = sum(values[:period])
    out.append(window_sum / period)
    for i in range(period, len(values)):
        window_sum += values[i] - values[i - period]
        out.append(window_sum / period)
    return out


def rsi(closes: Sequence[float], period: int = 14) -> list[float]:
    """
    Calculate the Relative Strength Index series (Wilder smoothing).

    Args:
        closes: Closing prices (oldest first)
        period: RSI period (default 14)

    Returns:
        RSI values (0-100), one per close after the seed window, or an
        empty list if there are fewer than ``period + 1`` closes
    """
    _check_period(period)
    if len(closes) < period + 1:
        return []

    changes = [closes[i] - closes[i - 1] for i in range(1, len(closes))]
    gains = [max(0.0, c) for c in changes]
    losses = [abs(min(0.0, c)) for c in changes]

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    out = [_rsi_value(avg_gain, avg_loss)]
    for i in range(period, len(gains)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        out.append(_rsi_value(avg_gain, avg_loss))
    return out


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    # No losses in the window: RSI is pinned at 100
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def momentum(values: Sequence[float], lookback: int = 10) -> float | None:
    """
    Price change over ``lookback`` steps: ``values[-1] - values[-1 - lookback]``.

    Returns None if insufficient data.
    """
    _check_period(lookback)
    if len(values) < lookback + 1:
        return None
    return values[-1] - values[-1 - lookback]
