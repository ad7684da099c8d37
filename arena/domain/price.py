"""Price domain models and the market series normalizer.

Turns raw provider output (Yahoo chart arrays or yfinance DataFrames) into an
ordered, gap-tolerant stream of ``PriceSample`` and a current ``MarketData``
snapshot.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator

from arena.core.logging import get_logger


logger = get_logger("domain.price")


class PriceSample(BaseModel):
    """Single OHLCV sample. Immutable once recorded."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    timestamp: datetime = Field(..., description="Bar timestamp (UTC)")
    open: float = Field(..., ge=0)
    high: float = Field(..., ge=0)
    low: float = Field(..., ge=0)
    close: float = Field(..., ge=0)
    volume: int = Field(default=0, ge=0)
    previous_close: float = Field(..., ge=0, description="Close of the prior emitted sample")

    @property
    def change(self) -> float:
        return self.close - self.previous_close

    @property
    def change_percent(self) -> float:
        if self.previous_close:
            return self.change / self.previous_close * 100
        return 0.0


class MarketData(BaseModel):
    """Current quote snapshot for one symbol."""

    symbol: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    volume: int = 0
    high: float
    low: float
    open: float
    previous_close: float

    @field_validator("symbol")
    @classmethod
    def upper_symbol(cls, v: str) -> str:
        return v.strip().upper()


def _usable(value: Any) -> Optional[float]:
    """Return value as float, or None for null/NaN/non-numeric entries."""
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def round_half_up(value: float | Decimal, places: int = 2) -> float:
    """Round to ``places`` decimals, halves away from zero."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _as_utc(ts: Any) -> Optional[datetime]:
    if ts is None:
        return None
    if isinstance(ts, pd.Timestamp):
        ts = ts.to_pydatetime()
    if isinstance(ts, datetime):
        if ts.tzinfo is None:
            return ts.replace(tzinfo=timezone.utc)
        return ts.astimezone(timezone.utc)
    number = _usable(ts)
    if number is None:
        return None
    return datetime.fromtimestamp(number, tz=timezone.utc)


def _at(values: Optional[Sequence[Any]], i: int) -> Any:
    if values is None or i >= len(values):
        return None
    return values[i]


def iter_price_samples(
    timestamps: Sequence[Any],
    opens: Optional[Sequence[Any]] = None,
    highs: Optional[Sequence[Any]] = None,
    lows: Optional[Sequence[Any]] = None,
    closes: Optional[Sequence[Any]] = None,
    volumes: Optional[Sequence[Any]] = None,
) -> Iterator[PriceSample]:
    """
    Lazily normalize parallel OHLCV arrays into price samples.

    Entries without a close are non-trading gaps and are skipped. Missing
    open/high/low fall back to the close and missing volume to zero.
    Samples whose timestamp does not advance past the last emitted one are
    dropped, so the output is strictly increasing.
    """
    previous_close: Optional[float] = None
    last_ts: Optional[datetime] = None

    for i, raw_ts in enumerate(timestamps):
        close = _usable(_at(closes, i))
        ts = _as_utc(raw_ts)
        if close is None or ts is None:
            continue
        if last_ts is not None and ts <= last_ts:
            logger.debug(f"Dropping out-of-order sample at {ts.isoformat()}")
            continue

        open_ = _usable(_at(opens, i))
        high = _usable(_at(highs, i))
        low = _usable(_at(lows, i))
        volume = _usable(_at(volumes, i))

        yield PriceSample(
            timestamp=ts,
            open=open_ if open_ is not None else close,
            high=high if high is not None else close,
            low=low if low is not None else close,
            close=close,
            volume=int(volume) if volume is not None else 0,
            previous_close=previous_close if previous_close is not None else close,
        )
        previous_close = close
        last_ts = ts


def _chart_result(payload: Mapping[str, Any] | None) -> Optional[Mapping[str, Any]]:
    if not payload:
        return None
    results = (payload.get("chart") or {}).get("result") or []
    return results[0] if results else None


def samples_from_chart(payload: Mapping[str, Any] | None) -> Iterator[PriceSample]:
    """Normalize a Yahoo chart payload (``chart.result[0]``)."""
    result = _chart_result(payload)
    if not result:
        return iter(())
    quotes = ((result.get("indicators") or {}).get("quote") or [{}])[0] or {}
    return iter_price_samples(
        result.get("timestamp") or [],
        quotes.get("open"),
        quotes.get("high"),
        quotes.get("low"),
        quotes.get("close"),
        quotes.get("volume"),
    )


def samples_from_dataframe(df: pd.DataFrame | None) -> Iterator[PriceSample]:
    """Normalize a yfinance OHLCV DataFrame (DatetimeIndex, capitalized columns)."""
    if df is None or df.empty:
        return iter(())

    def column(name: str) -> Optional[list[Any]]:
        for candidate in (name, name.lower()):
            if candidate in df.columns:
                return df[candidate].tolist()
        return None

    return iter_price_samples(
        list(df.index),
        column("Open"),
        column("High"),
        column("Low"),
        column("Close"),
        column("Volume"),
    )


def _first(*values: Any) -> Optional[float]:
    for value in values:
        number = _usable(value)
        if number is not None and number != 0:
            return number
    return None


def market_data_from_samples(
    symbol: str,
    samples: Iterable[PriceSample],
    quote: Mapping[str, Any] | None = None,
) -> Optional[MarketData]:
    """
    Build the current snapshot for ``symbol``.

    Live ``quote`` fields win (yfinance ``fast_info`` or Yahoo chart ``meta``
    keys); anything missing is substituted by the nearest known value from
    the samples. Returns None only when no price is known at all.
    """
    quote = quote or {}
    history = list(samples)
    last = history[-1] if history else None

    price = _first(
        quote.get("last_price"),
        quote.get("regularMarketPrice"),
        last.close if last else None,
    )
    if price is None:
        return None

    previous_close = _first(
        quote.get("previous_close"),
        quote.get("previousClose"),
        quote.get("chartPreviousClose"),
        last.previous_close if last else None,
        price,
    )
    change = price - previous_close
    change_percent = change / previous_close * 100 if previous_close else 0.0

    return MarketData(
        symbol=symbol,
        price=round_half_up(price),
        change=round_half_up(change),
        change_percent=round_half_up(change_percent),
        volume=int(
            _first(
                quote.get("last_volume"),
                quote.get("regularMarketVolume"),
                last.volume if last else None,
            )
            or 0
        ),
        high=_first(
            quote.get("day_high"),
            quote.get("regularMarketDayHigh"),
            last.high if last else None,
            price,
        ),
        low=_first(
            quote.get("day_low"),
            quote.get("regularMarketDayLow"),
            last.low if last else None,
            price,
        ),
        open=_first(
            quote.get("open"),
            quote.get("regularMarketOpen"),
            last.open if last else None,
            price,
        ),
        previous_close=previous_close,
    )


def closes(samples: Iterable[PriceSample]) -> list[float]:
    """Closing prices of ``samples`` in order."""
    return [s.close for s in samples]
