"""Contest lifecycle: upcoming -> open -> locked -> resolved.

State is never stored. It is recomputed from the period's dates, the
current time and whether a resolution exists, every time it is asked for.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from arena.core.exceptions import ContestClosedError, DataIntegrityAnomaly
from arena.core.logging import get_logger
from arena.domain.contest import ContestInfo, ContestPeriod, ContestState, utc

from .events import DomainEvent, DomainEventType


logger = get_logger("contest.lifecycle")


def contest_state(period: ContestPeriod, now: datetime, resolved: bool = False) -> ContestState:
    """Compute the state of ``period`` at ``now``."""
    now = utc(now)
    if now < period.start_date:
        return ContestState.UPCOMING
    if now < period.prediction_deadline:
        return ContestState.OPEN
    if resolved and now >= period.end_date:
        return ContestState.RESOLVED
    return ContestState.LOCKED


def ensure_open(period: ContestPeriod, now: datetime, resolved: bool = False) -> None:
    """Raise ContestClosedError unless ``period`` accepts predictions at ``now``."""
    state = contest_state(period, now, resolved)
    if state != ContestState.OPEN:
        raise ContestClosedError(
            details={"contest_id": period.id, "state": state.value}
        )


def seconds_remaining(period: ContestPeriod, now: datetime, resolved: bool = False) -> Optional[int]:
    """Seconds until the next lifecycle boundary, None once resolved."""
    now = utc(now)
    state = contest_state(period, now, resolved)
    boundary = {
        ContestState.UPCOMING: period.start_date,
        ContestState.OPEN: period.prediction_deadline,
        ContestState.LOCKED: period.end_date,
    }.get(state)
    if boundary is None:
        return None
    return max(0, int((boundary - now).total_seconds()))


def describe(period: ContestPeriod, now: datetime, resolved: bool = False) -> ContestInfo:
    return ContestInfo(
        period=period,
        state=contest_state(period, now, resolved),
        seconds_remaining=seconds_remaining(period, now, resolved),
        total_participants=period.total_participants,
    )


def select_current_contest(
    periods: Iterable[ContestPeriod], now: datetime
) -> Optional[ContestPeriod]:
    """
    Pick the contest that currently accepts predictions.

    Among active periods in the open state the earliest prediction
    deadline wins (ties by id). More than one candidate is a data
    integrity anomaly: logged, never raised.
    """
    candidates = sorted(
        (p for p in periods if p.is_active and contest_state(p, now) == ContestState.OPEN),
        key=lambda p: (p.prediction_deadline, p.id),
    )
    if not candidates:
        return None

    if len(candidates) > 1:
        anomaly = DataIntegrityAnomaly(
            message="Multiple active contests are open at the same time",
            details={
                "selected": candidates[0].id,
                "candidates": [p.id for p in candidates],
            },
        )
        logger.warning(
            anomaly.message, extra={"error": anomaly.error_code, **anomaly.details}
        )
    return candidates[0]


def select_display_contest(
    periods: Iterable[ContestPeriod],
    now: datetime,
    resolved_ids: Iterable[str] = (),
) -> Optional[ContestPeriod]:
    """
    Pick the contest to show: the open one, else an active locked one
    still inside its window, else the next upcoming one.
    """
    periods = [p for p in periods if p.is_active]
    current = select_current_contest(periods, now)
    if current is not None:
        return current

    now = utc(now)
    resolved = set(resolved_ids)
    locked = sorted(
        (
            p
            for p in periods
            if p.id not in resolved
            and contest_state(p, now) == ContestState.LOCKED
            and now < p.end_date
        ),
        key=lambda p: (p.end_date, p.id),
    )
    if locked:
        return locked[0]

    upcoming = sorted(
        (p for p in periods if contest_state(p, now) == ContestState.UPCOMING),
        key=lambda p: (p.start_date, p.id),
    )
    return upcoming[0] if upcoming else None


def activation_request(
    period: ContestPeriod, now: datetime, resolved: bool
) -> Optional[DomainEvent]:
    """Event asking the external store to deactivate a resolved period."""
    if not period.is_active or contest_state(period, now, resolved) != ContestState.RESOLVED:
        return None
    return DomainEvent(
        type=DomainEventType.CONTEST_ACTIVATION_REQUESTED,
        contest_id=period.id,
        data={"is_active": False},
    )
