"""Readiness check polled by the automation service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from ..db.utils import ensure_utc
from ..models.lottery import RoundState


@dataclass(frozen=True)
class UpkeepStatus:
    """Outcome of an upkeep check.

    Attributes
    ----------
    ready : bool
        ``True`` only when every draw precondition holds.
    elapsed : timedelta
        Time since the round opened or was last drawn.
    balance : int
        Pool balance of the current round.
    entry_count : int
        Number of entry slots in the current round.
    state : RoundState
        Current gate state.
    """

    ready: bool
    elapsed: timedelta
    balance: int
    entry_count: int
    state: RoundState

    def __bool__(self) -> bool:
        return self.ready


def evaluate_upkeep(
    *,
    now: datetime,
    last_draw_at: datetime,
    interval: timedelta,
    state: RoundState,
    balance: int,
    entry_count: int,
) -> UpkeepStatus:
    """Return whether a draw may start.

    A draw may start when the interval has elapsed, the round is open, the
    pool holds funds and at least one slot is taken. The function only looks
    at its arguments.
    """

    elapsed = ensure_utc(now) - ensure_utc(last_draw_at)
    ready = (
        elapsed >= interval
        and state is RoundState.OPEN
        and balance > 0
        and entry_count > 0
    )
    return UpkeepStatus(
        ready=ready,
        elapsed=elapsed,
        balance=balance,
        entry_count=entry_count,
        state=state,
    )


__all__ = ["UpkeepStatus", "evaluate_upkeep"]
