"""Punch sequence rules for one employee-day.

The state is never stored. It is read off the most recent punch of the day:
an ``in`` leaves the day OPEN, an ``out`` (or no punch at all) leaves it
CLOSED. A new calendar day starts CLOSED.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Protocol

from app.errors import StateConflictError
from app.models import PunchType
from app.services.clock import normalize_ts


class PunchState(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class PunchLike(Protocol):
    id: int | None
    punch_type: PunchType
    punch_time: datetime


def punch_sort_key(event: PunchLike) -> tuple[datetime, int]:
    # Events sharing a timestamp keep insertion order.
    return normalize_ts(event.punch_time), event.id if event.id is not None else 0


def ordered_punches(events: Iterable[PunchLike]) -> list[PunchLike]:
    return sorted(events, key=punch_sort_key)


def last_event_type(events: Sequence[PunchLike]) -> PunchType | None:
    if not events:
        return None
    return PunchType(ordered_punches(events)[-1].punch_type)


def state_for(last_type: PunchType | None) -> PunchState:
    if last_type == PunchType.IN:
        return PunchState.OPEN
    return PunchState.CLOSED


def can_punch_in(state: PunchState) -> bool:
    return state == PunchState.CLOSED


def can_punch_out(state: PunchState) -> bool:
    return state == PunchState.OPEN


def ensure_can_punch_in(last_type: PunchType | None) -> None:
    if not can_punch_in(state_for(last_type)):
        raise StateConflictError(
            code="ALREADY_PUNCHED_IN",
            message="You have an active punch-in. Punch out before punching in again.",
        )


def ensure_can_punch_out(last_type: PunchType | None) -> None:
    if last_type is None:
        raise StateConflictError(
            code="PUNCH_IN_REQUIRED",
            message="No punch-in found. Please punch in first.",
        )
    if not can_punch_out(state_for(last_type)):
        raise StateConflictError(
            code="ALREADY_PUNCHED_OUT",
            message="Already punched out. Punch in first to punch out again.",
        )
