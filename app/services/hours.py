from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from app.models import AttendanceDay, PunchType
from app.services.clock import normalize_ts
from app.services.punch_state import PunchLike, ordered_punches

PAIR_STATUS_COMPLETED = "Completed"
PAIR_STATUS_IN_PROGRESS = "In Progress"


@dataclass(frozen=True)
class DayTotals:
    total_work_hours: float
    total_break_hours: float
    gross_hours: float
    last_check_out: datetime | None
    in_progress: bool


@dataclass(frozen=True)
class PunchPair:
    punch_in: datetime
    punch_in_location: str | None
    punch_out: datetime | None
    punch_out_location: str | None
    hours_worked: float | None
    status: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "punch_in": self.punch_in,
            "punch_in_location": self.punch_in_location,
            "punch_out": self.punch_out,
            "punch_out_location": self.punch_out_location,
            "hours_worked": self.hours_worked,
            "status": self.status,
        }


def _minutes_between(start: datetime, end: datetime) -> float:
    return (normalize_ts(end) - normalize_ts(start)).total_seconds() / 60


def _to_hours(minutes: float) -> float:
    return round(minutes / 60, 2)


def compute_day_totals(events: Iterable[PunchLike]) -> DayTotals:
    work_minutes = 0.0
    break_minutes = 0.0
    last_in: datetime | None = None
    last_out: datetime | None = None
    latest_out: datetime | None = None

    for index, event in enumerate(ordered_punches(events)):
        punch_time = normalize_ts(event.punch_time)
        if event.punch_type == PunchType.IN:
            if last_out is not None and index > 0:
                break_minutes += _minutes_between(last_out, punch_time)
            last_in = punch_time
        elif event.punch_type == PunchType.OUT:
            latest_out = punch_time
            if last_in is None:
                continue
            work_minutes += _minutes_between(last_in, punch_time)
            last_out = punch_time
            last_in = None

    total_work_hours = _to_hours(work_minutes)
    return DayTotals(
        total_work_hours=total_work_hours,
        total_break_hours=_to_hours(break_minutes),
        # Break time is not part of gross hours.
        gross_hours=total_work_hours,
        last_check_out=latest_out,
        in_progress=last_in is not None,
    )


def apply_totals(day: AttendanceDay, totals: DayTotals) -> AttendanceDay:
    day.total_work_hours = totals.total_work_hours
    day.total_break_hours = totals.total_break_hours
    day.gross_hours = totals.gross_hours
    if totals.last_check_out is not None:
        day.last_check_out = totals.last_check_out
    return day


def build_punch_pairs(events: Iterable[Any]) -> list[PunchPair]:
    pairs: list[PunchPair] = []
    open_in: Any | None = None

    for event in ordered_punches(events):
        if event.punch_type == PunchType.IN:
            open_in = event
            continue
        if event.punch_type == PunchType.OUT and open_in is not None:
            pairs.append(
                PunchPair(
                    punch_in=normalize_ts(open_in.punch_time),
                    punch_in_location=getattr(open_in, "location", None),
                    punch_out=normalize_ts(event.punch_time),
                    punch_out_location=getattr(event, "location", None),
                    hours_worked=_to_hours(_minutes_between(open_in.punch_time, event.punch_time)),
                    status=PAIR_STATUS_COMPLETED,
                )
            )
            open_in = None

    if open_in is not None:
        pairs.append(
            PunchPair(
                punch_in=normalize_ts(open_in.punch_time),
                punch_in_location=getattr(open_in, "location", None),
                punch_out=None,
                punch_out_location=None,
                hours_worked=None,
                status=PAIR_STATUS_IN_PROGRESS,
            )
        )
    return pairs
