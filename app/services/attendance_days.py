from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import AttendanceDay, AttendanceStatus, PunchEvent, PunchType, WorkMode
from app.services.clock import local_day, normalize_ts
from app.services.punch_state import can_punch_in, can_punch_out, last_event_type, state_for


@dataclass
class TodayStatus:
    has_attendance: bool
    attendance: AttendanceDay | None
    punches: list[PunchEvent] = field(default_factory=list)
    last_punch_type: PunchType | None = None
    can_punch_in: bool = True
    can_punch_out: bool = False

    @property
    def punch_count(self) -> int:
        return len(self.punches)


def _day_statement(employee_id: int, day: date) -> Select[tuple[AttendanceDay]]:
    return select(AttendanceDay).where(
        AttendanceDay.employee_id == employee_id,
        AttendanceDay.attendance_date == day,
    )


def get_day(db: Session, *, employee_id: int, day: date) -> AttendanceDay | None:
    return db.scalar(_day_statement(employee_id, day))


def get_locked(db: Session, *, employee_id: int, day: date) -> AttendanceDay | None:
    return db.scalar(_day_statement(employee_id, day).with_for_update())


def get_or_create_locked(
    db: Session,
    *,
    employee_id: int,
    day: date,
    work_mode: WorkMode,
    location: str | None,
    now_utc: datetime,
) -> tuple[AttendanceDay, bool]:
    attendance_day = get_locked(db, employee_id=employee_id, day=day)
    if attendance_day is not None:
        return attendance_day, False

    candidate = AttendanceDay(
        employee_id=employee_id,
        attendance_date=day,
        first_check_in=now_utc,
        work_mode=work_mode,
        location=location,
        status=AttendanceStatus.PRESENT,
        total_work_hours=0,
        total_break_hours=0,
        gross_hours=0,
    )
    try:
        with db.begin_nested():
            db.add(candidate)
            db.flush()
    except IntegrityError:
        # A concurrent first punch created the row; wait for its lock instead.
        attendance_day = get_locked(db, employee_id=employee_id, day=day)
        if attendance_day is None:
            raise
        return attendance_day, False
    return candidate, True


def list_punches(db: Session, *, attendance_id: int) -> list[PunchEvent]:
    return list(
        db.scalars(
            select(PunchEvent)
            .where(PunchEvent.attendance_id == attendance_id)
            .order_by(PunchEvent.punch_time.asc(), PunchEvent.id.asc())
        ).all()
    )


def get_today(db: Session, *, employee_id: int, now_utc: datetime | None = None) -> TodayStatus:
    today = local_day(normalize_ts(now_utc))
    attendance_day = get_day(db, employee_id=employee_id, day=today)
    if attendance_day is None:
        return TodayStatus(has_attendance=False, attendance=None)

    punches = list_punches(db, attendance_id=attendance_day.id)
    last_type = last_event_type(punches)
    state = state_for(last_type)
    return TodayStatus(
        has_attendance=True,
        attendance=attendance_day,
        punches=punches,
        last_punch_type=last_type,
        can_punch_in=can_punch_in(state),
        can_punch_out=can_punch_out(state),
    )
