from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db import transaction
from app.errors import ApiError, NotFoundError
from app.models import AttendanceDay, PunchEvent, PunchType, WorkMode
from app.services.attendance_days import get_locked, get_or_create_locked, list_punches
from app.services.clock import local_day, normalize_ts
from app.services.hours import DayTotals, apply_totals, compute_day_totals
from app.services.punch_state import ensure_can_punch_in, ensure_can_punch_out

logger = logging.getLogger("app.punches")


@dataclass(frozen=True)
class PunchMeta:
    location: str | None = None
    device_info: str | None = None
    ip_address: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PunchResult:
    attendance_day: AttendanceDay
    event: PunchEvent
    totals: DayTotals | None = None


def _latest_punch_type(db: Session, *, attendance_id: int) -> PunchType | None:
    latest = db.scalar(
        select(PunchEvent)
        .where(PunchEvent.attendance_id == attendance_id)
        .order_by(PunchEvent.punch_time.desc(), PunchEvent.id.desc())
        .limit(1)
    )
    if latest is None:
        return None
    return PunchType(latest.punch_type)


def _append_punch(
    db: Session,
    *,
    attendance_day: AttendanceDay,
    punch_type: PunchType,
    punch_time: datetime,
    meta: PunchMeta,
) -> PunchEvent:
    event = PunchEvent(
        attendance_id=attendance_day.id,
        employee_id=attendance_day.employee_id,
        punch_type=punch_type,
        punch_time=punch_time,
        punch_date=attendance_day.attendance_date,
        location=meta.location,
        device_info=meta.device_info,
        ip_address=meta.ip_address,
        notes=meta.notes,
    )
    db.add(event)
    db.flush()
    return event


def _log_rejection(exc: ApiError, *, employee_id: int, day: object, transition: str) -> None:
    logger.warning(
        "punch_rejected",
        extra={
            "employee_id": employee_id,
            "attendance_date": str(day),
            "transition": transition,
            "code": exc.code,
            "status_code": exc.status_code,
        },
    )


def record_punch_in(
    db: Session,
    *,
    employee_id: int,
    work_mode: WorkMode,
    location: str | None,
    meta: PunchMeta,
    now_utc: datetime | None = None,
) -> PunchResult:
    punch_time = normalize_ts(now_utc)
    today = local_day(punch_time)
    try:
        with transaction(db, operation="punch_in"):
            attendance_day, created = get_or_create_locked(
                db,
                employee_id=employee_id,
                day=today,
                work_mode=work_mode,
                location=location,
                now_utc=punch_time,
            )
            if not created:
                last_type = _latest_punch_type(db, attendance_id=attendance_day.id)
                ensure_can_punch_in(last_type)
                if last_type is None:
                    attendance_day.first_check_in = punch_time
                    attendance_day.work_mode = work_mode
                    attendance_day.location = location
            event = _append_punch(
                db,
                attendance_day=attendance_day,
                punch_type=PunchType.IN,
                punch_time=punch_time,
                meta=meta,
            )
    except ApiError as exc:
        _log_rejection(exc, employee_id=employee_id, day=today, transition="CLOSED->OPEN")
        raise

    logger.info(
        "punch_recorded",
        extra={
            "employee_id": employee_id,
            "attendance_id": attendance_day.id,
            "attendance_date": str(today),
            "punch_type": PunchType.IN.value,
            "created_day": created,
        },
    )
    return PunchResult(attendance_day=attendance_day, event=event)


def record_punch_out(
    db: Session,
    *,
    employee_id: int,
    meta: PunchMeta,
    now_utc: datetime | None = None,
) -> PunchResult:
    punch_time = normalize_ts(now_utc)
    today = local_day(punch_time)
    try:
        with transaction(db, operation="punch_out"):
            attendance_day = get_locked(db, employee_id=employee_id, day=today)
            if attendance_day is None:
                raise NotFoundError(
                    code="NO_ATTENDANCE_TODAY",
                    message="No attendance record found. Please punch in first.",
                )
            ensure_can_punch_out(_latest_punch_type(db, attendance_id=attendance_day.id))
            event = _append_punch(
                db,
                attendance_day=attendance_day,
                punch_type=PunchType.OUT,
                punch_time=punch_time,
                meta=meta,
            )
            totals = recompute_totals(db, attendance_day)
    except ApiError as exc:
        _log_rejection(exc, employee_id=employee_id, day=today, transition="OPEN->CLOSED")
        raise

    logger.info(
        "punch_recorded",
        extra={
            "employee_id": employee_id,
            "attendance_id": attendance_day.id,
            "attendance_date": str(today),
            "punch_type": PunchType.OUT.value,
            "total_work_hours": totals.total_work_hours,
            "total_break_hours": totals.total_break_hours,
        },
    )
    return PunchResult(attendance_day=attendance_day, event=event, totals=totals)


def recompute_totals(db: Session, attendance_day: AttendanceDay) -> DayTotals:
    """Replay every punch of the day and overwrite the stored totals."""
    punches = list_punches(db, attendance_id=attendance_day.id)
    totals = compute_day_totals(punches)
    apply_totals(attendance_day, totals)
    db.flush()
    return totals
