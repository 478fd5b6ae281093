from __future__ import annotations

import calendar
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.errors import NotFoundError, ValidationError
from app.models import AttendanceDay, AttendanceStatus, Department, Employee, PunchEvent, PunchType
from app.schemas import (
    AttendanceDayRead,
    AttendanceDetailsResponse,
    AttendanceReportRow,
    AttendanceSummary,
    EmployeeAttendanceStatus,
    EmployeeBrief,
    EmployeeReportResponse,
    OrganizationAttendanceRow,
    OrganizationReportResponse,
    OrganizationSummary,
    PersonalReportResponse,
    PunchEventRead,
    PunchPairRead,
    TeamAttendanceRow,
    TeamMemberRead,
    TeamReportResponse,
    TeamSummary,
)
from app.services.attendance_days import get_day, list_punches
from app.services.clock import local_day, normalize_ts
from app.services.employees import Team, get_employee
from app.services.hours import build_punch_pairs
from app.settings import get_settings


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date


def resolve_date_range(
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    month: int | None = None,
    year: int | None = None,
) -> DateRange | None:
    if (start_date is None) != (end_date is None):
        raise ValidationError(
            code="INVALID_DATE_RANGE",
            message="startDate and endDate must be provided together.",
        )
    if start_date is not None and end_date is not None:
        if start_date > end_date:
            raise ValidationError(
                code="INVALID_DATE_RANGE",
                message="startDate must not be after endDate.",
            )
        return DateRange(start=start_date, end=end_date)

    if (month is None) != (year is None):
        raise ValidationError(
            code="INVALID_DATE_RANGE",
            message="month and year must be provided together.",
        )
    if month is not None and year is not None:
        if not 1 <= month <= 12:
            raise ValidationError(code="INVALID_DATE_RANGE", message="month must be between 1 and 12.")
        if not 1 <= year <= 9999:
            raise ValidationError(code="INVALID_DATE_RANGE", message="year must be between 1 and 9999.")
        last_day = calendar.monthrange(year, month)[1]
        return DateRange(start=date(year, month, 1), end=date(year, month, last_day))
    return None


def _round2(value: float) -> float:
    return round(value, 2)


def summarize_days(days: Sequence[AttendanceDay]) -> AttendanceSummary:
    total_hours = sum(float(day.gross_hours or 0) for day in days)
    return AttendanceSummary(
        total_days=len(days),
        present_days=sum(1 for day in days if day.status == AttendanceStatus.PRESENT),
        absent_days=sum(1 for day in days if day.status == AttendanceStatus.ABSENT),
        half_days=sum(1 for day in days if day.status == AttendanceStatus.HALF_DAY),
        total_work_hours=_round2(total_hours),
        avg_work_hours=_round2(total_hours / len(days)) if days else 0.0,
    )


def _punch_counts(db: Session, attendance_ids: Sequence[int]) -> dict[int, dict[PunchType, int]]:
    counts: dict[int, dict[PunchType, int]] = defaultdict(lambda: {PunchType.IN: 0, PunchType.OUT: 0})
    if not attendance_ids:
        return counts
    rows = db.execute(
        select(PunchEvent.attendance_id, PunchEvent.punch_type, func.count(PunchEvent.id))
        .where(PunchEvent.attendance_id.in_(attendance_ids))
        .group_by(PunchEvent.attendance_id, PunchEvent.punch_type)
    ).all()
    for attendance_id, punch_type, total in rows:
        counts[attendance_id][PunchType(punch_type)] = int(total)
    return counts


def _day_fields(day: AttendanceDay) -> dict[str, Any]:
    return AttendanceDayRead.model_validate(day).model_dump()


def _employee_days(db: Session, employee_id: int, date_range: DateRange | None) -> list[AttendanceDay]:
    stmt = select(AttendanceDay).where(AttendanceDay.employee_id == employee_id)
    if date_range is not None:
        stmt = stmt.where(AttendanceDay.attendance_date.between(date_range.start, date_range.end))
    stmt = stmt.order_by(AttendanceDay.attendance_date.desc())
    return list(db.scalars(stmt).all())


def _report_rows(db: Session, days: Sequence[AttendanceDay]) -> list[AttendanceReportRow]:
    counts = _punch_counts(db, [day.id for day in days])
    return [
        AttendanceReportRow(
            **_day_fields(day),
            punch_in_count=counts[day.id][PunchType.IN],
            punch_out_count=counts[day.id][PunchType.OUT],
        )
        for day in days
    ]


def employee_brief(employee: Employee) -> EmployeeBrief:
    return EmployeeBrief(
        id=employee.id,
        employee_number=employee.employee_number,
        name=employee.full_name,
        email=employee.work_email,
    )


def personal_report(
    db: Session,
    *,
    employee_id: int,
    date_range: DateRange | None,
) -> PersonalReportResponse:
    days = _employee_days(db, employee_id, date_range)
    return PersonalReportResponse(summary=summarize_days(days), attendance=_report_rows(db, days))


def employee_report(
    db: Session,
    *,
    employee_id: int,
    date_range: DateRange | None,
) -> EmployeeReportResponse:
    days = _employee_days(db, employee_id, date_range)
    employee = db.get(Employee, employee_id) if days else None
    return EmployeeReportResponse(
        employee=employee_brief(employee) if employee is not None else None,
        summary=summarize_days(days),
        attendance=_report_rows(db, days),
    )


def attendance_details(
    db: Session,
    *,
    employee_id: int,
    day: date,
    include_employee: bool = False,
) -> AttendanceDetailsResponse:
    attendance_day = get_day(db, employee_id=employee_id, day=day)
    if attendance_day is None:
        raise NotFoundError(
            code="ATTENDANCE_NOT_FOUND",
            message="No attendance record found for this date",
        )
    punches = list_punches(db, attendance_id=attendance_day.id)
    employee = get_employee(db, employee_id) if include_employee else None
    return AttendanceDetailsResponse(
        employee=employee_brief(employee) if employee is not None else None,
        attendance=AttendanceDayRead.model_validate(attendance_day),
        punches=[PunchEventRead.model_validate(punch) for punch in punches],
        punch_pairs=[PunchPairRead(**pair.to_dict()) for pair in build_punch_pairs(punches)],
    )


def team_report(db: Session, *, team: Team, target_day: date) -> TeamReportResponse:
    team_ids = team.member_ids
    rows: list[TeamAttendanceRow] = []
    if team_ids:
        days = list(
            db.scalars(
                select(AttendanceDay)
                .where(
                    AttendanceDay.employee_id.in_(team_ids),
                    AttendanceDay.attendance_date == target_day,
                )
                .order_by(AttendanceDay.employee_id.asc())
            ).all()
        )
        counts = _punch_counts(db, [day.id for day in days])
        members_by_id = {member.id: member for member in team.members}
        for day in days:
            member = members_by_id[day.employee_id]
            rows.append(
                TeamAttendanceRow(
                    **_day_fields(day),
                    employee_number=member.employee_number,
                    first_name=member.first_name,
                    last_name=member.last_name,
                    total_punches=sum(counts[day.id].values()),
                )
            )

    return TeamReportResponse(
        team_type=team.team_type,
        team_members=[TeamMemberRead.model_validate(member) for member in team.members],
        date=target_day,
        attendance=rows,
        summary=TeamSummary(
            total_team=len(team_ids),
            present=sum(1 for row in rows if row.status == AttendanceStatus.PRESENT),
            absent=len(team_ids) - len(rows),
            on_leave=sum(1 for row in rows if row.status == AttendanceStatus.ON_LEAVE),
        ),
    )


def organization_report(
    db: Session,
    *,
    day: date | None = None,
    date_range: DateRange | None = None,
) -> OrganizationReportResponse:
    stmt = (
        select(AttendanceDay, Employee, Department.name)
        .join(Employee, AttendanceDay.employee_id == Employee.id)
        .outerjoin(Department, Employee.department_id == Department.id)
    )
    if day is not None:
        stmt = stmt.where(AttendanceDay.attendance_date == day)
    elif date_range is not None:
        stmt = stmt.where(AttendanceDay.attendance_date.between(date_range.start, date_range.end))
    stmt = stmt.order_by(AttendanceDay.attendance_date.desc(), Employee.employee_number.asc())

    rows = [
        OrganizationAttendanceRow(
            **_day_fields(attendance_day),
            employee_number=employee.employee_number,
            first_name=employee.first_name,
            last_name=employee.last_name,
            work_email=employee.work_email,
            department_name=department_name,
        )
        for attendance_day, employee, department_name in db.execute(stmt).all()
    ]
    return OrganizationReportResponse(
        attendance=rows,
        summary=OrganizationSummary(
            total_records=len(rows),
            present=sum(1 for row in rows if row.status == AttendanceStatus.PRESENT),
            absent=sum(1 for row in rows if row.status == AttendanceStatus.ABSENT),
            half_day=sum(1 for row in rows if row.status == AttendanceStatus.HALF_DAY),
            on_leave=sum(1 for row in rows if row.status == AttendanceStatus.ON_LEAVE),
        ),
    )


def _last_punches_by_attendance(
    db: Session,
    attendance_ids: Sequence[int],
) -> dict[int, tuple[PunchType, datetime]]:
    if not attendance_ids:
        return {}
    ranked = (
        select(
            PunchEvent.attendance_id,
            PunchEvent.punch_type,
            PunchEvent.punch_time,
            func.row_number()
            .over(
                partition_by=PunchEvent.attendance_id,
                order_by=(PunchEvent.punch_time.desc(), PunchEvent.id.desc()),
            )
            .label("row_rank"),
        )
        .where(PunchEvent.attendance_id.in_(attendance_ids))
        .subquery()
    )
    rows = db.execute(
        select(ranked.c.attendance_id, ranked.c.punch_type, ranked.c.punch_time).where(ranked.c.row_rank == 1)
    ).all()
    return {
        attendance_id: (PunchType(punch_type), normalize_ts(punch_time))
        for attendance_id, punch_type, punch_time in rows
    }


def bulk_status(
    db: Session,
    *,
    employee_ids: Sequence[int],
    now_utc: datetime | None = None,
) -> tuple[date, list[EmployeeAttendanceStatus]]:
    if not employee_ids:
        raise ValidationError(code="EMPLOYEE_IDS_REQUIRED", message="employee_ids must not be empty.")
    max_ids = get_settings().bulk_status_max_ids
    if len(employee_ids) > max_ids:
        raise ValidationError(
            code="TOO_MANY_EMPLOYEE_IDS",
            message=f"At most {max_ids} employee ids can be requested at once.",
        )

    today = local_day(normalize_ts(now_utc))
    unique_ids = sorted(set(employee_ids))
    days = db.scalars(
        select(AttendanceDay).where(
            AttendanceDay.employee_id.in_(unique_ids),
            AttendanceDay.attendance_date == today,
        )
    ).all()
    days_by_employee = {day.employee_id: day for day in days}
    last_punches = _last_punches_by_attendance(db, [day.id for day in days])

    statuses: list[EmployeeAttendanceStatus] = []
    for employee_id in employee_ids:
        day = days_by_employee.get(employee_id)
        if day is None:
            statuses.append(EmployeeAttendanceStatus(employee_id=employee_id, status="out", has_attendance=False))
            continue
        last_type, last_time = last_punches.get(day.id, (None, None))
        statuses.append(
            EmployeeAttendanceStatus(
                employee_id=employee_id,
                status="in" if last_type == PunchType.IN else "out",
                has_attendance=True,
                attendance_id=day.id,
                work_mode=day.work_mode,
                first_check_in=day.first_check_in,
                last_check_out=day.last_check_out,
                last_punch_type=last_type,
                last_punch_time=last_time,
                total_work_hours=float(day.total_work_hours or 0),
            )
        )
    return today, statuses
