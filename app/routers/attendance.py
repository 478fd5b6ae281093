from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Path, Query, Request, Response
from sqlalchemy.orm import Session

from app.audit import PUNCH_IN_ACTION, PUNCH_OUT_ACTION, log_punch_audit
from app.db import get_db
from app.errors import ApiError
from app.models import Employee, WorkMode
from app.schemas import (
    MAX_RECORD_ID,
    AttendanceDayRead,
    AttendanceDetailsResponse,
    BulkStatusRequest,
    BulkStatusResponse,
    EmployeeReportResponse,
    OrganizationReportResponse,
    PersonalReportResponse,
    PunchEventRead,
    PunchInRequest,
    PunchInResponse,
    PunchOutRequest,
    PunchOutResponse,
    TeamReportResponse,
    TodayStatusResponse,
)
from app.security import ROLE_HR, ROLE_MANAGER, CallerIdentity, require_caller, require_role
from app.services.attendance_days import get_today
from app.services.clock import local_day
from app.services.employees import resolve_employee, resolve_team
from app.services.exports import ORGANIZATION_EXPORT_MEDIA_TYPE, build_organization_report_xlsx
from app.services.punches import PunchMeta, record_punch_in, record_punch_out
from app.services.reports import (
    attendance_details,
    bulk_status,
    employee_report,
    organization_report,
    personal_report,
    resolve_date_range,
    team_report,
)
from app.settings import get_settings

router = APIRouter(prefix="/api/attendance", tags=["attendance"])


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


def _caller_employee(
    request: Request,
    caller: CallerIdentity = Depends(require_caller),
    db: Session = Depends(get_db),
) -> Employee:
    employee = resolve_employee(db, caller.user_id)
    request.state.employee_id = employee.id
    return employee


def _resolve_work_mode(requested: WorkMode | None) -> WorkMode:
    if requested is not None:
        return requested
    return WorkMode(get_settings().default_work_mode)


@router.post("/punch-in", response_model=PunchInResponse)
def punch_in(
    payload: PunchInRequest,
    request: Request,
    employee: Employee = Depends(_caller_employee),
    db: Session = Depends(get_db),
) -> PunchInResponse:
    work_mode = _resolve_work_mode(payload.work_mode)
    location = payload.location or get_settings().default_location
    audit_context: dict[str, Any] = {
        "ip": _client_ip(request),
        "user_agent": _user_agent(request),
        "request_id": getattr(request.state, "request_id", None),
    }
    try:
        result = record_punch_in(
            db,
            employee_id=employee.id,
            work_mode=work_mode,
            location=location,
            meta=PunchMeta(
                location=payload.location,
                device_info=audit_context["user_agent"],
                ip_address=audit_context["ip"],
                notes=payload.notes,
            ),
        )
    except ApiError as exc:
        log_punch_audit(
            db,
            action=PUNCH_IN_ACTION,
            employee_id=employee.id,
            success=False,
            attendance_id=None,
            details={"code": exc.code, "work_mode": work_mode.value},
            **audit_context,
        )
        raise

    request.state.event_id = result.event.id
    log_punch_audit(
        db,
        action=PUNCH_IN_ACTION,
        employee_id=employee.id,
        success=True,
        attendance_id=result.attendance_day.id,
        details={"punch_id": result.event.id, "work_mode": work_mode.value},
        **audit_context,
    )
    return PunchInResponse(
        message="Punched in successfully",
        punch_time=result.event.punch_time,
        work_mode=work_mode,
        attendance_id=result.attendance_day.id,
    )


@router.post("/punch-out", response_model=PunchOutResponse)
def punch_out(
    payload: PunchOutRequest,
    request: Request,
    employee: Employee = Depends(_caller_employee),
    db: Session = Depends(get_db),
) -> PunchOutResponse:
    audit_context: dict[str, Any] = {
        "ip": _client_ip(request),
        "user_agent": _user_agent(request),
        "request_id": getattr(request.state, "request_id", None),
    }
    try:
        result = record_punch_out(
            db,
            employee_id=employee.id,
            meta=PunchMeta(
                location=payload.location,
                device_info=audit_context["user_agent"],
                ip_address=audit_context["ip"],
                notes=payload.notes,
            ),
        )
    except ApiError as exc:
        log_punch_audit(
            db,
            action=PUNCH_OUT_ACTION,
            employee_id=employee.id,
            success=False,
            attendance_id=None,
            details={"code": exc.code},
            **audit_context,
        )
        raise

    totals = result.totals
    request.state.event_id = result.event.id
    log_punch_audit(
        db,
        action=PUNCH_OUT_ACTION,
        employee_id=employee.id,
        success=True,
        attendance_id=result.attendance_day.id,
        details={
            "punch_id": result.event.id,
            "total_work_hours": totals.total_work_hours if totals else None,
        },
        **audit_context,
    )
    return PunchOutResponse(
        message="Punched out successfully",
        punch_time=result.event.punch_time,
        attendance_id=result.attendance_day.id,
        total_work_hours=float(result.attendance_day.total_work_hours),
        total_break_hours=float(result.attendance_day.total_break_hours),
        gross_hours=float(result.attendance_day.gross_hours),
    )


@router.get("/today", response_model=TodayStatusResponse)
def today_status(
    employee: Employee = Depends(_caller_employee),
    db: Session = Depends(get_db),
) -> TodayStatusResponse:
    status = get_today(db, employee_id=employee.id)
    if not status.has_attendance:
        return TodayStatusResponse(
            has_attendance=False,
            message="No attendance record for today",
            can_punch_in=status.can_punch_in,
            can_punch_out=status.can_punch_out,
        )
    return TodayStatusResponse(
        has_attendance=True,
        attendance=AttendanceDayRead.model_validate(status.attendance),
        punches=[PunchEventRead.model_validate(punch) for punch in status.punches],
        punch_count=status.punch_count,
        last_punch_type=status.last_punch_type,
        can_punch_in=status.can_punch_in,
        can_punch_out=status.can_punch_out,
    )


@router.post("/bulk-status", response_model=BulkStatusResponse)
def bulk_attendance_status(
    payload: BulkStatusRequest,
    _caller: CallerIdentity = Depends(require_caller),
    db: Session = Depends(get_db),
) -> BulkStatusResponse:
    status_date, statuses = bulk_status(db, employee_ids=payload.employee_ids)
    return BulkStatusResponse(date=status_date, statuses=statuses)


@router.get("/my-report", response_model=PersonalReportResponse)
def my_report(
    start_date: date | None = Query(default=None, alias="startDate"),
    end_date: date | None = Query(default=None, alias="endDate"),
    month: int | None = Query(default=None),
    year: int | None = Query(default=None),
    employee: Employee = Depends(_caller_employee),
    db: Session = Depends(get_db),
) -> PersonalReportResponse:
    date_range = resolve_date_range(start_date=start_date, end_date=end_date, month=month, year=year)
    return personal_report(db, employee_id=employee.id, date_range=date_range)


@router.get("/details/{attendance_date}", response_model=AttendanceDetailsResponse)
def my_attendance_details(
    attendance_date: date,
    employee: Employee = Depends(_caller_employee),
    db: Session = Depends(get_db),
) -> AttendanceDetailsResponse:
    return attendance_details(db, employee_id=employee.id, day=attendance_date)


@router.get("/report/team", response_model=TeamReportResponse)
def team_attendance_report(
    target_date: date | None = Query(default=None, alias="date"),
    employee: Employee = Depends(_caller_employee),
    db: Session = Depends(get_db),
) -> TeamReportResponse:
    team = resolve_team(db, employee)
    return team_report(db, team=team, target_day=target_date or local_day())


@router.get("/report/employee/{employee_id}", response_model=EmployeeReportResponse)
def employee_attendance_report(
    employee_id: int = Path(ge=1, le=MAX_RECORD_ID),
    start_date: date | None = Query(default=None, alias="startDate"),
    end_date: date | None = Query(default=None, alias="endDate"),
    month: int | None = Query(default=None),
    year: int | None = Query(default=None),
    _caller: CallerIdentity = Depends(require_role(ROLE_MANAGER)),
    db: Session = Depends(get_db),
) -> EmployeeReportResponse:
    date_range = resolve_date_range(start_date=start_date, end_date=end_date, month=month, year=year)
    return employee_report(db, employee_id=employee_id, date_range=date_range)


@router.get("/report/details/{employee_id}/{attendance_date}", response_model=AttendanceDetailsResponse)
def employee_attendance_details(
    attendance_date: date,
    employee_id: int = Path(ge=1, le=MAX_RECORD_ID),
    _caller: CallerIdentity = Depends(require_role(ROLE_MANAGER)),
    db: Session = Depends(get_db),
) -> AttendanceDetailsResponse:
    return attendance_details(db, employee_id=employee_id, day=attendance_date, include_employee=True)


@router.get("/report/all", response_model=OrganizationReportResponse)
def organization_attendance_report(
    target_date: date | None = Query(default=None, alias="date"),
    start_date: date | None = Query(default=None, alias="startDate"),
    end_date: date | None = Query(default=None, alias="endDate"),
    _caller: CallerIdentity = Depends(require_role(ROLE_HR)),
    db: Session = Depends(get_db),
) -> OrganizationReportResponse:
    date_range = None if target_date is not None else resolve_date_range(start_date=start_date, end_date=end_date)
    return organization_report(db, day=target_date, date_range=date_range)


@router.get("/report/all/export")
def export_organization_attendance_report(
    target_date: date | None = Query(default=None, alias="date"),
    start_date: date | None = Query(default=None, alias="startDate"),
    end_date: date | None = Query(default=None, alias="endDate"),
    _caller: CallerIdentity = Depends(require_role(ROLE_HR)),
    db: Session = Depends(get_db),
) -> Response:
    date_range = None if target_date is not None else resolve_date_range(start_date=start_date, end_date=end_date)
    report = organization_report(db, day=target_date, date_range=date_range)
    if target_date is not None:
        suffix = target_date.isoformat()
    elif date_range is not None:
        suffix = f"{date_range.start.isoformat()}_{date_range.end.isoformat()}"
    else:
        suffix = "all"
    content = build_organization_report_xlsx(report)
    return Response(
        content=content,
        media_type=ORGANIZATION_EXPORT_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="attendance_{suffix}.xlsx"'},
    )
