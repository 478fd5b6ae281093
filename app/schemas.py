from datetime import date, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.models import AttendanceStatus, PunchType, WorkMode


class PunchInRequest(BaseModel):
    work_mode: WorkMode | None = None
    location: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=1000)


class PunchOutRequest(BaseModel):
    location: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=1000)


class PunchInResponse(BaseModel):
    success: bool = True
    message: str
    punch_time: datetime
    work_mode: WorkMode
    attendance_id: int


class PunchOutResponse(BaseModel):
    success: bool = True
    message: str
    punch_time: datetime
    attendance_id: int
    total_work_hours: float
    total_break_hours: float
    gross_hours: float


class AttendanceDayRead(BaseModel):
    id: int
    employee_id: int
    attendance_date: date
    first_check_in: datetime | None = None
    last_check_out: datetime | None = None
    work_mode: WorkMode
    location: str | None = None
    status: AttendanceStatus
    total_work_hours: float
    total_break_hours: float
    gross_hours: float

    model_config = ConfigDict(from_attributes=True)


class PunchEventRead(BaseModel):
    id: int
    attendance_id: int
    employee_id: int
    punch_type: PunchType
    punch_time: datetime
    punch_date: date
    location: str | None = None
    device_info: str | None = None
    ip_address: str | None = None
    notes: str | None = None

    model_config = ConfigDict(from_attributes=True)


class TodayStatusResponse(BaseModel):
    has_attendance: bool
    message: str | None = None
    attendance: AttendanceDayRead | None = None
    punches: list[PunchEventRead] = Field(default_factory=list)
    punch_count: int = 0
    last_punch_type: PunchType | None = None
    can_punch_in: bool
    can_punch_out: bool


# Upper bound of the INTEGER primary keys.
MAX_RECORD_ID = 2**31 - 1

EmployeeId = Annotated[int, Field(ge=1, le=MAX_RECORD_ID)]


class BulkStatusRequest(BaseModel):
    employee_ids: list[EmployeeId] = Field(default_factory=list)


class EmployeeAttendanceStatus(BaseModel):
    employee_id: int
    status: Literal["in", "out"]
    has_attendance: bool
    attendance_id: int | None = None
    work_mode: WorkMode | None = None
    first_check_in: datetime | None = None
    last_check_out: datetime | None = None
    last_punch_type: PunchType | None = None
    last_punch_time: datetime | None = None
    total_work_hours: float | None = None


class BulkStatusResponse(BaseModel):
    success: bool = True
    date: date
    statuses: list[EmployeeAttendanceStatus]


class AttendanceReportRow(AttendanceDayRead):
    punch_in_count: int = 0
    punch_out_count: int = 0


class AttendanceSummary(BaseModel):
    total_days: int
    present_days: int
    absent_days: int
    half_days: int
    total_work_hours: float
    avg_work_hours: float


class EmployeeBrief(BaseModel):
    id: int
    employee_number: str | None = None
    name: str
    email: str | None = None


class PersonalReportResponse(BaseModel):
    summary: AttendanceSummary
    attendance: list[AttendanceReportRow]


class EmployeeReportResponse(PersonalReportResponse):
    employee: EmployeeBrief | None = None


class PunchPairRead(BaseModel):
    punch_in: datetime
    punch_in_location: str | None = None
    punch_out: datetime | None = None
    punch_out_location: str | None = None
    hours_worked: float | None = None
    status: str


class AttendanceDetailsResponse(BaseModel):
    employee: EmployeeBrief | None = None
    attendance: AttendanceDayRead
    punches: list[PunchEventRead]
    punch_pairs: list[PunchPairRead]


class TeamMemberRead(BaseModel):
    id: int
    employee_number: str | None = None
    first_name: str
    last_name: str | None = None
    work_email: str | None = None

    model_config = ConfigDict(from_attributes=True)


class TeamAttendanceRow(AttendanceDayRead):
    employee_number: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    total_punches: int = 0


class TeamSummary(BaseModel):
    total_team: int
    present: int
    absent: int
    on_leave: int


class TeamReportResponse(BaseModel):
    team_type: Literal["reporting_team", "co_team", "none"]
    team_members: list[TeamMemberRead]
    date: date
    attendance: list[TeamAttendanceRow]
    summary: TeamSummary


class OrganizationAttendanceRow(AttendanceDayRead):
    employee_number: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    work_email: str | None = None
    department_name: str | None = None


class OrganizationSummary(BaseModel):
    total_records: int
    present: int
    absent: int
    half_day: int
    on_leave: int


class OrganizationReportResponse(BaseModel):
    attendance: list[OrganizationAttendanceRow]
    summary: OrganizationSummary
