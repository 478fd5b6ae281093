from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base

JSONDict = JSON().with_variant(JSONB(), "postgresql")
HOURS = Numeric(6, 2, asdecimal=False)


class PunchType(str, enum.Enum):
    IN = "in"
    OUT = "out"


class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    HALF_DAY = "half-day"
    ON_LEAVE = "on-leave"


class WorkMode(str, enum.Enum):
    OFFICE = "Office"
    WFH = "WFH"
    REMOTE = "Remote"
    HYBRID = "Hybrid"
    FIELD = "Field"


class AuditActorType(str, enum.Enum):
    EMPLOYEE = "EMPLOYEE"
    SYSTEM = "SYSTEM"


ACTIVE_EMPLOYMENT_STATUSES: tuple[str, ...] = ("Active", "Working")


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [item.value for item in enum_cls]


# Directory tables below are owned by the HR master-data service and are
# mapped here for lookups and report joins only.


class Department(Base):
    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    employees: Mapped[list[Employee]] = relationship(back_populates="department")


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_number: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    work_email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    department_id: Mapped[int | None] = mapped_column(
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
    )
    reporting_manager_id: Mapped[int | None] = mapped_column(
        ForeignKey("employees.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    employment_status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="Active",
        server_default=text("'Active'"),
    )

    department: Mapped[Department | None] = relationship(back_populates="employees")
    attendance_days: Mapped[list[AttendanceDay]] = relationship(back_populates="employee")

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class AttendanceDay(Base):
    __tablename__ = "attendance"
    __table_args__ = (
        UniqueConstraint("employee_id", "attendance_date", name="uq_attendance_employee_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attendance_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    first_check_in: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_check_out: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    work_mode: Mapped[WorkMode] = mapped_column(
        Enum(WorkMode, name="attendance_work_mode", values_callable=_enum_values),
        nullable=False,
        default=WorkMode.OFFICE,
    )
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[AttendanceStatus] = mapped_column(
        Enum(AttendanceStatus, name="attendance_status", values_callable=_enum_values),
        nullable=False,
        default=AttendanceStatus.PRESENT,
    )
    total_work_hours: Mapped[float] = mapped_column(HOURS, nullable=False, default=0, server_default=text("0"))
    total_break_hours: Mapped[float] = mapped_column(HOURS, nullable=False, default=0, server_default=text("0"))
    gross_hours: Mapped[float] = mapped_column(HOURS, nullable=False, default=0, server_default=text("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    employee: Mapped[Employee] = relationship(back_populates="attendance_days")
    punches: Mapped[list[PunchEvent]] = relationship(
        back_populates="attendance_day",
        order_by=lambda: [PunchEvent.punch_time, PunchEvent.id],
    )


class PunchEvent(Base):
    __tablename__ = "attendance_punches"
    __table_args__ = (
        Index("ix_attendance_punches_attendance_time", "attendance_id", "punch_time", "id"),
        Index("ix_attendance_punches_employee_date", "employee_id", "punch_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    attendance_id: Mapped[int] = mapped_column(
        ForeignKey("attendance.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    punch_type: Mapped[PunchType] = mapped_column(
        Enum(PunchType, name="attendance_punch_type", values_callable=_enum_values),
        nullable=False,
    )
    punch_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    punch_date: Mapped[date] = mapped_column(Date, nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    device_info: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(128), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    attendance_day: Mapped[AttendanceDay] = relationship(back_populates="punches")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
    actor_type: Mapped[AuditActorType] = mapped_column(
        Enum(AuditActorType, name="audit_actor_type"),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip: Mapped[str | None] = mapped_column(String(128), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    details: Mapped[dict[str, Any]] = mapped_column(
        JSONDict,
        nullable=False,
        default=dict,
    )
