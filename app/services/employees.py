from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.errors import NotFoundError
from app.models import ACTIVE_EMPLOYMENT_STATUSES, Employee, User

TeamType = Literal["reporting_team", "co_team", "none"]


@dataclass
class Team:
    team_type: TeamType
    members: list[Employee] = field(default_factory=list)

    @property
    def member_ids(self) -> list[int]:
        return [member.id for member in self.members]


def resolve_employee(db: Session, user_id: int) -> Employee:
    """Map an authenticated user to their employee record.

    The username is matched against the work email first and the employee
    number second, the same way the identity service provisions accounts.
    """
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError(code="EMPLOYEE_NOT_FOUND", message="Employee not found")

    username = user.username.strip()
    employee = db.scalar(
        select(Employee)
        .where(or_(Employee.work_email == username, Employee.employee_number == username))
        .order_by(Employee.id.asc())
        .limit(1)
    )
    if employee is None:
        raise NotFoundError(code="EMPLOYEE_NOT_FOUND", message="Employee not found")
    return employee


def get_employee(db: Session, employee_id: int) -> Employee:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise NotFoundError(code="EMPLOYEE_NOT_FOUND", message="Employee not found")
    return employee


def _active_reports_of(db: Session, manager_id: int, *, exclude_id: int | None = None) -> list[Employee]:
    stmt = (
        select(Employee)
        .where(
            Employee.reporting_manager_id == manager_id,
            Employee.employment_status.in_(ACTIVE_EMPLOYMENT_STATUSES),
        )
        .order_by(Employee.first_name.asc(), Employee.last_name.asc(), Employee.id.asc())
    )
    if exclude_id is not None:
        stmt = stmt.where(Employee.id != exclude_id)
    return list(db.scalars(stmt).all())


def resolve_team(db: Session, employee: Employee) -> Team:
    reporting_team = _active_reports_of(db, employee.id)
    if reporting_team:
        return Team(team_type="reporting_team", members=reporting_team)

    if employee.reporting_manager_id is not None:
        co_team = _active_reports_of(db, employee.reporting_manager_id, exclude_id=employee.id)
        return Team(team_type="co_team", members=co_team)

    return Team(team_type="none")
