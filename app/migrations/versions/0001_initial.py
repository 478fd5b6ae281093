"""Initial attendance schema

departments, users and employees are owned by the HR master-data service.
They are created here only when missing, for standalone and dev databases,
and downgrade leaves them in place.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-12 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

attendance_punch_type = postgresql.ENUM(
    "in",
    "out",
    name="attendance_punch_type",
    create_type=False,
)
attendance_status = postgresql.ENUM(
    "present",
    "absent",
    "half-day",
    "on-leave",
    name="attendance_status",
    create_type=False,
)
attendance_work_mode = postgresql.ENUM(
    "Office",
    "WFH",
    "Remote",
    "Hybrid",
    "Field",
    name="attendance_work_mode",
    create_type=False,
)
audit_actor_type = postgresql.ENUM(
    "EMPLOYEE",
    "SYSTEM",
    name="audit_actor_type",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    existing_tables = set(sa.inspect(bind).get_table_names())
    attendance_punch_type.create(bind, checkfirst=True)
    attendance_status.create(bind, checkfirst=True)
    attendance_work_mode.create(bind, checkfirst=True)
    audit_actor_type.create(bind, checkfirst=True)

    if "departments" not in existing_tables:
        op.create_table(
            "departments",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.UniqueConstraint("name", name="uq_departments_name"),
        )

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("username", sa.String(length=255), nullable=False),
            sa.UniqueConstraint("username", name="uq_users_username"),
        )

    if "employees" not in existing_tables:
        op.create_table(
            "employees",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("employee_number", sa.String(length=64), nullable=True),
            sa.Column("first_name", sa.String(length=255), nullable=False),
            sa.Column("last_name", sa.String(length=255), nullable=True),
            sa.Column("work_email", sa.String(length=255), nullable=True),
            sa.Column("department_id", sa.Integer(), nullable=True),
            sa.Column("reporting_manager_id", sa.Integer(), nullable=True),
            sa.Column(
                "employment_status", sa.String(length=32), nullable=False, server_default=sa.text("'Active'")
            ),
            sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["reporting_manager_id"], ["employees.id"], ondelete="SET NULL"),
        )
        op.create_index("ix_employees_employee_number", "employees", ["employee_number"], unique=False)
        op.create_index("ix_employees_work_email", "employees", ["work_email"], unique=False)
        op.create_index("ix_employees_reporting_manager_id", "employees", ["reporting_manager_id"], unique=False)

    op.create_table(
        "attendance",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("attendance_date", sa.Date(), nullable=False),
        sa.Column("first_check_in", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_check_out", sa.DateTime(timezone=True), nullable=True),
        sa.Column("work_mode", attendance_work_mode, nullable=False, server_default=sa.text("'Office'")),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("status", attendance_status, nullable=False, server_default=sa.text("'present'")),
        sa.Column("total_work_hours", sa.Numeric(6, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total_break_hours", sa.Numeric(6, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("gross_hours", sa.Numeric(6, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("employee_id", "attendance_date", name="uq_attendance_employee_date"),
    )
    op.create_index("ix_attendance_employee_id", "attendance", ["employee_id"], unique=False)
    op.create_index("ix_attendance_attendance_date", "attendance", ["attendance_date"], unique=False)

    op.create_table(
        "attendance_punches",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("attendance_id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("punch_type", attendance_punch_type, nullable=False),
        sa.Column("punch_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("punch_date", sa.Date(), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("device_info", sa.String(length=1024), nullable=True),
        sa.Column("ip_address", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["attendance_id"], ["attendance.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("ts_utc", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("ip", sa.String(length=128), nullable=True),
        sa.Column("user_agent", sa.String(length=1024), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("details", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("attendance_punches")
    op.drop_index("ix_attendance_attendance_date", table_name="attendance")
    op.drop_index("ix_attendance_employee_id", table_name="attendance")
    op.drop_table("attendance")
    # departments, users and employees are left in place; they may predate this revision.

    bind = op.get_bind()
    audit_actor_type.drop(bind, checkfirst=True)
    attendance_work_mode.drop(bind, checkfirst=True)
    attendance_status.drop(bind, checkfirst=True)
    attendance_punch_type.drop(bind, checkfirst=True)
