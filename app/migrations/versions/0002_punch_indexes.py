"""Add attendance punch indexes

Revision ID: 0002_punch_indexes
Revises: 0001_initial
Create Date: 2026-10-12 00:30:00
"""

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0002_punch_indexes"
down_revision: Union[str, None] = "0001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_index(
        "ix_attendance_punches_attendance_time",
        "attendance_punches",
        ["attendance_id", "punch_time", "id"],
        unique=False,
    )
    op.create_index(
        "ix_attendance_punches_employee_date",
        "attendance_punches",
        ["employee_id", "punch_date"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_attendance_punches_employee_date", table_name="attendance_punches")
    op.drop_index("ix_attendance_punches_attendance_time", table_name="attendance_punches")
