#!/usr/bin/env python
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Connection, make_url

from app.settings import get_settings


EXPECTED_HEAD = "0002_punch_indexes"
REQUIRED_TABLES = ("employees", "attendance", "attendance_punches", "audit_logs")
SAMPLE_LIMIT = 20


def _duplicate_attendance_days(conn: Connection) -> list[list[Any]]:
    rows = conn.execute(
        text(
            """
            select employee_id, attendance_date, count(*)
            from attendance
            group by employee_id, attendance_date
            having count(*) > 1
            limit :limit
            """
        ),
        {"limit": SAMPLE_LIMIT},
    ).fetchall()
    return [[row[0], str(row[1]), row[2]] for row in rows]


def _alternation_violations(conn: Connection) -> list[dict[str, Any]]:
    # A day's punches must start with "in" and alternate in/out.
    rows = conn.execute(
        text(
            """
            select attendance_id, id, punch_type, previous_type
            from (
                select
                    attendance_id,
                    id,
                    punch_type::text as punch_type,
                    lag(punch_type::text) over (
                        partition by attendance_id
                        order by punch_time, id
                    ) as previous_type
                from attendance_punches
            ) ordered
            where (previous_type is null and punch_type = 'out')
               or previous_type = punch_type
            limit :limit
            """
        ),
        {"limit": SAMPLE_LIMIT},
    ).fetchall()
    return [
        {"attendance_id": row[0], "punch_id": row[1], "punch_type": row[2], "previous_type": row[3]}
        for row in rows
    ]


def _misdated_punches(conn: Connection) -> list[int]:
    rows = conn.execute(
        text(
            """
            select p.id
            from attendance_punches p
            join attendance a on a.id = p.attendance_id
            where p.punch_date <> a.attendance_date
               or p.employee_id <> a.employee_id
            limit :limit
            """
        ),
        {"limit": SAMPLE_LIMIT},
    ).fetchall()
    return [row[0] for row in rows]


def run() -> dict:
    database_url = get_settings().database_url
    engine = create_engine(database_url)
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "database_url": make_url(database_url).render_as_string(hide_password=True),
        "checks": [],
    }

    def add(name: str, status: str, details: Any) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    tables = set(inspect(engine).get_table_names())
    with engine.connect() as conn:
        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})

        add(
            "migration_up_to_date",
            "ok" if EXPECTED_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_HEAD, "current": current_versions},
        )

        missing_tables = [table for table in REQUIRED_TABLES if table not in tables]
        add("missing_tables", "fail" if missing_tables else "ok", {"tables": missing_tables})

        if "attendance" in tables:
            duplicates = _duplicate_attendance_days(conn)
            add(
                "duplicate_attendance_day",
                "fail" if duplicates else "ok",
                {"rows": duplicates},
            )

        if "attendance_punches" in tables and "attendance" in tables:
            violations = _alternation_violations(conn)
            add(
                "punch_alternation_violation",
                "fail" if violations else "ok",
                {"sample": violations},
            )

            misdated = _misdated_punches(conn)
            add(
                "punch_day_mismatch",
                "fail" if misdated else "ok",
                {"sample_ids": misdated},
            )

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
