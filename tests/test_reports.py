from __future__ import annotations

import unittest
from datetime import date
from io import BytesIO
from unittest.mock import patch

from openpyxl import load_workbook

from app.errors import NotFoundError, ValidationError
from app.models import AttendanceStatus, Department, Employee, PunchType, WorkMode
from app.services.employees import resolve_employee, resolve_team
from app.services.exports import DAILY_HEADERS, build_organization_report_xlsx
from app.services.reports import (
    DateRange,
    attendance_details,
    bulk_status,
    employee_report,
    organization_report,
    personal_report,
    resolve_date_range,
    team_report,
)
from app.settings import Settings
from tests.db_support import add_day_with_punches, add_employee, make_session_factory, make_sqlite_engine, utc

DAY = date(2026, 3, 2)
PREVIOUS_DAY = date(2026, 3, 1)


class DateRangeTests(unittest.TestCase):
    def test_explicit_range_wins_over_month(self) -> None:
        result = resolve_date_range(start_date=date(2026, 1, 5), end_date=date(2026, 1, 9), month=2, year=2026)
        self.assertEqual(result, DateRange(start=date(2026, 1, 5), end=date(2026, 1, 9)))

    def test_month_and_year_cover_the_whole_month(self) -> None:
        result = resolve_date_range(month=2, year=2028)
        self.assertEqual(result, DateRange(start=date(2028, 2, 1), end=date(2028, 2, 29)))

    def test_no_filters_means_no_range(self) -> None:
        self.assertIsNone(resolve_date_range())

    def test_half_pairs_and_reversed_ranges_are_rejected(self) -> None:
        cases = [
            {"start_date": date(2026, 1, 5)},
            {"end_date": date(2026, 1, 5)},
            {"start_date": date(2026, 1, 9), "end_date": date(2026, 1, 5)},
            {"month": 3},
            {"month": 13, "year": 2026},
            {"month": 1, "year": 0},
            {"month": 12, "year": 10000},
        ]
        for kwargs in cases:
            with self.subTest(kwargs=kwargs):
                with self.assertRaises(ValidationError) as ctx:
                    resolve_date_range(**kwargs)
                self.assertEqual(ctx.exception.code, "INVALID_DATE_RANGE")


class ReportServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_sqlite_engine()
        self.db = make_session_factory(self.engine)()
        engineering = Department(id=1, name="Engineering")
        self.db.add(engineering)
        self.db.commit()
        add_employee(self.db, employee_id=1, first_name="Maya", last_name="Manager", username="maya@example.com")
        add_employee(self.db, employee_id=2, first_name="Ben", last_name="Builder", manager_id=1, department=engineering)
        add_employee(self.db, employee_id=3, first_name="Ava", last_name="Analyst", manager_id=1)
        add_employee(self.db, employee_id=4, first_name="Old", last_name="Timer", manager_id=1, employment_status="Resigned")
        add_employee(self.db, employee_id=5, first_name="Solo", employee_number="S-5", username="S-5")

        self.ben_today = add_day_with_punches(
            self.db,
            employee_id=2,
            day=DAY,
            punches=[
                (PunchType.IN, utc(DAY, 9)),
                (PunchType.OUT, utc(DAY, 13)),
                (PunchType.IN, utc(DAY, 14)),
            ],
            total_work_hours=4.0,
        )
        add_day_with_punches(
            self.db,
            employee_id=2,
            day=PREVIOUS_DAY,
            punches=[(PunchType.IN, utc(PREVIOUS_DAY, 9)), (PunchType.OUT, utc(PREVIOUS_DAY, 17))],
            total_work_hours=8.0,
        )
        add_day_with_punches(
            self.db,
            employee_id=3,
            day=DAY,
            punches=[(PunchType.IN, utc(DAY, 8)), (PunchType.OUT, utc(DAY, 12))],
            status=AttendanceStatus.HALF_DAY,
            work_mode=WorkMode.WFH,
            total_work_hours=4.0,
        )

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def test_bulk_status_returns_one_entry_per_requested_id(self) -> None:
        status_date, statuses = bulk_status(self.db, employee_ids=[3, 2, 99], now_utc=utc(DAY, 15))

        self.assertEqual(status_date, DAY)
        self.assertEqual([item.employee_id for item in statuses], [3, 2, 99])

        ava, ben, missing = statuses
        self.assertEqual(ava.status, "out")
        self.assertTrue(ava.has_attendance)
        self.assertEqual(ava.work_mode, WorkMode.WFH)
        self.assertEqual(ava.last_punch_type, PunchType.OUT)

        self.assertEqual(ben.status, "in")
        self.assertEqual(ben.last_punch_type, PunchType.IN)
        self.assertEqual(ben.last_punch_time, utc(DAY, 14))
        self.assertEqual(ben.attendance_id, self.ben_today.id)

        self.assertEqual(missing.status, "out")
        self.assertFalse(missing.has_attendance)
        self.assertIsNone(missing.attendance_id)

    def test_bulk_status_rejects_empty_and_oversized_requests(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            bulk_status(self.db, employee_ids=[], now_utc=utc(DAY, 15))
        self.assertEqual(ctx.exception.code, "EMPLOYEE_IDS_REQUIRED")

        with patch("app.services.reports.get_settings", return_value=Settings(bulk_status_max_ids=2)):
            with self.assertRaises(ValidationError) as ctx:
                bulk_status(self.db, employee_ids=[1, 2, 3], now_utc=utc(DAY, 15))
        self.assertEqual(ctx.exception.code, "TOO_MANY_EMPLOYEE_IDS")

    def test_personal_report_summary_and_punch_counts(self) -> None:
        report = personal_report(self.db, employee_id=2, date_range=None)

        self.assertEqual([row.attendance_date for row in report.attendance], [DAY, PREVIOUS_DAY])
        self.assertEqual(report.attendance[0].punch_in_count, 2)
        self.assertEqual(report.attendance[0].punch_out_count, 1)
        self.assertEqual(report.summary.total_days, 2)
        self.assertEqual(report.summary.present_days, 2)
        self.assertEqual(report.summary.total_work_hours, 12.0)
        self.assertEqual(report.summary.avg_work_hours, 6.0)

    def test_personal_report_respects_date_range(self) -> None:
        report = personal_report(self.db, employee_id=2, date_range=DateRange(start=PREVIOUS_DAY, end=PREVIOUS_DAY))
        self.assertEqual(len(report.attendance), 1)
        self.assertEqual(report.attendance[0].attendance_date, PREVIOUS_DAY)

    def test_empty_report_has_zero_averages(self) -> None:
        report = personal_report(self.db, employee_id=5, date_range=None)
        self.assertEqual(report.attendance, [])
        self.assertEqual(report.summary.total_days, 0)
        self.assertEqual(report.summary.avg_work_hours, 0.0)

    def test_employee_report_includes_employee_only_when_rows_exist(self) -> None:
        report = employee_report(self.db, employee_id=3, date_range=None)
        self.assertIsNotNone(report.employee)
        self.assertEqual(report.employee.name, "Ava Analyst")
        self.assertEqual(report.summary.half_days, 1)

        empty = employee_report(self.db, employee_id=5, date_range=None)
        self.assertIsNone(empty.employee)
        self.assertEqual(empty.attendance, [])

    def test_attendance_details_builds_pairs(self) -> None:
        details = attendance_details(self.db, employee_id=2, day=DAY, include_employee=True)

        self.assertEqual(details.employee.id, 2)
        self.assertEqual(len(details.punches), 3)
        self.assertEqual([pair.status for pair in details.punch_pairs], ["Completed", "In Progress"])
        self.assertIsNone(details.punch_pairs[1].hours_worked)

    def test_attendance_details_missing_day(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            attendance_details(self.db, employee_id=3, day=PREVIOUS_DAY)
        self.assertEqual(ctx.exception.code, "ATTENDANCE_NOT_FOUND")

    def test_manager_sees_active_reporting_team(self) -> None:
        manager = resolve_employee(self.db, 1)
        team = resolve_team(self.db, manager)

        self.assertEqual(team.team_type, "reporting_team")
        self.assertEqual(team.member_ids, [3, 2])

        report = team_report(self.db, team=team, target_day=DAY)
        self.assertEqual(report.summary.total_team, 2)
        self.assertEqual(report.summary.present, 1)
        self.assertEqual(report.summary.absent, 0)
        self.assertEqual({row.employee_id for row in report.attendance}, {2, 3})
        ben_row = next(row for row in report.attendance if row.employee_id == 2)
        self.assertEqual(ben_row.total_punches, 3)

    def test_member_without_reports_sees_co_team(self) -> None:
        ben = self.db.get(Employee, 2)
        team = resolve_team(self.db, ben)

        self.assertEqual(team.team_type, "co_team")
        self.assertEqual(team.member_ids, [3])

        report = team_report(self.db, team=team, target_day=PREVIOUS_DAY)
        self.assertEqual(report.attendance, [])
        self.assertEqual(report.summary.absent, 1)

    def test_employee_without_manager_or_reports_has_no_team(self) -> None:
        solo = resolve_employee(self.db, 5)
        team = resolve_team(self.db, solo)

        self.assertEqual(team.team_type, "none")
        report = team_report(self.db, team=team, target_day=DAY)
        self.assertEqual(report.team_members, [])
        self.assertEqual(report.summary.total_team, 0)

    def test_resolve_employee_unknown_user(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            resolve_employee(self.db, 404)
        self.assertEqual(ctx.exception.code, "EMPLOYEE_NOT_FOUND")

    def test_organization_report_orders_and_joins_department(self) -> None:
        report = organization_report(self.db)

        self.assertEqual(
            [(row.attendance_date, row.employee_number) for row in report.attendance],
            [(DAY, "EMP002"), (DAY, "EMP003"), (PREVIOUS_DAY, "EMP002")],
        )
        self.assertEqual(report.attendance[0].department_name, "Engineering")
        self.assertIsNone(report.attendance[1].department_name)
        self.assertEqual(report.summary.total_records, 3)
        self.assertEqual(report.summary.half_day, 1)

        single_day = organization_report(self.db, day=PREVIOUS_DAY)
        self.assertEqual(single_day.summary.total_records, 1)

    def test_organization_export_workbook(self) -> None:
        content = build_organization_report_xlsx(organization_report(self.db))

        workbook = load_workbook(BytesIO(content))
        self.assertEqual(workbook.sheetnames, ["Attendance", "Summary"])
        sheet = workbook["Attendance"]
        self.assertEqual([cell.value for cell in sheet[1]], DAILY_HEADERS)
        self.assertEqual(sheet.max_row, 4)
        self.assertEqual(sheet.cell(row=2, column=2).value, "EMP002")
        summary = {row[0]: row[1] for row in workbook["Summary"].iter_rows(values_only=True)}
        self.assertEqual(summary["Total Records"], 3)


if __name__ == "__main__":
    unittest.main()
