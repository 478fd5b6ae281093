from __future__ import annotations

import os
import tempfile
import threading
import unittest
from datetime import date
from unittest.mock import patch

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from app.errors import ApiError, NotFoundError, StateConflictError, StorageError
from app.models import AttendanceDay, PunchEvent, PunchType, WorkMode
from app.services import attendance_days
from app.services.attendance_days import get_locked, get_or_create_locked, get_today
from app.services.punches import PunchMeta, record_punch_in, record_punch_out, recompute_totals
from tests.db_support import add_employee, make_session_factory, make_sqlite_engine, utc

DAY = date(2026, 3, 2)


class _CapturingDB:
    def __init__(self) -> None:
        self.statements: list[object] = []

    def scalar(self, statement):  # type: ignore[no-untyped-def]
        self.statements.append(statement)
        return None


class PunchLedgerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_sqlite_engine()
        self.session_factory = make_session_factory(self.engine)
        self.db = self.session_factory()
        add_employee(self.db, employee_id=1, first_name="Ada", last_name="Lovelace")

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def _punch_in(self, hour: int, minute: int = 0, **kwargs):  # type: ignore[no-untyped-def]
        return record_punch_in(
            self.db,
            employee_id=1,
            work_mode=kwargs.pop("work_mode", WorkMode.OFFICE),
            location=kwargs.pop("location", "Office"),
            meta=PunchMeta(location=kwargs.pop("meta_location", None)),
            now_utc=utc(DAY, hour, minute),
        )

    def _punch_out(self, hour: int, minute: int = 0):  # type: ignore[no-untyped-def]
        return record_punch_out(self.db, employee_id=1, meta=PunchMeta(), now_utc=utc(DAY, hour, minute))

    def _day_count(self) -> int:
        return int(self.db.scalar(select(func.count(AttendanceDay.id))) or 0)

    def test_first_punch_in_creates_the_day(self) -> None:
        result = self._punch_in(9, work_mode=WorkMode.WFH, location="Home")

        self.assertEqual(result.attendance_day.attendance_date, DAY)
        self.assertEqual(result.attendance_day.work_mode, WorkMode.WFH)
        self.assertEqual(result.attendance_day.location, "Home")
        self.assertEqual(result.event.punch_type, PunchType.IN)
        self.assertEqual(result.event.punch_date, DAY)
        self.assertEqual(self._day_count(), 1)

    def test_split_shift_keeps_one_day_and_derives_totals(self) -> None:
        first = self._punch_in(9)
        self._punch_out(13)
        second = self._punch_in(14, work_mode=WorkMode.REMOTE, location="Cafe")
        result = self._punch_out(18)

        self.assertEqual(first.attendance_day.id, second.attendance_day.id)
        self.assertEqual(self._day_count(), 1)
        self.assertEqual(result.totals.total_work_hours, 8.0)
        self.assertEqual(result.totals.total_break_hours, 1.0)

        day = self.db.get(AttendanceDay, result.attendance_day.id)
        self.assertEqual(day.total_work_hours, 8.0)
        self.assertEqual(day.total_break_hours, 1.0)
        self.assertEqual(day.gross_hours, 8.0)
        # The first punch of the day fixes work mode and location.
        self.assertEqual(day.work_mode, WorkMode.OFFICE)
        self.assertEqual(day.location, "Office")
        punch_count = self.db.scalar(select(func.count(PunchEvent.id)).where(PunchEvent.attendance_id == day.id))
        self.assertEqual(punch_count, 4)

    def test_second_punch_in_is_rejected_and_writes_nothing(self) -> None:
        self._punch_in(9)

        with self.assertRaises(StateConflictError) as ctx:
            self._punch_in(10)

        self.assertEqual(ctx.exception.code, "ALREADY_PUNCHED_IN")
        self.assertEqual(self.db.scalar(select(func.count(PunchEvent.id))), 1)

    def test_punch_out_without_day_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            self._punch_out(17)
        self.assertEqual(ctx.exception.code, "NO_ATTENDANCE_TODAY")
        self.assertEqual(self._day_count(), 0)

    def test_double_punch_out_is_rejected(self) -> None:
        self._punch_in(9)
        self._punch_out(12)

        with self.assertRaises(StateConflictError) as ctx:
            self._punch_out(13)
        self.assertEqual(ctx.exception.code, "ALREADY_PUNCHED_OUT")

    def test_punch_out_on_day_without_events_requires_punch_in(self) -> None:
        self.db.add(AttendanceDay(employee_id=1, attendance_date=DAY, work_mode=WorkMode.OFFICE))
        self.db.commit()

        with self.assertRaises(StateConflictError) as ctx:
            self._punch_out(12)
        self.assertEqual(ctx.exception.code, "PUNCH_IN_REQUIRED")

    def test_recompute_totals_is_idempotent(self) -> None:
        self._punch_in(9)
        result = self._punch_out(17, 30)

        again = recompute_totals(self.db, result.attendance_day)
        self.assertEqual(again, result.totals)
        self.assertEqual(result.attendance_day.total_work_hours, 8.5)

    def test_today_status_after_single_punch_in(self) -> None:
        self._punch_in(9)
        status = get_today(self.db, employee_id=1, now_utc=utc(DAY, 11))

        self.assertTrue(status.has_attendance)
        self.assertEqual(status.punch_count, 1)
        self.assertEqual(status.last_punch_type, PunchType.IN)
        self.assertFalse(status.can_punch_in)
        self.assertTrue(status.can_punch_out)

    def test_today_status_without_day(self) -> None:
        status = get_today(self.db, employee_id=1, now_utc=utc(DAY, 11))

        self.assertFalse(status.has_attendance)
        self.assertTrue(status.can_punch_in)
        self.assertFalse(status.can_punch_out)

    def test_new_calendar_day_starts_closed(self) -> None:
        self._punch_in(9)
        next_day = record_punch_in(
            self.db,
            employee_id=1,
            work_mode=WorkMode.OFFICE,
            location="Office",
            meta=PunchMeta(),
            now_utc=utc(date(2026, 3, 3), 9),
        )
        self.assertEqual(next_day.attendance_day.attendance_date, date(2026, 3, 3))
        self.assertEqual(self._day_count(), 2)

    def test_day_is_read_with_row_lock(self) -> None:
        fake_db = _CapturingDB()
        get_locked(fake_db, employee_id=1, day=DAY)  # type: ignore[arg-type]

        compiled = str(fake_db.statements[0].compile(dialect=postgresql.dialect()))
        self.assertIn("FOR UPDATE", compiled)

    def test_lost_insert_race_returns_the_existing_row(self) -> None:
        existing = AttendanceDay(employee_id=1, attendance_date=DAY, work_mode=WorkMode.OFFICE)
        self.db.add(existing)
        self.db.commit()

        real_get_locked = attendance_days.get_locked
        calls: list[int] = []

        def _miss_first(db, *, employee_id, day):  # type: ignore[no-untyped-def]
            calls.append(employee_id)
            if len(calls) == 1:
                return None
            return real_get_locked(db, employee_id=employee_id, day=day)

        with patch("app.services.attendance_days.get_locked", side_effect=_miss_first):
            attendance_day, created = get_or_create_locked(
                self.db,
                employee_id=1,
                day=DAY,
                work_mode=WorkMode.OFFICE,
                location=None,
                now_utc=utc(DAY, 9),
            )

        self.assertFalse(created)
        self.assertEqual(attendance_day.id, existing.id)
        self.assertEqual(len(calls), 2)
        self.db.rollback()
        self.assertEqual(self._day_count(), 1)

    def test_storage_failure_surfaces_as_storage_error(self) -> None:
        with patch(
            "app.services.punches.get_or_create_locked",
            side_effect=OperationalError("SELECT 1", {}, Exception("connection lost")),
        ):
            with self.assertRaises(StorageError) as ctx:
                self._punch_in(9)

        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(ctx.exception.code, "STORAGE_ERROR")
        self.assertEqual(self._day_count(), 0)


    def test_failed_punch_out_recompute_leaves_no_out_event(self) -> None:
        punch_in = self._punch_in(9)

        with patch(
            "app.services.punches.compute_day_totals",
            side_effect=OperationalError("UPDATE attendance", {}, Exception("connection lost")),
        ):
            with self.assertRaises(StorageError) as ctx:
                self._punch_out(17)

        self.assertEqual(ctx.exception.code, "STORAGE_ERROR")
        self.db.expire_all()
        punch_types = self.db.scalars(
            select(PunchEvent.punch_type).where(PunchEvent.attendance_id == punch_in.attendance_day.id)
        ).all()
        self.assertEqual(list(punch_types), [PunchType.IN])
        day = self.db.get(AttendanceDay, punch_in.attendance_day.id)
        self.assertEqual(day.total_work_hours, 0)
        self.assertIsNone(day.last_check_out)

        # The day is still open, so a retried punch-out succeeds.
        retried = self._punch_out(17)
        self.assertEqual(retried.totals.total_work_hours, 8.0)

class ConcurrentPunchTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self._tmpdir.name, "ledger.db")
        self.engine = make_sqlite_engine(f"sqlite:///{db_path}", immediate=True)
        self.session_factory = make_session_factory(self.engine)
        with self.session_factory() as db:
            add_employee(db, employee_id=1, first_name="Grace", last_name="Hopper")

    def tearDown(self) -> None:
        self.engine.dispose()
        self._tmpdir.cleanup()

    def test_two_concurrent_punch_ins_yield_one_success_and_one_conflict(self) -> None:
        barrier = threading.Barrier(2)
        outcomes: list[str] = []
        lock = threading.Lock()

        def _worker(minute: int) -> None:
            with self.session_factory() as db:
                barrier.wait()
                try:
                    record_punch_in(
                        db,
                        employee_id=1,
                        work_mode=WorkMode.OFFICE,
                        location="Office",
                        meta=PunchMeta(),
                        now_utc=utc(DAY, 9, minute),
                    )
                    outcome = "ok"
                except ApiError as exc:
                    outcome = exc.code
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=_worker, args=(minute,)) for minute in (0, 1)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        self.assertEqual(sorted(outcomes), ["ALREADY_PUNCHED_IN", "ok"])
        with self.session_factory() as db:
            self.assertEqual(db.scalar(select(func.count(AttendanceDay.id))), 1)
            self.assertEqual(db.scalar(select(func.count(PunchEvent.id))), 1)


if __name__ == "__main__":
    unittest.main()
