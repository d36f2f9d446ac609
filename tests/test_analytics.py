from __future__ import annotations

import unittest
import uuid
from collections.abc import Generator
from datetime import date
from decimal import Decimal

from fastapi.testclient import TestClient

from app.db import get_db, get_service_db
from app.main import app
from app.models import AppRole
from app.policies import Caller
from app.security import get_current_caller
from app.services.analytics import (
    bucket_daily_totals,
    dashboard_stats,
    employee_productivity,
    project_distribution,
    recent_window_start,
    trend_windows,
    weekly_trend,
)


def _override_get_db(fake_db):
    def _override() -> Generator[object, None, None]:
        yield fake_db

    return _override


class _Result:
    def __init__(self, rows):
        self._rows = rows

    def all(self):  # type: ignore[no-untyped-def]
        return self._rows

    def one(self):  # type: ignore[no-untyped-def]
        return self._rows[0]


class _FakeAnalyticsDB:
    def __init__(self, rows):
        self.rows = rows
        self.statements: list[str] = []
        self.params: list[dict] = []

    def execute(self, statement):  # type: ignore[no-untyped-def]
        self.statements.append(str(statement))
        self.params.append(statement.compile().params)
        return _Result(self.rows)


class TrendWindowTests(unittest.TestCase):
    def test_eight_contiguous_weeks_oldest_first(self) -> None:
        today = date(2026, 10, 18)
        windows = trend_windows(today, 8)

        self.assertEqual(len(windows), 8)
        self.assertEqual([item.label for item in windows], [f"Week {index}" for index in range(1, 9)])
        self.assertEqual(windows[0].start, date(2026, 8, 23))
        self.assertEqual(windows[-1].end, today)
        for earlier, later in zip(windows, windows[1:]):
            self.assertEqual(earlier.end, later.start)
            self.assertEqual((earlier.end - earlier.start).days, 7)

    def test_daily_totals_land_in_their_bucket(self) -> None:
        windows = trend_windows(date(2026, 10, 18), 2)
        result = bucket_daily_totals(
            windows,
            [
                (date(2026, 10, 4), Decimal("8")),
                (date(2026, 10, 10), Decimal("1.25")),
                (date(2026, 10, 11), Decimal("4")),
                (date(2026, 10, 17), Decimal("2")),
                (date(2026, 10, 18), Decimal("9")),
                (date(2026, 10, 3), Decimal("7")),
            ],
        )

        self.assertEqual([item["week"] for item in result], ["Week 1", "Week 2"])
        self.assertEqual(result[0]["hours"], 9.2)
        self.assertEqual(result[1]["hours"], 6.0)
        self.assertEqual(result[0]["start_date"], date(2026, 10, 4))
        self.assertEqual(result[0]["end_date"], date(2026, 10, 10))

    def test_empty_history_still_returns_every_bucket(self) -> None:
        fake_db = _FakeAnalyticsDB([])

        result = weekly_trend(fake_db, today=date(2026, 10, 18))  # type: ignore[arg-type]

        self.assertEqual(len(result), 8)
        self.assertTrue(all(item["hours"] == 0.0 for item in result))
        self.assertIn("upper(projects.name) NOT IN", fake_db.statements[0])


class AggregateQueryTests(unittest.TestCase):
    def test_dashboard_scoped_to_caller_for_non_admin(self) -> None:
        fake_db = _FakeAnalyticsDB([(Decimal("12.5"), 2, Decimal("4"), 5)])
        caller = Caller(account_id=uuid.uuid4())

        result = dashboard_stats(fake_db, caller, today=date(2026, 10, 18))  # type: ignore[arg-type]

        self.assertEqual(
            result,
            {"total_hours": 12.5, "total_projects": 2, "this_week_hours": 4.0, "total_entries": 5},
        )
        self.assertIn("timesheet_entries.account_id =", fake_db.statements[0])

    def test_this_week_covers_today_and_six_days_before(self) -> None:
        today = date(2026, 10, 18)
        start = recent_window_start(today)

        self.assertEqual(start, date(2026, 10, 12))
        self.assertTrue(start <= date(2026, 10, 12) <= today)
        self.assertFalse(start <= date(2026, 10, 11))
        self.assertEqual((today - start).days + 1, 7)

        fake_db = _FakeAnalyticsDB([(Decimal("0"), 0, Decimal("0"), 0)])
        dashboard_stats(fake_db, Caller(account_id=uuid.uuid4()), today=today)  # type: ignore[arg-type]

        self.assertIn("timesheet_entries.start_date >= ", fake_db.statements[0])
        bound_dates = [value for value in fake_db.params[0].values() if isinstance(value, date)]
        self.assertEqual(bound_dates, [date(2026, 10, 12)])

    def test_dashboard_for_admin_covers_all_rows(self) -> None:
        fake_db = _FakeAnalyticsDB([(None, 0, None, 0)])
        caller = Caller(account_id=uuid.uuid4(), role=AppRole.ADMIN)

        result = dashboard_stats(fake_db, caller)  # type: ignore[arg-type]

        self.assertEqual(result["total_hours"], 0.0)
        self.assertNotIn("timesheet_entries.account_id =", fake_db.statements[0])

    def test_project_distribution_rounds_to_one_decimal(self) -> None:
        fake_db = _FakeAnalyticsDB([("Apollo", Decimal("10.25")), ("LEAVE", Decimal("8"))])

        result = project_distribution(fake_db)  # type: ignore[arg-type]

        self.assertEqual(result, [{"name": "Apollo", "value": 10.2}, {"name": "LEAVE", "value": 8.0}])

    def test_employee_productivity_excludes_non_work_projects(self) -> None:
        fake_db = _FakeAnalyticsDB([("Ada", Decimal("40"), 5)])

        result = employee_productivity(fake_db)  # type: ignore[arg-type]

        self.assertEqual(result, [{"name": "Ada", "hours": 40.0, "entries": 5}])
        self.assertIn("NOT IN", fake_db.statements[0])
        self.assertIn("LIMIT", fake_db.statements[0])


class DashboardEndpointTests(unittest.TestCase):
    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_me_dashboard(self) -> None:
        fake_db = _FakeAnalyticsDB([(Decimal("3"), 1, Decimal("3"), 1)])
        app.dependency_overrides[get_current_caller] = lambda: Caller(account_id=uuid.uuid4())
        app.dependency_overrides[get_db] = _override_get_db(fake_db)
        client = TestClient(app)

        response = client.get("/api/me/dashboard")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["total_hours"], 3.0)

    def test_admin_stats(self) -> None:
        fake_db = _FakeAnalyticsDB([(Decimal("100"), 4, 3, Decimal("7.6666"), 13)])
        app.dependency_overrides[get_current_caller] = lambda: Caller(account_id=uuid.uuid4(), role=AppRole.ADMIN)
        app.dependency_overrides[get_service_db] = _override_get_db(fake_db)
        client = TestClient(app)

        response = client.get("/api/admin/analytics/stats")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {
                "total_hours": 100.0,
                "total_employees": 4,
                "total_projects": 3,
                "avg_hours_per_entry": 7.7,
                "total_entries": 13,
            },
        )


if __name__ == "__main__":
    unittest.main()
