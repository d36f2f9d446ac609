from __future__ import annotations

import os
import unittest
import uuid
from collections.abc import Generator
from datetime import date
from decimal import Decimal
from unittest.mock import patch

from fastapi.testclient import TestClient

from app.db import get_db
from app.errors import ApiError
from app.main import app
from app.models import Account, AppRole, Notification, Project, TimesheetEntry, TimesheetStatus
from app.policies import Caller
from app.schemas import TimesheetEntryCreate, TimesheetEntryUpdate, WeeklyRow, WeeklySubmitRequest
from app.services.timesheets import (
    allowed_transitions,
    create_entry,
    delete_entry,
    reopen_entry,
    review_entry,
    submit_week,
    update_entry,
    validate_entry_values,
)
from app.security import get_current_caller
from app.settings import get_settings

OWNER_ID = uuid.uuid4()
HEAD_ID = uuid.uuid4()
ADMIN_ID = uuid.uuid4()
PROJECT_ID = uuid.uuid4()

OWNER = Caller(account_id=OWNER_ID)
HEAD = Caller(account_id=HEAD_ID, role=AppRole.HOD, head_project_ids=frozenset({PROJECT_ID}))
ADMIN = Caller(account_id=ADMIN_ID, role=AppRole.ADMIN)
STRANGER = Caller(account_id=uuid.uuid4())


def _override_get_db(fake_db):
    def _override() -> Generator[object, None, None]:
        yield fake_db

    return _override


def _project() -> Project:
    return Project(id=PROJECT_ID, name="Apollo", is_active=True)


def _entry(status: TimesheetStatus = TimesheetStatus.PENDING) -> TimesheetEntry:
    entry = TimesheetEntry(
        id=uuid.uuid4(),
        account_id=OWNER_ID,
        name="Ada",
        employee_id="E-1",
        project_id=PROJECT_ID,
        hours=Decimal("8"),
        start_date=date(2026, 10, 12),
        end_date=date(2026, 10, 12),
        description="Design review",
        status=status,
    )
    entry.project = _project()
    return entry


class _FakeTimesheetDB:
    def __init__(self, *, entry: TimesheetEntry | None = None, account: Account | None = None):
        self.entry = entry
        self.account = account
        self.project = _project()
        self.added: list[object] = []
        self.deleted: list[object] = []
        self.commits = 0

    def get(self, model, pk):  # type: ignore[no-untyped-def]
        if model is TimesheetEntry and self.entry is not None and pk == self.entry.id:
            return self.entry
        if model is Account and self.account is not None and pk == self.account.id:
            return self.account
        return None

    def scalar(self, statement):  # type: ignore[no-untyped-def]
        sql = str(statement)
        if "FROM projects" in sql:
            return self.project
        return None

    def add(self, obj: object) -> None:
        self.added.append(obj)

    def add_all(self, objs) -> None:  # type: ignore[no-untyped-def]
        self.added.extend(objs)

    def delete(self, obj: object) -> None:
        self.deleted.append(obj)

    def commit(self) -> None:
        self.commits += 1

    def notifications(self) -> list[Notification]:
        return [item for item in self.added if isinstance(item, Notification)]


class TransitionTableTests(unittest.TestCase):
    def test_pending_is_the_only_reviewable_state(self) -> None:
        self.assertEqual(
            allowed_transitions(TimesheetStatus.PENDING),
            frozenset({TimesheetStatus.APPROVED, TimesheetStatus.REJECTED}),
        )
        self.assertEqual(allowed_transitions(TimesheetStatus.APPROVED), frozenset())
        self.assertEqual(allowed_transitions(TimesheetStatus.REJECTED), frozenset())

    def test_reversal_opens_path_back_to_pending(self) -> None:
        self.assertEqual(
            allowed_transitions(TimesheetStatus.APPROVED, allow_reversal=True),
            frozenset({TimesheetStatus.PENDING}),
        )


class ReviewEntryTests(unittest.TestCase):
    def test_head_approves_pending_entry_and_owner_is_notified(self) -> None:
        entry = _entry()
        fake_db = _FakeTimesheetDB(entry=entry)

        result = review_entry(fake_db, HEAD, entry.id, "approved", "  looks good ")  # type: ignore[arg-type]

        self.assertEqual(result.status, TimesheetStatus.APPROVED)
        self.assertEqual(result.reviewed_by, HEAD_ID)
        self.assertIsNotNone(result.reviewed_at)
        self.assertEqual(result.review_notes, "looks good")
        self.assertEqual(fake_db.commits, 1)

        notifications = fake_db.notifications()
        self.assertEqual(len(notifications), 1)
        notification = notifications[0]
        self.assertEqual(notification.account_id, OWNER_ID)
        self.assertEqual(notification.title, "Timesheet Approved")
        self.assertEqual(notification.type, "timesheet_approved")
        self.assertEqual(notification.message, 'Your timesheet for "Apollo" has been approved by HOD.')
        self.assertEqual(notification.payload, {"timesheet_id": str(entry.id), "status": "approved"})

    def test_admin_rejection_is_attributed_to_admin(self) -> None:
        entry = _entry()
        fake_db = _FakeTimesheetDB(entry=entry)

        review_entry(fake_db, ADMIN, entry.id, "rejected")  # type: ignore[arg-type]

        notification = fake_db.notifications()[0]
        self.assertEqual(notification.title, "Timesheet Rejected")
        self.assertTrue(notification.message.endswith("has been rejected by Admin."))
        self.assertIsNone(entry.review_notes)

    def test_reviewed_entry_cannot_be_reviewed_again(self) -> None:
        entry = _entry(TimesheetStatus.APPROVED)
        fake_db = _FakeTimesheetDB(entry=entry)

        with self.assertRaises(ApiError) as ctx:
            review_entry(fake_db, ADMIN, entry.id, "rejected")  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.code, "ENTRY_REVIEWED")
        self.assertEqual(entry.status, TimesheetStatus.APPROVED)
        self.assertEqual(fake_db.notifications(), [])
        self.assertEqual(fake_db.commits, 0)

    def test_owner_cannot_approve_own_entry(self) -> None:
        entry = _entry()
        fake_db = _FakeTimesheetDB(entry=entry)

        with self.assertRaises(ApiError) as ctx:
            review_entry(fake_db, OWNER, entry.id, "approved")  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.status_code, 403)
        self.assertEqual(entry.status, TimesheetStatus.PENDING)

    def test_invisible_entry_looks_missing(self) -> None:
        entry = _entry()
        fake_db = _FakeTimesheetDB(entry=entry)

        with self.assertRaises(ApiError) as ctx:
            review_entry(fake_db, STRANGER, entry.id, "approved")  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.status_code, 404)


class ReopenEntryTests(unittest.TestCase):
    def setUp(self) -> None:
        get_settings.cache_clear()

    def tearDown(self) -> None:
        get_settings.cache_clear()

    def test_reopen_is_rejected_by_default(self) -> None:
        entry = _entry(TimesheetStatus.APPROVED)
        fake_db = _FakeTimesheetDB(entry=entry)

        with self.assertRaises(ApiError) as ctx:
            reopen_entry(fake_db, ADMIN, entry.id)  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.code, "REVIEW_REVERSAL_DISABLED")
        self.assertEqual(entry.status, TimesheetStatus.APPROVED)

    def test_reopen_clears_review_when_enabled(self) -> None:
        entry = _entry(TimesheetStatus.REJECTED)
        entry.reviewed_by = ADMIN_ID
        entry.review_notes = "wrong project"
        fake_db = _FakeTimesheetDB(entry=entry)

        with patch.dict(os.environ, {"ALLOW_REVIEW_REVERSAL": "true"}, clear=False):
            get_settings.cache_clear()
            reopen_entry(fake_db, HEAD, entry.id)  # type: ignore[arg-type]

        self.assertEqual(entry.status, TimesheetStatus.PENDING)
        self.assertIsNone(entry.reviewed_by)
        self.assertIsNone(entry.review_notes)
        self.assertEqual(fake_db.notifications()[0].type, "timesheet_reopened")


class UpdateAndDeleteEntryTests(unittest.TestCase):
    def test_hours_are_frozen_after_review(self) -> None:
        entry = _entry(TimesheetStatus.APPROVED)
        fake_db = _FakeTimesheetDB(entry=entry)

        with self.assertRaises(ApiError) as ctx:
            update_entry(fake_db, ADMIN, entry.id, TimesheetEntryUpdate(hours=Decimal("4")))  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(entry.hours, Decimal("8"))

    def test_owner_edits_pending_hours(self) -> None:
        entry = _entry()
        fake_db = _FakeTimesheetDB(entry=entry)

        update_entry(fake_db, OWNER, entry.id, TimesheetEntryUpdate(hours=Decimal("6.5")))  # type: ignore[arg-type]

        self.assertEqual(entry.hours, Decimal("6.5"))
        self.assertEqual(entry.status, TimesheetStatus.PENDING)

    def test_head_edits_description_of_reviewed_entry_but_owner_cannot(self) -> None:
        entry = _entry(TimesheetStatus.APPROVED)
        fake_db = _FakeTimesheetDB(entry=entry)

        update_entry(fake_db, HEAD, entry.id, TimesheetEntryUpdate(description="Clarified"))  # type: ignore[arg-type]
        self.assertEqual(entry.description, "Clarified")

        with self.assertRaises(ApiError):
            update_entry(fake_db, OWNER, entry.id, TimesheetEntryUpdate(description="Changed"))  # type: ignore[arg-type]
        self.assertEqual(entry.description, "Clarified")

    def test_owner_deletes_only_pending_entries(self) -> None:
        entry = _entry(TimesheetStatus.APPROVED)
        fake_db = _FakeTimesheetDB(entry=entry)

        with self.assertRaises(ApiError) as ctx:
            delete_entry(fake_db, OWNER, entry.id)  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.status_code, 400)

        delete_entry(fake_db, ADMIN, entry.id)  # type: ignore[arg-type]
        self.assertEqual(fake_db.deleted, [entry])

    def test_head_never_deletes(self) -> None:
        entry = _entry()
        fake_db = _FakeTimesheetDB(entry=entry)

        with self.assertRaises(ApiError) as ctx:
            delete_entry(fake_db, HEAD, entry.id)  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.status_code, 403)
        self.assertEqual(fake_db.deleted, [])


class CreateEntryTests(unittest.TestCase):
    def _account(self, *, employee_id: str | None = "E-1") -> Account:
        return Account(id=OWNER_ID, email="ada@example.com", display_name="Ada", employee_id=employee_id)

    def test_create_entry_snapshots_profile(self) -> None:
        fake_db = _FakeTimesheetDB(account=self._account())
        payload = TimesheetEntryCreate(
            project="Apollo",
            hours=Decimal("7.5"),
            start_date=date(2026, 10, 13),
            end_date=date(2026, 10, 13),
            description="  Sprint planning ",
        )

        entry = create_entry(fake_db, OWNER, payload)  # type: ignore[arg-type]

        self.assertEqual(entry.status, TimesheetStatus.PENDING)
        self.assertEqual(entry.name, "Ada")
        self.assertEqual(entry.employee_id, "E-1")
        self.assertEqual(entry.project_id, PROJECT_ID)
        self.assertEqual(entry.description, "Sprint planning")
        self.assertEqual(fake_db.added, [entry])

    def test_create_entry_requires_employee_id(self) -> None:
        fake_db = _FakeTimesheetDB(account=self._account(employee_id=None))
        payload = TimesheetEntryCreate(
            project="Apollo",
            hours=Decimal("1"),
            start_date=date(2026, 10, 13),
            end_date=date(2026, 10, 13),
        )

        with self.assertRaises(ApiError) as ctx:
            create_entry(fake_db, OWNER, payload)  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.message, "Your profile must have name and employee ID set")
        self.assertEqual(fake_db.added, [])


class SubmitWeekTests(unittest.TestCase):
    def _fake_db(self) -> _FakeTimesheetDB:
        account = Account(id=OWNER_ID, email="ada@example.com", display_name="Ada", employee_id="E-1")
        return _FakeTimesheetDB(account=account)

    def test_one_entry_per_project_day_with_hours(self) -> None:
        fake_db = self._fake_db()
        payload = WeeklySubmitRequest(
            week_start=date(2026, 10, 14),
            entries=[
                WeeklyRow(
                    project="Apollo",
                    description="Build",
                    hours={
                        date(2026, 10, 12): Decimal("8"),
                        date(2026, 10, 13): Decimal("0"),
                        date(2026, 10, 17): Decimal("3.5"),
                    },
                ),
                WeeklyRow(project="", hours={date(2026, 10, 12): Decimal("2")}),
            ],
        )

        entries = submit_week(fake_db, OWNER, payload)  # type: ignore[arg-type]

        self.assertEqual(len(entries), 2)
        self.assertEqual([item.start_date for item in entries], [date(2026, 10, 12), date(2026, 10, 17)])
        self.assertTrue(all(item.start_date == item.end_date for item in entries))
        self.assertEqual(fake_db.commits, 1)

    def test_day_outside_week_rejects_whole_submission(self) -> None:
        fake_db = self._fake_db()
        payload = WeeklySubmitRequest(
            week_start=date(2026, 10, 12),
            entries=[
                WeeklyRow(
                    project="Apollo",
                    hours={date(2026, 10, 12): Decimal("8"), date(2026, 10, 18): Decimal("2")},
                )
            ],
        )

        with self.assertRaises(ApiError):
            submit_week(fake_db, OWNER, payload)  # type: ignore[arg-type]

        self.assertEqual(fake_db.added, [])
        self.assertEqual(fake_db.commits, 0)

    def test_empty_grid_is_rejected(self) -> None:
        fake_db = self._fake_db()
        payload = WeeklySubmitRequest(week_start=date(2026, 10, 12), entries=[WeeklyRow(project="Apollo")])

        with self.assertRaises(ApiError) as ctx:
            submit_week(fake_db, OWNER, payload)  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.message, "Please add at least one project with hours")


class EntryLimitTests(unittest.TestCase):
    def _fake_db(self) -> _FakeTimesheetDB:
        account = Account(id=OWNER_ID, email="ada@example.com", display_name="Ada", employee_id="E-1")
        return _FakeTimesheetDB(account=account)

    def test_hours_and_dates_outside_limits_are_rejected(self) -> None:
        cases = [
            (Decimal("0"), date(2026, 10, 13), date(2026, 10, 13), "Hours must be greater than 0 and at most 24"),
            (Decimal("25"), date(2026, 10, 13), date(2026, 10, 13), "Hours must be greater than 0 and at most 24"),
            (Decimal("0.001"), date(2026, 10, 13), date(2026, 10, 13), "Hours must have at most 2 decimal places"),
            (Decimal("8"), date(2026, 10, 14), date(2026, 10, 13), "end_date must be greater than or equal to start_date"),
        ]
        for hours, start_date, end_date, message in cases:
            with self.subTest(hours=hours, start_date=start_date, end_date=end_date):
                with self.assertRaises(ApiError) as ctx:
                    validate_entry_values(hours, start_date, end_date)
                self.assertEqual(ctx.exception.status_code, 400)
                self.assertEqual(ctx.exception.message, message)

        validate_entry_values(Decimal("24"), date(2026, 10, 13), date(2026, 10, 13))
        validate_entry_values(Decimal("0.25"), date(2026, 10, 13), date(2026, 10, 14))

    def test_create_entry_rejects_out_of_range_payload(self) -> None:
        fake_db = self._fake_db()
        payload = TimesheetEntryCreate.model_construct(
            project="Apollo",
            hours=Decimal("25"),
            start_date=date(2026, 10, 13),
            end_date=date(2026, 10, 13),
            description=None,
        )

        with self.assertRaises(ApiError) as ctx:
            create_entry(fake_db, OWNER, payload)  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(fake_db.added, [])
        self.assertEqual(fake_db.commits, 0)

    def test_submit_week_rejects_sub_cent_and_oversized_cells(self) -> None:
        for hours in (Decimal("0.001"), Decimal("25")):
            with self.subTest(hours=hours):
                fake_db = self._fake_db()
                payload = WeeklySubmitRequest.model_construct(
                    week_start=date(2026, 10, 12),
                    entries=[
                        WeeklyRow.model_construct(
                            project="Apollo",
                            description=None,
                            hours={date(2026, 10, 12): Decimal("8"), date(2026, 10, 13): hours},
                        )
                    ],
                )

                with self.assertRaises(ApiError) as ctx:
                    submit_week(fake_db, OWNER, payload)  # type: ignore[arg-type]

                self.assertEqual(ctx.exception.status_code, 400)
                self.assertEqual(fake_db.added, [])
                self.assertEqual(fake_db.commits, 0)


class EntryLimitEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        account = Account(id=OWNER_ID, email="ada@example.com", display_name="Ada", employee_id="E-1")
        self.fake_db = _FakeTimesheetDB(account=account)
        app.dependency_overrides[get_current_caller] = lambda: OWNER
        app.dependency_overrides[get_db] = _override_get_db(self.fake_db)
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_create_endpoint_returns_400_for_invalid_hours_and_dates(self) -> None:
        bodies = [
            {"project": "Apollo", "hours": 0, "start_date": "2026-10-13", "end_date": "2026-10-13"},
            {"project": "Apollo", "hours": 25, "start_date": "2026-10-13", "end_date": "2026-10-13"},
            {"project": "Apollo", "hours": 8, "start_date": "2026-10-14", "end_date": "2026-10-13"},
        ]
        for body in bodies:
            with self.subTest(body=body):
                response = self.client.post("/api/timesheets", json=body)

                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json()["code"], "VALIDATION_ERROR")

        response = self.client.post("/api/timesheets", json=bodies[2])
        self.assertEqual(response.json()["error"], "end_date must be greater than or equal to start_date")
        self.assertEqual(self.fake_db.added, [])

    def test_week_endpoint_returns_400_for_sub_cent_hours(self) -> None:
        response = self.client.post(
            "/api/timesheets/week",
            json={
                "week_start": "2026-10-12",
                "entries": [{"project": "Apollo", "hours": {"2026-10-12": 0.001}}],
            },
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")
        self.assertEqual(self.fake_db.added, [])
        self.assertEqual(self.fake_db.commits, 0)


if __name__ == "__main__":
    unittest.main()
