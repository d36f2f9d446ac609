"""Timesheet entries and their review workflow.

An entry starts ``pending``. An admin, or a head of the entry's project,
moves it to ``approved`` or ``rejected`` exactly once; each review stamps the
reviewer and queues one notification for the owner. Hours freeze once an
entry is reviewed; the description stays editable for reviewers. Moving a
reviewed entry back to ``pending`` is only possible when
``ALLOW_REVIEW_REVERSAL`` is enabled.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.errors import bad_request, forbidden, not_found
from app.models import Account, Project, TimesheetEntry, TimesheetStatus
from app.policies import Caller, Operation, authorize, can_review, entry_resource, visible_entries_clause
from app.schemas import TimesheetEntryCreate, TimesheetEntryUpdate, WeeklySubmitRequest
from app.services.drafts import clear_draft, week_start_for
from app.services.notifications import (
    TYPE_TIMESHEET_APPROVED,
    TYPE_TIMESHEET_REJECTED,
    TYPE_TIMESHEET_REOPENED,
    enqueue_notification,
)
from app.services.projects import get_active_project_by_name
from app.settings import get_settings

logger = logging.getLogger("app.timesheets")

MAX_HOURS_PER_ENTRY = Decimal("24")
HOURS_STEP = Decimal("0.01")
WEEK_DAYS = 6  # Monday to Saturday

_REVIEW_TRANSITIONS: dict[TimesheetStatus, frozenset[TimesheetStatus]] = {
    TimesheetStatus.PENDING: frozenset({TimesheetStatus.APPROVED, TimesheetStatus.REJECTED}),
}
_REVERSAL_TRANSITIONS: dict[TimesheetStatus, frozenset[TimesheetStatus]] = {
    TimesheetStatus.APPROVED: frozenset({TimesheetStatus.PENDING}),
    TimesheetStatus.REJECTED: frozenset({TimesheetStatus.PENDING}),
}


def allowed_transitions(status: TimesheetStatus, *, allow_reversal: bool = False) -> frozenset[TimesheetStatus]:
    allowed = _REVIEW_TRANSITIONS.get(status, frozenset())
    if allow_reversal:
        allowed = allowed | _REVERSAL_TRANSITIONS.get(status, frozenset())
    return allowed


def validate_entry_values(hours: Decimal, start_date: date, end_date: date) -> None:
    if hours is None or hours <= 0 or hours > MAX_HOURS_PER_ENTRY:
        raise bad_request("Hours must be greater than 0 and at most 24")
    # Stored as Numeric(5, 2).
    if hours != hours.quantize(HOURS_STEP):
        raise bad_request("Hours must have at most 2 decimal places")
    if end_date < start_date:
        raise bad_request("end_date must be greater than or equal to start_date")


def _load_entry(db: Session, entry_id: uuid.UUID) -> TimesheetEntry | None:
    return db.get(TimesheetEntry, entry_id)


def get_entry_for(db: Session, caller: Caller, entry_id: uuid.UUID, operation: Operation) -> TimesheetEntry:
    entry = _load_entry(db, entry_id)
    # Rows the caller may not read look the same as rows that do not exist.
    if entry is None or not authorize(caller, entry_resource(entry), Operation.READ):
        raise not_found("Timesheet entry not found")
    if operation != Operation.READ and not authorize(caller, entry_resource(entry), operation):
        raise forbidden("You are not allowed to modify this timesheet entry")
    return entry


def _owner_snapshot(db: Session, caller: Caller) -> Account:
    account = db.get(Account, caller.account_id)
    if account is None:
        raise not_found("User not found")
    if not (account.display_name or "").strip() or not (account.employee_id or "").strip():
        raise bad_request("Your profile must have name and employee ID set")
    return account


def _new_entry(
    account: Account,
    project: Project,
    *,
    hours: Decimal,
    start_date: date,
    end_date: date,
    description: str | None,
) -> TimesheetEntry:
    entry = TimesheetEntry(
        id=uuid.uuid4(),
        account_id=account.id,
        name=account.display_name,
        employee_id=account.employee_id,
        project_id=project.id,
        hours=hours,
        start_date=start_date,
        end_date=end_date,
        description=(description or "").strip() or None,
        status=TimesheetStatus.PENDING,
    )
    entry.project = project
    return entry


def create_entry(db: Session, caller: Caller, payload: TimesheetEntryCreate) -> TimesheetEntry:
    validate_entry_values(payload.hours, payload.start_date, payload.end_date)
    account = _owner_snapshot(db, caller)
    project = get_active_project_by_name(db, payload.project)

    entry = _new_entry(
        account,
        project,
        hours=payload.hours,
        start_date=payload.start_date,
        end_date=payload.end_date,
        description=payload.description,
    )
    if not authorize(caller, entry_resource(entry), Operation.INSERT):
        raise forbidden("You are not allowed to create this timesheet entry")

    db.add(entry)
    db.commit()
    logger.info(
        "timesheet_entry_created",
        extra={"entry_id": str(entry.id), "account_id": str(account.id), "project": project.name},
    )
    return entry


def submit_week(db: Session, caller: Caller, payload: WeeklySubmitRequest) -> list[TimesheetEntry]:
    """Turn a weekly grid into one pending entry per project and day."""
    week_start = week_start_for(payload.week_start)
    week_days = {week_start + timedelta(days=offset) for offset in range(WEEK_DAYS)}
    account = _owner_snapshot(db, caller)

    rows = [
        row
        for row in payload.entries
        if row.project.strip() and sum((hours for hours in row.hours.values() if hours > 0), Decimal("0")) > 0
    ]
    if not rows:
        raise bad_request("Please add at least one project with hours")

    entries: list[TimesheetEntry] = []
    for row in rows:
        project = get_active_project_by_name(db, row.project)
        for day, hours in sorted(row.hours.items()):
            if hours <= 0:
                continue
            if day not in week_days:
                raise bad_request(f"{day.isoformat()} is outside the week starting {week_start.isoformat()}")
            validate_entry_values(hours, day, day)
            entries.append(
                _new_entry(
                    account,
                    project,
                    hours=hours,
                    start_date=day,
                    end_date=day,
                    description=row.description,
                )
            )

    db.add_all(entries)
    clear_draft(db, caller, week_start, commit=False)
    db.commit()
    logger.info(
        "timesheet_week_submitted",
        extra={
            "account_id": str(account.id),
            "week_start": week_start.isoformat(),
            "entries_created": len(entries),
        },
    )
    return entries


def list_entries(
    db: Session,
    caller: Caller,
    *,
    status: TimesheetStatus | None = None,
    project: str | None = None,
    account_id: uuid.UUID | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int = 200,
    offset: int = 0,
) -> list[TimesheetEntry]:
    if date_from is not None and date_to is not None and date_to < date_from:
        raise bad_request("date_to must be greater than or equal to date_from")

    stmt = (
        select(TimesheetEntry)
        .options(selectinload(TimesheetEntry.project))
        .where(visible_entries_clause(caller))
        .order_by(TimesheetEntry.start_date.desc(), TimesheetEntry.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    if status is not None:
        stmt = stmt.where(TimesheetEntry.status == status)
    if project:
        stmt = stmt.join(Project, Project.id == TimesheetEntry.project_id).where(Project.name == project.strip())
    if account_id is not None:
        stmt = stmt.where(TimesheetEntry.account_id == account_id)
    if date_from is not None:
        stmt = stmt.where(TimesheetEntry.start_date >= date_from)
    if date_to is not None:
        stmt = stmt.where(TimesheetEntry.start_date <= date_to)
    return list(db.scalars(stmt).all())


def update_entry(
    db: Session,
    caller: Caller,
    entry_id: uuid.UUID,
    payload: TimesheetEntryUpdate,
) -> TimesheetEntry:
    entry = get_entry_for(db, caller, entry_id, Operation.UPDATE)
    fields = payload.model_fields_set
    if not fields:
        raise bad_request("Nothing to update")

    is_pending = entry.status == TimesheetStatus.PENDING
    if "hours" in fields:
        if payload.hours is None:
            raise bad_request("Hours must be greater than 0 and at most 24")
        if not is_pending:
            raise bad_request(
                "Hours cannot be changed after the entry has been reviewed",
                code="ENTRY_REVIEWED",
            )
        validate_entry_values(payload.hours, entry.start_date, entry.end_date)
        entry.hours = payload.hours

    if "description" in fields:
        if not is_pending and not can_review(caller, entry.project_id):
            raise bad_request("Only pending entries can be edited", code="ENTRY_REVIEWED")
        entry.description = (payload.description or "").strip() or None

    db.commit()
    return entry


def _reviewer_label(caller: Caller) -> str:
    return "Admin" if caller.is_admin else "HOD"


def review_entry(
    db: Session,
    caller: Caller,
    entry_id: uuid.UUID,
    status: str,
    notes: str | None = None,
) -> TimesheetEntry:
    entry = get_entry_for(db, caller, entry_id, Operation.READ)
    if not can_review(caller, entry.project_id):
        raise forbidden("Only an admin or the project's Head of Department can review this entry")

    try:
        target = TimesheetStatus(status)
    except ValueError as exc:
        raise bad_request("Invalid status") from exc
    if target == TimesheetStatus.PENDING:
        raise bad_request("Invalid status")
    if target not in allowed_transitions(entry.status):
        raise bad_request("Timesheet has already been reviewed", code="ENTRY_REVIEWED")
    if not authorize(caller, entry_resource(entry), Operation.UPDATE):
        raise forbidden("You are not allowed to modify this timesheet entry")

    entry.status = target
    entry.reviewed_by = caller.account_id
    entry.reviewed_at = datetime.now(timezone.utc)
    entry.review_notes = (notes or "").strip() or None

    project_name = entry.project.name if entry.project is not None else ""
    enqueue_notification(
        db,
        entry.account_id,
        title=f"Timesheet {target.value.capitalize()}",
        message=f'Your timesheet for "{project_name}" has been {target.value} by {_reviewer_label(caller)}.',
        type=TYPE_TIMESHEET_APPROVED if target == TimesheetStatus.APPROVED else TYPE_TIMESHEET_REJECTED,
        metadata={"timesheet_id": str(entry.id), "status": target.value},
    )
    db.commit()
    logger.info(
        "timesheet_entry_reviewed",
        extra={
            "entry_id": str(entry.id),
            "status": target.value,
            "reviewer_id": str(caller.account_id),
        },
    )
    return entry


def reopen_entry(db: Session, caller: Caller, entry_id: uuid.UUID) -> TimesheetEntry:
    allow_reversal = get_settings().allow_review_reversal
    if not allow_reversal:
        raise bad_request("Reviewed entries cannot be reopened", code="REVIEW_REVERSAL_DISABLED")

    entry = get_entry_for(db, caller, entry_id, Operation.READ)
    if not can_review(caller, entry.project_id):
        raise forbidden("Only an admin or the project's Head of Department can reopen this entry")
    if TimesheetStatus.PENDING not in allowed_transitions(entry.status, allow_reversal=allow_reversal):
        raise bad_request("Only reviewed entries can be reopened")

    previous = entry.status
    entry.status = TimesheetStatus.PENDING
    entry.reviewed_by = None
    entry.reviewed_at = None
    entry.review_notes = None

    project_name = entry.project.name if entry.project is not None else ""
    enqueue_notification(
        db,
        entry.account_id,
        title="Timesheet Reopened",
        message=f'Your timesheet for "{project_name}" has been moved back to pending by {_reviewer_label(caller)}.',
        type=TYPE_TIMESHEET_REOPENED,
        metadata={"timesheet_id": str(entry.id), "previous_status": previous.value},
    )
    db.commit()
    return entry


def delete_entry(db: Session, caller: Caller, entry_id: uuid.UUID) -> None:
    entry = get_entry_for(db, caller, entry_id, Operation.DELETE)
    if not caller.is_admin and entry.status != TimesheetStatus.PENDING:
        raise bad_request("Only pending entries can be deleted", code="ENTRY_REVIEWED")
    db.delete(entry)
    db.commit()
