from __future__ import annotations

from datetime import date, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.errors import forbidden
from app.models import TimesheetDraft
from app.policies import Caller, Operation, Resource, ResourceKind, authorize
from app.schemas import DraftRow
from app.settings import get_settings


def week_start_for(day: date) -> date:
    return day - timedelta(days=day.weekday())


def draft_storage_key(week_start: date) -> str:
    return f"{get_settings().draft_storage_prefix}_{week_start_for(week_start).isoformat()}"


def _clamp_hours(hours: dict[str, float]) -> dict[str, float]:
    return {day: min(24.0, max(0.0, float(value or 0))) for day, value in hours.items()}


def normalize_draft_rows(rows: list[DraftRow]) -> list[dict[str, Any]]:
    return [
        {
            "id": row.id,
            "project": row.project,
            "description": row.description,
            "hours": _clamp_hours(row.hours),
        }
        for row in rows
    ]


def _find_draft(db: Session, caller: Caller, week_start: date) -> TimesheetDraft | None:
    return db.scalar(
        select(TimesheetDraft).where(
            TimesheetDraft.account_id == caller.account_id,
            TimesheetDraft.storage_key == draft_storage_key(week_start),
        )
    )


def _check(caller: Caller, operation: Operation) -> None:
    resource = Resource(kind=ResourceKind.DRAFT, owner_id=caller.account_id)
    if not authorize(caller, resource, operation):
        raise forbidden()


def load_draft(db: Session, caller: Caller, week_start: date) -> TimesheetDraft | None:
    _check(caller, Operation.READ)
    return _find_draft(db, caller, week_start)


def save_draft(db: Session, caller: Caller, week_start: date, rows: list[DraftRow]) -> TimesheetDraft:
    """Store the week's grid; the most recent save wins."""
    _check(caller, Operation.UPDATE)
    monday = week_start_for(week_start)
    draft = _find_draft(db, caller, monday)
    if draft is None:
        draft = TimesheetDraft(
            account_id=caller.account_id,
            storage_key=draft_storage_key(monday),
            week_start=monday,
        )
        db.add(draft)
    draft.entries = normalize_draft_rows(rows)
    db.commit()
    return draft


def clear_draft(db: Session, caller: Caller, week_start: date, *, commit: bool = True) -> bool:
    _check(caller, Operation.DELETE)
    draft = _find_draft(db, caller, week_start)
    if draft is None:
        return False
    db.delete(draft)
    if commit:
        db.commit()
    return True
