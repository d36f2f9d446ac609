from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.audit import audit_caller_action
from app.db import get_db
from app.errors import not_found
from app.models import TimesheetDraft, TimesheetEntry, TimesheetStatus
from app.policies import Caller
from app.schemas import (
    DraftRead,
    DraftRow,
    DraftUpsertRequest,
    SuccessResponse,
    TimesheetEntryCreate,
    TimesheetEntryRead,
    TimesheetEntryUpdate,
    TimesheetReviewRequest,
    WeeklySubmitRequest,
    WeeklySubmitResponse,
)
from app.security import get_current_caller
from app.services import drafts as draft_service
from app.services import timesheets as timesheet_service

router = APIRouter(tags=["timesheets"])


def _to_entry_read(entry: TimesheetEntry) -> TimesheetEntryRead:
    return TimesheetEntryRead(
        id=entry.id,
        account_id=entry.account_id,
        name=entry.name,
        employee_id=entry.employee_id,
        project_id=entry.project_id,
        project=entry.project.name if entry.project is not None else None,
        hours=float(entry.hours),
        start_date=entry.start_date,
        end_date=entry.end_date,
        description=entry.description,
        status=entry.status,
        reviewed_by=entry.reviewed_by,
        reviewed_at=entry.reviewed_at,
        review_notes=entry.review_notes,
        created_at=entry.created_at,
    )


def _to_draft_read(draft: TimesheetDraft) -> DraftRead:
    return DraftRead(
        storage_key=draft.storage_key,
        week_start=draft.week_start,
        entries=[DraftRow.model_validate(row) for row in draft.entries or []],
        updated_at=draft.updated_at,
    )


@router.post("/api/timesheets", response_model=TimesheetEntryRead)
def create_timesheet_entry(
    payload: TimesheetEntryCreate,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> TimesheetEntryRead:
    entry = timesheet_service.create_entry(db, caller, payload)
    return _to_entry_read(entry)


@router.post("/api/timesheets/week", response_model=WeeklySubmitResponse)
def submit_timesheet_week(
    payload: WeeklySubmitRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> WeeklySubmitResponse:
    entries = timesheet_service.submit_week(db, caller, payload)
    return WeeklySubmitResponse(created=len(entries), entries=[_to_entry_read(item) for item in entries])


@router.get("/api/timesheets", response_model=list[TimesheetEntryRead])
def list_timesheet_entries(
    status: TimesheetStatus | None = Query(default=None),
    project: str | None = Query(default=None),
    account_id: uuid.UUID | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> list[TimesheetEntryRead]:
    entries = timesheet_service.list_entries(
        db,
        caller,
        status=status,
        project=project,
        account_id=account_id,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return [_to_entry_read(item) for item in entries]


@router.patch("/api/timesheets/{entry_id}", response_model=TimesheetEntryRead)
def update_timesheet_entry(
    entry_id: uuid.UUID,
    payload: TimesheetEntryUpdate,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> TimesheetEntryRead:
    entry = timesheet_service.update_entry(db, caller, entry_id, payload)
    return _to_entry_read(entry)


@router.delete("/api/timesheets/{entry_id}", response_model=SuccessResponse)
def delete_timesheet_entry(
    entry_id: uuid.UUID,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    timesheet_service.delete_entry(db, caller, entry_id)
    return SuccessResponse()


@router.post("/api/timesheets/{entry_id}/review", response_model=TimesheetEntryRead)
def review_timesheet_entry(
    entry_id: uuid.UUID,
    payload: TimesheetReviewRequest,
    request: Request,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> TimesheetEntryRead:
    entry = timesheet_service.review_entry(db, caller, entry_id, payload.status, payload.notes)
    audit_caller_action(
        db,
        request,
        caller,
        action="TIMESHEET_REVIEWED",
        entity_type="timesheet_entry",
        entity_id=str(entry.id),
        details={"status": entry.status.value},
    )
    return _to_entry_read(entry)


@router.post("/api/timesheets/{entry_id}/reopen", response_model=TimesheetEntryRead)
def reopen_timesheet_entry(
    entry_id: uuid.UUID,
    request: Request,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> TimesheetEntryRead:
    entry = timesheet_service.reopen_entry(db, caller, entry_id)
    audit_caller_action(
        db,
        request,
        caller,
        action="TIMESHEET_REOPENED",
        entity_type="timesheet_entry",
        entity_id=str(entry.id),
    )
    return _to_entry_read(entry)


# --- weekly drafts ------------------------------------------------------


@router.get("/api/timesheets/drafts/{week_start}", response_model=DraftRead)
def get_timesheet_draft(
    week_start: date,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> DraftRead:
    draft = draft_service.load_draft(db, caller, week_start)
    if draft is None:
        raise not_found("Draft not found")
    return _to_draft_read(draft)


@router.put("/api/timesheets/drafts/{week_start}", response_model=DraftRead)
def save_timesheet_draft(
    week_start: date,
    payload: DraftUpsertRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> DraftRead:
    draft = draft_service.save_draft(db, caller, week_start, payload.entries)
    return _to_draft_read(draft)


@router.delete("/api/timesheets/drafts/{week_start}", response_model=SuccessResponse)
def delete_timesheet_draft(
    week_start: date,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    draft_service.clear_draft(db, caller, week_start)
    return SuccessResponse()
