from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.audit import audit_caller_action
from app.db import get_db
from app.models import Account, Notification
from app.policies import Caller
from app.schemas import (
    DashboardStatsRead,
    MeResponse,
    NotificationRead,
    NotificationsReadAllResponse,
    ProfileUpdateRequest,
    ProjectRead,
)
from app.security import get_current_caller
from app.services import accounts as account_service
from app.services import notifications as notification_service
from app.services.analytics import dashboard_stats
from app.services.projects import list_assigned_projects

router = APIRouter(tags=["me"])


def _me_response(account: Account, caller: Caller) -> MeResponse:
    return MeResponse(
        id=account.id,
        email=account.email,
        display_name=account.display_name,
        employee_id=account.employee_id,
        department=account.department,
        avatar_url=account.avatar_url,
        role=caller.role,
        head_project_ids=sorted(caller.head_project_ids, key=str),
    )


def _notification_read(notification: Notification) -> NotificationRead:
    return NotificationRead(
        id=notification.id,
        title=notification.title,
        message=notification.message,
        type=notification.type,
        is_read=notification.is_read,
        metadata=notification.payload or {},
        created_at=notification.created_at,
    )


@router.get("/api/me", response_model=MeResponse)
def get_me(
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> MeResponse:
    account = account_service.get_account_or_404(db, caller.account_id)
    return _me_response(account, caller)


@router.patch("/api/me/profile", response_model=MeResponse)
def update_profile(
    payload: ProfileUpdateRequest,
    request: Request,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> MeResponse:
    account = account_service.update_own_profile(db, caller, payload)
    audit_caller_action(
        db,
        request,
        caller,
        action="PROFILE_UPDATED",
        entity_type="account",
        entity_id=str(account.id),
        details={"fields": sorted(payload.model_fields_set)},
    )
    return _me_response(account, caller)


@router.get("/api/me/projects", response_model=list[ProjectRead])
def get_my_projects(
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> list[ProjectRead]:
    return [ProjectRead.model_validate(project) for project in list_assigned_projects(db, caller)]


@router.get("/api/me/dashboard", response_model=DashboardStatsRead)
def get_my_dashboard(
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> DashboardStatsRead:
    return DashboardStatsRead(**dashboard_stats(db, caller))


@router.get("/api/me/notifications", response_model=list[NotificationRead])
def get_my_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> list[NotificationRead]:
    notifications = notification_service.list_notifications(db, caller, unread_only=unread_only, limit=limit)
    return [_notification_read(item) for item in notifications]


@router.post("/api/me/notifications/read-all", response_model=NotificationsReadAllResponse)
def mark_all_notifications_read(
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> NotificationsReadAllResponse:
    updated = notification_service.mark_all_notifications_read(db, caller)
    return NotificationsReadAllResponse(updated=updated)


@router.post("/api/me/notifications/{notification_id}/read", response_model=NotificationRead)
def mark_notification_read(
    notification_id: int,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> NotificationRead:
    notification = notification_service.mark_notification_read(db, caller, notification_id)
    return _notification_read(notification)
