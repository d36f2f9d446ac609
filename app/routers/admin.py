"""Privileged operations.

Every route here requires an admin caller (role re-read from the database on
each request) and writes through the service session, which is not narrowed
to rows the caller owns.
"""

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.audit import audit_caller_action
from app.db import get_service_db
from app.models import ProjectAssignment, ProjectHead
from app.policies import Caller
from app.schemas import (
    AccountCreateRequest,
    AccountCreateResponse,
    AccountRosterItem,
    AccountRosterResponse,
    AnalyticsStatsRead,
    EmployeeHoursItem,
    EmployeeIdUpdateRequest,
    MissingEmployeeIdResponse,
    PasswordUpdateRequest,
    ProjectCreate,
    ProjectHeadsReplaceRequest,
    ProjectHoursItem,
    ProjectMemberRead,
    ProjectMemberRequest,
    ProjectRead,
    ProjectUpdate,
    RoleUpdateRequest,
    SuccessResponse,
    WeeklyTrendItem,
)
from app.security import require_admin
from app.services import accounts as account_service
from app.services import analytics as analytics_service
from app.services import projects as project_service
from app.services.notifications import notify_missing_employee_ids

router = APIRouter(tags=["admin"])


def _member_read(member: ProjectAssignment | ProjectHead, display_name: str | None = None) -> ProjectMemberRead:
    return ProjectMemberRead(
        project_id=member.project_id,
        account_id=member.account_id,
        display_name=display_name,
        assigned_by=member.assigned_by,
        assigned_at=member.assigned_at,
    )


# --- accounts -----------------------------------------------------------


@router.post("/api/admin/accounts", response_model=AccountCreateResponse)
def create_account(
    payload: AccountCreateRequest,
    request: Request,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_service_db),
) -> AccountCreateResponse:
    account = account_service.create_account(db, payload)
    audit_caller_action(
        db,
        request,
        caller,
        action="ACCOUNT_CREATED",
        entity_type="account",
        entity_id=str(account.id),
        details={"email": account.email, "employee_id": account.employee_id},
    )
    return AccountCreateResponse(message="User created successfully", user_id=account.id)


@router.get("/api/admin/accounts", response_model=AccountRosterResponse)
def list_accounts(
    _caller: Caller = Depends(require_admin),
    db: Session = Depends(get_service_db),
) -> AccountRosterResponse:
    users = [AccountRosterItem(**item) for item in account_service.list_accounts(db)]
    return AccountRosterResponse(users=users)


@router.post("/api/admin/accounts/role", response_model=SuccessResponse)
def update_account_role(
    payload: RoleUpdateRequest,
    request: Request,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_service_db),
) -> SuccessResponse:
    role = account_service.update_role(db, caller, payload.user_id, payload.new_role)
    audit_caller_action(
        db,
        request,
        caller,
        action="ACCOUNT_ROLE_UPDATED",
        entity_type="account",
        entity_id=str(payload.user_id),
        details={"role": role.value},
    )
    return SuccessResponse()


@router.post("/api/admin/accounts/password", response_model=SuccessResponse)
def update_account_password(
    payload: PasswordUpdateRequest,
    request: Request,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_service_db),
) -> SuccessResponse:
    account = account_service.update_password(db, payload.user_id, payload.new_password)
    audit_caller_action(
        db,
        request,
        caller,
        action="ACCOUNT_PASSWORD_UPDATED",
        entity_type="account",
        entity_id=str(account.id),
    )
    return SuccessResponse()


@router.post("/api/admin/accounts/employee-id", response_model=SuccessResponse)
def update_account_employee_id(
    payload: EmployeeIdUpdateRequest,
    request: Request,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_service_db),
) -> SuccessResponse:
    account = account_service.update_employee_code(db, payload.user_id, payload.employee_id)
    audit_caller_action(
        db,
        request,
        caller,
        action="ACCOUNT_EMPLOYEE_ID_UPDATED",
        entity_type="account",
        entity_id=str(account.id),
        details={"employee_id": account.employee_id},
    )
    return SuccessResponse()


@router.delete("/api/admin/accounts/{account_id}", response_model=SuccessResponse)
def delete_account(
    account_id: uuid.UUID,
    request: Request,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_service_db),
) -> SuccessResponse:
    account_service.delete_account(db, caller, account_id)
    audit_caller_action(
        db,
        request,
        caller,
        action="ACCOUNT_DELETED",
        entity_type="account",
        entity_id=str(account_id),
    )
    return SuccessResponse()


@router.post("/api/admin/notifications/missing-employee-id", response_model=MissingEmployeeIdResponse)
def notify_missing_employee_id(
    request: Request,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_service_db),
) -> MissingEmployeeIdResponse:
    notified, skipped, message = notify_missing_employee_ids(db)
    if notified:
        audit_caller_action(
            db,
            request,
            caller,
            action="MISSING_EMPLOYEE_ID_NOTIFIED",
            details={"notified": notified, "skipped": skipped},
        )
    return MissingEmployeeIdResponse(message=message, notified=notified, skipped=skipped)


# --- projects -----------------------------------------------------------


@router.post("/api/admin/projects", response_model=ProjectRead)
def create_project(
    payload: ProjectCreate,
    request: Request,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_service_db),
) -> ProjectRead:
    project = project_service.create_project(db, payload)
    audit_caller_action(
        db,
        request,
        caller,
        action="PROJECT_CREATED",
        entity_type="project",
        entity_id=str(project.id),
        details={"name": project.name},
    )
    return ProjectRead.model_validate(project)


@router.patch("/api/admin/projects/{project_id}", response_model=ProjectRead)
def update_project(
    project_id: uuid.UUID,
    payload: ProjectUpdate,
    request: Request,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_service_db),
) -> ProjectRead:
    project = project_service.update_project(db, project_id, payload)
    audit_caller_action(
        db,
        request,
        caller,
        action="PROJECT_UPDATED",
        entity_type="project",
        entity_id=str(project.id),
        details={"name": project.name, "is_active": project.is_active},
    )
    return ProjectRead.model_validate(project)


@router.post("/api/admin/projects/{project_id}/assignments", response_model=ProjectMemberRead)
def assign_project_member(
    project_id: uuid.UUID,
    payload: ProjectMemberRequest,
    request: Request,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_service_db),
) -> ProjectMemberRead:
    assignment = project_service.add_assignment(db, caller, project_id, payload.account_id)
    audit_caller_action(
        db,
        request,
        caller,
        action="PROJECT_ASSIGNMENT_CREATED",
        entity_type="project",
        entity_id=str(project_id),
        details={"account_id": str(payload.account_id)},
    )
    return _member_read(assignment)


@router.delete("/api/admin/projects/{project_id}/assignments/{account_id}", response_model=SuccessResponse)
def unassign_project_member(
    project_id: uuid.UUID,
    account_id: uuid.UUID,
    request: Request,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_service_db),
) -> SuccessResponse:
    project_service.remove_assignment(db, project_id, account_id)
    audit_caller_action(
        db,
        request,
        caller,
        action="PROJECT_ASSIGNMENT_DELETED",
        entity_type="project",
        entity_id=str(project_id),
        details={"account_id": str(account_id)},
    )
    return SuccessResponse()


@router.post("/api/admin/projects/{project_id}/heads", response_model=ProjectMemberRead)
def add_project_head(
    project_id: uuid.UUID,
    payload: ProjectMemberRequest,
    request: Request,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_service_db),
) -> ProjectMemberRead:
    head = project_service.add_head(db, caller, project_id, payload.account_id)
    audit_caller_action(
        db,
        request,
        caller,
        action="PROJECT_HEAD_ADDED",
        entity_type="project",
        entity_id=str(project_id),
        details={"account_id": str(payload.account_id)},
    )
    return _member_read(head)


@router.put("/api/admin/projects/{project_id}/heads", response_model=list[ProjectMemberRead])
def replace_project_heads(
    project_id: uuid.UUID,
    payload: ProjectHeadsReplaceRequest,
    request: Request,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_service_db),
) -> list[ProjectMemberRead]:
    heads = project_service.replace_heads(db, caller, project_id, payload.account_ids)
    audit_caller_action(
        db,
        request,
        caller,
        action="PROJECT_HEADS_REPLACED",
        entity_type="project",
        entity_id=str(project_id),
        details={"account_ids": [str(item) for item in payload.account_ids]},
    )
    return [_member_read(head) for head in heads]


@router.delete("/api/admin/projects/{project_id}/heads/{account_id}", response_model=SuccessResponse)
def remove_project_head(
    project_id: uuid.UUID,
    account_id: uuid.UUID,
    request: Request,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_service_db),
) -> SuccessResponse:
    project_service.remove_head(db, project_id, account_id)
    audit_caller_action(
        db,
        request,
        caller,
        action="PROJECT_HEAD_REMOVED",
        entity_type="project",
        entity_id=str(project_id),
        details={"account_id": str(account_id)},
    )
    return SuccessResponse()


# --- analytics ----------------------------------------------------------


@router.get(
    "/api/admin/analytics/stats",
    response_model=AnalyticsStatsRead,
    dependencies=[Depends(require_admin)],
)
def get_analytics_stats(db: Session = Depends(get_service_db)) -> dict[str, Any]:
    return analytics_service.analytics_stats(db)


@router.get(
    "/api/admin/analytics/project-distribution",
    response_model=list[ProjectHoursItem],
    dependencies=[Depends(require_admin)],
)
def get_project_distribution(db: Session = Depends(get_service_db)) -> list[dict[str, Any]]:
    return analytics_service.project_distribution(db)


@router.get(
    "/api/admin/analytics/employee-productivity",
    response_model=list[EmployeeHoursItem],
    dependencies=[Depends(require_admin)],
)
def get_employee_productivity(db: Session = Depends(get_service_db)) -> list[dict[str, Any]]:
    return analytics_service.employee_productivity(db)


@router.get(
    "/api/admin/analytics/weekly-trend",
    response_model=list[WeeklyTrendItem],
    dependencies=[Depends(require_admin)],
)
def get_weekly_trend(db: Session = Depends(get_service_db)) -> list[dict[str, Any]]:
    return analytics_service.weekly_trend(db)
