from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.policies import Caller
from app.schemas import ProjectMemberRead, ProjectRead
from app.security import get_current_caller
from app.services import projects as project_service

router = APIRouter(tags=["projects"])


@router.get("/api/projects", response_model=list[ProjectRead])
def list_projects(
    include_inactive: bool = Query(default=False),
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> list[ProjectRead]:
    # Inactive projects are only listed for admins; others silently get active ones.
    projects = project_service.list_projects(db, include_inactive=include_inactive and caller.is_admin)
    return [ProjectRead.model_validate(project) for project in projects]


@router.get("/api/projects/{project_id}/heads", response_model=list[ProjectMemberRead])
def list_project_heads(
    project_id: uuid.UUID,
    _caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> list[ProjectMemberRead]:
    project_service.get_project_or_404(db, project_id)
    return [
        ProjectMemberRead(
            project_id=head.project_id,
            account_id=head.account_id,
            display_name=display_name,
            assigned_by=head.assigned_by,
            assigned_at=head.assigned_at,
        )
        for head, display_name in project_service.list_heads(db, project_id)
    ]
