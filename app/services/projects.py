from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import bad_request, not_found
from app.models import Account, Project, ProjectAssignment, ProjectHead
from app.policies import Caller
from app.schemas import ProjectCreate, ProjectUpdate
from app.services.notifications import (
    TYPE_HOD_ASSIGNMENT,
    TYPE_PROJECT_ASSIGNMENT,
    enqueue_notification,
)

logger = logging.getLogger("app.projects")


def get_project_or_404(db: Session, project_id: uuid.UUID) -> Project:
    project = db.get(Project, project_id)
    if project is None:
        raise not_found("Project not found")
    return project


def get_active_project_by_name(db: Session, name: str) -> Project:
    normalized = (name or "").strip()
    if not normalized:
        raise bad_request("Project is required")
    project = db.scalar(select(Project).where(Project.name == normalized))
    if project is None or not project.is_active:
        raise bad_request(f'Project "{normalized}" does not exist or is inactive')
    return project


def list_projects(db: Session, *, include_inactive: bool = False) -> list[Project]:
    stmt = select(Project).order_by(Project.name.asc())
    if not include_inactive:
        stmt = stmt.where(Project.is_active.is_(True))
    return list(db.scalars(stmt).all())


def list_assigned_projects(db: Session, caller: Caller) -> list[Project]:
    if caller.is_admin:
        return list_projects(db)
    stmt = (
        select(Project)
        .join(ProjectAssignment, ProjectAssignment.project_id == Project.id)
        .where(
            ProjectAssignment.account_id == caller.account_id,
            Project.is_active.is_(True),
        )
        .order_by(Project.name.asc())
    )
    return list(db.scalars(stmt).all())


def _ensure_unique_name(db: Session, name: str, *, exclude_id: uuid.UUID | None = None) -> None:
    stmt = select(Project.id).where(Project.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Project.id != exclude_id)
    if db.scalar(stmt) is not None:
        raise bad_request("Project name already exists", code="DUPLICATE_PROJECT")


def create_project(db: Session, payload: ProjectCreate) -> Project:
    name = payload.name.strip()
    if not name:
        raise bad_request("Project name cannot be empty")
    _ensure_unique_name(db, name)

    project = Project(
        id=uuid.uuid4(),
        name=name,
        description=(payload.description or "").strip() or None,
        is_active=payload.is_active,
    )
    db.add(project)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise bad_request("Project name already exists", code="DUPLICATE_PROJECT") from exc
    db.refresh(project)
    return project


def update_project(db: Session, project_id: uuid.UUID, payload: ProjectUpdate) -> Project:
    project = get_project_or_404(db, project_id)
    fields = payload.model_fields_set

    if "name" in fields and payload.name is not None:
        name = payload.name.strip()
        if not name:
            raise bad_request("Project name cannot be empty")
        _ensure_unique_name(db, name, exclude_id=project.id)
        project.name = name
    if "description" in fields:
        project.description = (payload.description or "").strip() or None
    if "is_active" in fields and payload.is_active is not None:
        project.is_active = payload.is_active

    db.commit()
    db.refresh(project)
    return project


def _require_account(db: Session, account_id: uuid.UUID) -> Account:
    account = db.get(Account, account_id)
    if account is None:
        raise not_found("User not found")
    return account


def add_assignment(db: Session, caller: Caller, project_id: uuid.UUID, account_id: uuid.UUID) -> ProjectAssignment:
    project = get_project_or_404(db, project_id)
    _require_account(db, account_id)

    existing = db.scalar(
        select(ProjectAssignment).where(
            ProjectAssignment.project_id == project.id,
            ProjectAssignment.account_id == account_id,
        )
    )
    if existing is not None:
        raise bad_request("User is already assigned to this project", code="DUPLICATE_ASSIGNMENT")

    assignment = ProjectAssignment(
        project_id=project.id,
        account_id=account_id,
        assigned_by=caller.account_id,
    )
    db.add(assignment)
    enqueue_notification(
        db,
        account_id,
        title="Project Assignment",
        message=f'You have been assigned to project "{project.name}"',
        type=TYPE_PROJECT_ASSIGNMENT,
        metadata={"project_id": str(project.id), "project_name": project.name},
    )
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise bad_request("User is already assigned to this project", code="DUPLICATE_ASSIGNMENT") from exc
    return assignment


def remove_assignment(db: Session, project_id: uuid.UUID, account_id: uuid.UUID) -> None:
    assignment = db.scalar(
        select(ProjectAssignment).where(
            ProjectAssignment.project_id == project_id,
            ProjectAssignment.account_id == account_id,
        )
    )
    if assignment is None:
        raise not_found("Assignment not found")
    db.delete(assignment)
    db.commit()


def list_heads(db: Session, project_id: uuid.UUID) -> list[tuple[ProjectHead, str | None]]:
    rows = db.execute(
        select(ProjectHead, Account.display_name)
        .join(Account, Account.id == ProjectHead.account_id)
        .where(ProjectHead.project_id == project_id)
        .order_by(ProjectHead.assigned_at.asc())
    ).all()
    return [(row[0], row[1]) for row in rows]


def _notify_head(db: Session, project: Project, account_id: uuid.UUID) -> None:
    enqueue_notification(
        db,
        account_id,
        title="Head of Department Assignment",
        message=(
            f'You have been assigned as Head of Department for project "{project.name}". '
            "You can now approve/reject timesheets for this project."
        ),
        type=TYPE_HOD_ASSIGNMENT,
        metadata={"project_id": str(project.id), "project_name": project.name},
    )


def add_head(db: Session, caller: Caller, project_id: uuid.UUID, account_id: uuid.UUID) -> ProjectHead:
    project = get_project_or_404(db, project_id)
    _require_account(db, account_id)

    existing = db.scalar(
        select(ProjectHead).where(
            ProjectHead.project_id == project.id,
            ProjectHead.account_id == account_id,
        )
    )
    if existing is not None:
        raise bad_request("User is already Head of Department for this project", code="DUPLICATE_HEAD")

    head = ProjectHead(project_id=project.id, account_id=account_id, assigned_by=caller.account_id)
    db.add(head)
    _notify_head(db, project, account_id)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise bad_request("User is already Head of Department for this project", code="DUPLICATE_HEAD") from exc
    return head


def remove_head(db: Session, project_id: uuid.UUID, account_id: uuid.UUID) -> None:
    head = db.scalar(
        select(ProjectHead).where(
            ProjectHead.project_id == project_id,
            ProjectHead.account_id == account_id,
        )
    )
    if head is None:
        raise not_found("Head of Department assignment not found")
    db.delete(head)
    db.commit()


def replace_heads(
    db: Session,
    caller: Caller,
    project_id: uuid.UUID,
    account_ids: list[uuid.UUID],
) -> list[ProjectHead]:
    """Set the project's heads to exactly ``account_ids`` in one transaction."""
    project = get_project_or_404(db, project_id)
    wanted = list(dict.fromkeys(account_ids))
    for account_id in wanted:
        _require_account(db, account_id)

    current = list(db.scalars(select(ProjectHead).where(ProjectHead.project_id == project.id)).all())
    current_ids = {head.account_id for head in current}

    kept: list[ProjectHead] = []
    for head in current:
        if head.account_id in wanted:
            kept.append(head)
        else:
            db.delete(head)

    added: list[ProjectHead] = []
    for account_id in wanted:
        if account_id in current_ids:
            continue
        head = ProjectHead(project_id=project.id, account_id=account_id, assigned_by=caller.account_id)
        db.add(head)
        _notify_head(db, project, account_id)
        added.append(head)

    db.commit()
    logger.info(
        "project_heads_replaced",
        extra={
            "project_id": str(project.id),
            "added": len(added),
            "removed": len(current) - len(kept),
        },
    )
    return kept + added
