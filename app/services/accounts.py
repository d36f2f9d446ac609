from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import bad_request, not_found
from app.models import Account, AccountRole, AppRole, Project, ProjectAssignment
from app.policies import Caller
from app.schemas import AccountCreateRequest, ProfileUpdateRequest
from app.services.identity import IdentityError, register_account, set_password
from app.services.notifications import TYPE_ROLE_CHANGE, enqueue_notification
from app.settings import get_settings

logger = logging.getLogger("app.accounts")

ROLE_LABELS = {
    AppRole.ADMIN: "Admin",
    AppRole.HOD: "Head of Department",
    AppRole.USER: "User",
}


def normalize_employee_code(value: str | None) -> str | None:
    normalized = (value or "").strip()
    return normalized or None


def ensure_employee_code_available(
    db: Session,
    employee_code: str,
    *,
    exclude_account_id: uuid.UUID | None = None,
    message: str = "Employee ID is already in use by another user",
) -> None:
    # Exact, case-sensitive match; there is no database constraint behind this.
    stmt = select(Account.id).where(Account.employee_id == employee_code)
    if exclude_account_id is not None:
        stmt = stmt.where(Account.id != exclude_account_id)
    if db.scalar(stmt) is not None:
        raise bad_request(message, code="DUPLICATE_EMPLOYEE_ID")


def validate_password(password: str | None) -> str:
    min_length = get_settings().min_password_length
    if password is None or len(password) < min_length:
        raise bad_request(f"Password must be at least {min_length} characters")
    return password


def get_account_or_404(db: Session, account_id: uuid.UUID) -> Account:
    account = db.get(Account, account_id)
    if account is None:
        raise not_found("User not found")
    return account


def create_account(db: Session, payload: AccountCreateRequest) -> Account:
    first_name = (payload.first_name or "").strip()
    last_name = (payload.last_name or "").strip()
    employee_code = normalize_employee_code(payload.employee_id)
    email = (payload.email or "").strip()
    if not (first_name and last_name and employee_code and email and payload.password):
        raise bad_request("All fields are required")
    password = validate_password(payload.password)

    ensure_employee_code_available(db, employee_code, message="Employee ID already exists")

    try:
        account = register_account(
            db,
            email=email,
            password=password,
            metadata={
                "display_name": first_name,
                "employee_id": employee_code,
                "first_name": first_name,
                "last_name": last_name,
            },
        )
    except IdentityError as exc:
        db.rollback()
        if "already been registered" in str(exc):
            raise bad_request("Email already registered", code="DUPLICATE_EMAIL") from exc
        raise bad_request(str(exc)) from exc

    # Registration only sees signup metadata; write the admin-entered fields
    # onto the account explicitly.
    account.display_name = first_name
    account.employee_id = employee_code

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise bad_request("Email already registered", code="DUPLICATE_EMAIL") from exc

    logger.info("account_created", extra={"account_id": str(account.id)})
    return account


def update_role(db: Session, caller: Caller, user_id: uuid.UUID | None, new_role: str | None) -> AppRole:
    if user_id is None or not new_role:
        raise bad_request("userId and newRole are required")
    try:
        role = AppRole(new_role)
    except ValueError as exc:
        raise bad_request("Invalid role") from exc

    if user_id == caller.account_id and role != AppRole.ADMIN:
        raise bad_request("Cannot change your own admin role")

    account = get_account_or_404(db, user_id)

    # Update the single role row in place so the account is never without one.
    role_row = db.scalar(select(AccountRole).where(AccountRole.account_id == account.id))
    previous_role = role_row.role if role_row is not None else None
    if role_row is None:
        db.add(AccountRole(account_id=account.id, role=role))
    else:
        role_row.role = role

    if previous_role != role:
        enqueue_notification(
            db,
            account.id,
            title="Role Updated",
            message=f"Your role has been changed to {ROLE_LABELS[role]}.",
            type=TYPE_ROLE_CHANGE,
            metadata={"role": role.value, "previous_role": previous_role.value if previous_role else None},
        )
    db.commit()

    logger.info(
        "account_role_updated",
        extra={"account_id": str(account.id), "role": role.value},
    )
    return role


def update_password(db: Session, user_id: uuid.UUID | None, new_password: str | None) -> Account:
    if user_id is None or not new_password:
        raise bad_request("Missing userId or newPassword")
    validate_password(new_password)

    account = db.get(Account, user_id)
    if account is None:
        raise bad_request("User not found")

    set_password(account, new_password)
    account.password_changed_at = datetime.now(timezone.utc)
    db.commit()
    return account


def update_employee_code(db: Session, user_id: uuid.UUID | None, employee_code: str | None) -> Account:
    if user_id is None:
        raise bad_request("userId is required")

    account = get_account_or_404(db, user_id)
    normalized = normalize_employee_code(employee_code)
    if normalized is not None:
        ensure_employee_code_available(db, normalized, exclude_account_id=account.id)

    account.employee_id = normalized
    db.commit()
    return account


def update_own_profile(db: Session, caller: Caller, payload: ProfileUpdateRequest) -> Account:
    account = get_account_or_404(db, caller.account_id)
    fields = payload.model_fields_set

    if "employee_id" in fields:
        normalized = normalize_employee_code(payload.employee_id)
        if normalized is not None:
            ensure_employee_code_available(db, normalized, exclude_account_id=account.id)
        account.employee_id = normalized
    if "display_name" in fields:
        display_name = (payload.display_name or "").strip()
        if not display_name:
            raise bad_request("Display name cannot be empty")
        account.display_name = display_name
    if "department" in fields:
        account.department = (payload.department or "").strip() or None
    if "avatar_url" in fields:
        account.avatar_url = (payload.avatar_url or "").strip() or None

    db.commit()
    return account


def list_accounts(db: Session) -> list[dict[str, Any]]:
    """Build the admin roster from three bulk reads joined in memory."""
    accounts = db.scalars(select(Account).order_by(Account.created_at.desc())).all()
    role_rows = db.execute(select(AccountRole.account_id, AccountRole.role)).all()
    assignment_rows = db.execute(
        select(ProjectAssignment.account_id, Project.name).join(
            Project, Project.id == ProjectAssignment.project_id
        )
    ).all()

    roles_by_account: dict[uuid.UUID, AppRole] = {row[0]: row[1] for row in role_rows}
    projects_by_account: dict[uuid.UUID, list[str]] = defaultdict(list)
    for account_id, project_name in assignment_rows:
        if project_name:
            projects_by_account[account_id].append(project_name)

    return [
        {
            "id": account.id,
            "email": account.email,
            "display_name": account.display_name,
            "employee_id": account.employee_id,
            "department": account.department,
            "password_changed_at": account.password_changed_at,
            "created_at": account.created_at,
            "projects": projects_by_account.get(account.id, []),
            "role": roles_by_account.get(account.id, AppRole.USER),
        }
        for account in accounts
    ]


def delete_account(db: Session, caller: Caller, account_id: uuid.UUID) -> None:
    if account_id == caller.account_id:
        raise bad_request("You cannot delete your own account")
    account = get_account_or_404(db, account_id)
    db.delete(account)
    db.commit()
    logger.info("account_deleted", extra={"account_id": str(account_id)})
