"""Account identities: registration, credentials and sign-in.

Registration mirrors what a hosted identity provider's signup hook does: the
account row is created from the signup metadata only, and every new account
starts with the ``user`` role.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import Account, AccountRole, AppRole
from app.security import hash_password, verify_password


class IdentityError(Exception):
    pass


def normalize_email(email: str) -> str:
    normalized = (email or "").strip().lower()
    local, sep, domain = normalized.partition("@")
    if not sep or not local or not domain:
        raise IdentityError("Invalid email address")
    return normalized


def register_account(
    db: Session,
    *,
    email: str,
    password: str,
    metadata: dict[str, Any] | None = None,
) -> Account:
    normalized_email = normalize_email(email)
    existing = db.scalar(select(Account.id).where(Account.email == normalized_email))
    if existing is not None:
        raise IdentityError("A user with this email address has already been registered")

    metadata = metadata or {}
    display_name = (
        (metadata.get("first_name") or "").strip()
        or (metadata.get("display_name") or "").strip()
        or normalized_email.split("@", 1)[0]
    )
    employee_id = (metadata.get("employee_id") or "").strip() or None

    account = Account(
        id=uuid.uuid4(),
        email=normalized_email,
        password_hash=hash_password(password),
        display_name=display_name,
        employee_id=employee_id,
    )
    account.role = AccountRole(role=AppRole.USER)
    db.add(account)
    db.flush()
    return account


def set_password(account: Account, password: str) -> None:
    account.password_hash = hash_password(password)


def authenticate(db: Session, *, email: str, password: str) -> Account | None:
    try:
        normalized_email = normalize_email(email)
    except IdentityError:
        return None
    account = db.scalar(select(Account).where(Account.email == normalized_email))
    if account is None or not verify_password(password, account.password_hash):
        return None
    return account
