from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from app.errors import not_found
from app.models import Account, Notification
from app.policies import Caller, Operation, Resource, ResourceKind, authorize

logger = logging.getLogger("app.notifications")

TYPE_PROJECT_ASSIGNMENT = "project_assignment"
TYPE_HOD_ASSIGNMENT = "hod_assignment"
TYPE_ROLE_CHANGE = "role_change"
TYPE_TIMESHEET_APPROVED = "timesheet_approved"
TYPE_TIMESHEET_REJECTED = "timesheet_rejected"
TYPE_TIMESHEET_REOPENED = "timesheet_reopened"
TYPE_EMPID_SETUP = "empid_setup"


def build_notification(
    account_id: uuid.UUID,
    *,
    title: str,
    message: str,
    type: str,
    metadata: dict[str, Any] | None = None,
) -> Notification:
    return Notification(
        account_id=account_id,
        title=title,
        message=message,
        type=type,
        is_read=False,
        payload=metadata or {},
    )


def enqueue_notification(
    db: Session,
    account_id: uuid.UUID,
    *,
    title: str,
    message: str,
    type: str,
    metadata: dict[str, Any] | None = None,
) -> Notification:
    """Stage a notification in the caller's transaction; the caller commits."""
    notification = build_notification(
        account_id,
        title=title,
        message=message,
        type=type,
        metadata=metadata,
    )
    db.add(notification)
    return notification


def list_notifications(
    db: Session,
    caller: Caller,
    *,
    unread_only: bool = False,
    limit: int = 50,
) -> list[Notification]:
    stmt = (
        select(Notification)
        .where(Notification.account_id == caller.account_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
    )
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    return list(db.scalars(stmt).all())


def mark_notification_read(db: Session, caller: Caller, notification_id: int) -> Notification:
    notification = db.get(Notification, notification_id)
    # Only the recipient marks a notification read, admins included.
    if notification is None or notification.account_id != caller.account_id:
        raise not_found("Notification not found")
    resource = Resource(kind=ResourceKind.NOTIFICATION, owner_id=notification.account_id)
    if not authorize(caller, resource, Operation.UPDATE):
        raise not_found("Notification not found")

    notification.is_read = True
    db.commit()
    return notification


def mark_all_notifications_read(db: Session, caller: Caller) -> int:
    result = db.execute(
        update(Notification)
        .where(
            Notification.account_id == caller.account_id,
            Notification.is_read.is_(False),
        )
        .values(is_read=True)
    )
    db.commit()
    return int(result.rowcount or 0)


def notify_missing_employee_ids(db: Session) -> tuple[int, int, str]:
    """Notify every account without an employee code, at most once while unread.

    Returns ``(notified, skipped, message)``.
    """
    accounts = db.scalars(
        select(Account).where(
            or_(Account.employee_id.is_(None), func.trim(Account.employee_id) == "")
        )
    ).all()
    candidates = [account for account in accounts if not (account.employee_id or "").strip()]
    logger.info("missing_employee_id_scan", extra={"candidates": len(candidates)})
    if not candidates:
        return 0, 0, "All users have Employee ID configured"

    already_notified = set(
        db.scalars(
            select(Notification.account_id).where(
                Notification.type == TYPE_EMPID_SETUP,
                Notification.is_read.is_(False),
            )
        ).all()
    )
    to_notify = [account for account in candidates if account.id not in already_notified]
    if not to_notify:
        return 0, 0, "All applicable users already have pending notifications"

    db.add_all(
        [
            build_notification(
                account.id,
                title="Employee ID Required",
                message="Please setup your Employee ID to complete your profile.",
                type=TYPE_EMPID_SETUP,
                metadata={"action": "setup_empid"},
            )
            for account in to_notify
        ]
    )
    db.commit()

    notified = len(to_notify)
    logger.info("missing_employee_id_notified", extra={"notified": notified})
    return notified, len(candidates) - notified, f"Notifications sent to {notified} users"
