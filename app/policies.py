"""Row-level access rules.

Every read and write in the service goes through :func:`authorize`, a pure
function of the caller, the row being touched and the operation. The rules
mirror what a row-filtering database policy would express: ownership, an
admin override on every table, a head-of-project override limited to
timesheet entries, and public reads for the tables that feed selection
widgets. Anything not explicitly allowed is denied.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field

from sqlalchemy import ColumnElement, or_, true

from app.models import AppRole, TimesheetEntry


class Operation(str, enum.Enum):
    READ = "read"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ResourceKind(str, enum.Enum):
    ACCOUNT = "account"
    ROLE = "role"
    PROJECT = "project"
    PROJECT_ASSIGNMENT = "project_assignment"
    PROJECT_HEAD = "project_head"
    TIMESHEET_ENTRY = "timesheet_entry"
    NOTIFICATION = "notification"
    DRAFT = "draft"


@dataclass(frozen=True, slots=True)
class Caller:
    """Authenticated session for one request.

    Built from the bearer token on every request and passed explicitly into
    services; nothing about the caller is kept in module state.
    """

    account_id: uuid.UUID
    role: AppRole = AppRole.USER
    head_project_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == AppRole.ADMIN

    def heads_project(self, project_id: uuid.UUID | None) -> bool:
        return project_id is not None and project_id in self.head_project_ids


@dataclass(frozen=True, slots=True)
class Resource:
    kind: ResourceKind
    owner_id: uuid.UUID | None = None
    project_id: uuid.UUID | None = None


_PUBLIC_READ = frozenset({ResourceKind.ACCOUNT, ResourceKind.PROJECT, ResourceKind.PROJECT_HEAD})

# Operations the row owner may perform, per table.
_OWNER_OPERATIONS: dict[ResourceKind, frozenset[Operation]] = {
    ResourceKind.TIMESHEET_ENTRY: frozenset(
        {Operation.READ, Operation.INSERT, Operation.UPDATE, Operation.DELETE}
    ),
    ResourceKind.ACCOUNT: frozenset({Operation.READ, Operation.INSERT, Operation.UPDATE}),
    ResourceKind.ROLE: frozenset({Operation.READ}),
    ResourceKind.PROJECT_ASSIGNMENT: frozenset({Operation.READ}),
    ResourceKind.NOTIFICATION: frozenset({Operation.READ, Operation.UPDATE}),
    ResourceKind.DRAFT: frozenset(
        {Operation.READ, Operation.INSERT, Operation.UPDATE, Operation.DELETE}
    ),
}

_HEAD_OPERATIONS = frozenset({Operation.READ, Operation.UPDATE})


def is_owner(caller: Caller, resource: Resource) -> bool:
    return resource.owner_id is not None and resource.owner_id == caller.account_id


def authorize(caller: Caller, resource: Resource, operation: Operation) -> bool:
    if caller.is_admin:
        return True

    if operation == Operation.READ and resource.kind in _PUBLIC_READ:
        return True

    if is_owner(caller, resource) and operation in _OWNER_OPERATIONS.get(resource.kind, frozenset()):
        return True

    if (
        resource.kind == ResourceKind.TIMESHEET_ENTRY
        and operation in _HEAD_OPERATIONS
        and caller.heads_project(resource.project_id)
    ):
        return True

    return False


def entry_resource(entry: TimesheetEntry) -> Resource:
    return Resource(
        kind=ResourceKind.TIMESHEET_ENTRY,
        owner_id=entry.account_id,
        project_id=entry.project_id,
    )


def can_review(caller: Caller, project_id: uuid.UUID | None) -> bool:
    # Owners update their own rows but never approve them.
    return caller.is_admin or caller.heads_project(project_id)


def visible_entries_clause(caller: Caller) -> ColumnElement[bool]:
    if caller.is_admin:
        return true()
    clauses: list[ColumnElement[bool]] = [TimesheetEntry.account_id == caller.account_id]
    if caller.head_project_ids:
        clauses.append(TimesheetEntry.project_id.in_(sorted(caller.head_project_ids)))
    return or_(*clauses)
