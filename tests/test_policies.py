from __future__ import annotations

import unittest
import uuid

from sqlalchemy.sql.elements import True_

from app.models import AppRole
from app.policies import (
    Caller,
    Operation,
    Resource,
    ResourceKind,
    authorize,
    can_review,
    visible_entries_clause,
)

OWNER_ID = uuid.uuid4()
OTHER_ID = uuid.uuid4()
PROJECT_ID = uuid.uuid4()
OTHER_PROJECT_ID = uuid.uuid4()


def _entry(owner_id: uuid.UUID = OWNER_ID, project_id: uuid.UUID = PROJECT_ID) -> Resource:
    return Resource(kind=ResourceKind.TIMESHEET_ENTRY, owner_id=owner_id, project_id=project_id)


class EntryPolicyTests(unittest.TestCase):
    def test_owner_has_full_access_to_own_entries(self) -> None:
        owner = Caller(account_id=OWNER_ID)
        for operation in Operation:
            self.assertTrue(authorize(owner, _entry(), operation), operation)

    def test_other_user_cannot_see_or_touch_entry(self) -> None:
        stranger = Caller(account_id=OTHER_ID)
        for operation in Operation:
            self.assertFalse(authorize(stranger, _entry(), operation), operation)

    def test_head_reads_and_updates_only_within_headed_project(self) -> None:
        head = Caller(account_id=OTHER_ID, role=AppRole.HOD, head_project_ids=frozenset({PROJECT_ID}))

        self.assertTrue(authorize(head, _entry(), Operation.READ))
        self.assertTrue(authorize(head, _entry(), Operation.UPDATE))
        self.assertFalse(authorize(head, _entry(), Operation.DELETE))
        self.assertFalse(authorize(head, _entry(project_id=OTHER_PROJECT_ID), Operation.READ))

    def test_hod_role_without_head_row_grants_nothing(self) -> None:
        hod = Caller(account_id=OTHER_ID, role=AppRole.HOD)
        self.assertFalse(authorize(hod, _entry(), Operation.READ))
        self.assertFalse(can_review(hod, PROJECT_ID))

    def test_admin_is_allowed_everything(self) -> None:
        admin = Caller(account_id=OTHER_ID, role=AppRole.ADMIN)
        for kind in ResourceKind:
            for operation in Operation:
                self.assertTrue(authorize(admin, Resource(kind=kind, owner_id=OWNER_ID), operation))


class ReferenceTablePolicyTests(unittest.TestCase):
    def test_public_reads(self) -> None:
        user = Caller(account_id=OTHER_ID)
        for kind in (ResourceKind.ACCOUNT, ResourceKind.PROJECT, ResourceKind.PROJECT_HEAD):
            self.assertTrue(authorize(user, Resource(kind=kind, owner_id=OWNER_ID), Operation.READ))

    def test_only_admin_writes_projects_heads_and_assignments(self) -> None:
        user = Caller(account_id=OWNER_ID)
        for kind in (ResourceKind.PROJECT, ResourceKind.PROJECT_HEAD, ResourceKind.PROJECT_ASSIGNMENT):
            resource = Resource(kind=kind, owner_id=OWNER_ID)
            for operation in (Operation.INSERT, Operation.UPDATE, Operation.DELETE):
                self.assertFalse(authorize(user, resource, operation), (kind, operation))

    def test_user_reads_own_role_but_never_writes_it(self) -> None:
        user = Caller(account_id=OWNER_ID)
        own_role = Resource(kind=ResourceKind.ROLE, owner_id=OWNER_ID)

        self.assertTrue(authorize(user, own_role, Operation.READ))
        self.assertFalse(authorize(user, own_role, Operation.UPDATE))
        self.assertFalse(authorize(user, own_role, Operation.INSERT))
        self.assertFalse(authorize(user, Resource(kind=ResourceKind.ROLE, owner_id=OTHER_ID), Operation.READ))

    def test_user_updates_own_account_only(self) -> None:
        user = Caller(account_id=OWNER_ID)
        self.assertTrue(authorize(user, Resource(kind=ResourceKind.ACCOUNT, owner_id=OWNER_ID), Operation.UPDATE))
        self.assertFalse(authorize(user, Resource(kind=ResourceKind.ACCOUNT, owner_id=OTHER_ID), Operation.UPDATE))
        self.assertFalse(authorize(user, Resource(kind=ResourceKind.ACCOUNT, owner_id=OWNER_ID), Operation.DELETE))

    def test_notifications_are_private(self) -> None:
        user = Caller(account_id=OWNER_ID)
        mine = Resource(kind=ResourceKind.NOTIFICATION, owner_id=OWNER_ID)
        theirs = Resource(kind=ResourceKind.NOTIFICATION, owner_id=OTHER_ID)

        self.assertTrue(authorize(user, mine, Operation.UPDATE))
        self.assertFalse(authorize(user, mine, Operation.DELETE))
        self.assertFalse(authorize(user, theirs, Operation.READ))


class VisibleEntriesClauseTests(unittest.TestCase):
    def test_admin_sees_all_rows(self) -> None:
        clause = visible_entries_clause(Caller(account_id=OWNER_ID, role=AppRole.ADMIN))
        self.assertIsInstance(clause, True_)

    def test_user_clause_filters_by_owner(self) -> None:
        clause = str(visible_entries_clause(Caller(account_id=OWNER_ID)))
        self.assertIn("timesheet_entries.account_id", clause)
        self.assertNotIn("timesheet_entries.project_id", clause)

    def test_head_clause_includes_headed_projects(self) -> None:
        head = Caller(account_id=OWNER_ID, role=AppRole.HOD, head_project_ids=frozenset({PROJECT_ID}))
        clause = str(visible_entries_clause(head))
        self.assertIn("timesheet_entries.account_id", clause)
        self.assertIn("timesheet_entries.project_id IN", clause)


if __name__ == "__main__":
    unittest.main()
