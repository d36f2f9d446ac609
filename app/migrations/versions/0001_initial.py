"""Accounts, projects and timesheet entries

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-12 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

app_role = postgresql.ENUM(
    "user",
    "hod",
    "admin",
    name="app_role",
    create_type=False,
)

timesheet_status = postgresql.ENUM(
    "pending",
    "approved",
    "rejected",
    name="timesheet_status",
    create_type=False,
)


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    bind = op.get_bind()
    app_role.create(bind, checkfirst=True)
    timesheet_status.create(bind, checkfirst=True)

    op.create_table(
        "accounts",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("employee_id", sa.String(length=64), nullable=True),
        sa.Column("avatar_url", sa.String(length=1024), nullable=True),
        sa.Column("department", sa.String(length=255), nullable=True),
        sa.Column("password_changed_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_accounts_email", "accounts", ["email"], unique=True)
    op.create_index("ix_accounts_employee_id", "accounts", ["employee_id"], unique=False)
    op.create_index("ix_accounts_department", "accounts", ["department"], unique=False)

    op.create_table(
        "account_roles",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("account_id", sa.Uuid(), nullable=False),
        sa.Column("role", app_role, nullable=False, server_default=sa.text("'user'")),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("account_id", name="uq_account_roles_account_id"),
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("name", name="uq_projects_name"),
    )

    for table_name in ("project_assignments", "project_heads"):
        op.create_table(
            table_name,
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("project_id", sa.Uuid(), nullable=False),
            sa.Column("account_id", sa.Uuid(), nullable=False),
            sa.Column("assigned_by", sa.Uuid(), nullable=True),
            _timestamp("assigned_at"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["assigned_by"], ["accounts.id"], ondelete="SET NULL"),
            sa.UniqueConstraint("project_id", "account_id", name=f"uq_{table_name}_project_account"),
        )
        op.create_index(f"ix_{table_name}_project_id", table_name, ["project_id"], unique=False)
        op.create_index(f"ix_{table_name}_account_id", table_name, ["account_id"], unique=False)

    op.create_table(
        "timesheet_entries",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("account_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("employee_id", sa.String(length=64), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column("hours", sa.Numeric(5, 2), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "status",
            timesheet_status,
            nullable=False,
            server_default=sa.text("'pending'"),
        ),
        sa.Column("reviewed_by", sa.Uuid(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["reviewed_by"], ["accounts.id"], ondelete="SET NULL"),
        sa.CheckConstraint("hours > 0 AND hours <= 24", name="ck_timesheet_entries_hours_range"),
        sa.CheckConstraint("end_date >= start_date", name="ck_timesheet_entries_date_order"),
    )
    op.create_index("ix_timesheet_entries_account_id", "timesheet_entries", ["account_id"], unique=False)
    op.create_index("ix_timesheet_entries_project_id", "timesheet_entries", ["project_id"], unique=False)
    op.create_index("ix_timesheet_entries_start_date", "timesheet_entries", ["start_date"], unique=False)
    op.create_index("ix_timesheet_entries_status", "timesheet_entries", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_timesheet_entries_status", table_name="timesheet_entries")
    op.drop_index("ix_timesheet_entries_start_date", table_name="timesheet_entries")
    op.drop_index("ix_timesheet_entries_project_id", table_name="timesheet_entries")
    op.drop_index("ix_timesheet_entries_account_id", table_name="timesheet_entries")
    op.drop_table("timesheet_entries")

    for table_name in ("project_heads", "project_assignments"):
        op.drop_index(f"ix_{table_name}_account_id", table_name=table_name)
        op.drop_index(f"ix_{table_name}_project_id", table_name=table_name)
        op.drop_table(table_name)

    op.drop_table("projects")
    op.drop_table("account_roles")
    op.drop_index("ix_accounts_department", table_name="accounts")
    op.drop_index("ix_accounts_employee_id", table_name="accounts")
    op.drop_index("ix_accounts_email", table_name="accounts")
    op.drop_table("accounts")

    bind = op.get_bind()
    timesheet_status.drop(bind, checkfirst=True)
    app_role.drop(bind, checkfirst=True)
