"""Initial schema — all tables, enums, constraints, and indexes.

Revision: 001_initial_schema
Created:  2026-10-19

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  1. Tables in FK dependency order (users → groups → memberships →
     group_expenses → split_lines → ledger_entries). PostgreSQL enum types
     are created by the first table that references them.
  2. Indexes

ON DELETE policies:
  split_lines.group_expense_id  → CASCADE   (lines owned by their expense)
  everything else               → RESTRICT  (financial history is never
                                             removed by a parent delete)
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


member_role_enum = sa.Enum("admin", "member", name="member_role_enum")
split_mode_enum = sa.Enum("equal", "custom", name="split_mode_enum")
category_enum = sa.Enum(
    "food",
    "travel",
    "education",
    "entertainment",
    "utilities",
    "shopping",
    "health",
    "others",
    name="category_enum",
)


def upgrade() -> None:

    # ── users ──────────────────────────────────────────────────────────────
    # Provisioned by the identity service; read-only for the ledger.

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_users_name_nonempty"),
        sa.CheckConstraint("email LIKE '%@%'", name="ck_users_email_format"),
    )

    # ── groups ─────────────────────────────────────────────────────────────
    # total_expense is the running sum of group_expenses.amount.

    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column(
            "created_by_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_groups_created_by"),
            nullable=False,
        ),
        sa.Column(
            "total_expense",
            sa.Numeric(14, 2),
            nullable=False,
            server_default="0",
        ),
        sa.Column(
            "is_active",
            sa.Boolean(),
            nullable=False,
            server_default=sa.true(),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_groups"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_groups_name_nonempty"),
        sa.CheckConstraint("total_expense >= 0", name="ck_groups_total_expense_nonnegative"),
    )

    # ── memberships ────────────────────────────────────────────────────────

    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_memberships_user"),
            nullable=False,
        ),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_memberships_group"),
            nullable=False,
        ),
        sa.Column(
            "role",
            member_role_enum,
            nullable=False,
            server_default="member",
        ),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_memberships"),
        sa.UniqueConstraint("group_id", "user_id", name="uq_memberships_group_user"),
    )
    op.create_index("ix_memberships_user_id", "memberships", ["user_id"])
    op.create_index("ix_memberships_group_id", "memberships", ["group_id"])

    # ── group_expenses ─────────────────────────────────────────────────────
    # Append-only child table of groups.

    op.create_table(
        "group_expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_group_expenses_group"),
            nullable=False,
        ),
        sa.Column(
            "paid_by_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_group_expenses_payer"),
            nullable=False,
        ),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("split_mode", split_mode_enum, nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_group_expenses"),
        sa.CheckConstraint("amount > 0", name="ck_group_expenses_amount_positive"),
        sa.CheckConstraint(
            "LENGTH(TRIM(description)) > 0",
            name="ck_group_expenses_description_nonempty",
        ),
    )
    op.create_index(
        "idx_group_expenses_group_id_id",
        "group_expenses",
        ["group_id", "id"],
    )

    # ── split_lines ────────────────────────────────────────────────────────
    # Numeric(38, 18) holds the un-redistributed equal-split quotient.

    op.create_table(
        "split_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_expense_id",
            sa.Integer(),
            sa.ForeignKey(
                "group_expenses.id",
                ondelete="CASCADE",
                name="fk_split_lines_expense",
            ),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_split_lines_user"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(38, 18), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_split_lines"),
        sa.UniqueConstraint(
            "group_expense_id", "user_id",
            name="uq_split_lines_expense_user",
        ),
        sa.CheckConstraint("amount >= 0", name="ck_split_lines_amount_nonnegative"),
    )
    op.create_index(
        "ix_split_lines_group_expense_id",
        "split_lines",
        ["group_expense_id"],
    )

    # ── ledger_entries ─────────────────────────────────────────────────────

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_ledger_entries_user"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(38, 18), nullable=False),
        sa.Column("description", sa.String(400), nullable=False),
        sa.Column(
            "category",
            category_enum,
            nullable=False,
            server_default="others",
        ),
        sa.Column(
            "is_group_expense",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_ledger_entries_group"),
            nullable=True,
        ),
        sa.Column(
            "group_expense_id",
            sa.Integer(),
            sa.ForeignKey(
                "group_expenses.id",
                ondelete="RESTRICT",
                name="fk_ledger_entries_group_expense",
            ),
            nullable=True,
        ),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_ledger_entries"),
        sa.CheckConstraint("amount >= 0", name="ck_ledger_entries_amount_nonnegative"),
        sa.CheckConstraint(
            "NOT is_group_expense OR "
            "(group_id IS NOT NULL AND group_expense_id IS NOT NULL)",
            name="ck_ledger_entries_group_reference",
        ),
    )
    op.create_index(
        "idx_ledger_entries_user_date",
        "ledger_entries",
        ["user_id", "date"],
    )
    op.create_index("ix_ledger_entries_group_id", "ledger_entries", ["group_id"])
    op.create_index(
        "ix_ledger_entries_group_expense_id",
        "ledger_entries",
        ["group_expense_id"],
    )


def downgrade() -> None:
    """Drops everything in reverse dependency order, then the enum types."""
    op.drop_table("ledger_entries")
    op.drop_table("split_lines")
    op.drop_table("group_expenses")
    op.drop_table("memberships")
    op.drop_table("groups")
    op.drop_table("users")

    bind = op.get_bind()
    category_enum.drop(bind, checkfirst=True)
    split_mode_enum.drop(bind, checkfirst=True)
    member_role_enum.drop(bind, checkfirst=True)
