"""
models/group.py — Group table definition.

No business logic. No imports from services or routes.

Key design points:
  - `total_expense` is a running total maintained by the ledger writer.
    It must equal the sum of group_expenses.amount for the group at all times;
    both are written in the same transaction.
  - `is_active` is the soft-delete flag. An inactive group keeps every row
    (members, expenses, ledger entries) but is invisible to member-scoped
    queries.
  - Expenses live in their own append-only table keyed by group_id rather
    than inside the group row, so a busy group never grows a single record.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    func,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db


class Group(db.Model):
    # 'groups' is a reserved word in some SQL dialects; SQLAlchemy quotes it.
    __tablename__ = "groups"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_groups_name_nonempty",
        ),
        CheckConstraint(
            "total_expense >= 0",
            name="ck_groups_total_expense_nonnegative",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    # Immutable. ON DELETE RESTRICT — a creator cannot be deleted while
    # their groups exist.
    created_by_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    total_expense: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0.00"),
        server_default="0",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=true(),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    creator: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[created_by_user_id],
    )

    # Insertion order is the canonical member order (admin promotion and
    # the settlement tie-break both rely on it).
    memberships: Mapped[list["Membership"]] = relationship(  # noqa: F821
        "Membership",
        back_populates="group",
        order_by="Membership.id",
    )

    expenses: Mapped[list["GroupExpense"]] = relationship(  # noqa: F821
        "GroupExpense",
        back_populates="group",
        order_by="GroupExpense.id",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Group id={self.id} name={self.name!r} "
            f"active={self.is_active}>"
        )
