"""
models/group_expense.py — GroupExpense table definition.

No business logic. No imports from services or routes.

Key design points:
  - Append-only. Rows are written once by ledger_service.add_group_expense()
    and never updated or deleted through the API.
  - `amount` uses Numeric(12, 2) — never Float.
  - Indexed by (group_id, id) so the expense list pages efficiently and the
    balance fold can read one group's history with a single range scan.
  - SplitMode is a Python enum so it can be imported by schemas and services
    without repeating string literals.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db
from groupledger.app.models.membership import _enum_values


class SplitMode(str, enum.Enum):
    EQUAL  = "equal"
    CUSTOM = "custom"


class GroupExpense(db.Model):
    __tablename__ = "group_expenses"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_group_expenses_amount_positive"),
        CheckConstraint(
            "LENGTH(TRIM(description)) > 0",
            name="ck_group_expenses_description_nonempty",
        ),
        Index("idx_group_expenses_group_id_id", "group_id", "id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Always the member who recorded the expense.
    paid_by_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    split_mode: Mapped[SplitMode] = mapped_column(
        Enum(
            SplitMode,
            name="split_mode_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="expenses",
    )

    payer: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[paid_by_user_id],
    )

    # Split lines are owned by their expense and loaded together with it.
    splits: Mapped[list["SplitLine"]] = relationship(  # noqa: F821
        "SplitLine",
        back_populates="expense",
        order_by="SplitLine.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<GroupExpense id={self.id} "
            f"group_id={self.group_id} "
            f"amount={self.amount}>"
        )
