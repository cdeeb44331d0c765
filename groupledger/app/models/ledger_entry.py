"""
models/ledger_entry.py — LedgerEntry table definition.

A ledger entry is a member's personal expense record. Entries materialized
from a group expense carry is_group_expense=True, the originating group_id
and group_expense_id, and category 'others'. They are created once, in the
same transaction as the group expense, and never modified afterwards.

No business logic. No imports from services or routes.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db
from groupledger.app.models.membership import _enum_values


class Category(str, enum.Enum):
    FOOD          = "food"
    TRAVEL        = "travel"
    EDUCATION     = "education"
    ENTERTAINMENT = "entertainment"
    UTILITIES     = "utilities"
    SHOPPING      = "shopping"
    HEALTH        = "health"
    OTHERS        = "others"


class LedgerEntry(db.Model):
    __tablename__ = "ledger_entries"

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_ledger_entries_amount_nonnegative"),
        # A group entry must point back at its group and expense.
        CheckConstraint(
            "NOT is_group_expense OR "
            "(group_id IS NOT NULL AND group_expense_id IS NOT NULL)",
            name="ck_ledger_entries_group_reference",
        ),
        Index("idx_ledger_entries_user_date", "user_id", "date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 18),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        String(400),
        nullable=False,
    )

    category: Mapped[Category] = mapped_column(
        Enum(
            Category,
            name="category_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=Category.OTHERS,
        server_default=Category.OTHERS.value,
    )

    is_group_expense: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    group_id: Mapped[int | None] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    group_expense_id: Mapped[int | None] = mapped_column(
        ForeignKey("group_expenses.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="ledger_entries",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<LedgerEntry id={self.id} "
            f"user_id={self.user_id} "
            f"amount={self.amount} "
            f"group_id={self.group_id}>"
        )
