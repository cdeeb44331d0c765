"""
models/split_line.py — SplitLine table definition.

One row per participant of a group expense.

Key design points:
  - `amount` is Numeric(38, 18). An equal split stores the raw quotient
    (100.00 / 3 = 33.333333333333333333) without redistributing the
    remainder, so the column needs far more scale than the expense amount. Sums are compared to
    the expense amount with a 0.01 tolerance (split_service.MONEY_TOLERANCE).
  - user_id is not constrained to current membership: a member may leave
    after the expense is recorded and the line still counts toward their
    balance.
  - UNIQUE(group_expense_id, user_id) — a user appears at most once per expense.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db


class SplitLine(db.Model):
    __tablename__ = "split_lines"

    __table_args__ = (
        UniqueConstraint(
            "group_expense_id", "user_id",
            name="uq_split_lines_expense_user",
        ),
        CheckConstraint("amount >= 0", name="ck_split_lines_amount_nonnegative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_expense_id: Mapped[int] = mapped_column(
        ForeignKey("group_expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 18),
        nullable=False,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    expense: Mapped["GroupExpense"] = relationship(  # noqa: F821
        "GroupExpense",
        back_populates="splits",
    )

    user: Mapped["User"] = relationship("User")  # noqa: F821

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<SplitLine id={self.id} "
            f"group_expense_id={self.group_expense_id} "
            f"user_id={self.user_id} "
            f"amount={self.amount}>"
        )
