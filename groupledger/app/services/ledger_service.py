"""
services/ledger_service.py — Ledger writer and expense reads.

add_group_expense() is the only operation that records money. In one
transaction (transaction.atomic) it:

  1. locks the group row and re-reads the member list under the lock
  2. computes the split lines (split_service)
  3. appends the GroupExpense and its SplitLines (paid_by = caller, date = now)
  4. increments groups.total_expense by the amount
  5. bulk-inserts one LedgerEntry per split line

and commits. Any failure rolls all of it back: the group total, the expense,
its split lines and the ledger entries are either all written or none are.
Concurrent writers to the same group serialize on the row lock; writers to
different groups do not block each other.

This is the one service that owns its commit. Everything else flushes and
leaves the commit to the route.

No notifications are sent from here. Alerting runs in the caller after a
successful write.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, insert, select
from sqlalchemy.orm import Session, selectinload

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.group import Group
from groupledger.app.models.group_expense import GroupExpense, SplitMode
from groupledger.app.models.ledger_entry import Category, LedgerEntry
from groupledger.app.models.split_line import SplitLine
from groupledger.app.services import group_service, split_service
from groupledger.app.services.split_service import money
from groupledger.app.transaction import atomic

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _validate_expense_input(description, amount) -> tuple[str, Decimal]:
    if not isinstance(description, str) or not description.strip():
        raise AppError(
            ErrorCode.INVALID_INPUT,
            "Description is required.",
            400,
            field="description",
        )

    total = split_service.to_decimal(amount, "amount")
    if total <= 0:
        raise AppError(
            ErrorCode.INVALID_INPUT,
            "Amount must be greater than zero.",
            400,
            field="amount",
        )
    if total > split_service.MAX_EXPENSE_AMOUNT:
        raise AppError(
            ErrorCode.INVALID_INPUT,
            f"Amount must not exceed {split_service.MAX_EXPENSE_AMOUNT}.",
            400,
            field="amount",
        )
    if total.as_tuple().exponent < -2:
        raise AppError(
            ErrorCode.INVALID_AMOUNT_PRECISION,
            "Amount must have at most 2 decimal places.",
            400,
            field="amount",
        )
    return description.strip(), total


def _ledger_description(description: str, group: Group) -> str:
    return f"{description} (Group: {group.name})"


def _materialize_ledger_entries(
        group: Group,
        expense: GroupExpense,
        lines: list[dict],
        session: Session,
) -> None:
    """Bulk-inserts one immutable LedgerEntry per split line."""
    description = _ledger_description(expense.description, group)
    session.execute(
        insert(LedgerEntry),
        [
            {
                "user_id": line["user_id"],
                "amount": line["amount"],
                "description": description,
                "category": Category.OTHERS,
                "is_group_expense": True,
                "group_id": group.id,
                "group_expense_id": expense.id,
                "date": expense.date,
            }
            for line in lines
        ],
    )


# ── Serialization ──────────────────────────────────────────────────────────

def serialize_expense(expense: GroupExpense) -> dict:
    """Converts a GroupExpense (with splits loaded) to a plain dict."""
    return {
        "id": expense.id,
        "group_id": expense.group_id,
        "description": expense.description,
        "amount": money(expense.amount),
        "split_type": expense.split_mode.value,
        "paid_by_user_id": expense.paid_by_user_id,
        "paid_by_name": expense.payer.name,
        "date": expense.date.isoformat(),
        "split_among": [
            {
                "user_id": s.user_id,
                "name": s.user.name,
                "amount": money(s.amount),
            }
            for s in expense.splits
        ],
    }


def serialize_ledger_entry(entry: LedgerEntry) -> dict:
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "amount": money(entry.amount),
        "description": entry.description,
        "category": entry.category.value,
        "is_group_expense": entry.is_group_expense,
        "group_id": entry.group_id,
        "group_expense_id": entry.group_expense_id,
        "date": entry.date.isoformat(),
    }


# ── Public service functions ───────────────────────────────────────────────

def add_group_expense(
        group_id: int,
        caller_id: int,
        description: str,
        amount,
        mode: SplitMode | str,
        session: Session,
        custom_lines: list[dict] | None = None,
) -> tuple[Group, GroupExpense]:
    """
    Records a shared expense paid by the caller and commits it.

    Raises:
        AppError(GROUP_NOT_FOUND, 404)        — missing, inactive, or caller not a member
        AppError(INVALID_INPUT, 400)          — blank description, amount <= 0, bad lines
        AppError(INVALID_INPUT, 400)          — amount or new group total too large
        AppError(INVALID_SPLIT, 422)          — custom lines do not sum to amount
        AppError(SPLIT_USER_NOT_MEMBER, 422)  — custom line for a non-member
        AppError(PERSISTENCE_FAILURE, 503)    — storage error; nothing was written

    Returns:
        (group, expense) after commit.
    """
    clean_description, total = _validate_expense_input(description, amount)

    with atomic(session, label=f"expense for group {group_id}"):
        group = group_service.get_visible_group(group_id, caller_id, session, lock=True)

        # Read under the lock so a concurrent removal cannot race the split.
        member_ids = group_service.get_member_ids(group_id, session)
        lines = split_service.compute_split(total, mode, member_ids, custom_lines)

        if group.total_expense + total > split_service.MAX_GROUP_TOTAL:
            raise AppError(
                ErrorCode.INVALID_INPUT,
                f"This expense would take the group total past "
                f"{split_service.MAX_GROUP_TOTAL}.",
                400,
                field="amount",
            )

        expense = GroupExpense(
            group_id=group.id,
            paid_by_user_id=caller_id,
            description=clean_description,
            amount=total,
            split_mode=SplitMode(mode),
            date=datetime.now(timezone.utc),
            splits=[
                SplitLine(user_id=line["user_id"], amount=line["amount"])
                for line in lines
            ],
        )
        session.add(expense)
        group.total_expense = group.total_expense + total
        group.updated_at = expense.date
        session.flush()

        _materialize_ledger_entries(group, expense, lines, session)

    logger.info(
        "Group %s: expense %s of %s recorded by user %s (%s, %d lines)",
        group_id, expense.id, total, caller_id, expense.split_mode.value, len(lines),
    )
    return group, expense


def list_group_expenses(
        group_id: int,
        caller_id: int,
        session: Session,
        limit: int = 50,
        offset: int = 0,
) -> dict:
    """
    Returns one page of a group's expenses, newest first, with the total.

    `count` is the number of expenses in the group, not on the page.
    """
    group = group_service.get_visible_group(group_id, caller_id, session)

    stmt = (
        select(GroupExpense)
        .where(GroupExpense.group_id == group_id)
        .options(
            selectinload(GroupExpense.splits).selectinload(SplitLine.user),
            selectinload(GroupExpense.payer),
        )
        .order_by(GroupExpense.id.desc())
        .limit(limit)
        .offset(offset)
    )
    expenses = list(session.execute(stmt).scalars().all())

    count = session.execute(
        select(func.count(GroupExpense.id)).where(GroupExpense.group_id == group_id)
    ).scalar_one()

    return {
        "group_id": group_id,
        "total_expense": money(group.total_expense),
        "count": count,
        "limit": limit,
        "offset": offset,
        "expenses": [serialize_expense(e) for e in expenses],
    }


def list_ledger_entries(
        caller_id: int,
        session: Session,
        group_id: int | None = None,
) -> list[dict]:
    """The caller's own ledger entries, newest first, optionally for one group."""
    stmt = select(LedgerEntry).where(LedgerEntry.user_id == caller_id)
    if group_id is not None:
        stmt = stmt.where(LedgerEntry.group_id == group_id)
    stmt = stmt.order_by(LedgerEntry.date.desc(), LedgerEntry.id.desc())

    return [serialize_ledger_entry(e) for e in session.execute(stmt).scalars().all()]
