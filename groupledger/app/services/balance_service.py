"""
services/balance_service.py — Balance aggregation over a group snapshot.

This file is the SINGLE SOURCE OF TRUTH for how balances are computed.
Do not re-derive balances anywhere else.

Reads and math are separated:
  - load_group_snapshot() reads the group, its current members and its
    whole expense history (with split lines) once.
  - compute_balances() is a pure fold over that snapshot. Calling it twice
    on the same snapshot gives identical results, and it is safe to run
    concurrently with anything that only reads.

Per tracked user:
    total_paid = sum of amounts of expenses they paid
    total_owed = sum of split lines attributed to them
    balance    = total_paid - total_owed

Every paid amount is fully distributed across its split lines, so the sum
of balances is zero within 0.01. get_balance_response() asserts this before
answering; a violation means corrupt data and surfaces as a 500.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.group_expense import GroupExpense
from groupledger.app.models.user import User
from groupledger.app.services import group_service, settlement_service
from groupledger.app.services.split_service import MONEY_TOLERANCE, money


@dataclass(frozen=True)
class GroupSnapshot:
    """One consistent read of everything the balance fold needs."""
    group_id: int
    member_ids: list[int]
    expenses: list = field(default_factory=list)  # GroupExpense, splits loaded


# ── Data access ────────────────────────────────────────────────────────────

def load_group_snapshot(group_id: int, caller_id: int, session: Session) -> GroupSnapshot:
    """
    Reads the group once for balance purposes.

    The expense query loads split lines in the same round-trip set, and a
    GroupExpense is only ever committed together with its lines, so the
    snapshot never contains a half-written expense.

    Raises:
        AppError(GROUP_NOT_FOUND, 404) — missing, inactive, or caller not a member.
    """
    group_service.get_visible_group(group_id, caller_id, session)
    member_ids = group_service.get_member_ids(group_id, session)

    stmt = (
        select(GroupExpense)
        .where(GroupExpense.group_id == group_id)
        .options(selectinload(GroupExpense.splits))
        .order_by(GroupExpense.id.asc())
    )
    expenses = list(session.execute(stmt).scalars().all())

    return GroupSnapshot(group_id=group_id, member_ids=member_ids, expenses=expenses)


# ── Core algorithm ─────────────────────────────────────────────────────────

def _zero() -> dict:
    return {
        "total_paid": Decimal("0"),
        "total_owed": Decimal("0"),
        "balance": Decimal("0"),
    }


def compute_balances(snapshot: GroupSnapshot) -> dict[int, dict]:
    """
    Returns {user_id: {"total_paid", "total_owed", "balance"}} (Decimals).

    Current members are seeded first, in membership order, so each appears
    even with no activity. Users referenced by history but no longer members
    are added on first appearance. This order is the settlement tie-break.
    """
    balances: dict[int, dict] = {uid: _zero() for uid in snapshot.member_ids}

    for expense in snapshot.expenses:
        balances.setdefault(expense.paid_by_user_id, _zero())
        balances[expense.paid_by_user_id]["total_paid"] += expense.amount

        for line in expense.splits:
            balances.setdefault(line.user_id, _zero())
            balances[line.user_id]["total_owed"] += line.amount

    for entry in balances.values():
        entry["balance"] = entry["total_paid"] - entry["total_owed"]

    return balances


def balance_sum(balances: dict[int, dict]) -> Decimal:
    return sum((e["balance"] for e in balances.values()), Decimal("0"))


# ── Response builder ───────────────────────────────────────────────────────

def _user_names(user_ids: list[int], session: Session) -> dict[int, str]:
    if not user_ids:
        return {}
    rows = session.execute(select(User.id, User.name).where(User.id.in_(user_ids))).all()
    return {uid: name for uid, name in rows}


def get_balance_response(group_id: int, caller_id: int, session: Session) -> dict:
    """
    Builds the payload for GET /groups/:id/balance.

    Raises:
        AppError(GROUP_NOT_FOUND, 404) — group not visible to the caller.
        AppError(INTERNAL_ERROR, 500)  — balances do not sum to zero.
    """
    snapshot = load_group_snapshot(group_id, caller_id, session)
    balances = compute_balances(snapshot)

    total = balance_sum(balances)
    if abs(total) > MONEY_TOLERANCE:
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            f"Balance integrity check failed: sum was {total} (expected 0.00). "
            f"Group {group_id} has inconsistent financial data.",
            500,
        )

    settlements = settlement_service.compute_settlements(balances)

    members = set(snapshot.member_ids)
    names = _user_names(list(balances), session)

    def _name(uid: int) -> str:
        return names.get(uid, f"user_{uid}")

    return {
        "group_id": group_id,
        "balances": [
            {
                "user_id": uid,
                "name": _name(uid),
                "is_member": uid in members,
                "total_paid": money(e["total_paid"]),
                "total_owed": money(e["total_owed"]),
                "balance": money(e["balance"]),
            }
            for uid, e in balances.items()
        ],
        "settlements": [
            {
                "from_user_id": s["from_user_id"],
                "from_name": _name(s["from_user_id"]),
                "to_user_id": s["to_user_id"],
                "to_name": _name(s["to_user_id"]),
                "amount": money(s["amount"]),
            }
            for s in settlements
        ],
        "balance_sum": money(total),
    }
