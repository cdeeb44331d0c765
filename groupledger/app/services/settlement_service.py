"""
services/settlement_service.py — Greedy settlement solver.

Reduces per-member balances to a list of suggested transfers
{"from_user_id", "to_user_id", "amount"} that bring every balance to zero
(within 0.01). Settlements are derived on demand and never persisted.

Algorithm (deterministic, largest-first):
  1. Debtors have balance < -0.01, creditors balance > 0.01; anyone within
     0.01 of zero is already settled and ignored.
  2. Both lists are sorted by magnitude, largest first. The sort is stable,
     so equal magnitudes keep the order of the input mapping, which the
     balance aggregator builds in membership order followed by former
     members in order of first appearance.
  3. Two cursors walk the lists. Each step moves min(debt, credit) from the
     current debtor to the current creditor, emitted rounded to cents, and
     a cursor advances once its residual drops below 0.01.

At most len(debtors) + len(creditors) - 1 transfers are produced. Greedy
matching does not always find the fewest possible transfers; it is kept for
its determinism.

Pure: no session, no Flask, no I/O.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.services.split_service import MONEY_TOLERANCE

_CENT = Decimal("0.01")


def _contract_violation(message: str) -> AppError:
    # Malformed balances are a programming error, not a user error.
    return AppError(ErrorCode.INTERNAL_ERROR, message, 500)


def _validate_balances(balances: dict[int, dict]) -> None:
    for user_id, entry in balances.items():
        try:
            paid = entry["total_paid"]
            owed = entry["total_owed"]
            net = entry["balance"]
        except (KeyError, TypeError):
            raise _contract_violation(
                f"Balance entry for user {user_id} is missing total_paid, "
                f"total_owed or balance."
            )
        if paid < 0 or owed < 0:
            raise _contract_violation(
                f"Balance entry for user {user_id} has a negative total "
                f"(paid={paid}, owed={owed})."
            )
        if abs((paid - owed) - net) > MONEY_TOLERANCE:
            raise _contract_violation(
                f"Balance entry for user {user_id} is inconsistent: "
                f"{paid} - {owed} != {net}."
            )


def compute_settlements(balances: dict[int, dict]) -> list[dict]:
    """
    Args:
        balances: {user_id: {"total_paid", "total_owed", "balance"}} as
                  returned by balance_service.compute_balances(). Insertion
                  order is the tie-break order.

    Returns:
        Transfers in emission order. Empty when everyone is settled.

    Raises:
        AppError(INTERNAL_ERROR, 500) — malformed balances mapping.
    """
    _validate_balances(balances)

    debtors = sorted(
        [[uid, -e["balance"]] for uid, e in balances.items() if e["balance"] < -MONEY_TOLERANCE],
        key=lambda d: d[1],
        reverse=True,
    )
    creditors = sorted(
        [[uid, e["balance"]] for uid, e in balances.items() if e["balance"] > MONEY_TOLERANCE],
        key=lambda c: c[1],
        reverse=True,
    )

    settlements: list[dict] = []
    i = j = 0

    while i < len(debtors) and j < len(creditors):
        debtor, creditor = debtors[i], creditors[j]
        transfer = min(debtor[1], creditor[1])

        settlements.append({
            "from_user_id": debtor[0],
            "to_user_id": creditor[0],
            "amount": transfer.quantize(_CENT, rounding=ROUND_HALF_UP),
        })

        debtor[1] -= transfer
        creditor[1] -= transfer

        if debtor[1] < MONEY_TOLERANCE:
            i += 1
        if creditor[1] < MONEY_TOLERANCE:
            j += 1

    return settlements
