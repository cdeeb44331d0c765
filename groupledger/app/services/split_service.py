"""
services/split_service.py — Split calculator.

Turns (total, mode, participants, custom lines) into split lines
[{"user_id": int, "amount": Decimal}, ...]. Pure: no session, no Flask,
no I/O. Nothing is persisted here, so a rejection never leaves state behind.

Equal mode:
  Every participant receives the identical quotient total / n, kept to
  eighteen decimal places. The remainder is NOT redistributed to anyone, so
  the lines may differ from the total by a few units of 1e-18. Summed over a
  group's whole history this stays inside MONEY_TOLERANCE.

Custom mode:
  The caller supplies the lines. They are accepted when
  |sum(lines) - total| <= MONEY_TOLERANCE and rejected with INVALID_SPLIT
  otherwise.
"""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Iterable

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.group_expense import SplitMode

# Absolute tolerance for every money equality check in the ledger.
MONEY_TOLERANCE = Decimal("0.01")

# Scale of a stored split line (SplitLine.amount is Numeric(38, 18)). Each
# equal share is off by at most 5e-19, so the unassigned remainder stays far
# below MONEY_TOLERANCE over any realistic expense history.
LINE_QUANTUM = Decimal("1e-18")

# Largest amount group_expenses.amount (Numeric(12, 2)) can hold, and the
# largest running total groups.total_expense (Numeric(14, 2)) can hold.
MAX_EXPENSE_AMOUNT = Decimal("9999999999.99")
MAX_GROUP_TOTAL = Decimal("999999999999.99")

_CENT = Decimal("0.01")


def money(value: Decimal) -> str:
    """Display form of an amount: two places, half-up, as a string."""
    quantized = Decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)
    if quantized.is_zero():
        quantized = abs(quantized)  # no "-0.00"
    return str(quantized)


def _invalid_input(message: str, field: str | None = None) -> AppError:
    return AppError(ErrorCode.INVALID_INPUT, message, 400, field=field)


def to_decimal(value, field: str) -> Decimal:
    """Coerces int/str/Decimal to Decimal. Floats go through str() to avoid binary noise."""
    if isinstance(value, bool) or value is None:
        raise _invalid_input(f"{field} must be a number.", field)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise _invalid_input(f"{field} must be a number.", field)
    if not result.is_finite():
        raise _invalid_input(f"{field} must be a finite number.", field)
    return result


def _resolve_mode(mode) -> SplitMode:
    try:
        return SplitMode(mode)
    except ValueError:
        raise AppError(
            ErrorCode.INVALID_SPLIT_MODE,
            f"Unknown split mode {mode!r}. Use 'equal' or 'custom'.",
            400,
            field="split_type",
        )


def split_total(lines: Iterable[dict]) -> Decimal:
    return sum((line["amount"] for line in lines), Decimal("0"))


def split_sum_matches(lines: Iterable[dict], total: Decimal) -> bool:
    """True when the lines add up to `total` within MONEY_TOLERANCE."""
    return abs(split_total(lines) - total) <= MONEY_TOLERANCE


def compute_equal_split(total: Decimal, participant_ids: list[int]) -> list[dict]:
    if not participant_ids:
        raise _invalid_input("An equal split needs at least one participant.")
    if len(set(participant_ids)) != len(participant_ids):
        raise _invalid_input("Participants must be unique.")

    with localcontext() as ctx:
        ctx.prec = 40  # ten integer digits plus LINE_QUANTUM's eighteen
        share = (total / Decimal(len(participant_ids))).quantize(
            LINE_QUANTUM, rounding=ROUND_HALF_EVEN,
        )
    return [{"user_id": uid, "amount": share} for uid in participant_ids]


def compute_custom_split(
        total: Decimal,
        custom_lines,
        participant_ids: list[int] | None = None,
) -> list[dict]:
    if not isinstance(custom_lines, list) or not custom_lines:
        raise _invalid_input(
            "A custom split needs a non-empty split_among list.",
            field="split_among",
        )

    lines: list[dict] = []
    seen: set[int] = set()
    for raw in custom_lines:
        if not isinstance(raw, dict) or "user_id" not in raw or "amount" not in raw:
            raise _invalid_input(
                "Each split line must have a user_id and an amount.",
                field="split_among",
            )
        user_id = raw["user_id"]
        if isinstance(user_id, bool) or not isinstance(user_id, int):
            raise _invalid_input("Split user_id must be an integer.", field="split_among")
        if user_id in seen:
            raise AppError(
                ErrorCode.DUPLICATE_SPLIT_USER,
                f"User {user_id} appears more than once in split_among.",
                400,
                field="split_among",
            )
        seen.add(user_id)

        amount = to_decimal(raw["amount"], "split_among")
        if amount < 0:
            raise _invalid_input("Split amounts cannot be negative.", field="split_among")
        lines.append({"user_id": user_id, "amount": amount})

    if participant_ids is not None:
        allowed = set(participant_ids)
        for line in lines:
            if line["user_id"] not in allowed:
                raise AppError(
                    ErrorCode.SPLIT_USER_NOT_MEMBER,
                    f"User {line['user_id']} is not a member of this group.",
                    422,
                    field="split_among",
                )

    if not split_sum_matches(lines, total):
        raise AppError(
            ErrorCode.INVALID_SPLIT,
            f"Split amounts ({split_total(lines)}) do not add up to the "
            f"expense amount ({total}).",
            422,
            field="split_among",
        )

    return lines


def compute_split(
        total_amount,
        mode,
        participants: list[int],
        custom_lines=None,
) -> list[dict]:
    """
    Computes the split lines for one expense.

    Args:
        total_amount: Expense amount; must be > 0.
        mode:         SplitMode or its string value.
        participants: Member user_ids. Equal mode divides among all of them;
                      custom mode requires every line's user_id to be one of them.
        custom_lines: [{"user_id", "amount"}, ...] — custom mode only.

    Raises:
        AppError(INVALID_INPUT, 400)          — bad amount, empty/malformed lines
        AppError(INVALID_SPLIT_MODE, 400)     — mode is not 'equal' or 'custom'
        AppError(DUPLICATE_SPLIT_USER, 400)   — user listed twice
        AppError(SPLIT_USER_NOT_MEMBER, 422)  — custom line for a non-participant
        AppError(INVALID_SPLIT, 422)          — custom lines do not sum to the total
    """
    split_mode = _resolve_mode(mode)
    total = to_decimal(total_amount, "amount")
    if total <= 0:
        raise _invalid_input("Amount must be greater than zero.", field="amount")
    if total > MAX_EXPENSE_AMOUNT:
        raise _invalid_input(
            f"Amount must not exceed {MAX_EXPENSE_AMOUNT}.", field="amount",
        )

    if split_mode == SplitMode.EQUAL:
        return compute_equal_split(total, list(participants))
    return compute_custom_split(total, custom_lines, list(participants))
