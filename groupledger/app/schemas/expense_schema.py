"""
schemas/expense_schema.py — Marshmallow schemas for expense endpoints.

Validation responsibility:
  - This file:
      - Field types, lengths, enum values, decimal precision
      - SPLITS_SENT_FOR_EQUAL_MODE (400) — request shape rule
      - DUPLICATE_SPLIT_USER       (400) — request shape rule
      - split_among required when split_type='custom'
      - Non-empty-after-trim enforcement for description
      - Paging bounds for list queries
  - services/split_service.py and services/ledger_service.py:
      - INVALID_SPLIT (422)          — custom lines must sum to the amount
      - SPLIT_USER_NOT_MEMBER (422)  — requires DB membership lookup
      - GROUP_NOT_FOUND (404)        — requires DB lookup

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    validate,
    validates_schema,
)

from groupledger.app.errors import ErrorCode
from groupledger.app.models.group_expense import SplitMode
from groupledger.app.services.split_service import MAX_EXPENSE_AMOUNT


# ── Shared monetary validators ────────────────────────────────────────────
#
# Input with more than 2 decimal places is REJECTED with
# INVALID_AMOUNT_PRECISION — never rounded or truncated.
# marshmallow builds the Decimal from str(value), so a JSON number such as
# 10.5 arrives as Decimal("10.5") and not as its binary float expansion.
# ──────────────────────────────────────────────────────────────────────────

def _check_precision(value: Decimal) -> None:
    # Decimal("10.123").as_tuple().exponent == -3  → 3 dp → reject
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_expense_amount(value: Decimal) -> None:
    """Strictly positive, at most 2 decimal places, fits group_expenses.amount."""
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    if value > MAX_EXPENSE_AMOUNT:
        raise ValidationError(f"Amount must not exceed {MAX_EXPENSE_AMOUNT}.")
    _check_precision(value)


def _validate_line_amount(value: Decimal) -> None:
    """A share may be zero (the member owes nothing) but never negative."""
    if value < Decimal("0"):
        raise ValidationError("Split amounts cannot be negative.")
    _check_precision(value)


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


# ── Sub-schema: one entry in the `split_among` array ──────────────────────

class SplitLineSchema(Schema):
    """
    One {user_id, amount} share of a custom split.

    Whether user_id is a member of the group is checked in the service.
    """

    user_id = fields.Int(
        required=True,
        strict=True,   # reject floats like 1.0
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )
    amount = fields.Decimal(required=True, validate=_validate_line_amount)


# ── Create group expense ──────────────────────────────────────────────────

class CreateGroupExpenseSchema(Schema):
    """
    POST /groups/:id/expenses

    The payer is always the authenticated caller; it is not a body field.

    Split type behaviour:
      - split_type='equal'  (default) → client must NOT send split_among.
                                        The amount is divided among all
                                        current members.
      - split_type='custom'           → client MUST send split_among; the
                                        service checks the lines sum to the
                                        amount within 0.01.
    """

    description = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=255,
                error="Description must be between 1 and 255 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    amount = fields.Decimal(required=True, validate=_validate_expense_amount)

    split_type = fields.Enum(
        SplitMode,
        load_default=SplitMode.EQUAL,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_MODE},
    )

    split_among = fields.List(
        fields.Nested(SplitLineSchema),
        load_default=None,
    )

    @validates_schema
    def validate_split_among_coherence(self, data: dict, **kwargs) -> None:
        """
        1. SPLITS_SENT_FOR_EQUAL_MODE: split_among sent with split_type='equal'.
        2. split_among required (and non-empty) with split_type='custom'.
        3. DUPLICATE_SPLIT_USER: same user_id twice in split_among.
        """
        split_type = data.get("split_type", SplitMode.EQUAL)
        split_among = data.get("split_among")

        if split_type == SplitMode.EQUAL:
            if split_among is not None:
                raise ValidationError(
                    {"split_among": [ErrorCode.SPLITS_SENT_FOR_EQUAL_MODE]}
                )
            return

        if not split_among:
            raise ValidationError(
                {"split_among": ["split_among is required when split_type is 'custom'."]}
            )

        user_ids = [line["user_id"] for line in split_among]
        if len(user_ids) != len(set(user_ids)):
            raise ValidationError({"split_among": [ErrorCode.DUPLICATE_SPLIT_USER]})


# ── Query strings ─────────────────────────────────────────────────────────

class ListExpensesQuerySchema(Schema):
    """
    GET /groups/:id/expenses?limit=&offset=

    limit defaults to EXPENSE_PAGE_SIZE and is capped at
    EXPENSE_PAGE_SIZE_MAX by the route (both come from app config).
    """

    limit = fields.Int(
        load_default=None,
        validate=validate.Range(min=1, error="limit must be a positive integer."),
    )
    offset = fields.Int(
        load_default=0,
        validate=validate.Range(min=0, error="offset must be zero or greater."),
    )


class LedgerEntriesQuerySchema(Schema):
    """GET /expenses?group_id= — optional filter to one group."""

    group_id = fields.Int(
        load_default=None,
        validate=validate.Range(min=1, error="group_id must be a positive integer."),
    )
