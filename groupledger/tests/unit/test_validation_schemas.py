"""
Unit tests for the marshmallow request schemas.

Schemas are loaded without a Flask app context (they inherit from
marshmallow.Schema, not ma.Schema).
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from marshmallow import ValidationError

from groupledger.app.errors import ErrorCode
from groupledger.app.models.group_expense import SplitMode
from groupledger.app.models.membership import MemberRole
from groupledger.app.schemas.expense_schema import (
    CreateGroupExpenseSchema,
    ListExpensesQuerySchema,
)
from groupledger.app.schemas.group_schema import (
    AddMemberSchema,
    CreateGroupSchema,
    UpdateGroupSchema,
)


def _errors(schema, payload) -> dict:
    with pytest.raises(ValidationError) as exc_info:
        schema.load(payload)
    return exc_info.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# CreateGroupExpenseSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateGroupExpenseSchema:

    def test_equal_is_the_default(self):
        data = CreateGroupExpenseSchema().load({"description": "Dinner", "amount": "300.00"})

        assert data["split_type"] == SplitMode.EQUAL
        assert data["amount"] == Decimal("300.00")
        assert data["split_among"] is None

    def test_custom_with_lines(self):
        data = CreateGroupExpenseSchema().load({
            "description": "Taxi",
            "amount": 150,
            "split_type": "custom",
            "split_among": [
                {"user_id": 1, "amount": "50"},
                {"user_id": 2, "amount": 100},
            ],
        })

        assert data["split_type"] == SplitMode.CUSTOM
        assert [line["amount"] for line in data["split_among"]] == [Decimal("50"), Decimal("100")]

    def test_json_float_amount_keeps_its_digits(self):
        data = CreateGroupExpenseSchema().load({"description": "Tea", "amount": 10.5})
        assert data["amount"] == Decimal("10.5")

    def test_split_among_in_equal_mode_rejected(self):
        errors = _errors(CreateGroupExpenseSchema(), {
            "description": "Dinner",
            "amount": "30.00",
            "split_type": "equal",
            "split_among": [{"user_id": 1, "amount": "30.00"}],
        })
        assert errors == {"split_among": [ErrorCode.SPLITS_SENT_FOR_EQUAL_MODE]}

    @pytest.mark.parametrize("split_among", [None, []])
    def test_custom_without_lines_rejected(self, split_among):
        payload = {"description": "Taxi", "amount": "10.00", "split_type": "custom"}
        if split_among is not None:
            payload["split_among"] = split_among

        assert "split_among" in _errors(CreateGroupExpenseSchema(), payload)

    def test_duplicate_user_rejected(self):
        errors = _errors(CreateGroupExpenseSchema(), {
            "description": "Taxi",
            "amount": "10.00",
            "split_type": "custom",
            "split_among": [
                {"user_id": 1, "amount": "5.00"},
                {"user_id": 1, "amount": "5.00"},
            ],
        })
        assert errors == {"split_among": [ErrorCode.DUPLICATE_SPLIT_USER]}

    def test_three_decimal_places_rejected(self):
        errors = _errors(CreateGroupExpenseSchema(), {"description": "x", "amount": "10.123"})
        assert errors["amount"] == [ErrorCode.INVALID_AMOUNT_PRECISION]

    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    def test_non_positive_amount_rejected(self, amount):
        assert "amount" in _errors(CreateGroupExpenseSchema(), {"description": "x", "amount": amount})

    def test_amount_above_column_limit_rejected(self):
        errors = _errors(CreateGroupExpenseSchema(), {"description": "x", "amount": "10000000000.00"})
        assert "amount" in errors

    def test_largest_storable_amount_accepted(self):
        data = CreateGroupExpenseSchema().load({"description": "x", "amount": "9999999999.99"})
        assert data["amount"] == Decimal("9999999999.99")

    def test_unknown_split_type_rejected(self):
        errors = _errors(CreateGroupExpenseSchema(), {
            "description": "x", "amount": "1.00", "split_type": "percent",
        })
        assert errors["split_type"] == [ErrorCode.INVALID_SPLIT_MODE]

    def test_blank_description_rejected(self):
        assert "description" in _errors(CreateGroupExpenseSchema(), {"description": "   ", "amount": "1.00"})

    def test_payer_is_not_a_body_field(self):
        errors = _errors(CreateGroupExpenseSchema(), {
            "description": "x", "amount": "1.00", "paid_by_user_id": 2,
        })
        assert "paid_by_user_id" in errors


class TestListExpensesQuerySchema:

    def test_defaults(self):
        assert ListExpensesQuerySchema().load({}) == {"limit": None, "offset": 0}

    def test_strings_from_query_string(self):
        assert ListExpensesQuerySchema().load({"limit": "5", "offset": "10"}) == {"limit": 5, "offset": 10}

    def test_zero_limit_rejected(self):
        assert "limit" in _errors(ListExpensesQuerySchema(), {"limit": "0"})


# ═══════════════════════════════════════════════════════════════════════════
# Group schemas
# ═══════════════════════════════════════════════════════════════════════════

class TestGroupSchemas:

    def test_create_group_with_description(self):
        data = CreateGroupSchema().load({"name": "Goa trip", "description": "Dec 2026"})
        assert data == {"name": "Goa trip", "description": "Dec 2026"}

    def test_create_group_description_optional(self):
        assert CreateGroupSchema().load({"name": "Flat"})["description"] is None

    def test_whitespace_name_rejected(self):
        assert "name" in _errors(CreateGroupSchema(), {"name": "   "})

    def test_name_too_long_rejected(self):
        assert "name" in _errors(CreateGroupSchema(), {"name": "x" * 101})

    def test_empty_update_rejected(self):
        assert "_schema" in _errors(UpdateGroupSchema(), {})

    def test_partial_update(self):
        assert UpdateGroupSchema().load({"description": None}) == {"description": None}


class TestAddMemberSchema:

    def test_by_user_id_defaults_to_member(self):
        data = AddMemberSchema().load({"user_id": 4})
        assert data == {"user_id": 4, "role": MemberRole.MEMBER}

    def test_by_email_as_admin(self):
        data = AddMemberSchema().load({"email": "ben@example.com", "role": "admin"})
        assert data["email"] == "ben@example.com"
        assert data["role"] == MemberRole.ADMIN

    def test_identifier_required(self):
        assert _errors(AddMemberSchema(), {}) == {"user_id": [ErrorCode.MISSING_FIELD]}

    def test_both_identifiers_rejected(self):
        assert "email" in _errors(AddMemberSchema(), {"user_id": 4, "email": "ben@example.com"})

    def test_unknown_role_rejected(self):
        assert _errors(AddMemberSchema(), {"user_id": 4, "role": "owner"}) == {
            "role": [ErrorCode.INVALID_ROLE],
        }

    def test_float_user_id_rejected(self):
        assert "user_id" in _errors(AddMemberSchema(), {"user_id": 4.0})
