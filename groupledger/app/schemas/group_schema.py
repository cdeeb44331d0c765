"""
schemas/group_schema.py — Marshmallow schemas for group and membership endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim),
    role values, and the user_id / email either-or rule.
  - services/group_service.py:
      - caller must be a member to see the group (GROUP_NOT_FOUND, 404)
      - admin-only actions (FORBIDDEN, 403)
      - USER_NOT_FOUND (user existence check requires DB lookup)
      - ALREADY_MEMBER  (membership existence check requires DB lookup)

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

from groupledger.app.errors import ErrorCode
from groupledger.app.models.membership import MemberRole


# validate.Length(min=1) alone lets "   " through; strip first, then check.
def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


_NAME_FIELD_VALIDATORS = [
    validate.Length(
        min=1,
        max=100,
        error="Group name must be between 1 and 100 characters.",
    ),
    _validate_non_empty_after_trim,
]

_DESCRIPTION_VALIDATOR = validate.Length(
    max=500,
    error="Description must be at most 500 characters.",
)


class CreateGroupSchema(Schema):
    """
    POST /groups

    name        — non-empty after trim, max 100 chars.
    description — optional, max 500 chars.
    """

    name = fields.Str(required=True, validate=_NAME_FIELD_VALIDATORS)
    description = fields.Str(
        load_default=None,
        allow_none=True,
        validate=_DESCRIPTION_VALIDATOR,
    )


class UpdateGroupSchema(Schema):
    """
    PATCH /groups/:id

    Partial update; only keys present in the body are applied. An empty
    body is rejected so a no-op PATCH is never mistaken for success.
    """

    name = fields.Str(validate=_NAME_FIELD_VALIDATORS)
    description = fields.Str(allow_none=True, validate=_DESCRIPTION_VALIDATOR)

    @validates_schema
    def validate_not_empty(self, data: dict, **kwargs) -> None:
        if not data:
            raise ValidationError(
                "Provide at least one of: name, description.",
                field_name="_schema",
            )


class AddMemberSchema(Schema):
    """
    POST /groups/:id/members

    Identify the new member by user_id OR email (exactly one). role defaults
    to 'member'; an admin may add another admin directly.
    """

    user_id = fields.Int(
        strict=True,  # reject floats like 1.0 — integers only
        validate=validate.Range(
            min=1,
            error="user_id must be a positive integer.",
        ),
    )
    email = fields.Email()
    role = fields.Enum(
        MemberRole,
        load_default=MemberRole.MEMBER,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_ROLE},
    )

    @validates_schema
    def validate_identifier(self, data: dict, **kwargs) -> None:
        has_id = data.get("user_id") is not None
        has_email = data.get("email") is not None

        if has_id and has_email:
            raise ValidationError(
                {"email": ["Send either user_id or email, not both."]}
            )
        if not has_id and not has_email:
            raise ValidationError({"user_id": [ErrorCode.MISSING_FIELD]})
