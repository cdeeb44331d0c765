"""
errors.py — AppError base class and error code registry.

Every error returned by the GroupLedger API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
  - A group the caller cannot see is 404, never 403: inactive groups and
    groups the caller does not belong to are indistinguishable from
    missing ones.
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_INPUT              = "INVALID_INPUT"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_SPLIT_MODE         = "INVALID_SPLIT_MODE"
    INVALID_ROLE               = "INVALID_ROLE"
    SPLITS_SENT_FOR_EQUAL_MODE = "SPLITS_SENT_FOR_EQUAL_MODE"
    DUPLICATE_SPLIT_USER       = "DUPLICATE_SPLIT_USER"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    ALREADY_MEMBER             = "ALREADY_MEMBER"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"     # missing, inactive, or not a member
    MEMBER_NOT_FOUND           = "MEMBER_NOT_FOUND"

    # ── Business Rule Violations (422) ────────────────────────────────────
    INVALID_SPLIT              = "INVALID_SPLIT"       # custom lines do not sum to amount
    SPLIT_USER_NOT_MEMBER      = "SPLIT_USER_NOT_MEMBER"
    LAST_MEMBER                = "LAST_MEMBER"         # group must keep >= 1 member

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (e.g. not an admin)
    TOKEN_MISSING              = "TOKEN_MISSING"       # 401
    TOKEN_INVALID              = "TOKEN_INVALID"       # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"       # 401
    FORBIDDEN                  = "FORBIDDEN"           # 403

    # ── System Errors (5xx) ────────────────────────────────────────────────
    PERSISTENCE_FAILURE        = "PERSISTENCE_FAILURE"  # 503, safe to retry
    INTERNAL_ERROR             = "INTERNAL_ERROR"       # 500
