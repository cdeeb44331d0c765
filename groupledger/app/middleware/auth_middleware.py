"""
middleware/auth_middleware.py — Bearer token verification for ledger routes.

Users and their tokens belong to an external identity service. The ledger
never issues tokens; it verifies the HS256 signature with the shared
JWT_SECRET_KEY and reads the caller's user id from the `sub` claim.

@require_auth sets flask.g.user_id (int) and nothing else. Whether that
user may see or change a group is decided in the service layer:

  401  TOKEN_MISSING / TOKEN_INVALID / TOKEN_EXPIRED   (here)
  404  GROUP_NOT_FOUND for non-members                 (group_service)
  403  FORBIDDEN for non-admin group changes           (group_service)

A token whose user is unknown to the ledger still authenticates; the first
service that needs the user row raises USER_NOT_FOUND.
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from groupledger.app.errors import AppError, ErrorCode


def _token_error(code: str, message: str) -> AppError:
    return AppError(code, message, 401)


def _bearer_token() -> str:
    header = request.headers.get("Authorization", "")
    if not header:
        raise _token_error(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Send 'Authorization: Bearer <token>'.",
        )

    scheme, _, token = header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise _token_error(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be 'Bearer <token>'.",
        )
    return token


def decode_user_id(token: str) -> int:
    """
    Verifies `token` against the app's JWT settings and returns its user id.

    Raises AppError(TOKEN_EXPIRED | TOKEN_INVALID, 401).
    """
    config = current_app.config
    try:
        claims = jwt.decode(
            token,
            config["JWT_SECRET_KEY"],
            algorithms=[config.get("JWT_ALGORITHM", "HS256")],
            leeway=config.get("JWT_LEEWAY_SECONDS", 0),
            options={"require": ["sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise _token_error(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Sign in again to obtain a new one.",
        )
    except jwt.InvalidTokenError:
        raise _token_error(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
        )

    try:
        user_id = int(claims["sub"])
    except (TypeError, ValueError):
        raise _token_error(
            ErrorCode.TOKEN_INVALID,
            "The token's 'sub' claim is not a user id.",
        )
    if user_id < 1:
        raise _token_error(
            ErrorCode.TOKEN_INVALID,
            "The token's 'sub' claim is not a user id.",
        )
    return user_id


def require_auth(f: Callable) -> Callable:
    """
    Route decorator: authenticates the caller and sets g.user_id.

        @groups_bp.route("/", methods=["GET"])
        @require_auth
        def list_groups():
            group_service.list_groups(user_id=g.user_id, ...)

    Failures are raised as AppError and rendered by the global handler.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        g.user_id = decode_user_id(_bearer_token())
        return f(*args, **kwargs)

    return decorated
