"""
routes/balances.py — Balance route handler.

Layer rules:
  - Call ONE service, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/groups):
  GET /groups/:id/balance   → 200  per-member balances + suggested settlements
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.services import balance_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/<int:group_id>/balance", methods=["GET"])
@require_auth
def get_balance(group_id: int):
    """
    GET /groups/:id/balance

    Membership is enforced inside balance_service.get_balance_response().
    The service asserts the balances sum to zero and raises INTERNAL_ERROR
    (500) if they do not. Settlements are computed on demand, never stored.
    """
    result = balance_service.get_balance_response(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
