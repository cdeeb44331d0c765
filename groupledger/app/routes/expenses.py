"""
routes/expenses.py — Group expense and ledger entry route handlers.

Registered at url_prefix=/api/v1 (not /api/v1/expenses) because this blueprint
owns BOTH the group-scoped paths (/groups/:id/expenses) and the caller's
ledger (/expenses). Registering at /api/v1/expenses would make the
group-scoped paths unreachable.

Layer rules:
  - Parse, validate, call ONE service, return envelope.
  - No business logic. No DB queries. No bare SQL.
  - add_group_expense() commits its own transaction; this layer does not.

Endpoints:
  POST   /groups/:id/expenses   → 201  record expense, return updated group
  GET    /groups/:id/expenses   → 200  page of expenses, newest first
  GET    /expenses              → 200  caller's ledger entries
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.schemas.expense_schema import (
    CreateGroupExpenseSchema,
    LedgerEntriesQuerySchema,
    ListExpensesQuerySchema,
)
from groupledger.app.services import group_service, ledger_service

expenses_bp = Blueprint("expenses", __name__)


@expenses_bp.route("/groups/<int:group_id>/expenses", methods=["POST"])
@require_auth
def create_group_expense(group_id: int):
    """
    POST /groups/:id/expenses — Record an expense paid by the caller.

    Response is the updated group (new total_expense, members) with the
    recorded expense under "expense".
    """
    data = CreateGroupExpenseSchema().load(request.get_json(force=True) or {})

    custom_lines = None
    if data["split_among"] is not None:
        custom_lines = [
            {"user_id": line["user_id"], "amount": line["amount"]}
            for line in data["split_among"]
        ]

    group, expense = ledger_service.add_group_expense(
        group_id=group_id,
        caller_id=g.user_id,
        description=data["description"],
        amount=data["amount"],
        mode=data["split_type"],
        session=db.session,
        custom_lines=custom_lines,
    )

    result = group_service.get_group_dict(group, db.session)
    result["expense"] = ledger_service.serialize_expense(expense)
    return jsonify({"data": result, "warnings": []}), 201


@expenses_bp.route("/groups/<int:group_id>/expenses", methods=["GET"])
@require_auth
def list_group_expenses(group_id: int):
    """GET /groups/:id/expenses?limit=&offset= — Newest first, with the group total."""
    query = ListExpensesQuerySchema().load(request.args)

    limit = query["limit"] or current_app.config["EXPENSE_PAGE_SIZE"]
    limit = min(limit, current_app.config["EXPENSE_PAGE_SIZE_MAX"])

    result = ledger_service.list_group_expenses(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
        limit=limit,
        offset=query["offset"],
    )
    return jsonify({"data": result, "warnings": []}), 200


@expenses_bp.route("/expenses/", methods=["GET"])
@require_auth
def list_ledger_entries():
    """GET /expenses?group_id= — The caller's own ledger entries."""
    query = LedgerEntriesQuerySchema().load(request.args)
    result = ledger_service.list_ledger_entries(
        caller_id=g.user_id,
        session=db.session,
        group_id=query["group_id"],
    )
    return jsonify({"data": result, "warnings": []}), 200
