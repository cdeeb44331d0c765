"""
routes/groups.py — Group and membership route handlers.

Layer rules:
  - Parse, validate, call ONE service inside transaction.atomic, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/groups):
  POST   /groups                        → 201  create group
  GET    /groups                        → 200  list caller's active groups
  GET    /groups/:id                    → 200  group + members
  PATCH  /groups/:id                    → 200  rename / re-describe (admin only)
  PUT    /groups/:id                    → 200  same as PATCH; only keys sent change
  DELETE /groups/:id                    → 200  soft delete (admin only)
  POST   /groups/:id/members            → 201  add member (admin only)
  DELETE /groups/:id/members/:uid       → 200  remove member (admin or self)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.schemas.group_schema import (
    AddMemberSchema,
    CreateGroupSchema,
    UpdateGroupSchema,
)
from groupledger.app.services import group_service
from groupledger.app.transaction import atomic

groups_bp = Blueprint("groups", __name__)


@groups_bp.route("/", methods=["POST"])
@require_auth
def create_group():
    """POST /groups — Create a new group. Caller becomes its admin and first member."""
    data = CreateGroupSchema().load(request.get_json(force=True) or {})
    with atomic(db.session, label="create group"):
        result = group_service.create_group(
            name=data["name"],
            creator_id=g.user_id,
            session=db.session,
            description=data["description"],
        )
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/", methods=["GET"])
@require_auth
def list_groups():
    """GET /groups — List the active groups the authenticated user belongs to."""
    result = group_service.list_groups(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["GET"])
@require_auth
def get_group(group_id: int):
    """GET /groups/:id — Group details with member list. Caller must be a member."""
    result = group_service.get_group(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["PATCH", "PUT"])
@require_auth
def update_group(group_id: int):
    data = UpdateGroupSchema().load(request.get_json(force=True) or {})
    with atomic(db.session, label=f"update group {group_id}"):
        result = group_service.update_group(
            group_id=group_id,
            caller_id=g.user_id,
            data=data,
            session=db.session,
        )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["DELETE"])
@require_auth
def delete_group(group_id: int):
    """DELETE /groups/:id — Soft delete. History is kept; the group disappears from lists."""
    with atomic(db.session, label=f"delete group {group_id}"):
        group_service.delete_group(
            group_id=group_id,
            caller_id=g.user_id,
            session=db.session,
        )
    return jsonify({
        "data": {"deleted": True, "group_id": group_id},
        "warnings": [],
    }), 200


@groups_bp.route("/<int:group_id>/members", methods=["POST"])
@require_auth
def add_member(group_id: int):
    """POST /groups/:id/members — Add a user by user_id or email. Admin only."""
    data = AddMemberSchema().load(request.get_json(force=True) or {})
    with atomic(db.session, label=f"add member to group {group_id}"):
        result = group_service.add_member(
            group_id=group_id,
            caller_id=g.user_id,
            session=db.session,
            user_id=data.get("user_id"),
            email=data.get("email"),
            role=data["role"],
        )
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/<int:group_id>/members/<int:target_uid>", methods=["DELETE"])
@require_auth
def remove_member(group_id: int, target_uid: int):
    """DELETE /groups/:id/members/:uid — Admin removes anyone; a member removes self."""
    with atomic(db.session, label=f"remove member from group {group_id}"):
        result = group_service.remove_member(
            group_id=group_id,
            caller_id=g.user_id,
            target_user_id=target_uid,
            session=db.session,
        )
    return jsonify({
        "data": {
            "removed": True,
            "group_id": group_id,
            "user_id": target_uid,
            "promoted_user_id": result["promoted_user_id"],
        },
        "warnings": [],
    }), 200
