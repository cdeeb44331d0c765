# groupledger/app/routes/users.py
from flask import Blueprint, jsonify

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.services import group_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/by-email/<string:email>", methods=["GET"])
@require_auth
def get_user_by_email(email: str):
    # Used by the client to resolve an email before adding a member.
    user = group_service.find_user_by_email(email, db.session)

    return jsonify({
        "data": {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "created_at": user.created_at.isoformat()
        },
        "warnings": []
    }), 200
