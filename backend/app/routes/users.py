"""
routes/users.py — User directory and profile route handlers.

Endpoints (base url_prefix=/api/users):
  GET    /users          → 200  every user, by username
  GET    /users/search   → 200  username / display name matches for ?q=
  GET    /users/me       → 200  caller's profile
  PATCH  /users/me       → 200  update caller's display name
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.schemas.auth_schema import UpdateProfileSchema
from backend.app.services import auth_service, user_service

users_bp = Blueprint("users", __name__)


@users_bp.route("", methods=["GET"])
@require_auth
def list_users():
    result = user_service.list_users(session=db.session)
    return jsonify(result), 200


@users_bp.route("/search", methods=["GET"])
@require_auth
def search_users():
    """GET /users/search?q= — A blank query returns an empty list."""
    users = user_service.search_users(
        query=request.args.get("q", ""),
        session=db.session,
    )
    return jsonify([auth_service.build_user_dict(u) for u in users]), 200


@users_bp.route("/me", methods=["GET"])
@require_auth
def get_me():
    result = auth_service.get_current_user(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify(result), 200


@users_bp.route("/me", methods=["PATCH"])
@require_auth
def update_me():
    data = UpdateProfileSchema().load(request.get_json(force=True) or {})
    result = user_service.update_profile(
        user_id=g.user_id,
        display_name=data["display_name"],
        session=db.session,
    )
    db.session.commit()
    return jsonify(result), 200
