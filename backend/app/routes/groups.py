"""
routes/groups.py — Group and membership route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return JSON.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/groups):
  POST   /groups                        → 201  create group
  GET    /groups                        → 200  public groups + caller's groups
  GET    /groups/:id                    → 200  group + members (private: members only)
  PATCH  /groups/:id                    → 200  update (admin or super-user)
  DELETE /groups/:id                    → 200  delete with its games (admin or super-user)
  POST   /groups/:id/members            → 200  add member by username
  DELETE /groups/:id/members/:uid       → 200  remove member (admin or super-user)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import optional_auth, require_auth
from backend.app.schemas.group_schema import AddMemberSchema, CreateGroupSchema, UpdateGroupSchema
from backend.app.services import group_service

groups_bp = Blueprint("groups", __name__)


@groups_bp.route("", methods=["POST"])
@require_auth
def create_group():
    """POST /groups — Create a new group. Caller becomes admin and first member."""
    data = CreateGroupSchema().load(request.get_json(force=True) or {})
    result = group_service.create_group(
        name=data["name"],
        creator_id=g.user_id,
        session=db.session,
        description=data.get("description"),
        is_public=data["is_public"],
    )
    db.session.commit()
    return jsonify(result), 201


@groups_bp.route("", methods=["GET"])
@optional_auth
def list_groups():
    """GET /groups — Anonymous callers see public groups only."""
    result = group_service.list_groups(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify(result), 200


@groups_bp.route("/<int:group_id>", methods=["GET"])
@optional_auth
def get_group(group_id: int):
    result = group_service.get_group(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify(result), 200


@groups_bp.route("/<int:group_id>", methods=["PATCH"])
@require_auth
def update_group(group_id: int):
    data = UpdateGroupSchema().load(request.get_json(force=True) or {})
    result = group_service.update_group(
        group_id=group_id,
        caller_id=g.user_id,
        updates=data,
        session=db.session,
        is_super_user=g.is_super_user,
    )
    db.session.commit()
    return jsonify(result), 200


@groups_bp.route("/<int:group_id>", methods=["DELETE"])
@require_auth
def delete_group(group_id: int):
    group_service.delete_group(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
        is_super_user=g.is_super_user,
    )
    db.session.commit()
    return jsonify({"deleted": True, "groupId": group_id}), 200


@groups_bp.route("/<int:group_id>/members", methods=["POST"])
@require_auth
def add_member(group_id: int):
    """POST /groups/:id/members — Members add anyone; non-members may add themselves to a public group."""
    data = AddMemberSchema().load(request.get_json(force=True) or {})
    result = group_service.add_member(
        group_id=group_id,
        caller_id=g.user_id,
        username=data["username"],
        session=db.session,
        is_super_user=g.is_super_user,
    )
    db.session.commit()
    return jsonify(result), 200


@groups_bp.route("/<int:group_id>/members/<int:target_uid>", methods=["DELETE"])
@require_auth
def remove_member(group_id: int, target_uid: int):
    """DELETE /groups/:id/members/:uid — The group's creator can never be removed."""
    result = group_service.remove_member(
        group_id=group_id,
        caller_id=g.user_id,
        target_user_id=target_uid,
        session=db.session,
        is_super_user=g.is_super_user,
    )
    db.session.commit()
    return jsonify(result), 200
