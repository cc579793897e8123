"""
routes/public_games.py — Public-link game editor route handlers.

Anyone holding a game's public token can read and edit it; no
authentication is involved. Rows are addressed by position ("rowIndex").
Every successful mutation is committed and then broadcast as a full
"game-updated" document to the token's room.

Endpoints (base url_prefix=/api/games/public):
  GET    /:token                          → 200  game document
  GET    /:token/members                  → 200  members of the game's group
  GET    /:token/search-users?q=          → 200  {inGroup, notInGroup}
  PUT    /:token/name                     → 200
  PUT    /:token/date                     → 200  blank date clears it
  PATCH  /:token/transaction/:rowIndex    → 200  write one cell, growing the grid
  POST   /:token/transaction              → 200  append a row
  DELETE /:token/transaction/:rowIndex    → 200  delete a row by position
  POST   /:token/settle                   → 200  lock (no duplicate player names)
  POST   /:token/edit                     → 200  unlock
  POST   /:token/quick-signup             → 201  register and join the group
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from backend.app.extensions import db
from backend.app.realtime import hub
from backend.app.schemas.auth_schema import QuickSignupSchema
from backend.app.schemas.game_schema import (
    AddRowSchema,
    FieldUpdateSchema,
    GameDateSchema,
    GameNameSchema,
)
from backend.app.services import game_service

public_games_bp = Blueprint("public_games", __name__)


def _commit_and_broadcast(result: dict):
    db.session.commit()
    game_service.broadcast_game_update(result, hub.current_hub())
    return jsonify(result), 200


@public_games_bp.route("/<token>", methods=["GET"])
def get_game(token: str):
    result = game_service.get_game_by_public_token(token=token, session=db.session)
    return jsonify(result), 200


@public_games_bp.route("/<token>/members", methods=["GET"])
def get_members(token: str):
    result = game_service.get_game_members(token=token, session=db.session)
    return jsonify(result), 200


@public_games_bp.route("/<token>/search-users", methods=["GET"])
def search_users(token: str):
    result = game_service.search_users_for_game(
        token=token,
        query=request.args.get("q", ""),
        session=db.session,
    )
    return jsonify(result), 200


@public_games_bp.route("/<token>/name", methods=["PUT"])
def update_name(token: str):
    data = GameNameSchema().load(request.get_json(force=True) or {})
    result = game_service.update_game_name(token=token, name=data["name"], session=db.session)
    return _commit_and_broadcast(result)


@public_games_bp.route("/<token>/date", methods=["PUT"])
def update_date(token: str):
    data = GameDateSchema().load(request.get_json(force=True) or {})
    result = game_service.update_game_date(token=token, value=data.get("date"), session=db.session)
    return _commit_and_broadcast(result)


@public_games_bp.route("/<token>/transaction/<row_index>", methods=["PATCH"])
def update_field(token: str, row_index: str):
    """
    PATCH /:token/transaction/:rowIndex — body {field, value}.

    rowIndex is taken as a string so that malformed indexes reach the
    service and come back as INVALID_ROW_INDEX instead of a routing 404.
    """
    data = FieldUpdateSchema().load(request.get_json(force=True) or {})
    result = game_service.update_transaction_field(
        token=token,
        row_index=row_index,
        field=data["field"],
        value=data["value"],
        session=db.session,
        max_rows=current_app.config["MAX_GAME_ROWS"],
    )
    return _commit_and_broadcast(result)


@public_games_bp.route("/<token>/transaction", methods=["POST"])
def add_row(token: str):
    data = AddRowSchema().load(request.get_json(silent=True) or {})
    result = game_service.add_transaction(
        token=token,
        session=db.session,
        player_name=data.get("player_name"),
        amount=data.get("amount"),
        max_rows=current_app.config["MAX_GAME_ROWS"],
    )
    return _commit_and_broadcast(result)


@public_games_bp.route("/<token>/transaction/<row_index>", methods=["DELETE"])
def delete_row(token: str, row_index: str):
    result = game_service.delete_transaction(token=token, row_index=row_index, session=db.session)
    return _commit_and_broadcast(result)


@public_games_bp.route("/<token>/settle", methods=["POST"])
def settle(token: str):
    result = game_service.settle_game(token=token, session=db.session)
    return _commit_and_broadcast(result)


@public_games_bp.route("/<token>/edit", methods=["POST"])
def edit(token: str):
    result = game_service.unsettle_game(token=token, session=db.session)
    return _commit_and_broadcast(result)


@public_games_bp.route("/<token>/quick-signup", methods=["POST"])
def quick_signup(token: str):
    """POST /:token/quick-signup — The new user joins the group but no row is linked."""
    data = QuickSignupSchema().load(request.get_json(force=True) or {})
    result = game_service.quick_signup(
        token=token,
        username=data["username"],
        display_name=data["display_name"],
        session=db.session,
        password=data.get("password"),
    )
    db.session.commit()
    return jsonify(result), 201
