"""
routes/games.py — Authenticated game and transaction route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return JSON.
  - After a successful commit, push the new game document to its
    public-token room. Broadcasting never changes the HTTP response.

Endpoints (base url_prefix=/api/games):
  POST   /games                              → 201  create game (rows must net to zero)
  GET    /games?groupId=                     → 200  list games visible to the caller
  GET    /games/:id                          → 200  game with rows (group members)
  DELETE /games/:id                          → 200  delete (creator or super-user)
  POST   /games/:id/transactions             → 200  replace every row (zero-sum)
  PUT    /games/:id/transactions/:txId       → 200  change one amount (zero-sum)
  DELETE /games/:id/transactions/:txId       → 200  delete one row (zero-sum)

Public-link endpoints live in routes/public_games.py.
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import optional_auth, require_auth
from backend.app.realtime import hub
from backend.app.schemas.game_schema import (
    CreateGameSchema,
    ReplaceTransactionsSchema,
    UpdateTransactionAmountSchema,
)
from backend.app.services import game_service

games_bp = Blueprint("games", __name__)


@games_bp.route("", methods=["POST"])
@require_auth
def create_game():
    """POST /games — Creating a game in a public group joins the caller to it."""
    data = CreateGameSchema().load(request.get_json(force=True) or {})
    result = game_service.create_game(
        requester_id=g.user_id,
        name=data["name"],
        group_id=data["group_id"],
        session=db.session,
        game_date=data.get("date"),
        transactions=data.get("transactions"),
    )
    db.session.commit()
    return jsonify(result), 201


@games_bp.route("", methods=["GET"])
@optional_auth
def list_games():
    result = game_service.list_games(
        caller_id=g.user_id,
        session=db.session,
        group_id=request.args.get("groupId", type=int),
    )
    return jsonify(result), 200


@games_bp.route("/<int:game_id>", methods=["GET"])
@require_auth
def get_game(game_id: int):
    result = game_service.get_game(
        game_id=game_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify(result), 200


@games_bp.route("/<int:game_id>", methods=["DELETE"])
@require_auth
def delete_game(game_id: int):
    game_service.delete_game(
        game_id=game_id,
        caller_id=g.user_id,
        session=db.session,
        is_super_user=g.is_super_user,
    )
    db.session.commit()
    return jsonify({"deleted": True, "gameId": game_id}), 200


@games_bp.route("/<int:game_id>/transactions", methods=["POST"])
@require_auth
def replace_transactions(game_id: int):
    data = ReplaceTransactionsSchema().load(request.get_json(force=True) or {})
    result = game_service.replace_all_transactions(
        game_id=game_id,
        caller_id=g.user_id,
        transactions=data["transactions"],
        session=db.session,
    )
    db.session.commit()
    game_service.broadcast_game_update(result, hub.current_hub())
    return jsonify(result), 200


@games_bp.route("/<int:game_id>/transactions/<int:transaction_id>", methods=["PUT"])
@require_auth
def update_transaction(game_id: int, transaction_id: int):
    data = UpdateTransactionAmountSchema().load(request.get_json(force=True) or {})
    result = game_service.update_transaction_amount(
        game_id=game_id,
        transaction_id=transaction_id,
        caller_id=g.user_id,
        amount=data["amount"],
        session=db.session,
    )
    db.session.commit()
    game_service.broadcast_game_update(result, hub.current_hub())
    return jsonify(result), 200


@games_bp.route("/<int:game_id>/transactions/<int:transaction_id>", methods=["DELETE"])
@require_auth
def delete_transaction(game_id: int, transaction_id: int):
    result = game_service.delete_transaction_by_id(
        game_id=game_id,
        transaction_id=transaction_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    game_service.broadcast_game_update(result, hub.current_hub())
    return jsonify(result), 200
