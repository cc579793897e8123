"""
routes/stats.py — Statistics route handlers (read-only).

Endpoints (base url_prefix=/api/stats):
  GET /stats/totals?groupId=&timePeriod=     → 200  net total per player, winners first
  GET /stats/user/:userId?groupId=           → 200  per-game amounts for one user
  GET /stats/trends?groupId=&playerIds=      → 200  {dataPoints, playerInfo}

playerIds may be repeated (?playerIds=1&playerIds=2), sent with the
bracket suffix (?playerIds[]=1) or comma separated (?playerIds=1,2).
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.errors import AppError, ErrorCode
from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.services import stats_service

stats_bp = Blueprint("stats", __name__)


def _player_ids_arg() -> list[str]:
    raw = request.args.getlist("playerIds") + request.args.getlist("playerIds[]")
    player_ids = []
    for value in raw:
        player_ids.extend(part.strip() for part in value.split(",") if part.strip())
    return player_ids


@stats_bp.route("/totals", methods=["GET"])
@require_auth
def totals():
    result = stats_service.get_totals(
        caller_id=g.user_id,
        session=db.session,
        group_id=request.args.get("groupId", type=int),
        time_period=request.args.get("timePeriod"),
    )
    return jsonify(result), 200


@stats_bp.route("/user/<int:user_id>", methods=["GET"])
@require_auth
def user_history(user_id: int):
    result = stats_service.get_user_history(
        caller_id=g.user_id,
        target_user_id=user_id,
        session=db.session,
        group_id=request.args.get("groupId", type=int),
    )
    return jsonify(result), 200


@stats_bp.route("/trends", methods=["GET"])
@require_auth
def trends():
    group_id = request.args.get("groupId", type=int)
    if group_id is None:
        raise AppError(ErrorCode.MISSING_FIELD, "groupId is required.", 400, field="groupId")

    result = stats_service.get_trends(
        caller_id=g.user_id,
        group_id=group_id,
        player_ids=_player_ids_arg(),
        session=db.session,
    )
    return jsonify(result), 200
