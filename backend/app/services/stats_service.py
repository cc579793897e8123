"""
services/stats_service.py — Read-only statistics over settled and open games.

The folds (calculate_user_totals, build_user_history, build_trends_data) are
pure functions over Game-like objects so they can be unit tested with plain
namespaces. The get_* wrappers apply access rules and load the games.

Player identity:
  - a row linked to a user counts towards str(user_id)
  - an unlinked row with a real name counts towards "playerName:<name>"
  - unlinked placeholder rows are ignored
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.game import Game
from backend.app.models.group import Group
from backend.app.services import access_policy, group_service
from backend.app.services.transaction_service import is_placeholder

logger = logging.getLogger(__name__)

PLAYER_NAME_PREFIX = "playerName:"


# ── Identity and dates ─────────────────────────────────────────────────────

def player_identity(row: Any) -> tuple[str, str, str] | None:
    """Returns (key, username, display_name) for a row, or None to skip it."""
    user_id = getattr(row, "user_id", None)
    if user_id is not None:
        user = getattr(row, "user", None)
        username = getattr(user, "username", None) or str(user_id)
        display_name = getattr(user, "display_name", None) or username
        return str(user_id), username, display_name

    name = getattr(row, "player_name", None)
    if is_placeholder(name):
        return None
    return f"{PLAYER_NAME_PREFIX}{name}", name, name


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def effective_date(game: Any) -> date:
    """The game's date when set, else the calendar day it was created."""
    if getattr(game, "date", None) is not None:
        return game.date
    return _as_utc(game.created_at).date()


def date_cutoff(time_period: str | None, now: datetime | None = None) -> datetime | None:
    """
    Start of the window for `time_period`, or None for no filtering.

    "30d" and "90d" are rolling windows; "year" starts on the same calendar
    day one year earlier. "all", missing and unrecognised values disable
    the filter.
    """
    if not time_period or time_period == "all":
        return None

    now = _as_utc(now or datetime.now(timezone.utc))
    if time_period == "30d":
        return now - timedelta(days=30)
    if time_period == "90d":
        return now - timedelta(days=90)
    if time_period == "year":
        try:
            day = now.date().replace(year=now.year - 1)
        except ValueError:
            # Feb 29 has no counterpart in the previous year.
            day = now.date().replace(year=now.year - 1, day=28)
        return datetime.combine(day, time(), tzinfo=timezone.utc)
    return None


def game_matches_period(game: Any, cutoff: datetime | None) -> bool:
    """A game is in range when either its date or its creation time is on/after cutoff."""
    if cutoff is None:
        return True
    game_date = getattr(game, "date", None)
    if game_date is not None and datetime.combine(game_date, time(), tzinfo=timezone.utc) >= cutoff:
        return True
    created_at = getattr(game, "created_at", None)
    return created_at is not None and _as_utc(created_at) >= cutoff


# ── Pure folds ─────────────────────────────────────────────────────────────

def calculate_user_totals(games: Iterable[Any]) -> list[dict]:
    """Net result per player across `games`, biggest winner first."""
    totals: dict[str, dict] = {}
    for game in games:
        for row in game.transactions:
            identity = player_identity(row)
            if identity is None:
                continue
            key, username, display_name = identity
            entry = totals.setdefault(key, {
                "userId": key,
                "username": username,
                "displayName": display_name,
                "total": Decimal("0"),
            })
            entry["total"] += Decimal(str(row.amount))

    result = sorted(totals.values(), key=lambda e: e["total"], reverse=True)
    for entry in result:
        entry["total"] = float(entry["total"])
    return result


def build_user_history(games: Iterable[Any], user_id: int) -> list[dict]:
    """One entry per game with the user's net amount in it, in the order given."""
    history = []
    for game in games:
        amount = sum(
            (Decimal(str(row.amount)) for row in game.transactions if row.user_id == user_id),
            Decimal("0"),
        )
        history.append({
            "game": {
                "id": game.id,
                "name": game.name,
                "date": game.date.isoformat() if game.date else None,
                "groupId": game.group_id,
                "createdByUserId": game.created_by_user_id,
                "createdAt": game.created_at.isoformat() if game.created_at else None,
            },
            "amount": float(amount),
        })
    return history


def build_trends_data(
        games: Iterable[Any],
        user_ids: list[int],
        player_names: list[str],
        today: date | None = None,
) -> dict:
    """
    Cumulative balance per selected player, one point per calendar day.

    `games` must already be in chronological order. A day's point starts
    from the balances carried over from earlier days. With no games at all
    a single all-zero point dated `today` is returned.
    """
    player_keys = [str(uid) for uid in user_ids] + [f"{PLAYER_NAME_PREFIX}{n}" for n in player_names]
    balances: dict[str, Decimal] = {key: Decimal("0") for key in player_keys}
    player_info: dict[str, dict] = {}
    points: dict[str, dict] = {}

    for game in games:
        day = effective_date(game).isoformat()
        point = points.get(day)
        if point is None:
            point = {"date": day, **{key: float(balances[key]) for key in player_keys}}
            points[day] = point

        for row in game.transactions:
            identity = player_identity(row)
            if identity is None or identity[0] not in balances:
                continue
            key, username, display_name = identity
            balances[key] += Decimal(str(row.amount))
            player_info.setdefault(key, {"username": username, "displayName": display_name})
            point[key] = float(balances[key])

    data_points = list(points.values())
    if not data_points:
        day = (today or datetime.now(timezone.utc).date()).isoformat()
        data_points.append({"date": day, **{key: 0.0 for key in player_keys}})

    return {"dataPoints": data_points, "playerInfo": player_info}


def split_player_ids(player_ids: Iterable[Any]) -> tuple[list[int], list[str]]:
    """Separates "playerName:<name>" keys from numeric user ids; drops anything else."""
    user_ids: list[int] = []
    player_names: list[str] = []
    for raw in player_ids:
        value = str(raw).strip()
        if value.startswith(PLAYER_NAME_PREFIX):
            name = value[len(PLAYER_NAME_PREFIX):]
            if name:
                player_names.append(name)
        elif value.isdigit():
            user_ids.append(int(value))
    return user_ids, player_names


# ── Query wrappers ─────────────────────────────────────────────────────────

def _get_group_or_404(group_id: int, session: Session) -> Group:
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def _games_in_groups(group_ids: list[int], session: Session) -> list[Game]:
    if not group_ids:
        return []
    stmt = select(Game).where(Game.group_id.in_(group_ids))
    return list(session.execute(stmt).scalars().all())


def _newest_first(games: list[Game]) -> list[Game]:
    return sorted(games, key=lambda g: (effective_date(g), _as_utc(g.created_at), g.id), reverse=True)


def _oldest_first(games: list[Game]) -> list[Game]:
    return sorted(games, key=lambda g: (effective_date(g), _as_utc(g.created_at), g.id))


def get_totals(
        caller_id: int | None,
        session: Session,
        group_id: int | None = None,
        time_period: str | None = None,
) -> list[dict]:
    """
    Totals table for one group, or across every group the caller can see.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403) — private group the caller is not in
    """
    if group_id is not None:
        group = _get_group_or_404(group_id, session)
        access_policy.require_group_readable(group, caller_id)
        group_ids = [group.id]
    else:
        group_ids = group_service.accessible_group_ids(caller_id, session)

    cutoff = date_cutoff(time_period)
    games = [g for g in _games_in_groups(group_ids, session) if game_matches_period(g, cutoff)]
    return calculate_user_totals(games)


def get_user_history(
        caller_id: int,
        target_user_id: int,
        session: Session,
        group_id: int | None = None,
) -> list[dict]:
    """
    The target user's per-game amounts within the caller's groups, newest first.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403) — caller is not a member of `group_id`
    """
    group_ids = group_service.member_group_ids(caller_id, session)
    if group_id is not None:
        group = _get_group_or_404(group_id, session)
        access_policy.require_group_member(group, caller_id)
        group_ids = [group.id]

    games = [
        g for g in _games_in_groups(group_ids, session)
        if any(row.user_id == target_user_id for row in g.transactions)
    ]
    return build_user_history(_newest_first(games), target_user_id)


def get_trends(
        caller_id: int | None,
        group_id: int,
        player_ids: list[Any],
        session: Session,
) -> dict:
    """
    Raises:
      AppError(MISSING_FIELD, 400)  — no playerIds given
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)      — private group the caller is not in
      AppError(INVALID_FIELD, 400)  — none of the playerIds is usable
    """
    if not player_ids:
        raise AppError(ErrorCode.MISSING_FIELD, "playerIds is required.", 400, field="playerIds")

    group = _get_group_or_404(group_id, session)
    access_policy.require_group_readable(group, caller_id)

    user_ids, player_names = split_player_ids(player_ids)
    if not user_ids and not player_names:
        raise AppError(ErrorCode.INVALID_FIELD, "No valid player IDs provided.", 400, field="playerIds")

    wanted_users = set(user_ids)
    wanted_names = set(player_names)
    games = [
        g for g in _games_in_groups([group.id], session)
        if any(
            (row.user_id is not None and row.user_id in wanted_users)
            or (row.user_id is None and row.player_name in wanted_names)
            for row in g.transactions
        )
    ]
    return build_trends_data(_oldest_first(games), user_ids, player_names)
