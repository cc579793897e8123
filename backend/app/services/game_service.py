"""
services/game_service.py — Game ledger business logic.

A game moves between two states:

    Editable --settle (no duplicate player names)--> Settled
    Settled  --edit-->                               Editable

Every row mutation and every name/date edit on a Settled game raises
GAME_SETTLED (403).

Zero-sum enforcement is decided per operation by
transaction_service.LedgerOperation:
  - create, replace-all and the authenticated per-row update/delete check
    the invariant before anything is flushed;
  - the public-link field patch, append and positional delete do not, so
    collaborators can type through intermediate imbalances.

Public-link operations address a game by its public token and rows by
position; authenticated operations address games and rows by id.

Real-time: routes call broadcast_game_update() after committing. The hub is
passed in explicitly and a missing or failing hub never fails the request.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
import re
import secrets
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.game import Game
from backend.app.models.group import Group
from backend.app.models.transaction import PLACEHOLDER_NAME, Transaction
from backend.app.models.user import User
from backend.app.services import access_policy, auth_service, group_service, user_service
from backend.app.services import transaction_service as ledger
from backend.app.services.transaction_service import LedgerOperation

logger = logging.getLogger(__name__)

TOKEN_BYTES = 8
MAX_TOKEN_GENERATION_ATTEMPTS = 3
MEMBER_SEARCH_LIMIT = 10
DEFAULT_MAX_GAME_ROWS = 500

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_EDITABLE_FIELDS = ("playerName", "amount")


# ── Private helpers ────────────────────────────────────────────────────────

def generate_public_token() -> str:
    """8 random bytes, URL-safe base64 without padding (11 characters)."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def parse_game_date(value: Any) -> date | None:
    """
    Parses a strict YYYY-MM-DD string. Blank or missing values mean "no date".

    Raises:
      AppError(INVALID_DATE, 400)
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    if not _DATE_PATTERN.match(text):
        raise AppError(
            ErrorCode.INVALID_DATE,
            "Invalid date format. Expected YYYY-MM-DD.",
            400,
            field="date",
        )
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise AppError(
            ErrorCode.INVALID_DATE,
            f"'{text}' is not a valid calendar date.",
            400,
            field="date",
        )


def _parse_row_index(value: Any) -> int:
    """Raises INVALID_ROW_INDEX (400) for non-integers and negative values."""
    try:
        index = int(str(value).strip())
    except (TypeError, ValueError):
        raise AppError(ErrorCode.INVALID_ROW_INDEX, "Invalid row index.", 400, field="rowIndex")
    if index < 0:
        raise AppError(ErrorCode.INVALID_ROW_INDEX, "Invalid row index.", 400, field="rowIndex")
    return index


def _require_name(name: Any) -> str:
    cleaned = (name or "").strip() if isinstance(name, str) else ""
    if not cleaned:
        raise AppError(ErrorCode.MISSING_FIELD, "Game name is required.", 400, field="name")
    return cleaned


def _get_game_or_404(game_id: int, session: Session) -> Game:
    game = session.get(Game, game_id)
    if game is None:
        raise AppError(
            ErrorCode.GAME_NOT_FOUND,
            f"Game {game_id} does not exist.",
            404,
        )
    return game


def _get_game_by_token_or_404(token: str, session: Session) -> Game:
    game = session.execute(
        select(Game).where(Game.public_token == token)
    ).scalar_one_or_none()
    if game is None:
        raise AppError(
            ErrorCode.GAME_NOT_FOUND,
            "Game not found.",
            404,
        )
    return game


def _require_editable(game: Game) -> None:
    if game.settled:
        raise AppError(
            ErrorCode.GAME_SETTLED,
            "Game is settled and cannot be edited.",
            403,
        )


def _require_game_member(game: Game, caller_id: int) -> None:
    if not access_policy.is_group_member(game.group, caller_id):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You are not a member of this group.",
            403,
        )


def _token_in_use(token: str, session: Session) -> bool:
    return session.execute(
        select(Game.id).where(Game.public_token == token)
    ).first() is not None


def _is_public_token_conflict(error: IntegrityError) -> bool:
    # Postgres names the constraint; SQLite names the column.
    message = str(error.orig)
    return "uq_games_public_token" in message or "games.public_token" in message


def _persist_with_public_token(game: Game, session: Session) -> None:
    """
    Assigns a fresh public token and flushes the game inside a savepoint,
    retrying with a new token when the unique constraint rejects it. At most
    MAX_TOKEN_GENERATION_ATTEMPTS tokens are tried.

    Raises:
      AppError(PUBLIC_TOKEN_CONFLICT, 409)
    """
    for attempt in range(1, MAX_TOKEN_GENERATION_ATTEMPTS + 1):
        token = generate_public_token()
        if _token_in_use(token, session):
            logger.warning("Public token collision on attempt %s/%s", attempt, MAX_TOKEN_GENERATION_ATTEMPTS)
            continue

        game.public_token = token
        try:
            with session.begin_nested():
                session.add(game)
                session.flush()
            return
        except IntegrityError as error:
            if not _is_public_token_conflict(error):
                raise
            logger.warning(
                "Public token rejected by unique constraint on attempt %s/%s",
                attempt,
                MAX_TOKEN_GENERATION_ATTEMPTS,
            )

    raise AppError(
        ErrorCode.PUBLIC_TOKEN_CONFLICT,
        "Could not allocate a unique public link for this game. Please retry.",
        409,
    )


def _prepare_rows(rows: list[dict], session: Session) -> list[dict]:
    """
    Normalises incoming rows into Transaction constructor kwargs.

    Missing player names become the placeholder. Linked users must exist.
    """
    prepared = []
    for index, row in enumerate(rows):
        user_id = row.get("user_id")
        if user_id is not None and session.get(User, user_id) is None:
            raise AppError(
                ErrorCode.INVALID_FIELD,
                f"Transaction at index {index} references unknown user {user_id}.",
                400,
                field="transactions",
            )
        prepared.append({
            "user_id": user_id,
            "player_name": ledger.normalize_player_name(row.get("player_name")),
            "amount": ledger.parse_amount(row.get("amount", 0)),
        })
    return prepared


def _replace_rows(game: Game, prepared: list[dict]) -> None:
    for existing in list(game.transactions):
        game.transactions.remove(existing)
    for row in prepared:
        game.transactions.append(Transaction(**row))


def _find_row_by_id(game: Game, transaction_id: int) -> Transaction:
    row = next((t for t in game.transactions if t.id == transaction_id), None)
    if row is None:
        raise AppError(
            ErrorCode.TRANSACTION_NOT_FOUND,
            f"Transaction {transaction_id} does not exist in this game.",
            404,
        )
    return row


def _amount_to_json(amount: Decimal | None) -> float:
    return float(amount) if amount is not None else 0.0


def build_transaction_dict(row: Transaction) -> dict:
    user = row.user if row.user_id is not None else None
    return {
        "id": row.id,
        "position": row.position,
        "userId": row.user_id,
        "playerName": row.player_name,
        "amount": _amount_to_json(row.amount),
        "createdAt": row.created_at.isoformat() if row.created_at else None,
        "user": {
            "id": user.id,
            "username": user.username,
            "displayName": user.display_name,
        } if user is not None else None,
    }


def build_game_dict(game: Game) -> dict:
    """Serialises a Game and its rows into the JSON document clients render."""
    return {
        "id": game.id,
        "name": game.name,
        "date": game.date.isoformat() if game.date else None,
        "createdByUserId": game.created_by_user_id,
        "groupId": game.group_id,
        "groupName": game.group.name if game.group is not None else None,
        "publicToken": game.public_token,
        "settled": game.settled,
        "createdAt": game.created_at.isoformat() if game.created_at else None,
        "transactions": [build_transaction_dict(t) for t in game.transactions],
    }


def broadcast_game_update(game: dict, hub: Any) -> None:
    """
    Sends the committed game document to its public-token room.

    Fire-and-forget: an absent hub is a no-op and emit failures are logged.
    """
    if hub is None:
        logger.debug("No game room hub; skipping broadcast for game %s", game.get("id"))
        return
    try:
        hub.emit_game_updated(game["publicToken"], game)
    except Exception:
        logger.warning("Broadcast failed for game %s", game.get("id"), exc_info=True)


# ── Authenticated game operations ──────────────────────────────────────────

def create_game(
        requester_id: int,
        name: str,
        group_id: int,
        session: Session,
        game_date: Any = None,
        transactions: list[dict] | None = None,
) -> dict:
    """
    Creates a game inside a group.

    Private groups require membership. On a public group a non-member is
    joined to the group as part of the same unit of work.

    Raises:
      AppError(MISSING_FIELD, 400)         — blank name
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)             — private group, caller not a member
      AppError(INVALID_DATE, 400)
      AppError(ZERO_SUM_VIOLATION, 400)    — supplied rows do not net to zero
      AppError(PUBLIC_TOKEN_CONFLICT, 409) — token retries exhausted
    """
    cleaned_name = _require_name(name)

    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )

    is_member = access_policy.is_group_member(group, requester_id)
    if not group.is_public and not is_member:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You are not a member of this group.",
            403,
        )

    parsed_date = parse_game_date(game_date)

    prepared = _prepare_rows(transactions or [], session)
    ledger.enforce_policy(LedgerOperation.CREATE, prepared)

    if not is_member:
        group_service.add_membership(group, requester_id, session)
        logger.info("Auto-joined user %s to public group %s", requester_id, group.id)

    game = Game(
        name=cleaned_name,
        date=parsed_date,
        created_by_user_id=requester_id,
        group_id=group.id,
    )
    for row in prepared:
        game.transactions.append(Transaction(**row))
    _persist_with_public_token(game, session)

    logger.info("Game created: game_id=%s name=%r created_by=%s", game.id, game.name, requester_id)
    return build_game_dict(game)


def get_game(game_id: int, caller_id: int, session: Session) -> dict:
    """
    Raises:
      AppError(GAME_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403) — caller is not a member of the game's group
    """
    game = _get_game_or_404(game_id, session)
    _require_game_member(game, caller_id)
    return build_game_dict(game)


def list_games(caller_id: int | None, session: Session, group_id: int | None = None) -> list[dict]:
    """
    Games newest first (by date, then creation time).

    With `group_id` the group's visibility rule applies; without it the
    result spans every group the caller can see.
    """
    if group_id is not None:
        group = session.get(Group, group_id)
        if group is None:
            raise AppError(
                ErrorCode.GROUP_NOT_FOUND,
                f"Group {group_id} does not exist.",
                404,
            )
        access_policy.require_group_readable(group, caller_id)
        group_ids = [group.id]
    else:
        group_ids = group_service.accessible_group_ids(caller_id, session)

    if not group_ids:
        return []

    stmt = (
        select(Game)
        .where(Game.group_id.in_(group_ids))
        .order_by(Game.date.desc().nulls_last(), Game.created_at.desc(), Game.id.desc())
    )
    return [build_game_dict(g) for g in session.execute(stmt).scalars().all()]


def delete_game(
        game_id: int,
        caller_id: int,
        session: Session,
        is_super_user: bool = False,
) -> None:
    """
    Only the game's creator (who must still be a group member) or the
    super-user may delete a game.
    """
    game = _get_game_or_404(game_id, session)

    if not is_super_user:
        _require_game_member(game, caller_id)
        if game.created_by_user_id != caller_id:
            raise AppError(
                ErrorCode.FORBIDDEN,
                "Only the game's creator can delete it.",
                403,
            )

    session.delete(game)
    session.flush()

    logger.info("Game deleted: game_id=%s deleted_by=%s", game_id, caller_id)


def replace_all_transactions(
        game_id: int,
        caller_id: int,
        transactions: list[dict],
        session: Session,
) -> dict:
    """
    Replaces every row of a game. The replacement set must net to zero.

    Raises:
      AppError(GAME_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)
      AppError(GAME_SETTLED, 403)
      AppError(ZERO_SUM_VIOLATION, 400)
    """
    game = _get_game_or_404(game_id, session)
    _require_game_member(game, caller_id)
    _require_editable(game)

    prepared = _prepare_rows(transactions, session)
    ledger.enforce_policy(LedgerOperation.REPLACE_ALL, prepared)

    _replace_rows(game, prepared)
    session.flush()
    return build_game_dict(game)


def update_transaction_amount(
        game_id: int,
        transaction_id: int,
        caller_id: int,
        amount: Any,
        session: Session,
) -> dict:
    """Changes one row's amount; the resulting ledger must still net to zero."""
    game = _get_game_or_404(game_id, session)
    _require_game_member(game, caller_id)
    _require_editable(game)

    row = _find_row_by_id(game, transaction_id)
    new_amount = ledger.parse_amount(amount)

    candidate = [
        {"amount": new_amount if t is row else t.amount}
        for t in game.transactions
    ]
    ledger.enforce_policy(LedgerOperation.BULK_UPDATE, candidate)

    row.amount = new_amount
    session.flush()
    return build_game_dict(game)


def delete_transaction_by_id(
        game_id: int,
        transaction_id: int,
        caller_id: int,
        session: Session,
) -> dict:
    """
    Removes one row by id. The remaining rows must still net to zero,
    otherwise the delete is rejected with the would-be sum.
    """
    game = _get_game_or_404(game_id, session)
    _require_game_member(game, caller_id)
    _require_editable(game)

    row = _find_row_by_id(game, transaction_id)
    remaining = [t for t in game.transactions if t is not row]
    ledger.enforce_policy(LedgerOperation.BULK_DELETE, remaining)

    game.transactions.remove(row)
    session.flush()
    return build_game_dict(game)


# ── Public-link operations ─────────────────────────────────────────────────

def get_game_by_public_token(token: str, session: Session) -> dict:
    return build_game_dict(_get_game_by_token_or_404(token, session))


def find_game_by_public_token(token: str, session: Session) -> dict | None:
    """Best-effort lookup: returns None instead of raising when absent."""
    game = session.execute(
        select(Game).where(Game.public_token == token)
    ).scalar_one_or_none()
    return build_game_dict(game) if game is not None else None


def update_game_name(token: str, name: Any, session: Session) -> dict:
    cleaned = _require_name(name)
    game = _get_game_by_token_or_404(token, session)
    _require_editable(game)

    game.name = cleaned
    session.flush()
    return build_game_dict(game)


def update_game_date(token: str, value: Any, session: Session) -> dict:
    """Sets or clears (blank/None) the game's calendar date."""
    game = _get_game_by_token_or_404(token, session)
    _require_editable(game)

    game.date = parse_game_date(value)
    session.flush()
    return build_game_dict(game)


def update_transaction_field(
        token: str,
        row_index: Any,
        field: str,
        value: Any,
        session: Session,
        max_rows: int = DEFAULT_MAX_GAME_ROWS,
) -> dict:
    """
    Writes one cell of the public grid.

    Addressing a row past the end grows the grid: every missing row up to
    and including `row_index` is created as a placeholder row with amount 0.
    The grid never grows past `max_rows` rows.
    Writing a player name unlinks the row from any registered user.
    The zero-sum invariant is not checked here.

    Raises:
      AppError(INVALID_FIELD, 400)     — field is not playerName or amount
      AppError(GAME_NOT_FOUND, 404)
      AppError(GAME_SETTLED, 403)
      AppError(INVALID_ROW_INDEX, 400)
      AppError(GAME_ROW_LIMIT, 400)    — row_index >= max_rows
      AppError(INVALID_AMOUNT, 400)
    """
    if field not in _EDITABLE_FIELDS:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            'field must be "playerName" or "amount".',
            400,
            field="field",
        )

    game = _get_game_by_token_or_404(token, session)
    _require_editable(game)
    index = _parse_row_index(row_index)
    if index >= max_rows:
        raise AppError(
            ErrorCode.GAME_ROW_LIMIT,
            f"A game can have at most {max_rows} rows.",
            400,
            field="rowIndex",
        )

    # Parse before growing the grid so a bad amount leaves no synthesized rows.
    new_amount = ledger.parse_amount(value) if field == "amount" else None

    while len(game.transactions) <= index:
        game.transactions.append(Transaction(player_name=PLACEHOLDER_NAME, amount=Decimal("0")))

    row = game.transactions[index]
    if field == "playerName":
        row.player_name = ledger.normalize_player_name(value)
        row.user_id = None
    else:
        row.amount = new_amount

    ledger.enforce_policy(LedgerOperation.FIELD_PATCH, game.transactions)
    session.flush()
    return build_game_dict(game)


def add_transaction(
        token: str,
        session: Session,
        player_name: Any = None,
        amount: Any = None,
        max_rows: int = DEFAULT_MAX_GAME_ROWS,
) -> dict:
    """
    Appends a row; omitted fields default to the placeholder name and 0.

    Raises:
      AppError(GAME_ROW_LIMIT, 400) — the game already has `max_rows` rows
    """
    game = _get_game_by_token_or_404(token, session)
    _require_editable(game)
    if len(game.transactions) >= max_rows:
        raise AppError(
            ErrorCode.GAME_ROW_LIMIT,
            f"A game can have at most {max_rows} rows.",
            400,
        )

    parsed_amount = ledger.parse_amount(amount) if amount is not None else Decimal("0")
    game.transactions.append(Transaction(
        player_name=ledger.normalize_player_name(player_name),
        amount=parsed_amount,
    ))

    ledger.enforce_policy(LedgerOperation.APPEND, game.transactions)
    session.flush()
    return build_game_dict(game)


def delete_transaction(token: str, row_index: Any, session: Session) -> dict:
    """
    Removes the row at `row_index`; later rows shift up by one.

    Raises:
      AppError(TRANSACTION_NOT_FOUND, 404) — index is not an existing row
    """
    game = _get_game_by_token_or_404(token, session)
    _require_editable(game)

    try:
        index = int(str(row_index).strip())
    except (TypeError, ValueError):
        index = -1
    if index < 0 or index >= len(game.transactions):
        raise AppError(
            ErrorCode.TRANSACTION_NOT_FOUND,
            "Transaction not found.",
            404,
        )

    game.transactions.pop(index)

    ledger.enforce_policy(LedgerOperation.PUBLIC_DELETE, game.transactions)
    session.flush()
    return build_game_dict(game)


def settle_game(token: str, session: Session) -> dict:
    """
    Marks the game read-only.

    Raises:
      AppError(DUPLICATE_PLAYER_NAMES, 400) — carries the clashing names
    """
    game = _get_game_by_token_or_404(token, session)
    ledger.validate_no_duplicate_names(game.transactions)

    game.settled = True
    session.flush()

    logger.info("Game settled: game_id=%s", game.id)
    return build_game_dict(game)


def unsettle_game(token: str, session: Session) -> dict:
    """Makes the game editable again. A no-op on an editable game."""
    game = _get_game_by_token_or_404(token, session)
    game.settled = False
    session.flush()
    return build_game_dict(game)


def get_game_members(token: str, session: Session) -> list[dict]:
    """Members of the game's group, for the public editor's player picker."""
    game = _get_game_by_token_or_404(token, session)
    return [
        {
            "id": m.user.id,
            "username": m.user.username,
            "displayName": m.user.display_name,
        }
        for m in game.group.memberships
        if m.user is not None
    ]


def search_users_for_game(token: str, query: Any, session: Session) -> dict:
    """
    Splits matching users into those already in the game's group and the rest.

    Raises:
      AppError(MISSING_FIELD, 400) — blank query
    """
    if not isinstance(query, str) or not query.strip():
        raise AppError(ErrorCode.MISSING_FIELD, "Search query is required.", 400, field="q")

    game = _get_game_by_token_or_404(token, session)
    group = game.group

    in_group, not_in_group = [], []
    for user in user_service.search_users(query, session, limit=MEMBER_SEARCH_LIMIT):
        entry = {"id": user.id, "username": user.username, "displayName": user.display_name}
        if access_policy.is_group_member(group, user.id):
            in_group.append(entry)
        else:
            not_in_group.append(entry)
    return {"inGroup": in_group, "notInGroup": not_in_group}


def quick_signup(
        token: str,
        username: str,
        display_name: str,
        session: Session,
        password: str | None = None,
) -> dict:
    """
    Registers a user from a public game link and joins them to its group.

    Without a password a random one is set; the account can be claimed
    later by an operator resetting it.

    Raises:
      AppError(GAME_NOT_FOUND, 404)
      AppError(DUPLICATE_USERNAME, 409)
    """
    game = _get_game_by_token_or_404(token, session)

    user = auth_service.create_user(
        username,
        display_name,
        password or secrets.token_hex(16),
        session,
    )
    group_service.add_membership(game.group, user.id, session)

    logger.info("Quick signup: user_id=%s joined group %s via game %s", user.id, game.group_id, game.id)
    return auth_service.build_user_dict(user)
