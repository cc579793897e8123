"""
Unit tests for game_service: pure helpers and branches that need no database.

Games are SimpleNamespace stand-ins and the session is a MagicMock; the
real grid-growth and persistence paths are covered by the integration suite.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from backend.app.errors import AppError, ErrorCode
from backend.app.services import game_service


def _game(settled=False, rows=None, members=(1,), is_public=True):
    memberships = [SimpleNamespace(user_id=uid) for uid in members]
    group = SimpleNamespace(
        id=5,
        name="Poker",
        created_by_user_id=members[0],
        is_public=is_public,
        memberships=memberships,
        members=memberships,
    )
    return SimpleNamespace(
        id=9,
        settled=settled,
        transactions=rows if rows is not None else [],
        group=group,
        group_id=5,
        created_by_user_id=members[0],
    )


# ═══════════════════════════════════════════════════════════════════════════
# Dates, tokens and row indexes
# ═══════════════════════════════════════════════════════════════════════════

class TestParseGameDate:

    def test_valid_date(self):
        assert game_service.parse_game_date("2026-03-09") == date(2026, 3, 9)

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_blank_means_no_date(self, value):
        assert game_service.parse_game_date(value) is None

    @pytest.mark.parametrize("value", ["09/03/2026", "2026-3-9", "2026-02-30", "tomorrow"])
    def test_invalid_dates(self, value):
        with pytest.raises(AppError) as exc_info:
            game_service.parse_game_date(value)
        assert exc_info.value.code == ErrorCode.INVALID_DATE
        assert exc_info.value.field == "date"


def test_public_tokens_are_url_safe_and_distinct():
    tokens = {game_service.generate_public_token() for _ in range(50)}
    assert len(tokens) == 50
    assert all(len(t) == 11 and "=" not in t for t in tokens)


@pytest.mark.parametrize("value", ["-1", "abc", "1.5", None])
def test_parse_row_index_rejects_bad_values(value):
    with pytest.raises(AppError) as exc_info:
        game_service._parse_row_index(value)
    assert exc_info.value.code == ErrorCode.INVALID_ROW_INDEX


def test_parse_row_index_accepts_numeric_strings():
    assert game_service._parse_row_index(" 5 ") == 5


def _token_conflict() -> IntegrityError:
    return IntegrityError(
        "INSERT INTO games ...", {}, Exception("UNIQUE constraint failed: games.public_token"),
    )


@patch("backend.app.services.game_service._token_in_use", return_value=True)
@patch("backend.app.services.game_service.generate_public_token", return_value="dup")
def test_public_token_gives_up_after_three_collisions(mock_generate, _mock_in_use):
    session = MagicMock()
    with pytest.raises(AppError) as exc_info:
        game_service._persist_with_public_token(SimpleNamespace(public_token=None), session)

    assert exc_info.value.code == ErrorCode.PUBLIC_TOKEN_CONFLICT
    assert exc_info.value.http_status == 409
    assert mock_generate.call_count == game_service.MAX_TOKEN_GENERATION_ATTEMPTS
    session.flush.assert_not_called()


@patch("backend.app.services.game_service._token_in_use", side_effect=[True, False])
@patch("backend.app.services.game_service.generate_public_token", side_effect=["taken", "fresh"])
def test_public_token_skips_tokens_already_in_use(_mock_generate, _mock_in_use):
    game = SimpleNamespace(public_token=None)
    session = MagicMock()

    game_service._persist_with_public_token(game, session)

    assert game.public_token == "fresh"
    session.add.assert_called_once_with(game)


@patch("backend.app.services.game_service._token_in_use", return_value=False)
@patch("backend.app.services.game_service.generate_public_token", side_effect=["raced", "fresh"])
def test_public_token_retried_when_flush_hits_unique_constraint(_mock_generate, _mock_in_use):
    game = SimpleNamespace(public_token=None)
    session = MagicMock()
    session.flush.side_effect = [_token_conflict(), None]

    game_service._persist_with_public_token(game, session)

    assert game.public_token == "fresh"
    assert session.begin_nested.call_count == 2


@patch("backend.app.services.game_service._token_in_use", return_value=False)
@patch("backend.app.services.game_service.generate_public_token", return_value="raced")
def test_public_token_conflict_after_repeated_constraint_failures(_mock_generate, _mock_in_use):
    session = MagicMock()
    session.flush.side_effect = _token_conflict()

    with pytest.raises(AppError) as exc_info:
        game_service._persist_with_public_token(SimpleNamespace(public_token=None), session)
    assert exc_info.value.code == ErrorCode.PUBLIC_TOKEN_CONFLICT


@patch("backend.app.services.game_service._token_in_use", return_value=False)
@patch("backend.app.services.game_service.generate_public_token", return_value="tok")
def test_other_integrity_errors_propagate(_mock_generate, _mock_in_use):
    session = MagicMock()
    session.flush.side_effect = IntegrityError(
        "INSERT INTO games ...", {}, Exception("FOREIGN KEY constraint failed"),
    )

    with pytest.raises(IntegrityError):
        game_service._persist_with_public_token(SimpleNamespace(public_token=None), session)


# ═══════════════════════════════════════════════════════════════════════════
# Settled state and membership
# ═══════════════════════════════════════════════════════════════════════════

@patch("backend.app.services.game_service._get_game_by_token_or_404")
def test_settled_game_rejects_field_patch(mock_get_game):
    mock_get_game.return_value = _game(settled=True)

    with pytest.raises(AppError) as exc_info:
        game_service.update_transaction_field("tok", 0, "amount", 5, session=MagicMock())

    assert exc_info.value.code == ErrorCode.GAME_SETTLED
    assert exc_info.value.http_status == 403


@patch("backend.app.services.game_service._get_game_by_token_or_404")
def test_settled_game_rejects_name_change(mock_get_game):
    mock_get_game.return_value = _game(settled=True)

    with pytest.raises(AppError) as exc_info:
        game_service.update_game_name("tok", "New name", session=MagicMock())

    assert exc_info.value.code == ErrorCode.GAME_SETTLED


@patch("backend.app.services.game_service._get_game_by_token_or_404")
def test_field_patch_beyond_row_limit_adds_nothing(mock_get_game):
    game = _game()
    mock_get_game.return_value = game

    with pytest.raises(AppError) as exc_info:
        game_service.update_transaction_field("tok", "20000", "amount", 5, session=MagicMock(), max_rows=3)

    assert exc_info.value.code == ErrorCode.GAME_ROW_LIMIT
    assert game.transactions == []


@patch("backend.app.services.game_service._get_game_by_token_or_404")
def test_append_rejected_when_game_is_full(mock_get_game):
    game = _game(rows=[SimpleNamespace(player_name="_", amount=Decimal("0"))] * 3)
    mock_get_game.return_value = game

    with pytest.raises(AppError) as exc_info:
        game_service.add_transaction("tok", session=MagicMock(), player_name="Ann", max_rows=3)

    assert exc_info.value.code == ErrorCode.GAME_ROW_LIMIT
    assert len(game.transactions) == 3


def test_field_patch_rejects_unknown_field():
    with pytest.raises(AppError) as exc_info:
        game_service.update_transaction_field("tok", 0, "userId", 5, session=MagicMock())

    assert exc_info.value.code == ErrorCode.INVALID_FIELD
    assert exc_info.value.field == "field"


@patch("backend.app.services.game_service._get_game_by_token_or_404")
def test_settle_with_duplicate_names_leaves_game_editable(mock_get_game):
    game = _game(rows=[
        SimpleNamespace(player_name="Alice", amount=Decimal("100")),
        SimpleNamespace(player_name="alice", amount=Decimal("-100")),
    ])
    mock_get_game.return_value = game

    with pytest.raises(AppError) as exc_info:
        game_service.settle_game("tok", session=MagicMock())

    assert exc_info.value.code == ErrorCode.DUPLICATE_PLAYER_NAMES
    assert exc_info.value.duplicates == ["alice"]
    assert game.settled is False


@patch("backend.app.services.game_service._get_game_by_token_or_404")
def test_public_delete_out_of_range_is_not_found(mock_get_game):
    mock_get_game.return_value = _game(rows=[SimpleNamespace(player_name="_", amount=Decimal("0"))])

    with pytest.raises(AppError) as exc_info:
        game_service.delete_transaction("tok", "3", session=MagicMock())

    assert exc_info.value.code == ErrorCode.TRANSACTION_NOT_FOUND
    assert exc_info.value.http_status == 404


@patch("backend.app.services.game_service._get_game_or_404")
def test_replace_all_requires_group_membership(mock_get_game):
    mock_get_game.return_value = _game(members=(1, 2))

    with pytest.raises(AppError) as exc_info:
        game_service.replace_all_transactions(9, caller_id=3, transactions=[], session=MagicMock())

    assert exc_info.value.code == ErrorCode.FORBIDDEN


@patch("backend.app.services.game_service._get_game_or_404")
def test_delete_game_by_non_creator_forbidden(mock_get_game):
    session = MagicMock()
    mock_get_game.return_value = _game(members=(1, 2))

    with pytest.raises(AppError) as exc_info:
        game_service.delete_game(9, caller_id=2, session=session)

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    session.delete.assert_not_called()


@patch("backend.app.services.game_service._get_game_or_404")
def test_delete_game_super_user_bypasses_checks(mock_get_game):
    session = MagicMock()
    game = _game(members=(1, 2))
    mock_get_game.return_value = game

    game_service.delete_game(9, caller_id=77, session=session, is_super_user=True)

    session.delete.assert_called_once_with(game)


def test_search_users_for_game_requires_query():
    with pytest.raises(AppError) as exc_info:
        game_service.search_users_for_game("tok", "  ", session=MagicMock())

    assert exc_info.value.code == ErrorCode.MISSING_FIELD


# ═══════════════════════════════════════════════════════════════════════════
# Broadcasting
# ═══════════════════════════════════════════════════════════════════════════

class TestBroadcast:

    DOC = {"id": 9, "publicToken": "tok", "transactions": []}

    def test_emits_to_token_room(self):
        hub = MagicMock()
        game_service.broadcast_game_update(self.DOC, hub)
        hub.emit_game_updated.assert_called_once_with("tok", self.DOC)

    def test_missing_hub_is_a_no_op(self):
        game_service.broadcast_game_update(self.DOC, None)

    def test_hub_failure_is_swallowed(self):
        hub = MagicMock()
        hub.emit_game_updated.side_effect = RuntimeError("socket down")
        game_service.broadcast_game_update(self.DOC, hub)
