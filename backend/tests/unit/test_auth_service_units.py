"""
Unit tests for auth_service branches not naturally hit in integration flow.
"""

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from backend.app.errors import AppError, ErrorCode
from backend.app.services import auth_service, user_service


def test_get_current_user_returns_serialized_user():
    session = MagicMock()
    created_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
    session.get.return_value = SimpleNamespace(
        id=7,
        username="alice",
        display_name="Alice",
        created_at=created_at,
    )

    result = auth_service.get_current_user(user_id=7, session=session)

    assert result == {
        "id": 7,
        "username": "alice",
        "displayName": "Alice",
        "createdAt": created_at.isoformat(),
    }


def test_get_current_user_raises_user_not_found():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        auth_service.get_current_user(user_id=99999, session=session)

    err = exc_info.value
    assert err.code == ErrorCode.USER_NOT_FOUND
    assert err.http_status == 404


def test_normalize_username_trims_and_lowercases():
    assert auth_service.normalize_username("  Alice ") == "alice"
    assert auth_service.normalize_username(None) == ""


@patch("backend.app.services.auth_service.find_by_username")
def test_create_user_duplicate_username_raises_409(mock_find_by_username):
    session = MagicMock()
    mock_find_by_username.return_value = SimpleNamespace(id=1, username="alice")

    with pytest.raises(AppError) as exc_info:
        auth_service.create_user("ALICE", "Alice", "secret1", session)

    err = exc_info.value
    assert err.code == ErrorCode.DUPLICATE_USERNAME
    assert err.http_status == 409
    session.add.assert_not_called()


@patch("backend.app.services.auth_service.find_by_username")
def test_login_unknown_user_raises_invalid_credentials(mock_find_by_username):
    mock_find_by_username.return_value = None

    with pytest.raises(AppError) as exc_info:
        auth_service.login_user("ghost", "whatever", session=MagicMock())

    err = exc_info.value
    assert err.code == ErrorCode.INVALID_CREDENTIALS
    assert err.http_status == 401


@patch("backend.app.services.auth_service.verify_password", return_value=False)
@patch("backend.app.services.auth_service.find_by_username")
def test_login_wrong_password_uses_same_error(mock_find_by_username, _mock_verify):
    mock_find_by_username.return_value = SimpleNamespace(id=1, username="alice", password_hash="x")

    with pytest.raises(AppError) as exc_info:
        auth_service.login_user("alice", "wrong", session=MagicMock())

    assert exc_info.value.code == ErrorCode.INVALID_CREDENTIALS


@pytest.mark.parametrize("term, expected", [
    ("ali", "ali"),
    ("a_b", "a\\_b"),
    ("100%", "100\\%"),
    ("c:\\x", "c:\\\\x"),
])
def test_escape_like_makes_wildcards_literal(term, expected):
    assert user_service._escape_like(term) == expected


def test_search_users_blank_query_skips_database():
    session = MagicMock()
    assert user_service.search_users("   ", session) == []
    session.execute.assert_not_called()
