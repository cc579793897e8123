"""
tests/unit/test_validation_schemas.py — Unit tests for the marshmallow schemas.

What this file proves:
  - Every schema accepts valid input and maps camelCase keys to snake_case
  - Field-level rules (required, type, length, regex) are enforced by schemas
  - Amount and date rules are NOT tested here — they belong to the services,
    so amounts pass through the schemas untouched

No database and no Flask application context.
"""

from __future__ import annotations

import pytest
from marshmallow import ValidationError

from backend.app.schemas.auth_schema import (
    LoginSchema,
    QuickSignupSchema,
    RegisterSchema,
    UpdateProfileSchema,
)
from backend.app.schemas.game_schema import (
    AddRowSchema,
    CreateGameSchema,
    FieldUpdateSchema,
    GameDateSchema,
    ReplaceTransactionsSchema,
)
from backend.app.schemas.group_schema import AddMemberSchema, CreateGroupSchema, UpdateGroupSchema


# ═══════════════════════════════════════════════════════════════════════════
# Auth
# ═══════════════════════════════════════════════════════════════════════════

class TestRegisterSchema:

    def test_valid_payload_maps_display_name(self):
        data = RegisterSchema().load({"username": "alice_1", "displayName": "Alice", "password": "secret1"})
        assert data == {"username": "alice_1", "display_name": "Alice", "password": "secret1"}

    def test_missing_display_name(self):
        with pytest.raises(ValidationError) as exc_info:
            RegisterSchema().load({"username": "alice", "password": "secret1"})
        assert "displayName" in exc_info.value.messages

    @pytest.mark.parametrize("username", ["al", "a" * 51, "bad name", "dash-name"])
    def test_invalid_usernames(self, username):
        with pytest.raises(ValidationError) as exc_info:
            RegisterSchema().load({"username": username, "displayName": "X", "password": "secret1"})
        assert "username" in exc_info.value.messages

    def test_short_password(self):
        with pytest.raises(ValidationError) as exc_info:
            RegisterSchema().load({"username": "alice", "displayName": "Alice", "password": "12345"})
        assert "password" in exc_info.value.messages

    def test_blank_display_name(self):
        with pytest.raises(ValidationError):
            RegisterSchema().load({"username": "alice", "displayName": "   ", "password": "secret1"})

    def test_unknown_keys_are_dropped(self):
        data = LoginSchema().load({"username": "alice", "password": "x", "remember": True})
        assert "remember" not in data


class TestQuickSignupSchema:

    def test_password_is_optional(self):
        data = QuickSignupSchema().load({"username": "guest", "displayName": "Guest"})
        assert data["password"] is None

    def test_short_password_rejected_when_given(self):
        with pytest.raises(ValidationError):
            QuickSignupSchema().load({"username": "guest", "displayName": "Guest", "password": "123"})


def test_update_profile_requires_display_name():
    with pytest.raises(ValidationError):
        UpdateProfileSchema().load({})


# ═══════════════════════════════════════════════════════════════════════════
# Groups
# ═══════════════════════════════════════════════════════════════════════════

class TestGroupSchemas:

    def test_create_defaults_to_public(self):
        data = CreateGroupSchema().load({"name": "Friday Poker"})
        assert data["is_public"] is True
        assert data["description"] is None

    def test_create_private(self):
        data = CreateGroupSchema().load({"name": "Family", "isPublic": False, "description": "Sundays"})
        assert data == {"name": "Family", "is_public": False, "description": "Sundays"}

    def test_create_rejects_blank_name(self):
        with pytest.raises(ValidationError) as exc_info:
            CreateGroupSchema().load({"name": "   "})
        assert "name" in exc_info.value.messages

    def test_update_only_returns_sent_fields(self):
        assert UpdateGroupSchema().load({"isPublic": False}) == {"is_public": False}

    def test_add_member_requires_username(self):
        with pytest.raises(ValidationError):
            AddMemberSchema().load({})


# ═══════════════════════════════════════════════════════════════════════════
# Games
# ═══════════════════════════════════════════════════════════════════════════

class TestGameSchemas:

    def test_create_game_minimal(self):
        data = CreateGameSchema().load({"name": "Night 1", "groupId": 3})
        assert data == {"name": "Night 1", "group_id": 3, "date": None, "transactions": None}

    def test_create_game_rows_keep_raw_amounts(self):
        data = CreateGameSchema().load({
            "name": "Night 1",
            "groupId": 3,
            "transactions": [
                {"userId": 1, "amount": "12.50"},
                {"playerName": "Zed", "amount": -12.5},
            ],
        })
        assert data["transactions"] == [
            {"user_id": 1, "player_name": None, "amount": "12.50"},
            {"user_id": None, "player_name": "Zed", "amount": -12.5},
        ]

    def test_group_id_must_be_integer(self):
        with pytest.raises(ValidationError) as exc_info:
            CreateGameSchema().load({"name": "Night 1", "groupId": "3"})
        assert "groupId" in exc_info.value.messages

    def test_row_amount_is_required(self):
        with pytest.raises(ValidationError) as exc_info:
            ReplaceTransactionsSchema().load({"transactions": [{"userId": 1}]})
        assert exc_info.value.messages == {"transactions": {0: {"amount": ["Missing data for required field."]}}}

    def test_field_update_allows_null_value(self):
        data = FieldUpdateSchema().load({"field": "playerName", "value": None})
        assert data == {"field": "playerName", "value": None}

    def test_add_row_fields_optional(self):
        assert AddRowSchema().load({}) == {"player_name": None, "amount": None}

    def test_date_is_optional(self):
        assert GameDateSchema().load({}) == {"date": None}
