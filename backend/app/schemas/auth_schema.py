"""
schemas/auth_schema.py — Marshmallow schemas for authentication and profile endpoints.

Validation responsibility:
  - This file: field types, lengths, formats, regex patterns.
  - services/auth_service.py: DUPLICATE_USERNAME checks
    (cross-entity: require a DB lookup — not a schema concern).

IMPORTANT: All schemas inherit from marshmallow.Schema directly so unit
           tests can load them without a Flask app context.
"""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, ValidationError, fields, validate, validates

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _username_field(**kwargs) -> fields.Str:
    return fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=MIN_USERNAME_LENGTH,
                max=50,
                error="Username must be between 3 and 50 characters.",
            ),
            validate.Regexp(
                r"^[a-zA-Z0-9_]+$",
                error="Username may only contain letters, numbers, and underscores.",
            ),
        ],
        **kwargs,
    )


def _display_name_field(**kwargs) -> fields.Str:
    return fields.Str(
        data_key="displayName",
        validate=[
            validate.Length(max=100, error="Display name must be at most 100 characters."),
            _validate_non_empty_after_trim,
        ],
        **kwargs,
    )


class RegisterSchema(Schema):
    """
    POST /auth/register

    Field rules:
      username    : 3–50 chars, letters, digits and underscore only
      displayName : non-blank, max 100 chars
      password    : min 6 chars
    """

    class Meta:
        unknown = EXCLUDE

    username = _username_field()
    display_name = _display_name_field(required=True)
    password = fields.Str(required=True, load_only=True)

    @validates("password")
    def validate_password_length(self, value: str, **kwargs) -> None:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValidationError("Password must be at least 6 characters long.")


class LoginSchema(Schema):
    """
    POST /auth/login

    Credential correctness is checked in auth_service.py (INVALID_CREDENTIALS, 401).
    """

    class Meta:
        unknown = EXCLUDE

    username = fields.Str(required=True)
    password = fields.Str(required=True, load_only=True)


class QuickSignupSchema(Schema):
    """
    POST /games/public/:token/quick-signup

    Same username rules as registration. The password is optional; the
    service generates a random one when it is omitted.
    """

    class Meta:
        unknown = EXCLUDE

    username = _username_field()
    display_name = _display_name_field(required=True)
    password = fields.Str(load_default=None, allow_none=True, load_only=True)

    @validates("password")
    def validate_password_length(self, value: str | None, **kwargs) -> None:
        if value is not None and len(value) < MIN_PASSWORD_LENGTH:
            raise ValidationError("Password must be at least 6 characters long.")


class UpdateProfileSchema(Schema):
    """PATCH /users/me — only the display name is editable."""

    class Meta:
        unknown = EXCLUDE

    display_name = _display_name_field(required=True)
