"""
schemas/group_schema.py — Marshmallow schemas for group and membership endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim).
  - services/group_service.py:
      - admin / member / super-user authorization (403)
      - USER_NOT_FOUND (username lookup requires DB)
      - ALREADY_MEMBER (membership existence check requires DB)
      - GROUP_NOT_FOUND (requires DB lookup)
"""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, ValidationError, fields, validate


# validate.Length(min=1) alone allows whitespace-only strings like "   ".
# This validator strips first, mirroring CHECK(LENGTH(TRIM(name)) > 0).

def _validate_non_empty_after_trim(value: str) -> None:
    """Raises ValidationError if the string is blank or contains only whitespace."""
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


class CreateGroupSchema(Schema):
    """
    POST /groups

    name        : non-empty after trim, max 100 chars
    description : optional
    isPublic    : optional, defaults to true
    """

    class Meta:
        unknown = EXCLUDE

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=100,
                error="Group name must be between 1 and 100 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )
    description = fields.Str(load_default=None, allow_none=True)
    is_public = fields.Bool(data_key="isPublic", load_default=True)


class UpdateGroupSchema(Schema):
    """
    PATCH /groups/:id

    Every field is optional. A provided name must not be blank; the service
    re-checks that so direct callers get the same rule.
    """

    class Meta:
        unknown = EXCLUDE

    name = fields.Str(validate=validate.Length(max=100))
    description = fields.Str(allow_none=True)
    is_public = fields.Bool(data_key="isPublic")


class AddMemberSchema(Schema):
    """
    POST /groups/:id/members

    Members are added by username. Existence is a DB concern (USER_NOT_FOUND, 404).
    """

    class Meta:
        unknown = EXCLUDE

    username = fields.Str(
        required=True,
        validate=_validate_non_empty_after_trim,
    )
