"""
schemas/game_schema.py — Marshmallow schemas for game and transaction endpoints.

Validation responsibility:
  - This file: request shape (required keys, types of ids, list structure).
  - services/transaction_service.py: amount parsing (INVALID_AMOUNT) and the
    zero-sum / duplicate-name invariants. Amounts are accepted raw here so
    that every path reports amount problems the same way.
  - services/game_service.py: date format (INVALID_DATE), row index,
    editable field names, settled state and membership.
"""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, ValidationError, fields, validate


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


class TransactionInputSchema(Schema):
    """One ledger row in a create or replace-all request."""

    class Meta:
        unknown = EXCLUDE

    user_id = fields.Int(
        data_key="userId",
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1, error="userId must be a positive integer."),
    )
    player_name = fields.Str(data_key="playerName", load_default=None, allow_none=True)
    amount = fields.Raw(required=True)


class CreateGameSchema(Schema):
    """
    POST /games

    transactions is optional; when supplied the rows must net to zero.
    """

    class Meta:
        unknown = EXCLUDE

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(max=200, error="Game name must be at most 200 characters."),
            _validate_non_empty_after_trim,
        ],
    )
    group_id = fields.Int(data_key="groupId", required=True, strict=True)
    date = fields.Str(load_default=None, allow_none=True)
    transactions = fields.List(
        fields.Nested(TransactionInputSchema),
        load_default=None,
        allow_none=True,
    )


class ReplaceTransactionsSchema(Schema):
    """POST /games/:id/transactions"""

    class Meta:
        unknown = EXCLUDE

    transactions = fields.List(fields.Nested(TransactionInputSchema), required=True)


class UpdateTransactionAmountSchema(Schema):
    """PUT /games/:id/transactions/:transactionId"""

    class Meta:
        unknown = EXCLUDE

    amount = fields.Raw(required=True)


class GameNameSchema(Schema):
    """PUT /games/public/:token/name"""

    class Meta:
        unknown = EXCLUDE

    name = fields.Str(required=True)


class GameDateSchema(Schema):
    """PUT /games/public/:token/date — a missing or blank date clears it."""

    class Meta:
        unknown = EXCLUDE

    date = fields.Str(load_default=None, allow_none=True)


class FieldUpdateSchema(Schema):
    """PATCH /games/public/:token/transaction/:rowIndex"""

    class Meta:
        unknown = EXCLUDE

    field = fields.Str(required=True)
    value = fields.Raw(required=True, allow_none=True)


class AddRowSchema(Schema):
    """POST /games/public/:token/transaction — both fields optional."""

    class Meta:
        unknown = EXCLUDE

    player_name = fields.Str(data_key="playerName", load_default=None, allow_none=True)
    amount = fields.Raw(load_default=None, allow_none=True)
