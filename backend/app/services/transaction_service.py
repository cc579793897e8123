"""
services/transaction_service.py — Ledger arithmetic and row rules.

Pure functions only: no database session, no Flask. game_service calls these
before persisting anything, and the unit tests exercise them directly.

Invariants enforced here:
  Zero-sum — |sum(amounts)| <= ZERO_SUM_TOLERANCE at every commit boundary
             whose LedgerOperation enforces it.
  Settle   — no two rows share a non-placeholder player name (case-insensitive).

All arithmetic uses Decimal. Floats are accepted on input but converted via
str() first so that 0.1 stays 0.1.
"""

from __future__ import annotations

import enum
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable

from backend.app.errors import AppError, ErrorCode
from backend.app.models.transaction import PLACEHOLDER_NAME

ZERO_SUM_TOLERANCE = Decimal("0.01")

# Transaction.amount is Numeric(14, 4): amounts are rounded to this quantum
# before any check so the checked value is the stored value.
AMOUNT_QUANTUM = Decimal("0.0001")
MAX_ABS_AMOUNT = Decimal("1e10")


class LedgerOperation(enum.Enum):
    """
    Every mutation of a game's rows, tagged with whether the zero-sum
    invariant is checked before the change is committed.

    Public-link editing (field patch, append, positional delete) allows the
    ledger to be out of balance while people are typing. The authenticated
    bulk routes and game creation always leave it balanced.
    """

    CREATE        = ("create", True)
    REPLACE_ALL   = ("replace_all", True)
    BULK_UPDATE   = ("bulk_update", True)
    BULK_DELETE   = ("bulk_delete", True)
    FIELD_PATCH   = ("field_patch", False)
    APPEND        = ("append", False)
    PUBLIC_DELETE = ("public_delete", False)

    def __init__(self, label: str, enforces_zero_sum: bool) -> None:
        self.label = label
        self.enforces_zero_sum = enforces_zero_sum


# ── Amount parsing ─────────────────────────────────────────────────────────

def parse_amount(value: Any, field: str = "amount") -> Decimal:
    """
    Converts a JSON amount into a finite Decimal.

    Accepts ints, floats and numeric strings. Rejects booleans, blanks, NaN,
    infinities and values too large for the column with INVALID_AMOUNT (400).
    The result is rounded half-up to AMOUNT_QUANTUM.
    """
    if isinstance(value, bool) or value is None:
        raise AppError(ErrorCode.INVALID_AMOUNT, "Amount must be a number.", 400, field=field)

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        if not value.strip():
            raise AppError(ErrorCode.INVALID_AMOUNT, "Amount must be a number.", 400, field=field)
        try:
            amount = Decimal(value.strip())
        except InvalidOperation:
            raise AppError(ErrorCode.INVALID_AMOUNT, "Amount must be a number.", 400, field=field)
    else:
        raise AppError(ErrorCode.INVALID_AMOUNT, "Amount must be a number.", 400, field=field)

    if not amount.is_finite():
        raise AppError(ErrorCode.INVALID_AMOUNT, "Amount must be a finite number.", 400, field=field)

    if abs(amount) >= MAX_ABS_AMOUNT:
        raise AppError(ErrorCode.INVALID_AMOUNT, "Amount is too large.", 400, field=field)
    return amount.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)


def _amount_of(row: Any) -> Decimal:
    if isinstance(row, dict):
        raw = row.get("amount", 0)
    else:
        raw = getattr(row, "amount", 0)
    return parse_amount(raw if raw is not None else 0)


def _name_of(row: Any) -> str | None:
    if isinstance(row, dict):
        return row.get("player_name", row.get("playerName"))
    return getattr(row, "player_name", None)


# ── Zero-sum ───────────────────────────────────────────────────────────────

def calculate_sum(rows: Iterable[Any]) -> Decimal:
    """Sums the amounts of rows given as dicts or Transaction-like objects."""
    total = Decimal("0")
    for row in rows:
        total += _amount_of(row)
    return total


def is_zero_sum(rows: Iterable[Any], tolerance: Decimal = ZERO_SUM_TOLERANCE) -> bool:
    return abs(calculate_sum(rows)) <= tolerance


def validate_zero_sum(rows: Iterable[Any], tolerance: Decimal = ZERO_SUM_TOLERANCE) -> Decimal:
    """
    Raises ZERO_SUM_VIOLATION (400) when the rows do not net to zero.

    The error carries the computed sum as `current_sum` so the client can
    show the discrepancy. Returns the sum on success.
    """
    total = calculate_sum(rows)
    if abs(total) > tolerance:
        raise AppError(
            ErrorCode.ZERO_SUM_VIOLATION,
            f"Transactions must sum to zero. Current sum: {float(total)}",
            400,
            field="transactions",
            current_sum=float(total),
        )
    return total


def enforce_policy(operation: LedgerOperation, rows: Iterable[Any]) -> None:
    """Applies the zero-sum check only when `operation` requires it."""
    if operation.enforces_zero_sum:
        validate_zero_sum(rows)


# ── Player names ───────────────────────────────────────────────────────────

def normalize_player_name(name: Any) -> str:
    """Trims a player name; blank or missing names become the placeholder."""
    if name is None:
        return PLACEHOLDER_NAME
    cleaned = str(name).strip()
    return cleaned or PLACEHOLDER_NAME


def is_placeholder(name: str | None) -> bool:
    return name is None or name.strip() in ("", PLACEHOLDER_NAME)


def find_duplicate_player_names(rows: Iterable[Any]) -> list[str]:
    """
    Returns the lowercased names used by more than one row, sorted.

    Placeholder and blank names are ignored.
    """
    seen: set[str] = set()
    duplicates: set[str] = set()
    for row in rows:
        name = _name_of(row)
        if is_placeholder(name):
            continue
        key = name.strip().lower()
        if key in seen:
            duplicates.add(key)
        seen.add(key)
    return sorted(duplicates)


def validate_no_duplicate_names(rows: Iterable[Any]) -> None:
    """Raises DUPLICATE_PLAYER_NAMES (400) listing the clashing names."""
    duplicates = find_duplicate_player_names(rows)
    if duplicates:
        raise AppError(
            ErrorCode.DUPLICATE_PLAYER_NAMES,
            f"Duplicate player names found: {', '.join(duplicates)}. "
            "Each player must have a unique name before settling.",
            400,
            duplicates=duplicates,
        )

