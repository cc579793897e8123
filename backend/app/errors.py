"""
errors.py — AppError base class and error code registry.

Every error returned by the GameLedger API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a contract with the frontend. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).

Response envelope:
  {"error": "<message>", "code": "<CODE>"}
plus, when present, "field", "duplicates" (settle failures) and
"currentSum" (zero-sum failures).
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
            duplicates: list[str] | None = None,
            current_sum: float | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field        # which request field caused the error
        self.duplicates  = duplicates   # duplicate player names blocking settle
        self.current_sum = current_sum  # actual ledger sum on a zero-sum failure

    def to_dict(self) -> dict:
        payload = {
            "error": self.message,
            "code":  self.code,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.duplicates is not None:
            payload["duplicates"] = list(self.duplicates)
        if self.current_sum is not None:
            payload["currentSum"] = self.current_sum
        return payload

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# These are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT             = "INVALID_AMOUNT"
    INVALID_DATE               = "INVALID_DATE"
    INVALID_ROW_INDEX          = "INVALID_ROW_INDEX"

    # ── Ledger Rule Violations (400) ───────────────────────────────────────
    ZERO_SUM_VIOLATION         = "ZERO_SUM_VIOLATION"
    DUPLICATE_PLAYER_NAMES     = "DUPLICATE_PLAYER_NAMES"
    GAME_ROW_LIMIT             = "GAME_ROW_LIMIT"
    CANNOT_REMOVE_CREATOR      = "CANNOT_REMOVE_CREATOR"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_USERNAME         = "DUPLICATE_USERNAME"
    ALREADY_MEMBER             = "ALREADY_MEMBER"
    PUBLIC_TOKEN_CONFLICT      = "PUBLIC_TOKEN_CONFLICT"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    GAME_NOT_FOUND             = "GAME_NOT_FOUND"
    TRANSACTION_NOT_FOUND      = "TRANSACTION_NOT_FOUND"
    MEMBER_NOT_FOUND           = "MEMBER_NOT_FOUND"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"    # 401
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403
    GAME_SETTLED               = "GAME_SETTLED"           # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"
