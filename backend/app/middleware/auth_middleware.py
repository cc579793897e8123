"""
middleware/auth_middleware.py — JWT authentication decorators.

@require_auth:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Decodes and verifies the JWT signature using HS256
  3. Checks token expiry
  4. Loads the user so the handle is known for the super-user check
  5. Attaches user_id, username and is_super_user to flask.g
  6. Raises the appropriate 401 error if any step fails

@optional_auth runs the same sequence but treats a missing or unusable token
as an anonymous request (g.user_id = None) instead of failing. Routes whose
visibility depends on public/private groups use it.

Strict responsibility boundary:
  - This middleware authenticates (401) only.
  - Group membership and ownership checks (403) live in the service layer.
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from backend.app.errors import AppError, ErrorCode
from backend.app.extensions import db
from backend.app.models.user import User


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces JWT authentication.

    Usage:
        @games_bp.route("", methods=["POST"])
        @require_auth
        def create_game():
            user_id = g.user_id  # always an int when this runs
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def optional_auth(f: Callable) -> Callable:
    """
    Route decorator that authenticates when a valid Bearer token is present.

    Sets g.user_id to None (and g.is_super_user to False) for anonymous
    callers or callers whose token cannot be verified.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        g.user_id = None
        g.username = None
        g.is_super_user = False
        if request.headers.get("Authorization"):
            try:
                _authenticate_request()
            except AppError:
                g.user_id = None
                g.username = None
                g.is_super_user = False
        return f(*args, **kwargs)

    return decorated


def _authenticate_request() -> None:
    """
    Performs the full JWT authentication sequence and populates flask.g.

    Separated from the decorator wrapper for testability — can be called
    directly in tests without wrapping a real view function.
    """
    auth_header = request.headers.get("Authorization", "")

    # ── Step 1: Require Authorization header ──────────────────────────────
    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    # ── Step 2: Parse "Bearer <token>" format ─────────────────────────────
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )

    raw_token = parts[1]

    # ── Step 3: Decode and verify the JWT ─────────────────────────────────
    try:
        payload = jwt.decode(
            raw_token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Log in again to obtain a new one.",
            401,
        )
    except jwt.InvalidTokenError:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            401,
        )

    # ── Step 4: Extract and validate the sub (user_id) claim ──────────────
    sub = payload.get("sub")
    if sub is None:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is missing the required 'sub' claim.",
            401,
        )

    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The 'sub' claim in the access token is not a valid user ID.",
            401,
        )

    # ── Step 5: Resolve the principal ─────────────────────────────────────
    user = db.session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The user for this access token no longer exists.",
            401,
        )

    # ── Step 6: Attach the principal to flask.g ───────────────────────────
    # Services receive these as plain arguments; they never read flask.g.
    g.user_id = user.id
    g.username = user.username
    g.is_super_user = user.username == current_app.config.get("SUPER_USER_USERNAME")
