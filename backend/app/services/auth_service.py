"""
services/auth_service.py — Authentication business logic.

Responsibilities:
  - User registration and credential validation
  - JWT access token creation (HS256)
  - Password hashing (bcrypt) and verification

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or HTTP status codes
  - current_app.config is used ONLY to read the JWT secret/expiry and the
    bcrypt cost factor.

Token design:
  - Access token: JWT, HS256, 7 day TTL by default, sub = user_id (str)
  - There is no refresh token; clients log in again after expiry.

Password storage:
  - Hashed with bcrypt (cost factor from config BCRYPT_LOG_ROUNDS)
  - Raw password is never stored, never logged
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone

import bcrypt
import jwt
from flask import current_app
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.user import User

logger = logging.getLogger(__name__)


# ── Credential primitives ──────────────────────────────────────────────────

def hash_password(password: str) -> str:
    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 10)
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds),
    ).decode("utf-8")


def verify_password(password_hash: str, password: str) -> bool:
    return bcrypt.checkpw(
        password.encode("utf-8"),
        password_hash.encode("utf-8"),
    )


def normalize_username(username: str) -> str:
    return (username or "").strip().lower()


def create_access_token(user_id: int) -> str:
    """
    Creates a signed JWT access token.
    Payload: sub (user_id as str), iat, exp, jti.
    """
    now = datetime.now(timezone.utc)
    expiry = now + current_app.config["JWT_ACCESS_TOKEN_EXPIRES"]
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": expiry,
        # Guarantees each issued token is unique even if generated in the same second.
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def build_user_dict(user: User) -> dict:
    """Serialises a User to a plain dict. No business logic."""
    return {
        "id": user.id,
        "username": user.username,
        "displayName": user.display_name,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }


def find_by_username(username: str, session: Session) -> User | None:
    return session.execute(
        select(User).where(User.username == normalize_username(username))
    ).scalar_one_or_none()


def create_user(
        username: str,
        display_name: str,
        password: str,
        session: Session,
) -> User:
    """
    Inserts a user with a hashed password.

    Raises:
      AppError(DUPLICATE_USERNAME, 409) — handle already taken (case-insensitive)
    """
    handle = normalize_username(username)
    if find_by_username(handle, session) is not None:
        raise AppError(
            ErrorCode.DUPLICATE_USERNAME,
            f"The username '{handle}' is already taken.",
            409,
            field="username",
        )

    user = User(
        username=handle,
        display_name=(display_name or "").strip() or handle,
        password_hash=hash_password(password),
    )
    session.add(user)
    session.flush()
    return user


# ── Public service functions ───────────────────────────────────────────────

def register_user(
        username: str,
        display_name: str,
        password: str,
        session: Session,
) -> dict:
    """
    Creates a new user account and issues an access token.

    Raises:
      AppError(DUPLICATE_USERNAME, 409) — username already taken

    Returns: {"token": "...", "user": {...}}
    """
    user = create_user(username, display_name, password, session)
    logger.info("User registered: user_id=%s username=%s", user.id, user.username)

    return {
        "token": create_access_token(user.id),
        "user": build_user_dict(user),
    }


def login_user(
        username: str,
        password: str,
        session: Session,
) -> dict:
    """
    Validates credentials and issues a new access token.

    Raises:
      AppError(INVALID_CREDENTIALS, 401) — username not found or password wrong.
      Uses the same error for both to avoid username enumeration.

    Returns: {"token": "...", "user": {...}}
    """
    user = find_by_username(username, session)

    if user is None or not verify_password(user.password_hash, password):
        raise AppError(
            ErrorCode.INVALID_CREDENTIALS,
            "The username or password is incorrect.",
            401,
        )

    return {
        "token": create_access_token(user.id),
        "user": build_user_dict(user),
    }


def get_current_user(user_id: int, session: Session) -> dict:
    """
    Returns the profile of the currently authenticated user.

    Raises:
      AppError(USER_NOT_FOUND, 404) — user_id from JWT no longer exists in DB.
    """
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )
    return build_user_dict(user)
