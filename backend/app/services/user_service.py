"""
services/user_service.py — User directory: profile edits, listing, search.

Usernames are immutable; only the display name can change.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.user import User
from backend.app.services.auth_service import build_user_dict

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20


def _get_user_or_404(user_id: int, session: Session) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )
    return user


def update_profile(user_id: int, display_name: str, session: Session) -> dict:
    """
    Changes the caller's display name.

    Raises:
      AppError(USER_NOT_FOUND, 404)
      AppError(INVALID_FIELD, 400) — blank display name
    """
    user = _get_user_or_404(user_id, session)

    cleaned = (display_name or "").strip()
    if not cleaned:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            "Display name cannot be empty.",
            400,
            field="displayName",
        )

    user.display_name = cleaned
    session.flush()

    logger.info("Profile updated: user_id=%s", user_id)
    return build_user_dict(user)


def list_users(session: Session) -> list[dict]:
    """All users, alphabetical by username."""
    users = session.execute(select(User).order_by(User.username.asc())).scalars().all()
    return [build_user_dict(u) for u in users]


def _escape_like(term: str) -> str:
    """Makes %, _ and the escape character match literally in a LIKE pattern."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_users(query: str, session: Session, limit: int = SEARCH_LIMIT) -> list[User]:
    """
    Case-insensitive substring match on username or display name.

    A blank query returns no users.
    """
    term = (query or "").strip().lower()
    if not term:
        return []

    pattern = f"%{_escape_like(term)}%"
    stmt = (
        select(User)
        .where(
            or_(
                func.lower(User.username).like(pattern, escape="\\"),
                func.lower(User.display_name).like(pattern, escape="\\"),
            )
        )
        .order_by(User.username.asc())
        .limit(limit)
    )
    return list(session.execute(stmt).scalars().all())
