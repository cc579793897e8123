"""
services/access_policy.py — Group membership, admin and visibility rules.

These checks are pure: they look only at the objects handed to them and
never query the database. A group's member collection may hold bare ids,
Membership rows, User rows, or plain dicts; member_identifier() extracts
the id from whichever shape it is given, so callers never need to load
relationships in a particular way.

Super-user override: the authenticated principal whose username equals
config SUPER_USER_USERNAME bypasses admin checks. The middleware resolves
that once per request and routes pass it down as `is_super_user`.
"""

from __future__ import annotations

from typing import Any, Iterable

from backend.app.errors import AppError, ErrorCode


def member_identifier(entry: Any) -> int | None:
    """
    Returns the user id carried by a member entry.

    Lookup order: bare id, mapping "user_id"/"id"/"_id" key, then the
    `user_id` attribute (Membership rows), then `id` (User rows).
    """
    if entry is None or isinstance(entry, bool):
        return None
    if isinstance(entry, int):
        return entry
    if isinstance(entry, str):
        return _coerce_id(entry)
    if isinstance(entry, dict):
        for key in ("user_id", "id", "_id"):
            if entry.get(key) is not None:
                return _coerce_id(entry[key])
        return None
    for attr in ("user_id", "id"):
        value = getattr(entry, attr, None)
        if value is not None:
            return _coerce_id(value)
    return None


def _coerce_id(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _creator_id(group: Any) -> int | None:
    if isinstance(group, dict):
        return _coerce_id(group.get("created_by_user_id"))
    return _coerce_id(getattr(group, "created_by_user_id", None))


def _member_entries(group: Any) -> Iterable[Any]:
    if isinstance(group, dict):
        return group.get("members") or group.get("member_ids") or []
    return getattr(group, "members", None) or []


def is_group_member(group: Any, user_id: Any) -> bool:
    """True iff `user_id` is the group's creator or appears among its members."""
    target = _coerce_id(user_id) if user_id is not None else None
    if group is None or target is None:
        return False
    if _creator_id(group) == target:
        return True
    return any(member_identifier(entry) == target for entry in _member_entries(group))


def is_group_admin(group: Any, user_id: Any) -> bool:
    """Only the creator administers a group."""
    target = _coerce_id(user_id) if user_id is not None else None
    if group is None or target is None:
        return False
    return _creator_id(group) == target


def can_read_group(group: Any, user_id: Any = None) -> bool:
    """Public groups are readable by anyone; private ones by members only."""
    if _is_public(group):
        return True
    return user_id is not None and is_group_member(group, user_id)


def _is_public(group: Any) -> bool:
    if isinstance(group, dict):
        return bool(group.get("is_public", True))
    return bool(getattr(group, "is_public", True))


def require_group_readable(group: Any, user_id: Any = None) -> None:
    """Raises FORBIDDEN (403) when the caller may not see a private group."""
    if can_read_group(group, user_id):
        return
    if user_id is None:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Authentication required for private groups.",
            403,
        )
    raise AppError(
        ErrorCode.FORBIDDEN,
        "You are not a member of this group.",
        403,
    )


def require_group_member(group: Any, user_id: Any) -> None:
    if not is_group_member(group, user_id):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You are not a member of this group.",
            403,
        )


def require_group_admin(group: Any, user_id: Any, is_super_user: bool = False, action: str = "manage") -> None:
    if is_super_user or is_group_admin(group, user_id):
        return
    raise AppError(
        ErrorCode.FORBIDDEN,
        f"Only the group admin can {action} this group.",
        403,
    )


def with_creator(member_ids: Iterable[Any], creator_id: Any) -> list[int]:
    """
    Returns `member_ids` as ints with the creator present exactly once.

    Existing order is preserved; the creator is prepended when missing.
    """
    creator = _coerce_id(creator_id)
    result: list[int] = []
    for entry in member_ids:
        member_id = member_identifier(entry)
        if member_id is not None and member_id not in result:
            result.append(member_id)
    if creator is not None and creator not in result:
        result.insert(0, creator)
    return result
