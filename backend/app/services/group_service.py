"""
services/group_service.py — Group and membership business logic.

Authorization rules:
  - Reading a group:   anyone for public groups; members for private ones
  - Updating a group:  the creator (admin) or the super-user
  - Adding a member:   any member or the super-user; on a public group a
                       user may also add themselves
  - Removing a member: the creator or the super-user; the creator can never
                       be removed
  - Deleting a group:  the creator or the super-user. The group's games and
                       memberships are deleted with it.

Invariant: the creator always holds a membership row. It is re-asserted on
every create and update via _ensure_creator_membership().

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.group import Group
from backend.app.models.membership import Membership
from backend.app.models.user import User
from backend.app.services import access_policy

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_group_or_404(group_id: int, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def _ensure_creator_membership(group: Group, session: Session) -> None:
    """Adds the creator's membership row if it is missing."""
    current = [m.user_id for m in group.memberships]
    wanted = access_policy.with_creator(current, group.created_by_user_id)
    for user_id in wanted:
        if user_id not in current:
            group.memberships.append(Membership(user_id=user_id))
    session.flush()


def _build_member_dict(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "displayName": user.display_name,
    }


def build_group_dict(group: Group) -> dict:
    """Serialises a Group with its member list to a plain dict."""
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "createdByUserId": group.created_by_user_id,
        "isPublic": group.is_public,
        "memberIds": group.member_ids,
        "members": [_build_member_dict(m.user) for m in group.memberships if m.user is not None],
        "createdAt": group.created_at.isoformat() if group.created_at else None,
    }


def add_membership(group: Group, user_id: int, session: Session) -> bool:
    """
    Adds `user_id` to the group unless already present.

    Returns True when a new membership row was created. Used by game_service
    for the public-group auto-join.
    """
    if access_policy.is_group_member(group, user_id):
        return False
    group.memberships.append(Membership(user_id=user_id))
    session.flush()
    return True


# ── Public service functions ───────────────────────────────────────────────

def create_group(
        name: str,
        creator_id: int,
        session: Session,
        description: str | None = None,
        is_public: bool = True,
) -> dict:
    """
    Creates a new group. The creator becomes its admin and first member.

    Raises:
      AppError(MISSING_FIELD, 400) — blank name (schema usually catches it first)
    """
    if not name or not name.strip():
        raise AppError(ErrorCode.MISSING_FIELD, "Group name is required.", 400, field="name")

    group = Group(
        name=name.strip(),
        description=description.strip() if description else None,
        created_by_user_id=creator_id,
        is_public=bool(is_public),
    )
    session.add(group)
    session.flush()  # populate group.id before creating membership

    _ensure_creator_membership(group, session)

    logger.info("Group created: group_id=%s name=%r created_by=%s", group.id, group.name, creator_id)
    return build_group_dict(group)


def list_groups(user_id: int | None, session: Session) -> list[dict]:
    """
    Returns every group the caller may see: all public groups plus the
    groups the caller belongs to. Newest first, each group once.
    """
    stmt = select(Group).where(Group.is_public.is_(True))
    if user_id is not None:
        member_group_ids = select(Membership.group_id).where(Membership.user_id == user_id)
        stmt = select(Group).where(
            or_(
                Group.is_public.is_(True),
                Group.id.in_(member_group_ids),
                Group.created_by_user_id == user_id,
            )
        )
    stmt = stmt.order_by(Group.created_at.desc(), Group.id.desc())

    seen: set[int] = set()
    result = []
    for group in session.execute(stmt).scalars().all():
        if group.id in seen:
            continue
        seen.add(group.id)
        result.append(build_group_dict(group))
    return result


def accessible_group_ids(user_id: int | None, session: Session) -> list[int]:
    """Ids of the groups list_groups() would return."""
    return [g["id"] for g in list_groups(user_id, session)]


def member_group_ids(user_id: int, session: Session) -> list[int]:
    """Ids of the groups the user belongs to (creator included)."""
    stmt = select(Group.id).where(
        or_(
            Group.id.in_(select(Membership.group_id).where(Membership.user_id == user_id)),
            Group.created_by_user_id == user_id,
        )
    )
    return list(session.execute(stmt).scalars().all())


def get_group(group_id: int, caller_id: int | None, session: Session) -> dict:
    """
    Returns full group details including the member list.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403) — private group and caller is anonymous or not a member
    """
    group = _get_group_or_404(group_id, session)
    access_policy.require_group_readable(group, caller_id)
    return build_group_dict(group)


def update_group(
        group_id: int,
        caller_id: int,
        updates: dict,
        session: Session,
        is_super_user: bool = False,
) -> dict:
    """
    Applies name/description/is_public changes.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)     — caller is neither admin nor super-user
      AppError(INVALID_FIELD, 400) — name provided but blank
    """
    group = _get_group_or_404(group_id, session)
    access_policy.require_group_admin(group, caller_id, is_super_user, action="update")

    if "name" in updates and updates["name"] is not None:
        name = updates["name"].strip()
        if not name:
            raise AppError(ErrorCode.INVALID_FIELD, "Group name cannot be empty.", 400, field="name")
        group.name = name

    if "description" in updates:
        description = updates["description"]
        group.description = description.strip() if description else None

    if "is_public" in updates and updates["is_public"] is not None:
        group.is_public = bool(updates["is_public"])

    _ensure_creator_membership(group, session)

    logger.info("Group updated: group_id=%s updated_by=%s", group_id, caller_id)
    return build_group_dict(group)


def add_member(
        group_id: int,
        caller_id: int,
        username: str,
        session: Session,
        is_super_user: bool = False,
) -> dict:
    """
    Adds the user with `username` to a group.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)      — caller may not add members to this group
      AppError(USER_NOT_FOUND, 404) — no user has that username
      AppError(ALREADY_MEMBER, 409) — user is already in the group

    Returns: the updated group dict.
    """
    group = _get_group_or_404(group_id, session)

    target = session.execute(
        select(User).where(User.username == (username or "").strip().lower())
    ).scalar_one_or_none()

    is_self_join = (
        group.is_public
        and target is not None
        and target.id == caller_id
    )
    if not (is_super_user or is_self_join or access_policy.is_group_member(group, caller_id)):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You are not a member of this group.",
            403,
        )

    if target is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User '{username}' does not exist.",
            404,
            field="username",
        )

    if access_policy.is_group_member(group, target.id):
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"User '{target.username}' is already a member of this group.",
            409,
        )

    group.memberships.append(Membership(user_id=target.id))
    session.flush()

    logger.info("Member added: group_id=%s user_id=%s added_by=%s", group_id, target.id, caller_id)
    return build_group_dict(group)


def remove_member(
        group_id: int,
        caller_id: int,
        target_user_id: int,
        session: Session,
        is_super_user: bool = False,
) -> dict:
    """
    Removes a user from a group.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)              — caller is neither admin nor super-user
      AppError(CANNOT_REMOVE_CREATOR, 400)  — target is the group's creator
      AppError(MEMBER_NOT_FOUND, 404)       — target is not a member
    """
    group = _get_group_or_404(group_id, session)
    access_policy.require_group_admin(group, caller_id, is_super_user, action="remove members from")

    if target_user_id == group.created_by_user_id:
        raise AppError(
            ErrorCode.CANNOT_REMOVE_CREATOR,
            "Cannot remove the group admin.",
            400,
        )

    membership = next((m for m in group.memberships if m.user_id == target_user_id), None)
    if membership is None:
        raise AppError(
            ErrorCode.MEMBER_NOT_FOUND,
            f"User {target_user_id} is not a member of this group.",
            404,
        )

    group.memberships.remove(membership)
    session.delete(membership)
    session.flush()

    logger.info("Member removed: group_id=%s user_id=%s removed_by=%s", group_id, target_user_id, caller_id)
    return build_group_dict(group)


def delete_group(
        group_id: int,
        caller_id: int,
        session: Session,
        is_super_user: bool = False,
) -> None:
    """
    Deletes a group together with its games and memberships.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403) — caller is neither admin nor super-user
    """
    group = _get_group_or_404(group_id, session)
    access_policy.require_group_admin(group, caller_id, is_super_user, action="delete")

    session.delete(group)
    session.flush()

    logger.info("Group deleted: group_id=%s deleted_by=%s", group_id, caller_id)
