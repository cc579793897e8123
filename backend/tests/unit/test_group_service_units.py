"""
Unit tests for group_service branches that are lightly exercised by integration tests.

These tests run DB-free: groups are SimpleNamespace stand-ins and the
session is a MagicMock.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from backend.app.errors import AppError, ErrorCode
from backend.app.services import group_service


def _membership(user_id):
    return SimpleNamespace(user_id=user_id)


def _group(creator=10, member_ids=(10,), is_public=True):
    memberships = [_membership(uid) for uid in member_ids]
    return SimpleNamespace(
        id=1,
        name="Poker",
        created_by_user_id=creator,
        is_public=is_public,
        memberships=memberships,
        members=memberships,
    )


def test_get_group_or_404_raises_when_group_missing():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        group_service._get_group_or_404(group_id=404, session=session)

    err = exc_info.value
    assert err.code == ErrorCode.GROUP_NOT_FOUND
    assert err.http_status == 404


def test_create_group_rejects_blank_name():
    session = MagicMock()

    with pytest.raises(AppError) as exc_info:
        group_service.create_group(name="   ", creator_id=1, session=session)

    assert exc_info.value.code == ErrorCode.MISSING_FIELD
    session.add.assert_not_called()


def test_ensure_creator_membership_adds_missing_creator():
    session = MagicMock()
    group = _group(creator=10, member_ids=(20,))

    group_service._ensure_creator_membership(group, session)

    assert sorted(m.user_id for m in group.memberships) == [10, 20]


def test_ensure_creator_membership_is_idempotent():
    session = MagicMock()
    group = _group(creator=10, member_ids=(10, 20))

    group_service._ensure_creator_membership(group, session)

    assert [m.user_id for m in group.memberships] == [10, 20]


def test_add_membership_skips_existing_member():
    session = MagicMock()
    group = _group(member_ids=(10, 30))

    assert group_service.add_membership(group, 30, session) is False
    assert len(group.memberships) == 2
    session.flush.assert_not_called()


@patch("backend.app.services.group_service._get_group_or_404")
def test_get_group_private_non_member_forbidden(mock_get_group_or_404):
    mock_get_group_or_404.return_value = _group(is_public=False)

    with pytest.raises(AppError) as exc_info:
        group_service.get_group(group_id=1, caller_id=99, session=MagicMock())

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    assert exc_info.value.http_status == 403


@patch("backend.app.services.group_service._get_group_or_404")
def test_update_group_non_admin_forbidden(mock_get_group_or_404):
    mock_get_group_or_404.return_value = _group(creator=10, member_ids=(10, 20))

    with pytest.raises(AppError) as exc_info:
        group_service.update_group(1, caller_id=20, updates={"name": "x"}, session=MagicMock())

    assert exc_info.value.code == ErrorCode.FORBIDDEN


@patch("backend.app.services.group_service._get_group_or_404")
def test_update_group_blank_name_is_invalid(mock_get_group_or_404):
    mock_get_group_or_404.return_value = _group(creator=10)

    with pytest.raises(AppError) as exc_info:
        group_service.update_group(1, caller_id=10, updates={"name": "  "}, session=MagicMock())

    assert exc_info.value.code == ErrorCode.INVALID_FIELD
    assert exc_info.value.field == "name"


@patch("backend.app.services.group_service._get_group_or_404")
def test_add_member_outsider_on_private_group_forbidden(mock_get_group_or_404):
    session = MagicMock()
    mock_get_group_or_404.return_value = _group(is_public=False)
    session.execute.return_value.scalar_one_or_none.return_value = SimpleNamespace(id=300, username="cy")

    with pytest.raises(AppError) as exc_info:
        group_service.add_member(group_id=1, caller_id=200, username="cy", session=session)

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    assert exc_info.value.http_status == 403


@patch("backend.app.services.group_service._get_group_or_404")
def test_add_member_target_user_missing_raises_404(mock_get_group_or_404):
    session = MagicMock()
    mock_get_group_or_404.return_value = _group(creator=100, member_ids=(100,))
    session.execute.return_value.scalar_one_or_none.return_value = None

    with pytest.raises(AppError) as exc_info:
        group_service.add_member(group_id=1, caller_id=100, username="ghost", session=session)

    err = exc_info.value
    assert err.code == ErrorCode.USER_NOT_FOUND
    assert err.http_status == 404


@patch("backend.app.services.group_service._get_group_or_404")
def test_add_member_already_member_raises_409(mock_get_group_or_404):
    session = MagicMock()
    mock_get_group_or_404.return_value = _group(creator=100, member_ids=(100, 222))
    session.execute.return_value.scalar_one_or_none.return_value = SimpleNamespace(id=222, username="bob")

    with pytest.raises(AppError) as exc_info:
        group_service.add_member(group_id=1, caller_id=100, username="bob", session=session)

    err = exc_info.value
    assert err.code == ErrorCode.ALREADY_MEMBER
    assert err.http_status == 409


@patch("backend.app.services.group_service._get_group_or_404")
def test_remove_member_creator_cannot_be_removed_even_by_super_user(mock_get_group_or_404):
    mock_get_group_or_404.return_value = _group(creator=10, member_ids=(10, 20))

    with pytest.raises(AppError) as exc_info:
        group_service.remove_member(
            group_id=1,
            caller_id=99,
            target_user_id=10,
            session=MagicMock(),
            is_super_user=True,
        )

    assert exc_info.value.code == ErrorCode.CANNOT_REMOVE_CREATOR
    assert exc_info.value.http_status == 400


@patch("backend.app.services.group_service._get_group_or_404")
def test_remove_member_non_admin_forbidden(mock_get_group_or_404):
    mock_get_group_or_404.return_value = _group(creator=10, member_ids=(10, 20, 30))

    with pytest.raises(AppError) as exc_info:
        group_service.remove_member(group_id=1, caller_id=20, target_user_id=30, session=MagicMock())

    assert exc_info.value.code == ErrorCode.FORBIDDEN


@patch("backend.app.services.group_service._get_group_or_404")
def test_remove_member_target_not_member_raises_404(mock_get_group_or_404):
    mock_get_group_or_404.return_value = _group(creator=10, member_ids=(10,))

    with pytest.raises(AppError) as exc_info:
        group_service.remove_member(group_id=1, caller_id=10, target_user_id=30, session=MagicMock())

    assert exc_info.value.code == ErrorCode.MEMBER_NOT_FOUND
    assert exc_info.value.http_status == 404


@patch("backend.app.services.group_service.build_group_dict")
@patch("backend.app.services.group_service._get_group_or_404")
def test_remove_member_admin_success_deletes_membership(mock_get_group_or_404, mock_build_group_dict):
    session = MagicMock()
    group = _group(creator=10, member_ids=(10, 30))
    target = group.memberships[1]
    mock_get_group_or_404.return_value = group
    mock_build_group_dict.return_value = {"id": 1}

    result = group_service.remove_member(group_id=1, caller_id=10, target_user_id=30, session=session)

    assert result == {"id": 1}
    assert [m.user_id for m in group.memberships] == [10]
    session.delete.assert_called_once_with(target)
    session.flush.assert_called_once()
