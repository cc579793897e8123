"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against in-memory SQLite unless TEST_DATABASE_URL is set.
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.

Helper functions (not fixtures) are provided for common operations:
  - register(client, ...)    → {"token": ..., "user": {...}}
  - auth_headers(token)      → {"Authorization": "Bearer <token>"}
  - make_group(client, ...)  → group dict
  - make_game(client, ...)   → game dict

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test without fixture parameterization overhead.
"""

from __future__ import annotations

import pytest
from sqlalchemy import text

from backend.app import create_app
from backend.app.extensions import db as _db
from backend.app.extensions import socketio as _socketio


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """Creates the Flask application in 'testing' mode once for the entire test session."""
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows after every test, children before parents.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM transactions"))
            conn.execute(text("DELETE FROM games"))
            conn.execute(text("DELETE FROM memberships"))
            conn.execute(text("DELETE FROM groups"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


@pytest.fixture
def socket_client_factory(app, client):
    """
    Returns a callable creating connected Socket.IO test clients.
    Every client created through it is disconnected at teardown.
    """
    created = []

    def _make():
        sio = _socketio.test_client(app, flask_test_client=client)
        created.append(sio)
        return sio

    yield _make

    for sio in created:
        if sio.is_connected():
            sio.disconnect()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def register(
    client,
    username: str = "alice",
    display_name: str | None = None,
    password: str = "Password1",
) -> dict:
    """
    Registers a new user and returns the response body.
    Returns: {"token": "...", "user": {...}}
    """
    resp = client.post(
        "/api/auth/register",
        json={
            "username": username,
            "displayName": display_name or username.title(),
            "password": password,
        },
    )
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def make_group(client, token: str, name: str = "Test Group", is_public: bool = True) -> dict:
    """
    Creates a group and returns the group dict.
    The caller (token owner) becomes the group admin and first member.
    """
    resp = client.post(
        "/api/groups",
        json={"name": name, "isPublic": is_public},
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()


def add_member(client, token: str, group_id: int, username: str):
    """Adds a user to a group by username. Returns the HTTP response."""
    return client.post(
        f"/api/groups/{group_id}/members",
        json={"username": username},
        headers=auth_headers(token),
    )


def make_game(
    client,
    token: str,
    group_id: int,
    name: str = "Poker Night",
    transactions: list[dict] | None = None,
    date: str | None = None,
) -> dict:
    """Creates a game and returns the game dict."""
    payload: dict = {"name": name, "groupId": group_id}
    if transactions is not None:
        payload["transactions"] = transactions
    if date is not None:
        payload["date"] = date

    resp = client.post("/api/games", json=payload, headers=auth_headers(token))
    assert resp.status_code == 201, f"make_game failed: {resp.get_json()}"
    return resp.get_json()
