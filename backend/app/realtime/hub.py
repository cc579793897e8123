"""
realtime/hub.py — Process-wide game room hub.

Each public game token maps to one Socket.IO room, "game-<token>". The hub
is created once in the app factory via initialize(socketio) and handed to
the ledger code through current_hub(); game_service never touches the
Socket.IO server directly, so tests can pass a fake hub instead.

Lifecycle:
    hub = initialize(socketio)   # app factory, once per process
    get_hub()                    # raises RuntimeError before initialize()
    current_hub()                # returns None before initialize() or after reset()
    reset()                      # drops the hub; mutations then skip broadcasting
"""

from __future__ import annotations

import logging

from flask_socketio import SocketIO

logger = logging.getLogger(__name__)

GAME_UPDATED = "game-updated"


class GameRoomHub:
    """Emits game documents to the room of a public token."""

    def __init__(self, socketio: SocketIO) -> None:
        self._socketio = socketio

    @staticmethod
    def room_for(token: str) -> str:
        return f"game-{token}"

    def emit_game_updated(self, token: str, payload: dict) -> None:
        """Sends the full game document to every client in the token's room."""
        self._socketio.emit(GAME_UPDATED, payload, to=self.room_for(token))

    def relay(self, event: str, token: str, payload: dict, skip_sid: str | None = None) -> None:
        """Forwards an ephemeral edit event to the room, optionally skipping the sender."""
        self._socketio.emit(event, payload, to=self.room_for(token), skip_sid=skip_sid)


_hub: GameRoomHub | None = None


def initialize(socketio: SocketIO) -> GameRoomHub:
    global _hub
    _hub = GameRoomHub(socketio)
    logger.debug("Game room hub initialized")
    return _hub


def get_hub() -> GameRoomHub:
    if _hub is None:
        raise RuntimeError("Game room hub has not been initialized. Call initialize(socketio) first.")
    return _hub


def current_hub() -> GameRoomHub | None:
    return _hub


def reset() -> None:
    """Drops the hub so current_hub() returns None until the next initialize()."""
    global _hub
    _hub = None
