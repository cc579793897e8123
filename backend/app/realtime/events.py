"""
realtime/events.py — Socket.IO event handlers for the live game editor.

Clients join the room of a game's public token and then receive:
  - "game-updated" with the full game document after every committed
    mutation (sent by routes through the hub), and once on join so a late
    joiner starts from the current state;
  - ephemeral edit events relayed from other clients in the same room.

Relayed events are neither validated nor persisted; the sender does not
receive its own event back.

Client → server            Server → room (excluding sender)
  field-update               field-updated       {rowId, field, value}
  game-name-update           game-name-updated   {name}
  game-date-update           game-date-updated   {date}
  row-action                 row-action-updated  {action, rowId}

Handlers are registered on the shared SocketIO instance at import time;
the app factory imports this module once.
"""

from __future__ import annotations

import logging

from flask import request
from flask_socketio import emit, join_room, leave_room

from backend.app.extensions import db, socketio
from backend.app.realtime import hub
from backend.app.services import game_service

logger = logging.getLogger(__name__)

RELAYED_EVENTS = {
    "field-update": ("field-updated", ("rowId", "field", "value")),
    "game-name-update": ("game-name-updated", ("name",)),
    "game-date-update": ("game-date-updated", ("date",)),
    "row-action": ("row-action-updated", ("action", "rowId")),
}


def _token_from(data) -> str | None:
    """Clients send either the bare token or an object carrying it."""
    if isinstance(data, dict):
        data = data.get("token") or data.get("gameToken")
    if isinstance(data, str) and data.strip():
        return data.strip()
    return None


@socketio.on("connect")
def on_connect():
    logger.debug("Socket connected: sid=%s", request.sid)


@socketio.on("disconnect")
def on_disconnect(*args):
    logger.debug("Socket disconnected: sid=%s", request.sid)


@socketio.on("join-game")
def on_join_game(data):
    token = _token_from(data)
    if token is None:
        return

    join_room(hub.GameRoomHub.room_for(token))
    logger.debug("sid=%s joined game room for token %s", request.sid, token)

    game = game_service.find_game_by_public_token(token, db.session)
    if game is None:
        logger.warning("join-game for unknown token %s", token)
        return
    emit(hub.GAME_UPDATED, game)


@socketio.on("leave-game")
def on_leave_game(data):
    token = _token_from(data)
    if token is None:
        return
    leave_room(hub.GameRoomHub.room_for(token))


def _make_relay(outgoing: str, keys: tuple):
    def relay(data):
        if not isinstance(data, dict):
            return
        token = _token_from(data)
        if token is None:
            return
        payload = {key: data.get(key) for key in keys}
        hub.get_hub().relay(outgoing, token, payload, skip_sid=request.sid)

    return relay


for _incoming, (_outgoing, _keys) in RELAYED_EVENTS.items():
    socketio.on_event(_incoming, _make_relay(_outgoing, _keys))
