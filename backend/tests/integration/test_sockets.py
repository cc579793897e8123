"""
tests/integration/test_sockets.py — Live game rooms over Socket.IO.

Clients join the room of a public token and receive "game-updated" with the
full game document after each committed mutation. Edit events are relayed
to the other clients in the room without being persisted.
"""

from __future__ import annotations

import pytest

from backend.app.extensions import socketio
from backend.app.realtime import hub

from .conftest import make_game, make_group, register


def _events(sio, name: str) -> list:
    return [msg["args"][0] for msg in sio.get_received() if msg["name"] == name]


def _public_token(client, username: str = "alice") -> str:
    owner = register(client, username=username)
    group = make_group(client, owner["token"])
    game = make_game(client, owner["token"], group["id"])
    return game["publicToken"]


class TestJoinAndBroadcast:

    def test_join_receives_current_state(self, client, socket_client_factory):
        token = _public_token(client)
        sio = socket_client_factory()

        sio.emit("join-game", token)
        received = _events(sio, "game-updated")
        assert len(received) == 1
        assert received[0]["publicToken"] == token

    def test_join_accepts_object_payload(self, client, socket_client_factory):
        token = _public_token(client)
        sio = socket_client_factory()

        sio.emit("join-game", {"gameToken": token})
        assert len(_events(sio, "game-updated")) == 1

    def test_join_unknown_token_sends_nothing(self, client, socket_client_factory):
        sio = socket_client_factory()
        sio.emit("join-game", "missing-token")
        assert _events(sio, "game-updated") == []

    def test_mutation_reaches_every_client_in_room(self, client, socket_client_factory):
        token = _public_token(client)
        first, second = socket_client_factory(), socket_client_factory()
        for sio in (first, second):
            sio.emit("join-game", token)
            sio.get_received()

        resp = client.post(f"/api/games/public/{token}/transaction", json={"playerName": "Ann"})
        assert resp.status_code == 200

        first_updates = _events(first, "game-updated")
        second_updates = _events(second, "game-updated")
        assert len(first_updates) == 1
        assert first_updates == second_updates
        assert first_updates[0] == resp.get_json()

    def test_late_joiner_gets_latest_state(self, client, socket_client_factory):
        token = _public_token(client)
        client.put(f"/api/games/public/{token}/name", json={"name": "Renamed"})

        late = socket_client_factory()
        late.emit("join-game", token)
        assert _events(late, "game-updated")[0]["name"] == "Renamed"

    def test_other_rooms_are_not_notified(self, client, socket_client_factory):
        token = _public_token(client)
        other_token = _public_token(client, username="bob")

        watcher = socket_client_factory()
        watcher.emit("join-game", other_token)
        watcher.get_received()

        client.put(f"/api/games/public/{token}/name", json={"name": "Renamed"})
        assert _events(watcher, "game-updated") == []

    def test_leave_game_stops_updates(self, client, socket_client_factory):
        token = _public_token(client)
        sio = socket_client_factory()
        sio.emit("join-game", token)
        sio.emit("leave-game", token)
        sio.get_received()

        client.put(f"/api/games/public/{token}/name", json={"name": "Renamed"})
        assert _events(sio, "game-updated") == []


class TestRelay:

    def test_field_update_relayed_to_others_only(self, client, socket_client_factory):
        token = _public_token(client)
        sender, receiver = socket_client_factory(), socket_client_factory()
        for sio in (sender, receiver):
            sio.emit("join-game", token)
            sio.get_received()

        sender.emit("field-update", {"token": token, "rowId": 3, "field": "amount", "value": "12", "extra": 1})

        assert _events(receiver, "field-updated") == [{"rowId": 3, "field": "amount", "value": "12"}]
        assert _events(sender, "field-updated") == []

    def test_name_date_and_row_action_relays(self, client, socket_client_factory):
        token = _public_token(client)
        sender, receiver = socket_client_factory(), socket_client_factory()
        for sio in (sender, receiver):
            sio.emit("join-game", token)
            sio.get_received()

        sender.emit("game-name-update", {"token": token, "name": "Draft"})
        sender.emit("game-date-update", {"token": token, "date": "2026-03-01"})
        sender.emit("row-action", {"token": token, "action": "add", "rowId": None})

        received = receiver.get_received()
        assert [(m["name"], m["args"][0]) for m in received] == [
            ("game-name-updated", {"name": "Draft"}),
            ("game-date-updated", {"date": "2026-03-01"}),
            ("row-action-updated", {"action": "add", "rowId": None}),
        ]

    def test_relay_is_not_persisted(self, client, socket_client_factory):
        token = _public_token(client)
        sio = socket_client_factory()
        sio.emit("join-game", token)
        sio.emit("game-name-update", {"token": token, "name": "Draft"})

        assert client.get(f"/api/games/public/{token}").get_json()["name"] == "Poker Night"


@pytest.fixture
def without_hub():
    hub.reset()
    yield
    hub.initialize(socketio)


class TestWithoutHub:

    def test_mutation_succeeds_when_no_hub(self, client, without_hub):
        token = _public_token(client)
        assert hub.current_hub() is None

        resp = client.patch(f"/api/games/public/{token}/transaction/0", json={"field": "amount", "value": 7})
        assert resp.status_code == 200
        assert resp.get_json()["transactions"][0]["amount"] == 7.0

    def test_get_hub_raises_after_reset(self, without_hub):
        with pytest.raises(RuntimeError):
            hub.get_hub()
