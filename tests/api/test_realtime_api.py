"""
Tests for the WebSocket push endpoint.
"""

import json
import pytest
from contextlib import ExitStack
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from eventhub.api.dependencies import db_connection
from eventhub.api.v1.realtime import handle_client_message
from eventhub.main import create_app
from eventhub.services.notification_hub import Channel, NotificationHub


class TestHandleClientMessage:
    """Test cases for client message handling."""

    @pytest.fixture
    def hub(self):
        return NotificationHub()

    @pytest.mark.asyncio
    async def test_join_and_leave(self, hub, fake_websocket, alice):
        connection = await hub.connect(fake_websocket(), alice)

        joined = handle_client_message(hub, connection, json.dumps({"type": "joinUserRoom"}))
        assert joined == {"type": "roomJoined", "room": "user"}
        assert hub.members(Channel.USER) == [connection.connection_id]

        left = handle_client_message(hub, connection, json.dumps({"type": "leaveRoom", "room": "user-room"}))
        assert left == {"type": "roomLeft", "room": "user"}
        assert hub.members(Channel.USER) == []

        await hub.close_all()

    @pytest.mark.asyncio
    async def test_non_admin_cannot_join_admin_room(self, hub, fake_websocket, alice):
        connection = await hub.connect(fake_websocket(), alice)

        reply = handle_client_message(hub, connection, json.dumps({"type": "joinAdminRoom"}))

        assert reply["type"] == "error"
        assert reply["error_code"] == "PERMISSION_DENIED"
        assert hub.members(Channel.ADMIN) == []

        await hub.close_all()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2]",
        json.dumps({"type": "dance"}),
        json.dumps({"type": "leaveRoom", "room": "lobby"}),
    ])
    async def test_invalid_messages(self, hub, fake_websocket, raw):
        connection = await hub.connect(fake_websocket())

        reply = handle_client_message(hub, connection, raw)

        assert reply["type"] == "error"
        assert reply["error_code"] == "INVALID_MESSAGE"

        await hub.close_all()

    @pytest.mark.asyncio
    async def test_ping(self, hub, fake_websocket):
        connection = await hub.connect(fake_websocket())
        assert handle_client_message(hub, connection, '{"type": "ping"}') == {"type": "pong"}
        await hub.close_all()


class TestPushSocket:
    """Test cases for /v1/ws."""

    def test_anonymous_joins_user_room(self, client):
        with client.websocket_connect("/v1/ws") as websocket:
            websocket.send_json({"type": "joinUserRoom"})
            assert websocket.receive_json() == {"type": "roomJoined", "room": "user"}

            websocket.send_json({"type": "joinAdminRoom"})
            refused = websocket.receive_json()
            assert refused["type"] == "error"
            assert refused["error_code"] == "PERMISSION_DENIED"

            websocket.send_json({"type": "ping"})
            assert websocket.receive_json() == {"type": "pong"}

    def test_invalid_token_is_rejected(self, client):
        with client.websocket_connect("/v1/ws?token=garbage") as websocket:
            error = websocket.receive_json()
            assert error["type"] == "error"
            assert error["error_code"] == "AUTH_ERROR"

            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_json()
            assert exc_info.value.code == 4401

    def test_admin_receives_unapproved_event(self, client, make_token, auth_headers, admin, alice, api_event_data):
        with client.websocket_connect(f"/v1/ws?token={make_token(admin)}") as websocket:
            websocket.send_json({"type": "joinAdminRoom"})
            assert websocket.receive_json() == {"type": "roomJoined", "room": "admin"}

            created = client.post("/v1/events/", json=api_event_data, headers=auth_headers(alice)).json()

            push = websocket.receive_json()
            assert push["type"] == "newEvent"
            assert push["data"]["event"]["id"] == created["id"]
            assert push["data"]["event"]["is_approved"] is False
            assert isinstance(push["data"]["timestamp"], int)

    def test_user_receives_approval_and_registration(
        self, client, make_token, auth_headers, admin, alice, bob, api_event_data
    ):
        created = client.post("/v1/events/", json=api_event_data, headers=auth_headers(alice)).json()

        with client.websocket_connect(f"/v1/ws?token={make_token(bob)}") as websocket:
            websocket.send_json({"type": "joinUserRoom"})
            assert websocket.receive_json()["type"] == "roomJoined"

            client.post(f"/v1/events/{created['id']}/approve", headers=auth_headers(admin))
            approved = websocket.receive_json()
            assert approved["type"] == "newEvent"
            assert approved["data"]["event"]["is_approved"] is True

            client.post(f"/v1/events/{created['id']}/register", headers=auth_headers(bob))
            update = websocket.receive_json()
            assert update["type"] == "attendeeUpdate"
            assert update["data"]["event_id"] == created["id"]
            assert update["data"]["attendee_count"] == 1

            client.delete(f"/v1/events/{created['id']}", headers=auth_headers(alice))
            deleted = websocket.receive_json()
            assert deleted["type"] == "eventDeleted"
            assert deleted["data"]["event_id"] == created["id"]

    def test_connection_counted_in_health(self, client):
        with client.websocket_connect("/v1/ws") as websocket:
            websocket.send_json({"type": "ping"})
            websocket.receive_json()
            assert client.get("/health").json()["push"]["connections"] == 1


class TestPushSocketConnections:
    """Test cases for database usage of open push sockets."""

    @pytest.fixture
    def file_client(self, tmp_path, monkeypatch):
        """Client backed by a pooled file database."""
        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'push.db'}")
        with TestClient(create_app()) as test_client:
            yield test_client

    def test_open_sockets_hold_no_database_connections(self, file_client, make_token, alice, bob):
        pool = db_connection.engine.pool

        with file_client.websocket_connect(f"/v1/ws?token={make_token(alice)}") as websocket:
            websocket.send_json({"type": "ping"})
            assert websocket.receive_json() == {"type": "pong"}

        baseline = pool.checkedout()

        with ExitStack() as stack:
            sockets = [
                stack.enter_context(file_client.websocket_connect(f"/v1/ws?token={make_token(identity)}"))
                for identity in (alice, alice, bob)
            ]
            for websocket in sockets:
                websocket.send_json({"type": "ping"})
                assert websocket.receive_json() == {"type": "pong"}

            assert pool.checkedout() == baseline
            assert file_client.get("/health").json()["push"]["connections"] == 3
