"""
WebSocket push endpoint for EventHub.

Clients connect to ``/v1/ws`` (optionally with ``?token=``), then join the
``user`` room and, when the token carries the admin role, the ``admin`` room.
"""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from ...core.exceptions import AuthError, EventHubError
from ...db.database import UserRepository
from ...schemas.user import Identity
from ...services.identity import IdentityProvider, JWTService
from ...services.notification_hub import Channel, NotificationHub, PushConnection
from ..dependencies import db_connection, get_jwt_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])

JOIN_MESSAGES = {
    "joinAdminRoom": Channel.ADMIN,
    "joinUserRoom": Channel.USER,
}

ROOM_NAMES = {
    "admin": Channel.ADMIN,
    "admin-room": Channel.ADMIN,
    "user": Channel.USER,
    "user-room": Channel.USER,
}


def _error(error_code: str, error_message: str) -> Dict[str, Any]:
    return {"type": "error", "error_code": error_code, "error_message": error_message}


def resolve_push_identity(jwt_svc: JWTService, token: str) -> Identity:
    """
    Resolve a push token with a session of its own.
    The socket holds no database connection while it stays open.

    Raises:
        AuthError: If the token is invalid
    """
    with db_connection.session_scope() as session:
        return IdentityProvider(jwt_svc, UserRepository(session)).resolve(token)


def handle_client_message(hub: NotificationHub, connection: PushConnection, raw: str) -> Optional[Dict[str, Any]]:
    """
    Apply one client message and build the reply, if any.
    """
    try:
        message = json.loads(raw)
    except ValueError:
        return _error("INVALID_MESSAGE", "Message must be JSON")

    if not isinstance(message, dict):
        return _error("INVALID_MESSAGE", "Message must be a JSON object")

    kind = message.get("type")

    if kind in JOIN_MESSAGES:
        try:
            channel = hub.join(connection.connection_id, JOIN_MESSAGES[kind])
        except EventHubError as e:
            logger.warning(f"Push connection {connection.connection_id} refused {kind}: {e.message}")
            return _error(e.error_code, e.message)
        return {"type": "roomJoined", "room": channel.value}

    if kind == "leaveRoom":
        channel = ROOM_NAMES.get(str(message.get("room", "")).lower())
        if channel is None:
            return _error("INVALID_MESSAGE", f"Unknown room {message.get('room')}")
        hub.leave(connection.connection_id, channel)
        return {"type": "roomLeft", "room": channel.value}

    if kind == "ping":
        return {"type": "pong"}

    return _error("INVALID_MESSAGE", f"Unknown message type {kind}")


@router.websocket("/ws")
async def push_socket(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="JWT token"),
    jwt_svc: JWTService = Depends(get_jwt_service)
):
    """
    Push connection.
    Replies and pushes share the connection's send queue, so they arrive in order.
    """
    await websocket.accept()

    identity = None
    if token:
        try:
            identity = await run_in_threadpool(resolve_push_identity, jwt_svc, token)
        except AuthError as e:
            await websocket.send_json(_error(e.error_code, e.message))
            await websocket.close(code=4401)
            return

    hub: NotificationHub = websocket.app.state.hub
    connection = await hub.connect(websocket, identity)

    try:
        while True:
            raw = await websocket.receive_text()
            reply = handle_client_message(hub, connection, raw)
            if reply is not None:
                connection.enqueue(reply)
    except WebSocketDisconnect:
        logger.debug(f"Push connection {connection.connection_id} disconnected by client")
    except RuntimeError as e:
        logger.debug(f"Push connection {connection.connection_id} closed: {e}")
    finally:
        await hub.disconnect(connection.connection_id)
