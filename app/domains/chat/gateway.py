"""Presence websocket endpoint.

Protocol:
    Connect to ``/ws/chat?token=<access token>``. The token is verified once
    during the handshake; an invalid or missing token closes the socket with
    code 1008 before it is accepted.

    Client frames are JSON objects ``{"event": ..., "data": ...}``:
        join_room   data: room id (or {"roomId": id})
                    -> joiner receives {"event": "room_users", "data": {"roomId", "userIds"}}
                    -> others receive {"event": "user_online", "data": {"userId"}}
        leave_room  data: room id
                    -> others receive {"event": "user_offline", "data": {"userId"}}

    When the socket disconnects, ``user_offline`` is sent to every room it had
    joined.
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status

from app.core.dependencies import auth
from app.core.security import AuthUser
from app.domains.chat.presence import PresenceConnection, PresenceHub


logger = logging.getLogger(__name__)

router = APIRouter(tags=["presence"])

hub = PresenceHub()


def _authenticate(websocket: WebSocket, token: str | None) -> AuthUser | None:
    if not token:
        header = websocket.headers.get("authorization", "")
        if header.lower().startswith("bearer "):
            token = header[7:].strip()

    if not token:
        return None

    try:
        return auth.identify(token)
    except HTTPException as e:
        logger.warning(f"[presence] handshake rejected: {e.detail}")
        return None


def _room_id(data: Any) -> str | None:
    if isinstance(data, dict):
        data = data.get("roomId")
    if data is None or isinstance(data, (dict, list)) or str(data).strip() == "":
        return None
    return str(data).strip()


async def handle_frame(connection: PresenceConnection, frame: Any) -> None:
    """Dispatch one client frame to the presence hub."""
    if not isinstance(frame, dict):
        await hub.send(connection, "error", {"message": "Frames must be JSON objects"})
        return

    event = frame.get("event")
    if event not in ("join_room", "leave_room"):
        await hub.send(connection, "error", {"message": f"Unknown event: {event}"})
        return

    room_id = _room_id(frame.get("data"))
    if room_id is None:
        await hub.send(connection, "error", {"message": f"{event} requires a room id"})
        return

    if event == "join_room":
        await hub.join(connection, room_id)
    else:
        await hub.leave(connection, room_id)


@router.websocket("/ws/chat")
async def presence_endpoint(websocket: WebSocket, token: str | None = None) -> None:
    """Presence socket for one authenticated client."""
    user = _authenticate(websocket, token)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication failed")
        return

    await websocket.accept()
    connection = PresenceConnection(websocket=websocket, user_id=user.id)
    logger.info(f"[presence] connected: user {user.id} ({user.name})")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await hub.send(connection, "error", {"message": "Invalid JSON frame"})
                continue
            await handle_frame(connection, frame)

    except WebSocketDisconnect as e:
        logger.info(f"[presence] disconnect: user {user.id} (code: {e.code})")
    finally:
        await hub.disconnect(connection)
