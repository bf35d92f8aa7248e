"""Realtime presence for chat rooms.

Tracks which sockets have joined which rooms and broadcasts ``user_online`` /
``user_offline`` events to the other sockets of a room. Presence is advisory:
it is kept in memory only, carries no message payloads, and a failed delivery
never fails the event that triggered it. Clients re-join after reconnecting.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class PresenceConnection:
    """Per-socket state, owned by the websocket handler for the connection's lifetime."""

    websocket: WebSocket
    user_id: int
    joined_rooms: set[str] = field(default_factory=set)


class PresenceHub:
    """Server-side room groups shared by all presence connections.

    This implementation is designed for a single event loop and is not
    thread-safe.
    """

    def __init__(self):
        self.rooms: dict[str, set[PresenceConnection]] = {}

    def room_user_ids(self, room_id: str) -> list[int]:
        """Distinct user ids currently joined to ``room_id``."""
        return sorted({conn.user_id for conn in self.rooms.get(room_id, ())})

    async def join(self, connection: PresenceConnection, room_id: Any) -> list[int]:
        """Add the socket to the room, tell it who is there, then announce it to the others."""
        rid = str(room_id)
        self.rooms.setdefault(rid, set()).add(connection)
        connection.joined_rooms.add(rid)
        logger.info(f"[presence] user {connection.user_id} joined room {rid}")

        user_ids = self.room_user_ids(rid)
        await self.send(connection, "room_users", {"roomId": rid, "userIds": user_ids})
        await self.broadcast(rid, "user_online", {"userId": connection.user_id}, exclude=connection)
        return user_ids

    async def leave(self, connection: PresenceConnection, room_id: Any) -> None:
        rid = str(room_id)
        self._remove(connection, rid)
        connection.joined_rooms.discard(rid)
        logger.info(f"[presence] user {connection.user_id} left room {rid}")

        await self.broadcast(rid, "user_offline", {"userId": connection.user_id}, exclude=connection)

    async def disconnect(self, connection: PresenceConnection) -> None:
        """Announce the socket as offline in every joined room and forget its state."""
        rooms = list(connection.joined_rooms)
        for rid in rooms:
            self._remove(connection, rid)

        for rid in rooms:
            await self.broadcast(rid, "user_offline", {"userId": connection.user_id})

        connection.joined_rooms.clear()
        logger.info(f"[presence] user {connection.user_id} disconnected ({len(rooms)} room(s))")

    async def broadcast(
        self,
        room_id: str,
        event: str,
        data: Any,
        exclude: PresenceConnection | None = None,
    ) -> None:
        targets = [conn for conn in self.rooms.get(room_id, ()) if conn is not exclude]
        if targets:
            await asyncio.gather(*(self.send(conn, event, data) for conn in targets))

    async def send(self, connection: PresenceConnection, event: str, data: Any) -> bool:
        """Deliver one event frame; failures are logged and reported as False."""
        try:
            await connection.websocket.send_json({"event": event, "data": data})
            return True
        except Exception as e:
            logger.warning(f"[presence] failed to deliver {event} to user {connection.user_id}: {str(e)}")
            return False

    def _remove(self, connection: PresenceConnection, room_id: str) -> None:
        group = self.rooms.get(room_id)
        if group is None:
            return
        group.discard(connection)
        if not group:
            del self.rooms[room_id]
