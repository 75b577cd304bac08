"""WebSocket room manager.

Tracks the sockets connected to this process and the rooms they joined. A
user's sockets all join ``user_{id}``; rooms are the only push address.
"""

import json
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

import structlog
from fastapi import WebSocket

logger = structlog.get_logger()


def user_room(user_id: int) -> str:
    return f"user_{user_id}"


@dataclass
class ClientConnection:
    """A single authenticated WebSocket client."""

    websocket: WebSocket
    user_id: int
    rooms: set[str] = field(default_factory=set)
    connected_at: float = field(default_factory=time.time)
    messages_sent: int = 0


class RoomManager:
    """Room membership for the sockets owned by this process.

    Safe under asyncio because all mutation happens on the event loop.
    """

    def __init__(self) -> None:
        self._connections: dict[str, ClientConnection] = {}  # conn_id -> client
        self._rooms: dict[str, set[str]] = defaultdict(set)  # room -> {conn_ids}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket, conn_id: str, user_id: int) -> None:
        """Accept the socket and join its user room."""
        await websocket.accept()
        self._connections[conn_id] = ClientConnection(websocket=websocket, user_id=user_id)
        self.join(conn_id, user_room(user_id))
        logger.info("ws_connected", conn_id=conn_id, user_id=user_id)

    async def disconnect(self, conn_id: str) -> None:
        client = self._connections.pop(conn_id, None)
        if client is None:
            return
        for room in client.rooms:
            members = self._rooms.get(room)
            if members is None:
                continue
            members.discard(conn_id)
            if not members:
                del self._rooms[room]
        logger.info("ws_disconnected", conn_id=conn_id, user_id=client.user_id)

    def join(self, conn_id: str, room: str) -> bool:
        client = self._connections.get(conn_id)
        if client is None:
            return False
        client.rooms.add(room)
        self._rooms[room].add(conn_id)
        return True

    def leave(self, conn_id: str, room: str) -> bool:
        client = self._connections.get(conn_id)
        if client is None:
            return False
        client.rooms.discard(room)
        members = self._rooms.get(room)
        if members is not None:
            members.discard(conn_id)
            if not members:
                del self._rooms[room]
        return True

    def room_size(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    async def emit_local(self, room: str, event: str, data: Any) -> int:
        """Push ``{"event", "data"}`` to every local socket in ``room``.

        Returns the number of sockets reached. Sockets that fail to send are
        disconnected.
        """
        conn_ids = list(self._rooms.get(room, ()))
        if not conn_ids:
            return 0

        payload = json.dumps({"event": event, "data": data}, default=str)
        sent = 0
        failed: list[str] = []

        for conn_id in conn_ids:
            client = self._connections.get(conn_id)
            if client is None:
                failed.append(conn_id)
                continue
            try:
                await client.websocket.send_text(payload)
                client.messages_sent += 1
                sent += 1
            except Exception:
                failed.append(conn_id)

        for conn_id in failed:
            await self.disconnect(conn_id)

        return sent

    def get_stats(self) -> dict:
        return {
            "total_connections": len(self._connections),
            "unique_users": len({c.user_id for c in self._connections.values()}),
            "rooms": len(self._rooms),
        }


# Global singleton
manager = RoomManager()
