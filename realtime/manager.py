"""
WebSocket connection registry with an explicit room membership index.

Every session is a member of `user:{id}` and `role:{role}` from the moment it
is registered and may join further rooms. Delivery to a room looks up its
member set; nothing iterates over all connections except a true broadcast.
"""

import asyncio
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set
from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState
from constants import user_room, role_room
from models.user import UserModel
from logging_config import get_logger

logger = get_logger("realtime")


class Connection:
    """One authenticated socket session."""

    def __init__(self, websocket: WebSocket, user: UserModel, session_id: Optional[str] = None):
        self.websocket = websocket
        self.user = user
        self.session_id = session_id or uuid.uuid4().hex
        self.connected_at = datetime.utcnow()
        self.rooms: Set[str] = set()
        self.last_presence_refresh = self.connected_at

    async def send(self, event: str, data: Any = None):
        await self.websocket.send_json({"event": event, "data": data})

    def describe(self) -> dict:
        return {"userId": self.user.id, "email": self.user.email, "role": self.user.role}


class ConnectionManager:
    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        self._rooms: Dict[str, Set[str]] = defaultdict(set)

    # --- Membership ---

    def connect(self, connection: Connection):
        self._connections[connection.session_id] = connection
        self.join(connection, user_room(connection.user.id))
        self.join(connection, role_room(connection.user.role))
        logger.info(
            f"Session registered for {connection.user.email}",
            extra={"data": {"session_id": connection.session_id, "connections": len(self._connections)}}
        )

    def disconnect(self, connection: Connection):
        for room in list(connection.rooms):
            self.leave(connection, room)
        self._connections.pop(connection.session_id, None)

    def join(self, connection: Connection, room: str):
        self._rooms[room].add(connection.session_id)
        connection.rooms.add(room)

    def leave(self, connection: Connection, room: str):
        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection.session_id)
            if not members:
                del self._rooms[room]
        connection.rooms.discard(room)

    def room_members(self, room: str) -> List[Connection]:
        return [self._connections[sid] for sid in self._rooms.get(room, ()) if sid in self._connections]

    def room_size(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    def sessions_for_user(self, user_id: str) -> List[Connection]:
        return self.room_members(user_room(user_id))

    def is_user_online(self, user_id: str) -> bool:
        return self.room_size(user_room(user_id)) > 0

    def online_users(self, exclude: Optional[Connection] = None) -> List[dict]:
        """One entry per connected user, built from the `user:*` rooms."""
        users = []
        for room, members in self._rooms.items():
            if not room.startswith("user:"):
                continue
            sessions = [
                self._connections[sid] for sid in members
                if sid in self._connections and (exclude is None or sid != exclude.session_id)
            ]
            if sessions:
                users.append(sessions[0].describe())
        return users

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def clear(self):
        self._connections.clear()
        self._rooms.clear()

    # --- Delivery ---

    async def send(self, connection: Connection, event: str, data: Any = None) -> bool:
        """Send to one session. A closed or broken socket is logged and reported as not delivered."""
        if connection.websocket.application_state == WebSocketState.DISCONNECTED:
            return False
        try:
            await connection.send(event, data)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.warning(
                f"Failed to deliver '{event}' to session: {e}",
                extra={"data": {"session_id": connection.session_id, "user_id": connection.user.id}}
            )
            return False
        return True

    async def _send_many(self, connections: Iterable[Connection], event: str, data: Any) -> int:
        # Snapshot first: membership can change while sends are awaited
        targets = list(connections)
        if not targets:
            return 0
        results = await asyncio.gather(*(self.send(c, event, data) for c in targets))
        return sum(1 for delivered in results if delivered)

    async def emit_to_room(self, room: str, event: str, data: Any = None, exclude: Optional[Connection] = None) -> int:
        members = [c for c in self.room_members(room) if exclude is None or c.session_id != exclude.session_id]
        return await self._send_many(members, event, data)

    async def broadcast(self, event: str, data: Any = None, exclude: Optional[Connection] = None) -> int:
        members = [c for c in self._connections.values() if exclude is None or c.session_id != exclude.session_id]
        return await self._send_many(members, event, data)


manager = ConnectionManager()
