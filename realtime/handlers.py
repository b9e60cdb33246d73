"""
Socket session lifecycle and the handlers for client-sent events.

Room-scoped events (typing, presence status, task activity) are ephemeral
broadcasts and are never stored. Payloads that fail validation are ignored,
matching what clients already expect.
"""

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict
from constants import (
    ClientEvents, ServerEvents, PresenceStatus, TASK_ID_LENGTH, MAX_ROOM_NAME_LENGTH,
    user_room, role_room, task_room,
)
from models.notification import utc_timestamp
from realtime.manager import Connection, manager
from services.presence import presence_store
from services.offline import offline_store
from services.dispatcher import dispatcher
from logging_config import get_logger
from config import config

logger = get_logger("socket_handlers")

Handler = Callable[[Connection, Any], Awaitable[None]]
HANDLERS: Dict[str, Handler] = {}


def on(event: str):
    def register(func: Handler) -> Handler:
        HANDLERS[event] = func
        return func
    return register


def _valid_task_id(task_id: Any) -> bool:
    return isinstance(task_id, str) and len(task_id) == TASK_ID_LENGTH


def _own_reserved_room(connection: Connection, room: str) -> bool:
    """`user:` and `role:` rooms may only be joined by their owner."""
    if room.startswith("user:"):
        return room == user_room(connection.user.id)
    if room.startswith("role:"):
        return room == role_room(connection.user.role)
    return True


# --- Session lifecycle ---

async def session_joined(connection: Connection):
    manager.connect(connection)
    await presence_store.put(connection.user.id, connection.session_id, {
        "email": connection.user.email,
        "role": connection.user.role,
        "connected_at": connection.connected_at,
    })
    await manager.broadcast(ServerEvents.USER_ONLINE, connection.describe(), exclude=connection)


async def session_left(connection: Connection):
    manager.disconnect(connection)
    remaining = manager.sessions_for_user(connection.user.id)
    if remaining:
        # Another tab/device is still connected: presence follows the newest one
        latest = max(remaining, key=lambda c: c.connected_at)
        await presence_store.put(latest.user.id, latest.session_id, {
            "email": latest.user.email,
            "role": latest.user.role,
            "connected_at": latest.connected_at,
        })
        return

    # A reconnect may land while the delete is awaited: only our own record goes
    await presence_store.remove(connection.user.id, session_id=connection.session_id)
    if manager.sessions_for_user(connection.user.id):
        return
    await manager.broadcast(ServerEvents.USER_OFFLINE, {
        "userId": connection.user.id,
        "email": connection.user.email,
    })


async def refresh_presence(connection: Connection, force: bool = False):
    now = datetime.utcnow()
    if not force and (now - connection.last_presence_refresh).total_seconds() < config.PRESENCE_REFRESH_SECONDS:
        return
    connection.last_presence_refresh = now
    if not await presence_store.touch(connection.user.id):
        # Record already expired (or store was down): recreate it
        await presence_store.put(connection.user.id, connection.session_id, {
            "email": connection.user.email,
            "role": connection.user.role,
            "connected_at": connection.connected_at,
        })


async def handle_client_event(connection: Connection, event: Any, data: Any = None) -> bool:
    """Dispatch one inbound event. Returns False if no handler exists for it."""
    handler = HANDLERS.get(event) if isinstance(event, str) else None
    if handler is None:
        logger.debug(f"Ignoring unknown socket event: {event}")
        return False
    if event != ClientEvents.PING:
        # ping forces its own refresh
        await refresh_presence(connection)
    await handler(connection, data)
    return True


# --- Offline notifications ---

@on(ClientEvents.GET_OFFLINE_NOTIFICATIONS)
async def get_offline_notifications(connection: Connection, data: Any):
    notifications = await offline_store.drain(connection.user.id)
    if notifications:
        await manager.send(connection, ServerEvents.OFFLINE_NOTIFICATIONS, [n.to_payload() for n in notifications])


@on(ClientEvents.CLEAR_OFFLINE_NOTIFICATIONS)
async def clear_offline_notifications(connection: Connection, data: Any):
    await offline_store.clear(connection.user.id)
    await manager.send(connection, ServerEvents.NOTIFICATIONS_CLEARED)


# --- Rooms ---

@on(ClientEvents.JOIN_ROOM)
async def join_room(connection: Connection, room: Any):
    if not isinstance(room, str) or not room or len(room) >= MAX_ROOM_NAME_LENGTH:
        return
    if not _own_reserved_room(connection, room):
        logger.warning(f"User {connection.user.email} refused reserved room: {room}")
        return
    manager.join(connection, room)
    await manager.send(connection, ServerEvents.ROOM_JOINED, {"room": room})
    logger.info(f"User {connection.user.email} joined room: {room}")


@on(ClientEvents.LEAVE_ROOM)
async def leave_room(connection: Connection, room: Any):
    if not isinstance(room, str):
        return
    manager.leave(connection, room)
    await manager.send(connection, ServerEvents.ROOM_LEFT, {"room": room})
    logger.info(f"User {connection.user.email} left room: {room}")


@on(ClientEvents.JOIN_TASK)
async def join_task(connection: Connection, task_id: Any):
    if not _valid_task_id(task_id):
        return
    manager.join(connection, task_room(task_id))
    await manager.send(connection, ServerEvents.TASK_JOINED, {"taskId": task_id})
    logger.info(f"User {connection.user.email} joined task room: {task_id}")


@on(ClientEvents.LEAVE_TASK)
async def leave_task(connection: Connection, task_id: Any):
    if not _valid_task_id(task_id):
        return
    manager.leave(connection, task_room(task_id))
    await manager.send(connection, ServerEvents.TASK_LEFT, {"taskId": task_id})
    logger.info(f"User {connection.user.email} left task room: {task_id}")


# --- Collaboration ---

@on(ClientEvents.TASK_TYPING)
async def task_typing(connection: Connection, data: Any):
    if not isinstance(data, dict) or not _valid_task_id(data.get("taskId")):
        return
    await manager.emit_to_room(task_room(data["taskId"]), ServerEvents.USER_TYPING, {
        "userId": connection.user.id,
        "email": connection.user.email,
        "taskId": data["taskId"],
        "isTyping": bool(data.get("isTyping")),
    }, exclude=connection)


@on(ClientEvents.USER_PRESENCE)
async def user_presence(connection: Connection, status: Any):
    if status not in PresenceStatus.ALL:
        return
    await manager.broadcast(ServerEvents.PRESENCE_UPDATE, {
        "userId": connection.user.id,
        "email": connection.user.email,
        "status": status,
    }, exclude=connection)


@on(ClientEvents.GET_ONLINE_USERS)
async def get_online_users(connection: Connection, data: Any):
    await manager.send(connection, ServerEvents.ONLINE_USERS, manager.online_users(exclude=connection))


@on(ClientEvents.DIRECT_MESSAGE)
async def direct_message(connection: Connection, data: Any):
    if not isinstance(data, dict):
        return
    recipient_id = data.get("recipientId")
    message = data.get("message")
    if not isinstance(recipient_id, str) or not isinstance(message, str):
        return

    direct = {
        "from": {"userId": connection.user.id, "email": connection.user.email},
        "message": message,
        "type": data.get("type") or "text",
        "timestamp": utc_timestamp(),
    }
    await dispatcher.send_direct_message(recipient_id, direct)
    await manager.send(connection, ServerEvents.MESSAGE_SENT, {
        "recipientId": recipient_id,
        "message": message,
        "timestamp": direct["timestamp"],
    })


@on(ClientEvents.TASK_ACTIVITY)
async def task_activity(connection: Connection, data: Any):
    if not isinstance(data, dict) or not _valid_task_id(data.get("taskId")):
        return
    await manager.emit_to_room(task_room(data["taskId"]), ServerEvents.TASK_ACTIVITY_UPDATE, {
        "userId": connection.user.id,
        "email": connection.user.email,
        "taskId": data["taskId"],
        "activity": data.get("activity"),
        "metadata": data.get("metadata") or {},
        "timestamp": utc_timestamp(),
    }, exclude=connection)


# --- Health / extensibility ---

@on(ClientEvents.PING)
async def ping(connection: Connection, data: Any):
    await refresh_presence(connection, force=True)
    await manager.send(connection, ServerEvents.PONG, {
        "timestamp": utc_timestamp(),
        "userId": connection.user.id,
    })


@on(ClientEvents.CUSTOM_EVENT)
async def custom_event(connection: Connection, data: Any):
    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        return
    logger.info(f"Custom event from {connection.user.email}", extra={"data": {"type": data["type"]}})
    await manager.send(connection, ServerEvents.CUSTOM_EVENT_RECEIVED, {
        "type": data["type"],
        "timestamp": utc_timestamp(),
    })
