import asyncio
import pytest
from datetime import datetime, timedelta
from models.notification import NotificationModel
from models.user import UserModel
from realtime import handlers
from realtime.manager import Connection, manager
from realtime.handlers import handle_client_event, session_joined, session_left, HANDLERS
from services.offline import offline_store
from services.presence import presence_store
from constants import ClientEvents
from fakes import FakeWebSocket

pytestmark = pytest.mark.asyncio

TASK_ID = "64b7f0c2e1d3a4b5c6d7e8f9"


def make_connection(user_id, role="team_member"):
    return Connection(FakeWebSocket(), UserModel(id=user_id, email=f"{user_id}@test.com", role=role))


async def joined(user_id, role="team_member"):
    connection = make_connection(user_id, role)
    await session_joined(connection)
    return connection


async def test_every_client_event_has_a_handler():
    events = [v for k, v in vars(ClientEvents).items() if k.isupper()]
    assert set(events) == set(HANDLERS)


async def test_join_announces_and_records_presence():
    alice = await joined("alice")
    bob = await joined("bob", role="admin")

    assert alice.websocket.payloads("user:online") == [{"userId": "bob", "email": "bob@test.com", "role": "admin"}]
    assert bob.websocket.events("user:online") == []
    session = await presence_store.get("bob")
    assert session.socket_id == bob.session_id
    assert session.role == "admin"


async def test_last_session_leaving_goes_offline():
    alice = await joined("alice")
    tab1 = await joined("bob")
    tab2 = await joined("bob")

    await session_left(tab1)
    # Still connected through the other tab: presence follows it, no offline broadcast
    assert (await presence_store.get("bob")).socket_id == tab2.session_id
    assert alice.websocket.events("user:offline") == []

    await session_left(tab2)
    assert await presence_store.get("bob") is None
    assert alice.websocket.payloads("user:offline") == [{"userId": "bob", "email": "bob@test.com"}]
    assert not manager.is_user_online("bob")


async def test_offline_backlog_and_clear():
    await offline_store.append("alice", NotificationModel(title="First", message="m1"))
    await offline_store.append("alice", NotificationModel(title="Second", message="m2"))
    alice = await joined("alice")

    await handle_client_event(alice, ClientEvents.GET_OFFLINE_NOTIFICATIONS)
    [backlog] = alice.websocket.payloads("notifications:offline")
    assert [n["title"] for n in backlog] == ["Second", "First"]
    assert all(n["stored"] is True for n in backlog)

    await handle_client_event(alice, ClientEvents.CLEAR_OFFLINE_NOTIFICATIONS)
    assert alice.websocket.events("notifications:cleared")
    assert await offline_store.drain("alice") == []


async def test_empty_backlog_sends_nothing():
    alice = await joined("alice")
    await handle_client_event(alice, ClientEvents.GET_OFFLINE_NOTIFICATIONS)
    assert alice.websocket.events("notifications:offline") == []


async def test_join_and_leave_task_room():
    alice = await joined("alice")

    await handle_client_event(alice, ClientEvents.JOIN_TASK, TASK_ID)
    assert alice.websocket.payloads("task:joined") == [{"taskId": TASK_ID}]
    assert manager.room_size(f"task:{TASK_ID}") == 1

    await handle_client_event(alice, ClientEvents.LEAVE_TASK, TASK_ID)
    assert alice.websocket.payloads("task:left") == [{"taskId": TASK_ID}]
    assert manager.room_size(f"task:{TASK_ID}") == 0


@pytest.mark.parametrize("task_id", ["short", None, 42, "x" * 25])
async def test_invalid_task_id_is_ignored(task_id):
    alice = await joined("alice")
    await handle_client_event(alice, ClientEvents.JOIN_TASK, task_id)
    assert alice.websocket.events("task:joined") == []


async def test_join_room_rules():
    alice = await joined("alice")

    await handle_client_event(alice, ClientEvents.JOIN_ROOM, "project:apollo")
    assert alice.websocket.payloads("room:joined") == [{"room": "project:apollo"}]

    await handle_client_event(alice, ClientEvents.JOIN_ROOM, "r" * 100)
    await handle_client_event(alice, ClientEvents.JOIN_ROOM, "")
    await handle_client_event(alice, ClientEvents.JOIN_ROOM, "user:bob")
    await handle_client_event(alice, ClientEvents.JOIN_ROOM, "role:admin")
    assert len(alice.websocket.events("room:joined")) == 1
    assert manager.room_size("user:bob") == 0

    await handle_client_event(alice, ClientEvents.LEAVE_ROOM, "project:apollo")
    assert alice.websocket.payloads("room:left") == [{"room": "project:apollo"}]


async def test_typing_reaches_other_task_members():
    alice, bob, carol = await joined("alice"), await joined("bob"), await joined("carol")
    for c in (alice, bob):
        await handle_client_event(c, ClientEvents.JOIN_TASK, TASK_ID)

    await handle_client_event(alice, ClientEvents.TASK_TYPING, {"taskId": TASK_ID, "isTyping": True})

    assert bob.websocket.payloads("task:user_typing") == [
        {"userId": "alice", "email": "alice@test.com", "taskId": TASK_ID, "isTyping": True}
    ]
    assert alice.websocket.events("task:user_typing") == []
    assert carol.websocket.events("task:user_typing") == []


async def test_task_activity_is_room_scoped():
    alice, bob = await joined("alice"), await joined("bob")
    await handle_client_event(bob, ClientEvents.JOIN_TASK, TASK_ID)

    await handle_client_event(alice, ClientEvents.TASK_ACTIVITY, {"taskId": TASK_ID, "activity": "viewing"})

    [update] = bob.websocket.payloads("task:activity_update")
    assert update["userId"] == "alice"
    assert update["activity"] == "viewing"
    assert update["metadata"] == {}


async def test_presence_status_broadcast():
    alice, bob = await joined("alice"), await joined("bob")

    await handle_client_event(alice, ClientEvents.USER_PRESENCE, "away")
    await handle_client_event(alice, ClientEvents.USER_PRESENCE, "sleeping")

    assert bob.websocket.payloads("user:presence_update") == [
        {"userId": "alice", "email": "alice@test.com", "status": "away"}
    ]
    assert alice.websocket.events("user:presence_update") == []


async def test_online_users_excludes_requester():
    alice = await joined("alice")
    await joined("bob")
    await joined("bob")

    await handle_client_event(alice, ClientEvents.GET_ONLINE_USERS)
    [users] = alice.websocket.payloads("online_users")
    assert [u["userId"] for u in users] == ["bob"]


async def test_direct_message():
    alice = await joined("alice")
    bob_tab1, bob_tab2 = await joined("bob"), await joined("bob")

    await handle_client_event(alice, ClientEvents.DIRECT_MESSAGE, {"recipientId": "bob", "message": "hi"})

    for tab in (bob_tab1, bob_tab2):
        [received] = tab.websocket.payloads("message:received")
        assert received["from"] == {"userId": "alice", "email": "alice@test.com"}
        assert received["message"] == "hi"
        assert received["type"] == "text"
    [ack] = alice.websocket.payloads("message:sent")
    assert ack["recipientId"] == "bob"
    assert ack["message"] == "hi"


async def test_direct_message_to_offline_user_is_not_stored():
    alice = await joined("alice")
    await handle_client_event(alice, ClientEvents.DIRECT_MESSAGE, {"recipientId": "ghost", "message": "hi"})
    assert alice.websocket.events("message:sent")
    assert await offline_store.drain("ghost") == []


async def test_ping_replies_pong_and_refreshes_presence(mongo):
    alice = await joined("alice")
    await mongo["user_sessions"].update_one(
        {"user_id": "alice"}, {"$set": {"expires_at": datetime.utcnow() - timedelta(seconds=1)}}
    )

    await handle_client_event(alice, ClientEvents.PING)

    [pong] = alice.websocket.payloads("pong")
    assert pong["userId"] == "alice"
    assert "timestamp" in pong
    # Expired record is recreated
    assert await presence_store.is_online("alice")


async def test_custom_event_acknowledged():
    alice = await joined("alice")
    await handle_client_event(alice, ClientEvents.CUSTOM_EVENT, {"type": "cursor", "x": 1})
    await handle_client_event(alice, ClientEvents.CUSTOM_EVENT, {"x": 1})
    [ack] = alice.websocket.payloads("custom:event_received")
    assert ack["type"] == "cursor"


async def test_unknown_event_is_ignored():
    alice = await joined("alice")
    sent_before = len(alice.websocket.sent)
    assert await handle_client_event(alice, "does:not_exist", {}) is False
    assert await handle_client_event(alice, None) is False
    assert len(alice.websocket.sent) == sent_before


class SlowDeleteCollection:
    """Delays delete_one so another coroutine can run while it is awaited."""

    def __init__(self, collection):
        self._collection = collection

    async def delete_one(self, *args, **kwargs):
        await asyncio.sleep(0.01)
        return await self._collection.delete_one(*args, **kwargs)

    def __getattr__(self, name):
        return getattr(self._collection, name)


async def test_reconnect_during_cleanup_keeps_presence(mongo, monkeypatch):
    monkeypatch.setattr(presence_store, "_collection", SlowDeleteCollection(mongo["user_sessions"]))
    watcher = await joined("watcher")
    old = await joined("u1")

    leaving = asyncio.create_task(session_left(old))
    await asyncio.sleep(0)
    new = await joined("u1")
    await leaving

    assert manager.is_user_online("u1")
    assert (await presence_store.get("u1")).socket_id == new.session_id
    assert watcher.websocket.events("user:offline") == []


async def test_ping_refreshes_presence_once(monkeypatch):
    alice = await joined("alice")
    calls = []
    original = handlers.refresh_presence

    async def counting_refresh(connection, force=False):
        calls.append(force)
        await original(connection, force)

    monkeypatch.setattr(handlers, "refresh_presence", counting_refresh)
    await handle_client_event(alice, ClientEvents.PING)
    assert calls == [True]

    await handle_client_event(alice, ClientEvents.GET_ONLINE_USERS)
    assert calls == [True, False]
