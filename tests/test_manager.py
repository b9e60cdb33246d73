import pytest
from starlette.websockets import WebSocketState
from models.user import UserModel
from realtime.manager import Connection, ConnectionManager
from fakes import FakeWebSocket

pytestmark = pytest.mark.asyncio


def make_connection(user_id, role="team_member", fail=False):
    user = UserModel(id=user_id, email=f"{user_id}@test.com", role=role)
    return Connection(FakeWebSocket(fail=fail), user)


@pytest.fixture
def registry():
    return ConnectionManager()


async def test_connect_joins_user_and_role_rooms(registry):
    alice = make_connection("alice", role="admin")
    registry.connect(alice)

    assert alice.rooms == {"user:alice", "role:admin"}
    assert registry.room_members("user:alice") == [alice]
    assert registry.room_size("role:admin") == 1
    assert registry.is_user_online("alice")
    assert registry.connection_count == 1


async def test_disconnect_leaves_every_room(registry):
    alice = make_connection("alice")
    registry.connect(alice)
    registry.join(alice, "task:64b7f0c2e1d3a4b5c6d7e8f9")
    registry.disconnect(alice)

    assert registry.connection_count == 0
    assert registry.room_size("user:alice") == 0
    assert registry.room_size("task:64b7f0c2e1d3a4b5c6d7e8f9") == 0
    assert not registry.is_user_online("alice")
    assert alice.rooms == set()


async def test_emit_to_room_counts_sessions(registry):
    tab1, tab2, bob = make_connection("alice"), make_connection("alice"), make_connection("bob")
    for c in (tab1, tab2, bob):
        registry.connect(c)

    sent = await registry.emit_to_room("user:alice", "notification", {"title": "Hi"})

    assert sent == 2
    assert tab1.websocket.payloads("notification") == [{"title": "Hi"}]
    assert tab2.websocket.payloads("notification") == [{"title": "Hi"}]
    assert bob.websocket.sent == []


async def test_emit_to_empty_room(registry):
    assert await registry.emit_to_room("user:ghost", "notification", {}) == 0


async def test_emit_excludes_sender(registry):
    alice, bob = make_connection("alice"), make_connection("bob")
    for c in (alice, bob):
        registry.connect(c)
        registry.join(c, "task:T")

    assert await registry.emit_to_room("task:T", "task:user_typing", {"isTyping": True}, exclude=alice) == 1
    assert alice.websocket.sent == []
    assert bob.websocket.events("task:user_typing")


async def test_failing_socket_is_not_counted(registry):
    good, broken = make_connection("alice"), make_connection("alice", fail=True)
    registry.connect(good)
    registry.connect(broken)

    assert await registry.emit_to_room("user:alice", "notification", {}) == 1


async def test_closed_socket_is_skipped(registry):
    alice = make_connection("alice")
    registry.connect(alice)
    alice.websocket.application_state = WebSocketState.DISCONNECTED

    assert await registry.send(alice, "pong") is False
    assert alice.websocket.sent == []


async def test_broadcast_reaches_everyone_but_excluded(registry):
    conns = [make_connection(u) for u in ("a", "b", "c")]
    for c in conns:
        registry.connect(c)

    assert await registry.broadcast("task:update", {"eventType": "updated"}, exclude=conns[0]) == 2
    assert conns[0].websocket.sent == []


async def test_online_users_one_entry_per_user(registry):
    tab1, tab2, bob = make_connection("alice"), make_connection("alice"), make_connection("bob", role="admin")
    for c in (tab1, tab2, bob):
        registry.connect(c)

    users = registry.online_users()
    assert sorted(u["userId"] for u in users) == ["alice", "bob"]
    assert {"userId": "bob", "email": "bob@test.com", "role": "admin"} in users

    # Excluding one of alice's tabs still lists alice through the other
    assert sorted(u["userId"] for u in registry.online_users(exclude=tab1)) == ["alice", "bob"]
    assert [u["userId"] for u in registry.online_users(exclude=bob)] == ["alice"]


async def test_sessions_for_user(registry):
    tab1, tab2 = make_connection("alice"), make_connection("alice")
    registry.connect(tab1)
    registry.connect(tab2)
    assert {c.session_id for c in registry.sessions_for_user("alice")} == {tab1.session_id, tab2.session_id}
