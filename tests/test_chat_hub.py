"""Tests for ChatHub room membership, fan-out and offline delivery.

The hub's database helpers are replaced with AsyncMocks; Redis is the
in-memory FakeRedis from conftest.
"""

import json
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.redis import CHAT_CONNECTED_KEY, get_outbox_key, get_presence_key, get_room_channel
from app.models.chat import ChatMessage
from app.models.profile import UserRole
from app.services.chat.hub import ChatConnection, ChatHub
from app.services.chat.permissions import dm_room_id


@pytest.fixture
def profiles() -> dict:
    return {}


@pytest.fixture
def hub(fake_redis, profiles) -> ChatHub:
    hub = ChatHub(fake_redis, session_factory=MagicMock(), notify=MagicMock())
    hub._load_profile = AsyncMock(side_effect=lambda user_id: profiles.get(str(user_id)))
    hub._load_message = AsyncMock(return_value=None)
    hub._has_written = AsyncMock(return_value=False)
    hub._store_message = AsyncMock(return_value=True)
    hub._update_message = AsyncMock()
    return hub


@pytest.fixture
def connect(hub, profiles, socket_factory, profile_factory):
    """Create a profile, open a socket for it and register it with the hub."""

    async def _connect(role=UserRole.OBSERVER, name="User", profile=None, **kwargs):
        profile = profile or profile_factory(role, name=name, **kwargs)
        profiles[str(profile.id)] = profile
        conn = ChatConnection(socket_factory(), profile)
        await hub.connect(conn)
        return conn

    return _connect


def _message_frame(room: str, content: str = "ciphertext", **overrides) -> dict:
    payload = {"id": str(uuid.uuid4()), "room": room, "content": content, "timestamp": 1_700_000_000_000}
    payload.update(overrides)
    return {"type": "message", "message": payload}


def _stored(sender, room="admin", status="sent", receiver_id=None, deleted=False) -> ChatMessage:
    return ChatMessage(
        client_id=uuid.uuid4(),
        room=room,
        sender_id=sender.id,
        sender_name=sender.name,
        receiver_id=receiver_id,
        content="ciphertext",
        type="text",
        status=status,
        edited=False,
        deleted=deleted,
        sent_at=1,
    )


class TestConnections:
    @pytest.mark.asyncio
    async def test_connect_drains_outbox_in_order(self, hub, fake_redis, profile_factory, socket_factory):
        profile = profile_factory()
        key = get_outbox_key(str(profile.id))
        fake_redis.lists[key] = [json.dumps({"type": "message", "n": 1}), json.dumps({"type": "message", "n": 2})]
        conn = ChatConnection(socket_factory(), profile)

        await hub.connect(conn)

        assert [f["n"] for f in conn.websocket.sent] == [1, 2]
        assert key not in fake_redis.lists
        assert fake_redis.hashes[CHAT_CONNECTED_KEY][str(profile.id)] == "1"

    @pytest.mark.asyncio
    async def test_disconnect_clears_connection_count(self, hub, fake_redis, connect):
        conn = await connect()

        await hub.disconnect(conn)

        assert conn.user_id not in hub.connections
        assert CHAT_CONNECTED_KEY not in fake_redis.hashes


class TestJoinLeave:
    @pytest.mark.asyncio
    async def test_join_announces_presence(self, hub, fake_redis, connect):
        conn = await connect(name="Ann")

        assert await hub.join(conn, "admin") is True

        assert conn.websocket.frames("online")[-1] == {
            "type": "online",
            "room": "admin",
            "users": {conn.user_id: "Ann"},
        }
        assert fake_redis.hashes[get_presence_key("admin")] == {conn.user_id: "Ann"}
        channel, envelope = fake_redis.published[-1]
        assert channel == get_room_channel("admin")
        assert envelope["origin"] == hub.origin

    @pytest.mark.asyncio
    async def test_join_other_station_is_forbidden(self, hub, connect):
        conn = await connect(station_id=uuid.uuid4())

        assert await hub.join(conn, f"parish-{uuid.uuid4()}") is False

        assert conn.websocket.frames("error")[-1]["code"] == "forbidden"
        assert not conn.rooms

    @pytest.mark.asyncio
    async def test_dm_with_missing_peer_is_forbidden(self, hub, connect):
        conn = await connect()

        assert await hub.join(conn, dm_room_id(conn.user_id, uuid.uuid4())) is False

    @pytest.mark.asyncio
    async def test_leave_announces_departure(self, hub, fake_redis, connect):
        ann = await connect(name="Ann")
        bob = await connect(name="Bob")
        await hub.join(ann, "admin")
        await hub.join(bob, "admin")

        await hub.leave(bob, "admin")

        assert ann.websocket.frames("online")[-1]["users"] == {ann.user_id: "Ann"}
        assert "admin" not in bob.rooms

    @pytest.mark.asyncio
    async def test_second_socket_keeps_user_online(self, hub, fake_redis, connect, profile_factory):
        profile = profile_factory(name="Ann")
        first = await connect(profile=profile)
        second = await connect(profile=profile)
        await hub.join(first, "admin")
        await hub.join(second, "admin")

        await hub.disconnect(first)

        assert fake_redis.hashes[get_presence_key("admin")] == {str(profile.id): "Ann"}
        assert hub.connections[str(profile.id)] == {second}


class TestMessages:
    @pytest.mark.asyncio
    async def test_message_requires_join(self, hub, connect):
        conn = await connect()

        await hub.handle_raw(conn, json.dumps(_message_frame("admin")))

        assert conn.websocket.frames("error")[-1]["code"] == "not_joined"
        hub._store_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_message_is_acked_and_fanned_out(self, hub, fake_redis, connect):
        ann = await connect(name="Ann")
        bob = await connect(name="Bob")
        await hub.join(ann, "admin")
        await hub.join(bob, "admin")
        frame = _message_frame("admin")
        msg_id = frame["message"]["id"]

        await hub.handle_raw(ann, json.dumps(frame))

        assert ann.websocket.frames("status")[-1] == {"type": "status", "msgId": msg_id, "status": "sent"}
        assert not ann.websocket.frames("message")
        delivered = bob.websocket.frames("message")[-1]["message"]
        assert delivered["id"] == msg_id
        assert delivered["senderId"] == ann.user_id
        assert delivered["senderName"] == "Ann"
        assert delivered["senderRole"] == "observer"
        assert delivered["content"] == "ciphertext"
        assert fake_redis.published[-1][1]["frame"]["type"] == "message"
        hub.notify.assert_called_once()
        assert hub.notify.call_args[0][:2] == ("chat_message_sent", ann.user_id)

    @pytest.mark.asyncio
    async def test_retried_message_is_not_stored_twice(self, hub, connect):
        ann = await connect()
        await hub.join(ann, "admin")
        existing = _stored(ann.user, status="delivered")
        hub._load_message.return_value = existing

        await hub.handle_raw(ann, _message_frame("admin", id=str(existing.client_id)))

        assert ann.websocket.frames("status")[-1]["status"] == "delivered"
        hub._store_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_foreign_message_id_is_rejected(self, hub, connect, profile_factory):
        ann = await connect()
        await hub.join(ann, "admin")
        existing = _stored(profile_factory())
        hub._load_message.return_value = existing

        await hub.handle_raw(ann, _message_frame("admin", id=str(existing.client_id)))

        assert ann.websocket.frames("error")[-1]["code"] == "forbidden"

    @pytest.mark.asyncio
    async def test_lost_insert_race_still_acks(self, hub, connect):
        ann = await connect()
        await hub.join(ann, "admin")
        hub._store_message.return_value = False

        await hub.handle_raw(ann, _message_frame("admin"))

        assert ann.websocket.frames("status")[-1]["status"] == "sent"
        hub.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_file_message_needs_url(self, hub, connect):
        ann = await connect()
        await hub.join(ann, "admin")

        await hub.handle_raw(ann, _message_frame("admin", type="file"))

        assert ann.websocket.frames("error")[-1]["code"] == "invalid_frame"

    @pytest.mark.asyncio
    async def test_file_message_notifies_upload(self, hub, connect):
        ann = await connect()
        await hub.join(ann, "admin")

        await hub.handle_raw(
            ann, _message_frame("admin", type="file", fileUrl="http://files/a.pdf", fileName="a.pdf")
        )

        events = [c[0][0] for c in hub.notify.call_args_list]
        assert events == ["chat_message_sent", "chat_file_uploaded"]


class TestDirectMessages:
    @pytest.mark.asyncio
    async def test_observer_cannot_open_dm_with_admin(self, hub, connect):
        admin = await connect(UserRole.ADMIN)
        observer = await connect(UserRole.OBSERVER)
        room = dm_room_id(admin.user_id, observer.user_id)
        assert await hub.join(observer, room)

        await hub.handle_raw(observer, _message_frame(room))

        assert observer.websocket.frames("error")[-1]["code"] == "forbidden"
        hub._store_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_observer_can_reply(self, hub, connect):
        admin = await connect(UserRole.ADMIN)
        observer = await connect(UserRole.OBSERVER)
        room = dm_room_id(admin.user_id, observer.user_id)
        await hub.join(observer, room)
        hub._has_written.return_value = True

        await hub.handle_raw(observer, _message_frame(room))

        hub._store_message.assert_awaited_once()
        stored = hub._store_message.call_args[0][0]
        assert str(stored.receiver_id) == admin.user_id

    @pytest.mark.asyncio
    async def test_offline_receiver_gets_outbox_entry(self, hub, fake_redis, connect, profiles, profile_factory):
        admin = await connect(UserRole.ADMIN, name="Ada")
        observer = profile_factory(UserRole.OBSERVER, name="Omar")
        profiles[str(observer.id)] = observer
        room = dm_room_id(admin.user_id, observer.id)
        await hub.join(admin, room)

        await hub.handle_raw(admin, _message_frame(room))

        queued = [json.loads(f) for f in fake_redis.lists[get_outbox_key(str(observer.id))]]
        assert queued[0]["type"] == "message"
        assert queued[0]["message"]["receiverName"] == "Omar"
        events = [(c[0][0], c[0][1]) for c in hub.notify.call_args_list]
        assert ("chat_direct_message", str(observer.id)) in events

    @pytest.mark.asyncio
    async def test_connected_receiver_outside_room_gets_frame(self, hub, fake_redis, connect):
        admin = await connect(UserRole.ADMIN)
        observer = await connect(UserRole.OBSERVER)
        room = dm_room_id(admin.user_id, observer.user_id)
        await hub.join(admin, room)

        await hub.handle_raw(admin, _message_frame(room))

        assert observer.websocket.frames("message")
        assert get_outbox_key(observer.user_id) not in fake_redis.lists


class TestEditDelete:
    @pytest.mark.asyncio
    async def test_author_edit_is_broadcast(self, hub, connect):
        ann = await connect()
        bob = await connect()
        await hub.join(ann, "admin")
        await hub.join(bob, "admin")
        message = _stored(ann.user)
        hub._load_message.return_value = message

        await hub.handle_raw(ann, {"type": "edit", "msgId": str(message.client_id), "newContent": "v2"})

        hub._update_message.assert_awaited_once_with(message.client_id, content="v2", edited=True)
        assert bob.websocket.frames("edit")[-1]["newContent"] == "v2"
        assert hub.notify.call_args[0][0] == "chat_message_edited"

    @pytest.mark.asyncio
    async def test_edit_by_someone_else_is_forbidden(self, hub, connect, profile_factory):
        ann = await connect(UserRole.ADMIN)
        hub._load_message.return_value = _stored(profile_factory())

        await hub.handle_raw(ann, {"type": "edit", "msgId": str(uuid.uuid4()), "newContent": "x"})

        assert ann.websocket.frames("error")[-1]["code"] == "forbidden"
        hub._update_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_edit_unknown_message(self, hub, connect):
        ann = await connect()

        await hub.handle_raw(ann, {"type": "edit", "msgId": str(uuid.uuid4()), "newContent": "x"})

        assert ann.websocket.frames("error")[-1]["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_coordinator_moderates_observer(self, hub, connect, profiles, profile_factory):
        coordinator = await connect(UserRole.PARISH_COORDINATOR)
        observer = profile_factory(UserRole.OBSERVER)
        profiles[str(observer.id)] = observer
        message = _stored(observer)
        hub._load_message.return_value = message

        await hub.handle_raw(coordinator, {"type": "delete", "msgId": str(message.client_id)})

        hub._update_message.assert_awaited_once_with(message.client_id, content="", deleted=True)
        assert hub.notify.call_args[0][:2] == ("chat_message_deleted", coordinator.user_id)

    @pytest.mark.asyncio
    async def test_observer_cannot_delete_coordinator_message(self, hub, connect, profiles, profile_factory):
        observer = await connect(UserRole.OBSERVER)
        coordinator = profile_factory(UserRole.PARISH_COORDINATOR)
        profiles[str(coordinator.id)] = coordinator
        hub._load_message.return_value = _stored(coordinator)

        await hub.handle_raw(observer, {"type": "delete", "msgId": str(uuid.uuid4())})

        assert observer.websocket.frames("error")[-1]["code"] == "forbidden"
        hub._update_message.assert_not_called()


class TestStatus:
    @pytest.mark.asyncio
    async def test_read_receipt_advances_status(self, hub, connect):
        ann = await connect()
        bob = await connect()
        await hub.join(ann, "admin")
        await hub.join(bob, "admin")
        message = _stored(ann.user, status="delivered")
        hub._load_message.return_value = message

        await hub.handle_raw(bob, {"type": "status", "msgId": str(message.client_id), "status": "read"})

        hub._update_message.assert_awaited_once_with(message.client_id, status="read")
        assert ann.websocket.frames("status")[-1]["status"] == "read"

    @pytest.mark.asyncio
    async def test_stale_receipt_is_ignored(self, hub, connect):
        ann = await connect()
        bob = await connect()
        await hub.join(bob, "admin")
        hub._load_message.return_value = _stored(ann.user, status="read")

        await hub.handle_raw(bob, {"type": "status", "msgId": str(uuid.uuid4()), "status": "delivered"})

        hub._update_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_author_receipt_is_ignored(self, hub, connect):
        ann = await connect()
        await hub.join(ann, "admin")
        hub._load_message.return_value = _stored(ann.user)

        await hub.handle_raw(ann, {"type": "status", "msgId": str(uuid.uuid4()), "status": "read"})

        hub._update_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_receipt_from_outsider_is_rejected(self, hub, connect):
        ann = await connect()
        bob = await connect()
        hub._load_message.return_value = _stored(ann.user)

        await hub.handle_raw(bob, {"type": "status", "msgId": str(uuid.uuid4()), "status": "read"})

        assert bob.websocket.frames("error")[-1]["code"] == "not_joined"


class TestRelay:
    @pytest.mark.asyncio
    async def test_own_envelopes_are_skipped(self, hub, connect):
        ann = await connect()
        await hub.join(ann, "admin")
        before = len(ann.websocket.sent)

        await hub.relay(get_room_channel("admin"), json.dumps({"origin": hub.origin, "frame": {"type": "pong"}}))

        assert len(ann.websocket.sent) == before

    @pytest.mark.asyncio
    async def test_foreign_room_envelope_is_delivered(self, hub, connect):
        ann = await connect()
        await hub.join(ann, "admin")

        await hub.relay(get_room_channel("admin"), json.dumps({"origin": "elsewhere", "frame": {"type": "pong"}}))

        assert ann.websocket.sent[-1] == {"type": "pong"}

    @pytest.mark.asyncio
    async def test_user_channel_reaches_every_socket(self, hub, connect, profile_factory):
        profile = profile_factory()
        first = await connect(profile=profile)
        second = await connect(profile=profile)

        await hub.relay(f"chat:user:{profile.id}", b'{"origin": "elsewhere", "frame": {"type": "pong"}}')

        assert first.websocket.sent[-1] == second.websocket.sent[-1] == {"type": "pong"}

    @pytest.mark.asyncio
    async def test_garbage_is_ignored(self, hub, connect):
        ann = await connect()
        await hub.join(ann, "admin")
        before = len(ann.websocket.sent)

        await hub.relay(get_room_channel("admin"), "not json")

        assert len(ann.websocket.sent) == before


class TestMisc:
    @pytest.mark.asyncio
    async def test_ping_gets_pong(self, hub, connect):
        ann = await connect()

        await hub.handle_raw(ann, '{"type": "ping"}')

        assert ann.websocket.sent[-1] == {"type": "pong"}

    @pytest.mark.asyncio
    async def test_bad_json_gets_error(self, hub, connect):
        ann = await connect()

        await hub.handle_raw(ann, "{oops")

        assert ann.websocket.sent[-1]["type"] == "error"
        assert ann.websocket.sent[-1]["code"] == "bad_json"

    @pytest.mark.asyncio
    async def test_closed_socket_does_not_break_broadcast(self, hub, connect):
        ann = await connect()
        bob = await connect()
        await hub.join(ann, "admin")
        await hub.join(bob, "admin")
        ann.websocket.closed = True

        delivered = await hub.deliver_local("admin", {"type": "pong"})

        assert delivered == 1
        assert bob.websocket.sent[-1] == {"type": "pong"}
