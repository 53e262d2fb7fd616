"""Server side of the chat socket protocol.

One ChatHub lives in each API process. It owns the sockets connected to that
process and fans frames out to them; frames for sockets held by other
processes travel over Redis pub/sub, tagged with this hub's origin id so a
process never re-delivers its own echo.
"""

import asyncio
import json
import logging
import uuid
from collections.abc import Callable
from typing import Any, Protocol

import redis.asyncio as aioredis
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.core.database import async_session_maker
from app.core.redis import (
    CHAT_ROOM_CHANNEL_PREFIX,
    CHAT_ROOM_PATTERN,
    CHAT_USER_CHANNEL_PREFIX,
    CHAT_USER_PATTERN,
    get_presence_key,
    get_user_channel,
    is_connected,
    mark_connected,
    mark_disconnected,
    outbox_drain,
    outbox_push,
    presence_add,
    presence_remove,
    publish_room_frame,
)
from app.models.chat import ChatMessage, MessageStatus, MessageType
from app.models.profile import Profile
from app.services.chat.permissions import (
    can_delete,
    can_edit,
    can_join,
    can_send_dm,
    dm_peer_id,
)
from app.services.chat.protocol import (
    AuthFrame,
    DeleteFrame,
    EditFrame,
    FrameError,
    JoinFrame,
    LeaveFrame,
    MessageFrame,
    PingFrame,
    StatusFrame,
    delete_frame,
    edit_frame,
    error_frame,
    message_frame,
    message_to_payload,
    online_frame,
    parse_frame,
    pong_frame,
    status_advances,
    status_frame,
)

logger = logging.getLogger(__name__)


class SocketLike(Protocol):
    async def send_json(self, data: Any) -> None: ...


class ChatConnection:
    """One authenticated socket and the rooms it has joined."""

    def __init__(self, websocket: SocketLike, user: Profile):
        self.websocket = websocket
        self.user = user
        self.user_id = str(user.id)
        self.rooms: set[str] = set()

    async def send(self, frame: dict[str, Any]) -> bool:
        try:
            await self.websocket.send_json(frame)
        except Exception as e:
            # Closed sockets are cleaned up by the endpoint's disconnect path
            logger.debug(f"Send to user {self.user_id} failed: {e}")
            return False
        return True


def _queue_chat_notification(event_type: str, user_id: str, data: dict[str, Any]) -> None:
    from app.workers.notifications import notify_chat_event

    try:
        notify_chat_event.delay(event_type, user_id, data)
    except Exception as e:
        logger.warning(f"Could not queue {event_type} notification: {e}")


class ChatHub:
    """Room membership, presence and message fan-out for chat sockets."""

    def __init__(
        self,
        redis: aioredis.Redis,
        session_factory: Callable[[], Any] = async_session_maker,
        notify: Callable[[str, str, dict[str, Any]], None] = _queue_chat_notification,
    ):
        self.redis = redis
        self.session_factory = session_factory
        self.notify = notify
        self.origin = uuid.uuid4().hex
        self.connections: dict[str, set[ChatConnection]] = {}
        self.rooms: dict[str, set[ChatConnection]] = {}
        self._listener: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, conn: ChatConnection) -> None:
        """Register a socket and redeliver anything queued while offline."""
        self.connections.setdefault(conn.user_id, set()).add(conn)
        await mark_connected(self.redis, conn.user_id)

        pending = await outbox_drain(self.redis, conn.user_id)
        for frame in pending:
            await conn.send(frame)
        logger.info(f"Chat user {conn.user_id} connected ({len(pending)} queued frames delivered)")

    async def disconnect(self, conn: ChatConnection) -> None:
        user_sockets = self.connections.get(conn.user_id, set())
        user_sockets.discard(conn)
        if not user_sockets:
            self.connections.pop(conn.user_id, None)
        await mark_disconnected(self.redis, conn.user_id)

        for room in list(conn.rooms):
            await self._detach(conn, room)
        logger.info(f"Chat user {conn.user_id} disconnected")

    def _user_in_room(self, user_id: str, room: str) -> bool:
        return any(c.user_id == user_id for c in self.rooms.get(room, ()))

    async def join(self, conn: ChatConnection, room: str) -> bool:
        peer_role = None
        peer_id = dm_peer_id(room, conn.user_id)
        if peer_id is not None:
            peer = await self._load_profile(peer_id)
            peer_role = peer.role if peer else None

        if not can_join(conn.user, room, peer_role):
            await conn.send(error_frame("forbidden", f"Not allowed to join {room}"))
            return False

        conn.rooms.add(room)
        self.rooms.setdefault(room, set()).add(conn)
        users = await presence_add(self.redis, room, conn.user_id, conn.user.name)
        await self.broadcast(room, online_frame(room, users))
        return True

    async def leave(self, conn: ChatConnection, room: str) -> None:
        if room in conn.rooms:
            await self._detach(conn, room)

    async def _detach(self, conn: ChatConnection, room: str) -> None:
        """Drop a socket from a room; the user goes offline there with their last socket."""
        conn.rooms.discard(room)
        members = self.rooms.get(room)
        if members is not None:
            members.discard(conn)
            if not members:
                self.rooms.pop(room, None)
        if not self._user_in_room(conn.user_id, room):
            users = await presence_remove(self.redis, room, conn.user_id)
            await self.broadcast(room, online_frame(room, users))

    # ------------------------------------------------------------------
    # Frame dispatch
    # ------------------------------------------------------------------

    async def handle_raw(self, conn: ChatConnection, raw: str | bytes | dict) -> None:
        """Parse and dispatch one inbound frame; bad frames get an error reply."""
        try:
            frame = parse_frame(raw)
        except FrameError as e:
            await conn.send(error_frame(e.code, e.detail))
            return

        try:
            await self.dispatch(conn, frame)
        except FrameError as e:
            await conn.send(error_frame(e.code, e.detail))

    async def dispatch(self, conn: ChatConnection, frame: Any) -> None:
        if isinstance(frame, MessageFrame):
            await self.handle_message(conn, frame)
        elif isinstance(frame, StatusFrame):
            await self.handle_status(conn, frame)
        elif isinstance(frame, EditFrame):
            await self.handle_edit(conn, frame)
        elif isinstance(frame, DeleteFrame):
            await self.handle_delete(conn, frame)
        elif isinstance(frame, JoinFrame):
            await self.join(conn, frame.room)
        elif isinstance(frame, LeaveFrame):
            await self.leave(conn, frame.room)
        elif isinstance(frame, PingFrame):
            await conn.send(pong_frame())
        elif isinstance(frame, AuthFrame):
            # The socket is authenticated during the handshake
            pass

    async def handle_message(self, conn: ChatConnection, frame: MessageFrame) -> None:
        payload = frame.message
        room = payload.room
        if room not in conn.rooms:
            raise FrameError("not_joined", f"Join {room} before sending to it")
        if payload.type == MessageType.FILE.value and not payload.file_url:
            raise FrameError("invalid_frame", "File messages need a fileUrl")

        receiver: Profile | None = None
        peer_id = dm_peer_id(room, conn.user_id)
        if peer_id is not None:
            receiver = await self._load_profile(peer_id)
            if receiver is None:
                raise FrameError("not_found", "Conversation partner no longer exists")
            peer_has_written = await self._has_written(room, peer_id)
            if not can_send_dm(conn.user.role, receiver.role, peer_has_written):
                await conn.send(error_frame("forbidden", "You cannot start a conversation with this user"))
                return

        existing = await self._load_message(payload.id)
        if existing is not None:
            if str(existing.sender_id) != conn.user_id:
                await conn.send(error_frame("forbidden", "Message id already in use"))
                return
            await conn.send(status_frame(payload.id, existing.status))
            return

        message = ChatMessage(
            client_id=payload.id,
            room=room,
            sender_id=conn.user.id,
            sender_name=conn.user.name,
            receiver_id=receiver.id if receiver else None,
            receiver_name=receiver.name if receiver else payload.receiver_name,
            content=payload.content,
            type=payload.type,
            file_url=payload.file_url,
            file_name=payload.file_name,
            status=MessageStatus.SENT.value,
            edited=False,
            deleted=False,
            sent_at=payload.timestamp,
        )
        stored = await self._store_message(message)
        if not stored:
            # Lost a race with a concurrent retry of the same message
            await conn.send(status_frame(payload.id, MessageStatus.SENT.value))
            return

        await conn.send(status_frame(payload.id, MessageStatus.SENT.value))

        outbound = message_frame(message_to_payload(message, sender_role=conn.user.role))
        await self.broadcast(room, outbound, exclude=conn)

        if receiver is not None:
            await self._reach_receiver(str(receiver.id), room, outbound)

        self._notify_message(message)

    async def _reach_receiver(self, receiver_id: str, room: str, frame: dict[str, Any]) -> None:
        """Make sure a DM receiver who is not watching the room still gets it."""
        presence = await self.redis.hgetall(get_presence_key(room))
        if receiver_id in (presence or {}):
            return
        if await is_connected(self.redis, receiver_id):
            await self.send_to_user(receiver_id, frame)
        else:
            await outbox_push(self.redis, receiver_id, frame)

    def _notify_message(self, message: ChatMessage) -> None:
        data = {
            "messageId": str(message.client_id),
            "room": message.room,
            "senderId": str(message.sender_id),
            "senderName": message.sender_name,
        }
        self.notify("chat_message_sent", str(message.sender_id), data)
        if message.receiver_id is not None:
            self.notify("chat_direct_message", str(message.receiver_id), data)
        if message.type == MessageType.FILE.value:
            self.notify(
                "chat_file_uploaded",
                str(message.sender_id),
                {**data, "fileName": message.file_name},
            )

    async def handle_edit(self, conn: ChatConnection, frame: EditFrame) -> None:
        message = await self._load_message(frame.msg_id)
        if message is None:
            raise FrameError("not_found", "Message not found")
        if not can_edit(conn.user, message.sender_id, message.deleted):
            await conn.send(error_frame("forbidden", "Only the author can edit this message"))
            return

        await self._update_message(message.client_id, content=frame.new_content, edited=True)
        await self.broadcast(message.room, edit_frame(message.client_id, frame.new_content))
        self.notify(
            "chat_message_edited",
            conn.user_id,
            {"messageId": str(message.client_id), "room": message.room},
        )

    async def handle_delete(self, conn: ChatConnection, frame: DeleteFrame) -> None:
        message = await self._load_message(frame.msg_id)
        if message is None:
            raise FrameError("not_found", "Message not found")

        sender_role = conn.user.role
        if str(message.sender_id) != conn.user_id:
            sender = await self._load_profile(str(message.sender_id))
            sender_role = sender.role if sender else None
        if not can_delete(conn.user, message.sender_id, sender_role, message.deleted):
            await conn.send(error_frame("forbidden", "You cannot delete this message"))
            return

        await self._update_message(message.client_id, content="", deleted=True)
        await self.broadcast(message.room, delete_frame(message.client_id))
        self.notify(
            "chat_message_deleted",
            conn.user_id,
            {"messageId": str(message.client_id), "room": message.room, "deletedBy": conn.user_id},
        )

    async def handle_status(self, conn: ChatConnection, frame: StatusFrame) -> None:
        message = await self._load_message(frame.msg_id)
        if message is None:
            raise FrameError("not_found", "Message not found")
        if str(message.sender_id) == conn.user_id:
            # Receipts come from readers, not the author
            return
        if message.room not in conn.rooms and str(message.receiver_id) != conn.user_id:
            raise FrameError("not_joined", f"Join {message.room} before acknowledging its messages")
        if not status_advances(message.status, frame.status):
            return

        await self._update_message(message.client_id, status=frame.status)
        await self.broadcast(message.room, status_frame(message.client_id, frame.status))
        await self._reach_sender(str(message.sender_id), message.room, status_frame(message.client_id, frame.status))

    async def _reach_sender(self, sender_id: str, room: str, frame: dict[str, Any]) -> None:
        presence = await self.redis.hgetall(get_presence_key(room))
        if sender_id in (presence or {}):
            return
        if await is_connected(self.redis, sender_id):
            await self.send_to_user(sender_id, frame)

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    async def deliver_local(self, room: str, frame: dict[str, Any], exclude: ChatConnection | None = None) -> int:
        delivered = 0
        for conn in list(self.rooms.get(room, ())):
            if conn is exclude:
                continue
            if await conn.send(frame):
                delivered += 1
        return delivered

    async def broadcast(self, room: str, frame: dict[str, Any], exclude: ChatConnection | None = None) -> None:
        """Send to every socket in the room, here and in other processes."""
        await self.deliver_local(room, frame, exclude=exclude)
        envelope = {"origin": self.origin, "frame": frame}
        await publish_room_frame(self.redis, room, envelope)

    async def send_to_user(self, user_id: str, frame: dict[str, Any]) -> None:
        for conn in list(self.connections.get(user_id, ())):
            await conn.send(frame)
        envelope = {"origin": self.origin, "frame": frame}
        await self.redis.publish(get_user_channel(user_id), json.dumps(envelope))

    async def relay(self, channel: str, data: str | bytes) -> None:
        """Deliver a frame published by another process to local sockets."""
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        try:
            envelope = json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring undecodable chat envelope on {channel}")
            return
        if envelope.get("origin") == self.origin:
            return
        frame = envelope.get("frame")
        if not isinstance(frame, dict):
            return

        if channel.startswith(CHAT_ROOM_CHANNEL_PREFIX):
            await self.deliver_local(channel[len(CHAT_ROOM_CHANNEL_PREFIX):], frame)
        elif channel.startswith(CHAT_USER_CHANNEL_PREFIX):
            for conn in list(self.connections.get(channel[len(CHAT_USER_CHANNEL_PREFIX):], ())):
                await conn.send(frame)

    async def listen(self) -> None:
        """Relay frames from other processes until cancelled."""
        pubsub = self.redis.pubsub()
        try:
            await pubsub.psubscribe(CHAT_ROOM_PATTERN, CHAT_USER_PATTERN)
            logger.info(f"Chat hub {self.origin} listening for room frames")
            while True:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message and message["type"] == "pmessage":
                    channel = message["channel"]
                    if isinstance(channel, bytes):
                        channel = channel.decode("utf-8")
                    await self.relay(channel, message["data"])
        finally:
            await pubsub.punsubscribe()
            await pubsub.aclose()

    def start(self) -> None:
        if self._listener is None or self._listener.done():
            self._listener = asyncio.create_task(self.listen())

    async def stop(self) -> None:
        if self._listener is None:
            return
        self._listener.cancel()
        try:
            await self._listener
        except asyncio.CancelledError:
            pass
        self._listener = None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _load_profile(self, user_id: str) -> Profile | None:
        async with self.session_factory() as db:
            result = await db.execute(select(Profile).where(Profile.id == uuid.UUID(str(user_id))))
            return result.scalar_one_or_none()

    async def _load_message(self, client_id: uuid.UUID | str) -> ChatMessage | None:
        async with self.session_factory() as db:
            result = await db.execute(
                select(ChatMessage).where(ChatMessage.client_id == uuid.UUID(str(client_id)))
            )
            return result.scalar_one_or_none()

    async def _has_written(self, room: str, user_id: str) -> bool:
        async with self.session_factory() as db:
            result = await db.execute(
                select(ChatMessage.id)
                .where(ChatMessage.room == room, ChatMessage.sender_id == uuid.UUID(str(user_id)))
                .limit(1)
            )
            return result.scalar_one_or_none() is not None

    async def _store_message(self, message: ChatMessage) -> bool:
        async with self.session_factory() as db:
            db.add(message)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                return False
            return True

    async def _update_message(self, client_id: uuid.UUID | str, **values: Any) -> None:
        async with self.session_factory() as db:
            result = await db.execute(
                select(ChatMessage).where(ChatMessage.client_id == uuid.UUID(str(client_id)))
            )
            message = result.scalar_one_or_none()
            if message is None:
                return
            for field, value in values.items():
                setattr(message, field, value)
            await db.commit()


_hub: ChatHub | None = None


def get_chat_hub() -> ChatHub:
    """Process-wide hub, created on first use."""
    global _hub
    if _hub is None:
        from app.core.redis import get_async_redis

        _hub = ChatHub(get_async_redis())
    return _hub


def reset_chat_hub() -> None:
    global _hub
    _hub = None
