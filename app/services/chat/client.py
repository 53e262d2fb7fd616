"""Python chat client speaking the same socket protocol as the browser app.

The client is optimistic: a sent message shows up in ``messages`` at once with
status ``sending``. While the socket is down, outgoing frames wait in a FIFO
retry queue that is flushed as soon as a connection opens. When no server can
be reached at all the client switches to offline mode and keeps working
against its local message list, which can be saved to and loaded from disk.
"""

import asyncio
import json
import logging
import time
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlencode, urlsplit, urlunsplit

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from app.core.encryption import ChatCipher, get_chat_cipher
from app.services.chat.permissions import can_delete, can_edit
from app.services.chat.protocol import status_advances

logger = logging.getLogger(__name__)


@dataclass
class ChatUser:
    id: str
    name: str
    role: str


def _now_ms() -> int:
    return int(time.time() * 1000)


def _with_token(url: str, token: str) -> str:
    parts = urlsplit(url)
    query = f"{parts.query}&" if parts.query else ""
    return urlunsplit(parts._replace(query=query + urlencode({"token": token})))


class ChatClient:
    """Chat session for one user against one or more socket URLs."""

    def __init__(
        self,
        urls: str | list[str],
        token: str,
        user: ChatUser,
        cipher: ChatCipher | None = None,
        failed_after: float = 3.0,
        retry_pause: float = 1.0,
        connector: Callable[[str], Any] | None = None,
    ):
        self.urls = [urls] if isinstance(urls, str) else list(urls)
        self.token = token
        self.user = user
        self.cipher = cipher or get_chat_cipher()
        self.failed_after = failed_after
        self.retry_pause = retry_pause
        self._connector = connector or websockets.connect

        self.messages: list[dict[str, Any]] = []
        self.retry_queue: deque[dict[str, Any]] = deque()
        self.online_users: dict[str, str] = {}
        self.current_room: str | None = None
        self.connected = False
        self.offline = False
        self.url: str | None = None
        self.last_error: dict[str, Any] | None = None
        # user_id -> role, learned from senderRole on incoming messages
        self.known_roles: dict[str, str] = {}

        self._ws: Any = None
        self._receiver: asyncio.Task | None = None
        self._reconnector: asyncio.Task | None = None
        self._closing = False
        self._fail_timers: dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """Open the first reachable URL; fall back to offline mode if none is."""
        self._closing = False
        for index, url in enumerate(self.urls):
            if index:
                await asyncio.sleep(self.retry_pause)
            try:
                ws = await self._connector(_with_token(url, self.token))
            except (OSError, WebSocketException, asyncio.TimeoutError) as e:
                logger.warning(f"Chat server {url} unreachable: {e}")
                continue

            self._ws = ws
            self.url = url
            self.connected = True
            self.offline = False
            await self._on_open()
            self._receiver = asyncio.create_task(self._receive_loop())
            logger.info(f"Connected to chat server {url}")
            return True

        self.connected = False
        self.offline = True
        logger.warning("No chat server reachable; working offline")
        return False

    async def _on_open(self) -> None:
        await self._send({"type": "auth", "token": self.token})
        if self.current_room:
            await self._send({"type": "join", "room": self.current_room})
        await self.flush_retry_queue()

    async def flush_retry_queue(self) -> int:
        """Send queued frames oldest first; stops at the first send failure."""
        flushed = 0
        while self.retry_queue and self.connected:
            frame = self.retry_queue[0]
            try:
                await self._send(frame)
            except (ConnectionClosed, OSError) as e:
                logger.warning(f"Retry flush interrupted: {e}")
                self.connected = False
                break
            self.retry_queue.popleft()
            flushed += 1
            if frame.get("type") == "message":
                self._set_status(frame["message"]["id"], "sent", force=True)
        return flushed

    async def close(self) -> None:
        self._closing = True
        if self._reconnector is not None:
            self._reconnector.cancel()
            self._reconnector = None
        for timer in self._fail_timers.values():
            timer.cancel()
        self._fail_timers.clear()
        if self._receiver is not None:
            self._receiver.cancel()
            try:
                await self._receiver
            except asyncio.CancelledError:
                pass
            self._receiver = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        self.connected = False

    async def _send(self, frame: dict[str, Any]) -> None:
        if self._ws is None:
            raise ConnectionError("Chat socket is not open")
        await self._ws.send(json.dumps(frame))

    async def _receive_loop(self) -> None:
        try:
            async for raw in self._ws:
                try:
                    frame = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Ignoring undecodable frame from chat server")
                    continue
                self.apply_frame(frame)
        except ConnectionClosed as e:
            logger.info(f"Chat connection closed: {e}")
        finally:
            self.connected = False
            if not self._closing:
                self._reconnector = asyncio.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        """Reopen after the server dropped us; ends in offline mode if nothing answers."""
        self._ws = None
        await asyncio.sleep(self.retry_pause)
        if not self._closing:
            await self.connect()

    # ------------------------------------------------------------------
    # Outgoing
    # ------------------------------------------------------------------

    async def send_message(
        self,
        room: str,
        content: str,
        type: str = "text",
        file: dict[str, str] | None = None,
        receiver: ChatUser | None = None,
    ) -> dict[str, Any]:
        """Add a message locally and deliver it (now, later, or never if offline)."""
        message = {
            "id": str(uuid.uuid4()),
            "room": room,
            "senderId": self.user.id,
            "senderName": self.user.name,
            "senderRole": self.user.role,
            "receiverId": receiver.id if receiver else None,
            "receiverName": receiver.name if receiver else None,
            "content": content,
            "type": type,
            "fileUrl": file.get("url") if file else None,
            "fileName": file.get("name") if file else None,
            "timestamp": _now_ms(),
            "status": "sending",
            "edited": False,
            "deleted": False,
        }
        self.messages.append(message)

        if self.offline:
            message["status"] = "sent"
            return message

        frame = {"type": "message", "message": {**message, "content": self.cipher.encrypt(content)}}
        if self.connected:
            try:
                await self._send(frame)
            except (ConnectionClosed, ConnectionError, OSError) as e:
                logger.warning(f"Sending message {message['id']} failed: {e}")
                message["status"] = "failed"
            else:
                message["status"] = "sent"
        else:
            self.retry_queue.append(frame)
            self._arm_fail_timer(message["id"])
        return message

    def _arm_fail_timer(self, msg_id: str) -> None:
        async def expire() -> None:
            await asyncio.sleep(self.failed_after)
            message = self.find(msg_id)
            if message is not None and message["status"] == "sending":
                message["status"] = "failed"
            self._fail_timers.pop(msg_id, None)

        self._fail_timers[msg_id] = asyncio.create_task(expire())

    async def _send_or_queue(self, frame: dict[str, Any]) -> None:
        if self.connected:
            try:
                await self._send(frame)
                return
            except (ConnectionClosed, ConnectionError, OSError) as e:
                logger.warning(f"Sending {frame['type']} failed, queued for retry: {e}")
                self.connected = False
        self.retry_queue.append(frame)

    async def edit_message(self, msg_id: str, new_content: str) -> bool:
        message = self.find(msg_id)
        if message is None or not can_edit(self.user, message["senderId"], message["deleted"]):
            return False

        message["content"] = new_content
        message["edited"] = True
        if not self.offline:
            await self._send_or_queue(
                {"type": "edit", "msgId": msg_id, "newContent": self.cipher.encrypt(new_content)}
            )
        return True

    async def delete_message(self, msg_id: str) -> bool:
        """Delete a message; False when the delete is refused locally.

        When the author's role has not been seen yet, the frame is sent without
        touching local state and the server's ``delete`` frame applies it.
        """
        message = self.find(msg_id)
        if message is None:
            return False
        if message["senderId"] == self.user.id:
            sender_role = self.user.role
        else:
            sender_role = self.known_roles.get(message["senderId"])
        if sender_role is None:
            if self.offline or message["deleted"]:
                return False
            await self._send_or_queue({"type": "delete", "msgId": msg_id})
            return True
        if not can_delete(self.user, message["senderId"], sender_role, message["deleted"]):
            return False

        message["deleted"] = True
        message["content"] = ""
        if not self.offline:
            await self._send_or_queue({"type": "delete", "msgId": msg_id})
        return True

    async def join_room(self, room: str) -> None:
        self.current_room = room
        self.online_users = {}
        if self.connected:
            await self._send({"type": "join", "room": room})

    async def leave_room(self, room: str) -> None:
        if self.connected:
            await self._send({"type": "leave", "room": room})
        if self.current_room == room:
            self.current_room = None
            self.online_users = {}

    async def mark_read(self, room: str) -> int:
        """Send read receipts for every unread message in a room."""
        unread = [m for m in self.messages_for(room) if self._is_unread(m)]
        for message in unread:
            message["status"] = "read"
            if not self.offline:
                await self._send_or_queue({"type": "status", "msgId": message["id"], "status": "read"})
        return len(unread)

    # ------------------------------------------------------------------
    # Incoming
    # ------------------------------------------------------------------

    def apply_frame(self, frame: dict[str, Any]) -> None:
        kind = frame.get("type")
        if kind == "message":
            self._receive_message(frame.get("message") or {})
        elif kind == "status":
            self._set_status(frame.get("msgId"), frame.get("status"))
        elif kind == "online":
            if frame.get("room") in (None, self.current_room):
                self.online_users = dict(frame.get("users") or {})
        elif kind == "edit":
            message = self.find(frame.get("msgId"))
            if message is not None and not message["deleted"]:
                message["content"] = self.cipher.decrypt_or_placeholder(frame.get("newContent", ""))
                message["edited"] = True
        elif kind == "delete":
            message = self.find(frame.get("msgId"))
            if message is not None:
                message["deleted"] = True
                message["content"] = ""
        elif kind == "error":
            self.last_error = frame
            logger.warning(f"Chat server error {frame.get('code')}: {frame.get('detail')}")

    def _receive_message(self, payload: dict[str, Any]) -> None:
        if payload.get("senderId") and payload.get("senderRole"):
            self.known_roles[payload["senderId"]] = payload["senderRole"]
        if not payload.get("id") or self.find(payload["id"]) is not None:
            return
        message = dict(payload)
        message["content"] = "" if message.get("deleted") else self.cipher.decrypt_or_placeholder(
            message.get("content", "")
        )
        message.setdefault("edited", False)
        message.setdefault("deleted", False)
        message.setdefault("status", "sent")
        self.messages.append(message)

    def _set_status(self, msg_id: str | None, status: str | None, force: bool = False) -> None:
        message = self.find(msg_id) if msg_id else None
        if message is None or status is None:
            return
        if force or status_advances(message["status"], status):
            message["status"] = status

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def find(self, msg_id: str | None) -> dict[str, Any] | None:
        for message in self.messages:
            if message["id"] == msg_id:
                return message
        return None

    def messages_for(self, room: str) -> list[dict[str, Any]]:
        return sorted(
            (m for m in self.messages if m["room"] == room),
            key=lambda m: (m["timestamp"], m["id"]),
        )

    def _is_unread(self, message: dict[str, Any]) -> bool:
        return message["senderId"] != self.user.id and message["status"] != "read" and not message["deleted"]

    def unread_count(self, room: str | None = None) -> int:
        """Messages from others not yet read (all rooms when ``room`` is None)."""
        return sum(
            1 for m in self.messages if (room is None or m["room"] == room) and self._is_unread(m)
        )

    # ------------------------------------------------------------------
    # Local persistence
    # ------------------------------------------------------------------

    def save(self, path: str | Path) -> None:
        """Write messages (content encrypted) and the retry queue to a JSON file."""
        stored = [{**m, "content": self.cipher.encrypt(m["content"])} for m in self.messages]
        data = {"messages": stored, "retryQueue": list(self.retry_queue)}
        Path(path).write_text(json.dumps(data), encoding="utf-8")

    def load(self, path: str | Path) -> int:
        """Restore state written by ``save``; returns the number of messages loaded."""
        file = Path(path)
        if not file.exists():
            return 0
        data = json.loads(file.read_text(encoding="utf-8"))
        self.messages = [
            {**m, "content": self.cipher.decrypt_or_placeholder(m.get("content", ""))}
            for m in data.get("messages", [])
        ]
        self.retry_queue = deque(data.get("retryQueue", []))
        return len(self.messages)
