"""Chat endpoints: the socket plus history, search and file upload."""

import logging
import time
from uuid import UUID

from fastapi import (
    APIRouter,
    File,
    HTTPException,
    Query,
    UploadFile,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from sqlalchemy import Select, and_, or_, select

from app.api.deps import CurrentUser, DbSession, get_ws_user
from app.api.v1.verifications import safe_filename
from app.core.config import settings
from app.core.database import async_session_maker
from app.models.chat import ChatMessage
from app.models.profile import Profile
from app.schemas.chat import ChatHistory, ChatUserResult, RoomList, UploadedFile
from app.services.chat.hub import ChatConnection, get_chat_hub
from app.services.chat.permissions import can_join, dm_peer_id, dm_room_id, rooms_for, searchable_users
from app.services.chat.protocol import AuthFrame, FrameError, error_frame, message_to_payload, parse_frame
from app.services.object_storage import ObjectStorageError, get_object_storage_client

logger = logging.getLogger(__name__)

router = APIRouter()


async def _authorize_room(db: DbSession, user: Profile, room: str) -> None:
    peer_role = None
    peer_id = dm_peer_id(room, user.id)
    if peer_id is not None:
        peer = (await db.execute(select(Profile).where(Profile.id == UUID(peer_id)))).scalar_one_or_none()
        peer_role = peer.role if peer else None
    if not can_join(user, room, peer_role):
        # Rooms the user cannot enter are indistinguishable from missing ones
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Room not found",
        )


async def _token_from_auth_frame(websocket: WebSocket) -> str | None:
    """Browsers that cannot set a query string send ``{type: auth}`` first."""
    raw = await websocket.receive_text()
    try:
        frame = parse_frame(raw)
    except FrameError as e:
        await websocket.send_json(error_frame(e.code, e.detail))
        return None
    return frame.token if isinstance(frame, AuthFrame) else None


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    token: str | None = Query(None),
    room: str | None = Query(None),
) -> None:
    await websocket.accept()
    if not token:
        try:
            token = await _token_from_auth_frame(websocket)
        except WebSocketDisconnect:
            return

    async with async_session_maker() as db:
        user = await get_ws_user(websocket, token, db)
    if user is None:
        return

    hub = get_chat_hub()
    conn = ChatConnection(websocket, user)
    await hub.connect(conn)
    try:
        if room:
            await hub.join(conn, room)
        while True:
            raw = await websocket.receive_text()
            await hub.handle_raw(conn, raw)
    except WebSocketDisconnect:
        pass
    finally:
        await hub.disconnect(conn)


@router.get("/rooms", response_model=RoomList)
async def list_rooms(user: CurrentUser) -> RoomList:
    return RoomList(rooms=rooms_for(user))


def _older_than(query: Select, before: int | None, before_id: UUID | None) -> Select:
    """Keyset condition matching the ``(sent_at, client_id)`` page order."""
    if before is None:
        return query
    if before_id is None:
        return query.where(ChatMessage.sent_at < before)
    return query.where(
        or_(
            ChatMessage.sent_at < before,
            and_(ChatMessage.sent_at == before, ChatMessage.client_id < before_id),
        )
    )


async def _sender_roles(db: DbSession, rows: list[ChatMessage]) -> dict[UUID, str]:
    sender_ids = {m.sender_id for m in rows}
    if not sender_ids:
        return {}
    result = await db.execute(select(Profile.id, Profile.role).where(Profile.id.in_(sender_ids)))
    return {user_id: role for user_id, role in result.all()}


@router.get("/rooms/{room}/messages", response_model=ChatHistory)
async def room_history(
    room: str,
    db: DbSession,
    user: CurrentUser,
    before: int | None = Query(None, description="Only messages older than this ms timestamp"),
    before_id: UUID | None = Query(None, description="Id of the oldest message held; breaks ties on before"),
    limit: int = Query(settings.chat_history_page_size, ge=1, le=500),
) -> ChatHistory:
    """Room history, oldest first. Bodies stay encrypted.

    Pass ``next_before`` and ``next_before_id`` from one page to get the one
    before it.
    """
    await _authorize_room(db, user, room)

    query = _older_than(select(ChatMessage).where(ChatMessage.room == room), before, before_id)
    result = await db.execute(
        query.order_by(ChatMessage.sent_at.desc(), ChatMessage.client_id.desc()).limit(limit + 1)
    )
    rows = list(result.scalars().all())
    has_more = len(rows) > limit
    rows = rows[:limit]
    rows.reverse()
    roles = await _sender_roles(db, rows)
    oldest = rows[0] if rows else None
    return ChatHistory(
        room=room,
        messages=[message_to_payload(m, roles.get(m.sender_id)) for m in rows],
        has_more=has_more,
        next_before=oldest.sent_at if oldest else None,
        next_before_id=oldest.client_id if oldest else None,
    )


@router.get("/users", response_model=list[ChatUserResult])
async def search_users(
    db: DbSession,
    user: CurrentUser,
    term: str = Query("", max_length=255),
) -> list[ChatUserResult]:
    """People the caller may open a direct conversation with."""
    result = await db.execute(select(Profile).order_by(Profile.name))
    matches = searchable_users(user, result.scalars().all(), term)
    return [
        ChatUserResult(
            id=p.id,
            name=p.name,
            email=p.email,
            role=p.role,
            room=dm_room_id(user.id, p.id),
        )
        for p in matches
    ]


@router.post("/rooms/{room}/files", response_model=UploadedFile, status_code=status.HTTP_201_CREATED)
async def upload_chat_file(
    room: str,
    db: DbSession,
    user: CurrentUser,
    file: UploadFile = File(...),
) -> UploadedFile:
    await _authorize_room(db, user, room)

    if file.size is not None and file.size > settings.chat_max_file_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="File exceeds the chat upload limit",
        )
    data = await file.read()
    if len(data) > settings.chat_max_file_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="File exceeds the chat upload limit",
        )

    name = file.filename or "upload"
    key = f"{room}/{int(time.time() * 1000)}_{safe_filename(name)}"
    storage = get_object_storage_client()
    try:
        await storage.put_object(
            settings.chat_files_bucket,
            key,
            data,
            content_type=file.content_type or "application/octet-stream",
        )
    except ObjectStorageError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not store file",
        ) from e

    logger.info(f"User {user.id} uploaded {len(data)} bytes to {room}")
    return UploadedFile(url=storage.public_url(settings.chat_files_bucket, key), name=name)
