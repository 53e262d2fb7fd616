"""Redis client for chat fan-out, presence and offline delivery."""

import json
import logging
from collections.abc import AsyncGenerator, Generator
from contextlib import contextmanager

import redis as sync_redis
import redis.asyncio as aioredis

from app.core.config import settings

logger = logging.getLogger(__name__)

# Async Redis pool for FastAPI
async_redis_pool = aioredis.ConnectionPool.from_url(
    str(settings.redis_url),
    decode_responses=True,
)

# Sync Redis pool for Celery workers
sync_redis_pool = sync_redis.ConnectionPool.from_url(
    str(settings.redis_url),
    decode_responses=True,
    max_connections=50,
)


async def get_redis() -> AsyncGenerator[aioredis.Redis, None]:
    """Dependency for getting async Redis client."""
    client = aioredis.Redis(connection_pool=async_redis_pool)
    try:
        yield client
    finally:
        await client.aclose()


def get_async_redis() -> aioredis.Redis:
    """Async client bound to the shared pool (caller closes)."""
    return aioredis.Redis(connection_pool=async_redis_pool)


@contextmanager
def get_sync_redis_context() -> Generator[sync_redis.Redis, None, None]:
    """Context manager for sync Redis client.

    Usage:
        with get_sync_redis_context() as redis_client:
            redis_client.llen("key")
    """
    client = sync_redis.Redis(connection_pool=sync_redis_pool)
    try:
        yield client
    finally:
        client.close()


async def close_redis_pool() -> None:
    """Close Redis connection pools on shutdown."""
    await async_redis_pool.disconnect()
    sync_redis_pool.disconnect()


# Chat keys
CHAT_ROOM_CHANNEL_PREFIX = "chat:room:"
CHAT_ROOM_PATTERN = "chat:room:*"
CHAT_PRESENCE_PREFIX = "chat:presence:"
CHAT_OUTBOX_PREFIX = "chat:outbox:"
CHAT_USER_CHANNEL_PREFIX = "chat:user:"
CHAT_USER_PATTERN = "chat:user:*"
CHAT_CONNECTED_KEY = "chat:connected"


def get_room_channel(room: str) -> str:
    """Pub/Sub channel carrying frames for one room."""
    return f"{CHAT_ROOM_CHANNEL_PREFIX}{room}"


def room_from_channel(channel: str) -> str:
    return channel[len(CHAT_ROOM_CHANNEL_PREFIX):]


def get_user_channel(user_id: str) -> str:
    """Pub/Sub channel for frames addressed to one user (any room)."""
    return f"{CHAT_USER_CHANNEL_PREFIX}{user_id}"


def get_presence_key(room: str) -> str:
    """Hash of user_id -> display name for users online in a room."""
    return f"{CHAT_PRESENCE_PREFIX}{room}"


def get_outbox_key(user_id: str) -> str:
    """List of frames waiting for a user who was offline."""
    return f"{CHAT_OUTBOX_PREFIX}{user_id}"


async def publish_room_frame(client: aioredis.Redis, room: str, envelope: dict) -> None:
    """Publish an envelope ({origin, frame}) to a room channel."""
    await client.publish(get_room_channel(room), json.dumps(envelope))


async def presence_add(client: aioredis.Redis, room: str, user_id: str, name: str) -> dict[str, str]:
    key = get_presence_key(room)
    await client.hset(key, user_id, name)
    return await client.hgetall(key)


async def presence_remove(client: aioredis.Redis, room: str, user_id: str) -> dict[str, str]:
    key = get_presence_key(room)
    await client.hdel(key, user_id)
    return await client.hgetall(key)


async def outbox_push(client: aioredis.Redis, user_id: str, frame: dict) -> None:
    """Queue a frame for later delivery (FIFO: RPUSH here, LPOP on drain)."""
    key = get_outbox_key(user_id)
    await client.rpush(key, json.dumps(frame))
    await client.expire(key, settings.chat_outbox_ttl_seconds)


async def outbox_drain(client: aioredis.Redis, user_id: str) -> list[dict]:
    """Atomically take every queued frame for a user, oldest first."""
    key = get_outbox_key(user_id)
    async with client.pipeline(transaction=True) as pipe:
        pipe.lrange(key, 0, -1)
        pipe.delete(key)
        raw_frames, _ = await pipe.execute()

    frames: list[dict] = []
    for raw in raw_frames or []:
        try:
            frames.append(json.loads(raw))
        except json.JSONDecodeError:
            logger.warning(f"Dropping undecodable outbox frame for user {user_id}")
    return frames


def trim_outboxes(max_frames: int) -> int:
    """Trim every outbox to its newest ``max_frames`` entries (sync, for Celery).

    Returns the number of outboxes inspected.
    """
    inspected = 0
    with get_sync_redis_context() as client:
        for key in client.scan_iter(match=f"{CHAT_OUTBOX_PREFIX}*"):
            client.ltrim(key, -max_frames, -1)
            inspected += 1
    return inspected


async def mark_connected(client: aioredis.Redis, user_id: str) -> int:
    """Count one more live socket for a user across all API processes."""
    return int(await client.hincrby(CHAT_CONNECTED_KEY, user_id, 1))


async def mark_disconnected(client: aioredis.Redis, user_id: str) -> int:
    remaining = int(await client.hincrby(CHAT_CONNECTED_KEY, user_id, -1))
    if remaining <= 0:
        await client.hdel(CHAT_CONNECTED_KEY, user_id)
        return 0
    return remaining


async def is_connected(client: aioredis.Redis, user_id: str) -> bool:
    count = await client.hget(CHAT_CONNECTED_KEY, user_id)
    return bool(count) and int(count) > 0
