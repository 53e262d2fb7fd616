"""Shared fixtures: in-memory Redis, fake sockets and profile factories."""

import json
import uuid
from typing import Any

import pytest

import app.models  # noqa: F401  (registers every mapper before Profile() is built)
from app.core.rate_limit import reset_rate_limits
from app.models.profile import Profile, UserRole


class FakePipeline:
    """Queues commands and runs them against the owning FakeRedis on execute."""

    def __init__(self, redis: "FakeRedis"):
        self._redis = redis
        self._commands: list[tuple[str, tuple]] = []

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc) -> None:
        self._commands.clear()

    def lrange(self, key: str, start: int, end: int) -> None:
        self._commands.append(("lrange", (key, start, end)))

    def delete(self, key: str) -> None:
        self._commands.append(("delete", (key,)))

    async def execute(self) -> list[Any]:
        results = [await getattr(self._redis, name)(*args) for name, args in self._commands]
        self._commands.clear()
        return results


class FakeRedis:
    """The subset of redis.asyncio.Redis the chat hub uses."""

    def __init__(self):
        self.hashes: dict[str, dict[str, str]] = {}
        self.lists: dict[str, list[str]] = {}
        self.published: list[tuple[str, dict]] = []

    async def hset(self, key: str, field: str, value: str) -> int:
        self.hashes.setdefault(key, {})[field] = value
        return 1

    async def hget(self, key: str, field: str) -> str | None:
        return self.hashes.get(key, {}).get(field)

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(self.hashes.get(key, {}))

    async def hdel(self, key: str, *fields: str) -> int:
        bucket = self.hashes.get(key, {})
        removed = sum(1 for f in fields if bucket.pop(f, None) is not None)
        if not bucket:
            self.hashes.pop(key, None)
        return removed

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        bucket = self.hashes.setdefault(key, {})
        value = int(bucket.get(field, 0)) + amount
        bucket[field] = str(value)
        return value

    async def rpush(self, key: str, *values: str) -> int:
        self.lists.setdefault(key, []).extend(values)
        return len(self.lists[key])

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        items = self.lists.get(key, [])
        return items[start:] if end == -1 else items[start:end + 1]

    async def delete(self, key: str) -> int:
        existed = key in self.lists or key in self.hashes
        self.lists.pop(key, None)
        self.hashes.pop(key, None)
        return int(existed)

    async def expire(self, key: str, seconds: int) -> bool:
        return True

    async def publish(self, channel: str, data: str) -> int:
        self.published.append((channel, json.loads(data)))
        return 0

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)


class FakeSocket:
    """Records frames sent by the hub; ``closed`` sockets fail every send."""

    def __init__(self):
        self.sent: list[dict] = []
        self.closed = False

    async def send_json(self, data: Any) -> None:
        if self.closed:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def frames(self, frame_type: str) -> list[dict]:
        return [f for f in self.sent if f.get("type") == frame_type]


def make_profile(
    role: UserRole | str = UserRole.OBSERVER,
    name: str = "Test User",
    station_id: uuid.UUID | None = None,
    **kwargs: Any,
) -> Profile:
    """Build a transient Profile (never added to a session)."""
    user_id = kwargs.pop("id", uuid.uuid4())
    return Profile(
        id=user_id,
        email=kwargs.pop("email", f"{user_id.hex[:8]}@example.org"),
        name=name,
        hashed_password="x",
        role=getattr(role, "value", role),
        verification_status=kwargs.pop("verification_status", "pending"),
        assigned_station_id=station_id,
        **kwargs,
    )


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture(autouse=True)
def _clear_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture
def socket_factory() -> type[FakeSocket]:
    return FakeSocket


@pytest.fixture
def profile_factory():
    return make_profile
