import asyncio
from datetime import datetime, timezone
from typing import Optional

import pytest

from wrapbot.schemas.processor import ProcessorResponse
from wrapbot.services.conversation_service import ConversationService
from wrapbot.services.lock_service import ProcessingLock
from wrapbot.services.result import Result
from wrapbot.services.session_store import SessionStore
from wrapbot.services.usage_service import UsageTracker


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """In-memory stand-in for the redis.asyncio commands the bot uses.

    Every command yields to the event loop first, so concurrent callers
    interleave between commands the way they would against a real server.
    """

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock or FakeClock()
        self.data: dict[str, str] = {}
        self.expires_at: dict[str, float] = {}
        self.expire_calls: list[tuple[str, int]] = []

    def _alive(self, key: str) -> bool:
        deadline = self.expires_at.get(key)
        if deadline is not None and deadline <= self.clock():
            self.data.pop(key, None)
            self.expires_at.pop(key, None)
        return key in self.data

    async def get(self, key: str):
        await asyncio.sleep(0)
        return self.data.get(key) if self._alive(key) else None

    async def set(self, key: str, value, ex: int | None = None, nx: bool = False):
        await asyncio.sleep(0)
        if nx and self._alive(key):
            return None
        self.data[key] = str(value)
        if ex is not None:
            self.expires_at[key] = self.clock() + ex
        else:
            self.expires_at.pop(key, None)
        return True

    async def setex(self, key: str, seconds: int, value):
        return await self.set(key, value, ex=seconds)

    async def incr(self, key: str) -> int:
        await asyncio.sleep(0)
        value = int(self.data[key]) + 1 if self._alive(key) else 1
        self.data[key] = str(value)
        return value

    async def expire(self, key: str, seconds: int) -> bool:
        await asyncio.sleep(0)
        self.expire_calls.append((key, seconds))
        if not self._alive(key):
            return False
        self.expires_at[key] = self.clock() + seconds
        return True

    async def ttl(self, key: str) -> int:
        await asyncio.sleep(0)
        if not self._alive(key):
            return -2
        deadline = self.expires_at.get(key)
        if deadline is None:
            return -1
        return int(deadline - self.clock())

    async def exists(self, *keys: str) -> int:
        await asyncio.sleep(0)
        return sum(1 for key in keys if self._alive(key))

    async def delete(self, *keys: str) -> int:
        await asyncio.sleep(0)
        removed = 0
        for key in keys:
            if self._alive(key):
                removed += 1
            self.data.pop(key, None)
            self.expires_at.pop(key, None)
        return removed


class FakeProcessor:
    def __init__(
        self,
        response: Optional[ProcessorResponse] = None,
        delay: float = 0,
        error: Optional[Exception] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self.response = response or ProcessorResponse(success=True, output_image="https://cdn.example/out.png")
        self.delay = delay
        self.error = error
        self.gate = gate
        self.calls = []

    async def process(self, request):
        self.calls.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


class FakeWatermarker:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    async def apply_or_fallback(self, image_url: str):
        self.calls.append(image_url)
        if self.fail:
            return Result.degrade(image_url, "boom", "watermark_error")
        return Result.success(b"watermarked-png")


FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def redis_client(clock):
    return FakeRedis(clock)


@pytest.fixture
def sessions(redis_client):
    return SessionStore(redis_client, ttl_seconds=86400)


@pytest.fixture
def usage(redis_client):
    return UsageTracker(redis_client, limit=10, window="daily", grace_seconds=3600, tz="UTC", clock=lambda: FIXED_NOW)


@pytest.fixture
def lock(redis_client):
    return ProcessingLock(redis_client, ttl_seconds=120)


@pytest.fixture
def processor():
    return FakeProcessor()


@pytest.fixture
def watermarker():
    return FakeWatermarker()


@pytest.fixture
def make_service(sessions, usage, lock, watermarker):
    def _make(processor=None, timeout: float = 5.0, contact_phone: str = "+10000000000", **kwargs):
        return ConversationService(
            sessions=sessions,
            usage=usage,
            lock=lock,
            processor=processor or FakeProcessor(),
            watermarker=kwargs.pop("watermarker", watermarker),
            processor_timeout_seconds=timeout,
            default_language="ru",
            contact_phone=contact_phone,
        )

    return _make


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def make_processor():
    return FakeProcessor


@pytest.fixture
def make_watermarker():
    return FakeWatermarker
