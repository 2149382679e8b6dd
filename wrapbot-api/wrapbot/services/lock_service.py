from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from wrapbot.config import settings
from wrapbot.logging_config import get_logger
from wrapbot.services.redis_client import LOCK_PREFIX, get_redis

logger = get_logger("lock_service")


class ProcessingLock:
    """Per-identity single-flight guard built on SET NX EX.

    The TTL bounds how long a crashed holder can block the user.
    """

    def __init__(self, redis_client=None, ttl_seconds: Optional[int] = None):
        self._redis = redis_client
        self.ttl_seconds = ttl_seconds or settings.lock_ttl_seconds

    @property
    def redis(self):
        return self._redis or get_redis()

    @staticmethod
    def key(identity: str) -> str:
        return f"{LOCK_PREFIX}{identity}"

    async def acquire(self, identity: str) -> bool:
        was_set = await self.redis.set(self.key(identity), "1", ex=self.ttl_seconds, nx=True)
        return bool(was_set)

    async def release(self, identity: str) -> None:
        await self.redis.delete(self.key(identity))

    async def is_locked(self, identity: str) -> bool:
        """Advisory only; acquire() is the authoritative check."""
        return bool(await self.redis.exists(self.key(identity)))

    @asynccontextmanager
    async def hold(self, identity: str) -> AsyncIterator[bool]:
        """Yield whether the lock was acquired; release on every exit path if it was."""
        acquired = await self.acquire(identity)
        if not acquired:
            logger.info("Processing lock busy", extra={"context": {"identity": identity}})
        try:
            yield acquired
        finally:
            if acquired:
                await self.release(identity)
