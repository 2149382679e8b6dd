"""Redis-backed conversation sessions, one JSON record per chat identity.

Updates are read-merge-write and not transactional: two concurrent
updates for the same identity can lose fields. The processing lock is
what serializes the one operation where that matters.
"""

from typing import Any, Optional

from pydantic import ValidationError

from wrapbot.config import settings
from wrapbot.logging_config import get_logger
from wrapbot.schemas.session import Session
from wrapbot.services.redis_client import SESSION_PREFIX, get_redis
from wrapbot.services.state_machine import ConversationState

logger = get_logger("session_store")


class SessionStore:
    def __init__(self, redis_client=None, ttl_seconds: Optional[int] = None):
        self._redis = redis_client
        self.ttl_seconds = ttl_seconds or settings.session_ttl_seconds

    @property
    def redis(self):
        return self._redis or get_redis()

    @staticmethod
    def key(identity: str) -> str:
        return f"{SESSION_PREFIX}{identity}"

    async def _save(self, identity: str, session: Session) -> None:
        await self.redis.setex(self.key(identity), self.ttl_seconds, session.model_dump_json())

    async def get(self, identity: str) -> Session:
        """Load the session, creating and persisting a default one on miss."""
        raw = await self.redis.get(self.key(identity))
        if raw:
            try:
                return Session.model_validate_json(raw)
            except ValidationError as e:
                logger.warning(
                    "Discarding unreadable session",
                    extra={"context": {"identity": identity, "error": str(e)}},
                )

        session = Session()
        await self._save(identity, session)
        return session

    async def update(self, identity: str, **fields: Any) -> Session:
        session = await self.get(identity)
        merged = Session.model_validate({**session.model_dump(), **fields})
        await self._save(identity, merged)
        return merged

    async def reset(self, identity: str, state: ConversationState = ConversationState.IDLE) -> Session:
        """Start over, keeping only the chosen language."""
        current = await self.get(identity)
        session = Session(state=state, language=current.language)
        await self._save(identity, session)
        return session

    async def delete(self, identity: str) -> None:
        await self.redis.delete(self.key(identity))
