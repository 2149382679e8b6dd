from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from wrapbot.config import settings
from wrapbot.logging_config import get_logger
from wrapbot.services.redis_client import USAGE_PREFIX, get_redis

logger = get_logger("usage_service")

WINDOWS = ("daily", "weekly")


def _window_start(now: datetime, window: str) -> datetime:
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if window == "daily":
        return day_start
    if window == "weekly":
        return day_start - timedelta(days=now.weekday())
    raise ValueError(f"Unknown usage window: {window}")


def bucket_label(now: datetime, window: str) -> str:
    """Calendar day (2026-10-19) or ISO week (2026-W43) containing `now`."""
    if window == "daily":
        return now.strftime("%Y-%m-%d")
    if window == "weekly":
        iso_year, iso_week, _ = now.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    raise ValueError(f"Unknown usage window: {window}")


def bucket_key(identity: str, now: datetime, window: str) -> str:
    return f"{USAGE_PREFIX}{identity}:{bucket_label(now, window)}"


def bucket_ttl_seconds(now: datetime, window: str, grace_seconds: int = 0) -> int:
    """Seconds until the bucket containing `now` ends, plus grace."""
    length = timedelta(days=1) if window == "daily" else timedelta(days=7)
    end = _window_start(now, window) + length
    return max(1, int((end - now).total_seconds()) + grace_seconds)


class UsageTracker:
    """Per-identity generation counter over a rolling calendar window."""

    def __init__(
        self,
        redis_client=None,
        limit: Optional[int] = None,
        window: Optional[str] = None,
        grace_seconds: Optional[int] = None,
        tz: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._redis = redis_client
        self.limit = settings.usage_limit if limit is None else limit
        self.window = window or settings.usage_window
        self.grace_seconds = settings.usage_grace_seconds if grace_seconds is None else grace_seconds
        self.tz = ZoneInfo(tz or settings.usage_timezone)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        if self.window not in WINDOWS:
            raise ValueError(f"Unknown usage window: {self.window}")

    @property
    def redis(self):
        return self._redis or get_redis()

    def _now(self) -> datetime:
        return self._clock().astimezone(self.tz)

    def key(self, identity: str) -> str:
        return bucket_key(identity, self._now(), self.window)

    async def get_count(self, identity: str) -> int:
        raw = await self.redis.get(self.key(identity))
        try:
            return int(raw or 0)
        except (TypeError, ValueError):
            return 0

    async def has_exceeded(self, identity: str) -> bool:
        return await self.get_count(identity) >= self.limit

    async def remaining(self, identity: str) -> int:
        return max(0, self.limit - await self.get_count(identity))

    async def increment(self, identity: str) -> int:
        now = self._now()
        key = bucket_key(identity, now, self.window)
        count = await self.redis.incr(key)
        # Only the caller that created the key sets its lifetime.
        if count == 1:
            await self.redis.expire(key, bucket_ttl_seconds(now, self.window, self.grace_seconds))
        logger.info(
            "Usage incremented",
            extra={"context": {"identity": identity, "bucket": key, "count": count, "limit": self.limit}},
        )
        return count
