"""Per-user fixed-window rate limit for AI calls, counted in Redis."""

from datetime import UTC, datetime

import structlog
from redis.asyncio import Redis

from sailsmart.core.exceptions import RateLimitedError

logger = structlog.get_logger(__name__)

WINDOW_SECONDS = 60


class AIRateLimiter:
    """Fixed one-minute windows keyed by user and window start."""

    def __init__(self, redis: Redis, limit_per_minute: int):
        self.redis = redis
        self.limit = limit_per_minute

    def _key(self, user_id: str, now: datetime) -> tuple[str, int]:
        window_start = int(now.timestamp()) // WINDOW_SECONDS * WINDOW_SECONDS
        return f"ratelimit:ai:{user_id}:{window_start}", window_start

    async def hit(self, user_id: str, now: datetime | None = None) -> int:
        """Count one AI call for ``user_id``.

        Args:
            user_id: User the call is made for
            now: Current time (for deterministic testing)

        Returns:
            Calls made in the current window, this one included

        Raises:
            RateLimitedError: If the window's limit is exceeded
        """
        now = now or datetime.now(UTC)
        key, window_start = self._key(user_id, now)

        count = await self.redis.incr(key)
        if count == 1:
            await self.redis.expire(key, WINDOW_SECONDS * 2)

        if count > self.limit:
            retry_after = window_start + WINDOW_SECONDS - int(now.timestamp())
            logger.warning("ai_rate_limited", user_id=user_id, count=count, limit=self.limit)
            raise RateLimitedError("AI rate limit exceeded", retry_after=max(retry_after, 1))
        return count
