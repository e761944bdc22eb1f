"""In-memory fixed-window rate limiter keyed by user and operation."""

import asyncio
import logging
import time

logger = logging.getLogger(__name__)


class RateLimiter:
    """Counts requests per ``user:operation`` within a fixed window.

    State lives in process memory, so limits are per worker.
    """

    def __init__(self, clock=time.time):
        self._entries: dict[str, dict] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def check(
        self,
        user_id: str,
        operation: str,
        max_requests: int,
        window_seconds: int,
    ) -> tuple[bool, float | None]:
        """Record one request. Returns (allowed, reset_time) where reset_time
        is the unix time the window ends, set only when the request is refused."""
        key = f"{user_id}:{operation}"
        now = self._clock()
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None or now > entry["reset_time"]:
                self._entries[key] = {"count": 1, "reset_time": now + window_seconds}
                return True, None
            if entry["count"] >= max_requests:
                logger.warning("Rate limit hit for %s", key)
                return False, entry["reset_time"]
            entry["count"] += 1
            return True, None

    async def cleanup(self) -> int:
        """Drop expired windows. Returns how many were removed."""
        now = self._clock()
        async with self._lock:
            expired = [key for key, entry in self._entries.items() if now > entry["reset_time"]]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


rate_limiter = RateLimiter()
