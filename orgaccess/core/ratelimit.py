"""
Fixed-window attempt counters.

- Keyed counters with a reset timestamp; the next attempt after the window
  ends starts a fresh window at count 1.
- Blocked attempts leave the window untouched (count and reset_at unchanged).
- In-memory store (one lock, expired windows swept lazily) for tests and
  single instances; Redis store (atomic Lua) for multi-instance deployments.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

import redis

from orgaccess.core.config import Settings, settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateWindow:
    count: int
    reset_at: float
    # Outcome of the increment that produced this window; None from get()
    allowed: Optional[bool] = None

    def retry_after(self, now: float) -> int:
        return max(0, int(-(-(self.reset_at - now) // 1)))


class RateLimitStore(Protocol):
    def get(self, key: str) -> Optional[RateWindow]:
        ...

    def increment(self, key: str, *, limit: int, window_seconds: int, now: float) -> RateWindow:
        """Count one attempt unless the live window is already at `limit`."""
        ...

    def reset(self, key: str) -> None:
        ...


class InMemoryRateLimitStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._windows: Dict[str, RateWindow] = {}
        self._next_sweep = 0.0

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def _sweep(self, now: float, window_seconds: int) -> None:
        # Caller holds self._lock; at most one pass per window length
        if now < self._next_sweep:
            return
        expired = [key for key, window in self._windows.items() if now >= window.reset_at]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + window_seconds

    def get(self, key: str) -> Optional[RateWindow]:
        with self._lock:
            window = self._windows.get(key)
        if window is None:
            return None
        return RateWindow(window.count, window.reset_at)

    def increment(self, key: str, *, limit: int, window_seconds: int, now: float) -> RateWindow:
        with self._lock:
            self._sweep(now, window_seconds)
            current = self._windows.get(key)
            if current is None or now >= current.reset_at:
                window = RateWindow(count=1, reset_at=now + window_seconds, allowed=1 <= limit)
                self._windows[key] = window
                return window
            if current.count >= limit:
                return RateWindow(current.count, current.reset_at, allowed=False)
            window = RateWindow(current.count + 1, current.reset_at, allowed=True)
            self._windows[key] = window
            return window

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)


class RedisRateLimitStore:
    LUA = """
    local key = KEYS[1]
    local now = tonumber(ARGV[1])
    local limit = tonumber(ARGV[2])
    local window = tonumber(ARGV[3])

    local count = tonumber(redis.call("HGET", key, "count"))
    local reset_at = tonumber(redis.call("HGET", key, "reset_at"))
    if (not count) or (not reset_at) or now >= reset_at then
      reset_at = now + window
      redis.call("HSET", key, "count", 1, "reset_at", tostring(reset_at))
      redis.call("EXPIRE", key, window)
      local first = 0
      if limit >= 1 then first = 1 end
      return {1, tostring(reset_at), first}
    end
    if count >= limit then
      return {count, tostring(reset_at), 0}
    end
    count = redis.call("HINCRBY", key, "count", 1)
    return {count, tostring(reset_at), 1}
    """

    def __init__(self, client: "redis.Redis", prefix: str = "orgaccess:rl:"):
        self._client = client
        self._script = self._client.register_script(self.LUA)
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "orgaccess:rl:") -> "RedisRateLimitStore":
        return cls(redis.Redis.from_url(url, decode_responses=True), prefix=prefix)

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Optional[RateWindow]:
        count, reset_at = self._client.hmget(self._key(key), "count", "reset_at")
        if count is None or reset_at is None:
            return None
        return RateWindow(int(count), float(reset_at))

    def increment(self, key: str, *, limit: int, window_seconds: int, now: float) -> RateWindow:
        count, reset_at, allowed = self._script(
            keys=[self._key(key)],
            args=[repr(float(now)), int(limit), int(window_seconds)],
        )
        return RateWindow(int(count), float(reset_at), bool(int(allowed)))

    def reset(self, key: str) -> None:
        self._client.delete(self._key(key))


def build_rate_limit_store(settings_obj: Optional[Settings] = None) -> RateLimitStore:
    cfg = settings_obj or settings
    backend = (cfg.RATE_LIMIT_BACKEND or "memory").lower()
    if backend == "redis":
        if not cfg.REDIS_URL:
            raise RuntimeError("RATE_LIMIT_BACKEND=redis requires REDIS_URL")
        logger.info("[ratelimit] using redis backend")
        return RedisRateLimitStore.from_url(cfg.REDIS_URL)
    if backend != "memory":
        raise RuntimeError(f"Unknown RATE_LIMIT_BACKEND: {cfg.RATE_LIMIT_BACKEND!r}")
    return InMemoryRateLimitStore()
