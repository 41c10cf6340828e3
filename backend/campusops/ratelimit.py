"""Fixed-window rate limiting for credential endpoints."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

import redis

from backend.campusops.config import Settings


@dataclass
class RetryAfter:
    """Rate limit retry-after information."""

    seconds: int


class RateLimiter(Protocol):
    """Rate limiter interface."""

    def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Check if quota is available.

        Args:
            key: Rate limit key
            now: Current timestamp

        Returns:
            RetryAfter if over quota, None if allowed
        """
        ...


def make_rate_limit_key(subject: str, bucket: str) -> str:
    """Create rate limit key from a caller subject and bucket.

    Args:
        subject: Who is being limited (client address, normalized email)
        bucket: Bucket name (e.g., "auth")

    Returns:
        Rate limit key
    """
    return f"{bucket}:{subject}"


class RedisRateLimiter:
    """Redis-based rate limiter using INCR + EXPIRE pattern."""

    def __init__(self, redis_client: redis.Redis, max_requests: int, window_seconds: int = 60) -> None:
        """Initialize rate limiter.

        Args:
            redis_client: Redis client
            max_requests: Maximum requests per window
            window_seconds: Window size in seconds (default 60)
        """
        self._redis = redis_client
        self._max_requests = max_requests
        self._window_seconds = window_seconds

    def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        window_start = int(now.timestamp() / self._window_seconds) * self._window_seconds
        redis_key = f"ratelimit:{key}:{window_start}"

        count = self._redis.incr(redis_key)
        if count == 1:
            self._redis.expire(redis_key, self._window_seconds)

        if count > self._max_requests:
            ttl = self._redis.ttl(redis_key)
            return RetryAfter(seconds=max(1, ttl))

        return None


class InMemoryRateLimiter:
    """Per-process fixed-window limiter, used without Redis and in tests."""

    def __init__(self, max_requests: int, window_seconds: int = 60) -> None:
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._windows: dict[str, tuple[datetime, int]] = {}

    def __len__(self) -> int:
        return len(self._windows)

    def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        window = timedelta(seconds=self._window_seconds)
        current = self._windows.get(key)

        if current is None or now >= current[0] + window:
            self.prune(now)
            self._windows[key] = (now, 1)
            return None

        window_start, count = current
        if count >= self._max_requests:
            remaining = int((window_start + window - now).total_seconds())
            return RetryAfter(seconds=max(1, remaining))

        self._windows[key] = (window_start, count + 1)
        return None

    def prune(self, now: datetime) -> None:
        """Forget windows that have already closed."""
        window = timedelta(seconds=self._window_seconds)
        for key in [k for k, (start, _) in self._windows.items() if now >= start + window]:
            del self._windows[key]

    def reset(self) -> None:
        self._windows.clear()


def create_rate_limiter(settings: Settings) -> RateLimiter:
    """Redis limiter when ``redis_url`` is configured, in-memory otherwise."""
    if settings.redis_url:
        client = redis.from_url(settings.redis_url, decode_responses=True)  # type: ignore[no-untyped-call]
        return RedisRateLimiter(client, max_requests=settings.auth_attempts_per_min)
    return InMemoryRateLimiter(max_requests=settings.auth_attempts_per_min)
