"""Rate limiting for credential endpoints."""

from datetime import datetime, timezone
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from backend.campusops.config import get_settings
from backend.campusops.ratelimit import RateLimiter, create_rate_limiter, make_rate_limit_key
from backend.campusops.utils.metrics import tenancy_metrics


class RateLimitMiddleware:
    """Maps request paths to buckets and enforces rate limits."""

    def __init__(self, limiter: RateLimiter, bucket_map: dict[str, str]) -> None:
        """Initialize rate limit middleware.

        Args:
            limiter: Rate limiter implementation
            bucket_map: Mapping from path patterns to bucket names
        """
        self._limiter = limiter
        self._bucket_map = bucket_map

    def check_rate_limit(
        self, path: str, subject: str, now: datetime | None = None
    ) -> tuple[bool, int]:
        """Check if request is allowed under rate limit.

        Args:
            path: Request path
            subject: Caller being limited (client address)
            now: Current time (for testing)

        Returns:
            Tuple of (allowed, retry_after_seconds)
        """
        if now is None:
            now = datetime.now(timezone.utc)

        bucket = self._get_bucket(path)
        if bucket is None:
            return (True, 0)

        retry_after = self._limiter.check_quota(make_rate_limit_key(subject, bucket), now)
        if retry_after is None:
            return (True, 0)

        return (False, retry_after.seconds)

    def _get_bucket(self, path: str) -> str | None:
        for pattern, bucket in self._bucket_map.items():
            if pattern in path:
                return bucket

        return None


def create_default_bucket_map() -> dict[str, str]:
    """Credential endpoints share the ``auth`` bucket."""
    return {
        "/auth/login": "auth",
        "/auth/set-password": "auth",
        "/platform/auth/login": "auth",
        "/platform/auth/setup": "auth",
    }


@lru_cache
def get_rate_limit_middleware() -> RateLimitMiddleware:
    return RateLimitMiddleware(create_rate_limiter(get_settings()), create_default_bucket_map())


async def enforce_rate_limit(
    request: Request,
    middleware: Annotated[RateLimitMiddleware, Depends(get_rate_limit_middleware)],
) -> None:
    """Route dependency: reject with 429 once the caller's bucket is exhausted.

    Raises:
        HTTPException: 429 with a ``Retry-After`` header
    """
    subject = request.client.host if request.client else "unknown"
    allowed, retry_after = middleware.check_rate_limit(request.url.path, subject)
    if not allowed:
        tenancy_metrics.record_denial("rate_limited")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"code": "RATE_LIMITED", "message": "Too many attempts, try again later"},
            headers={"Retry-After": str(retry_after)},
        )
