"""Health check endpoints.

- ``/health`` answers as long as the process is up
- ``/healthz`` checks the database (and Redis, when configured)
"""

import json
from typing import Annotated, Any

import redis
from fastapi import APIRouter, Depends, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.campusops.api.auth import AppSettings, get_db_sessions
from backend.campusops.config import Settings

router = APIRouter()


async def check_db(sessions: async_sessionmaker[AsyncSession]) -> tuple[bool, str]:
    """Check database connectivity.

    Returns:
        (is_ok, status_message)
    """
    try:
        async with sessions() as session:
            await session.execute(text("SELECT 1"))
        return (True, "ok")
    except (SQLAlchemyError, OSError) as e:
        return (False, f"error: {type(e).__name__}")


async def check_redis(settings: Settings) -> tuple[bool, str]:
    """Check Redis connectivity.

    Returns:
        (is_ok, status_message)
    """
    if not settings.redis_url:
        return (True, "not_configured")

    try:
        client = redis.from_url(settings.redis_url, decode_responses=True)  # type: ignore[no-untyped-call]
        client.ping()
        return (True, "ok")
    except redis.RedisError as e:
        return (False, f"error: {type(e).__name__}")


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness check: 200 while the application is running."""
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz(
    settings: AppSettings,
    sessions: Annotated[async_sessionmaker[AsyncSession], Depends(get_db_sessions)],
) -> dict[str, Any] | Response:
    """Readiness check.

    Returns:
        200 with component status if core systems ok
        503 if a component fails
    """
    db_ok, db_status = await check_db(sessions)
    redis_ok, redis_status = await check_redis(settings)

    core_ok = db_ok and redis_ok
    response_body = {
        "status": "ok" if core_ok else "degraded",
        "components": {"db": db_status, "redis": redis_status},
    }

    if not core_ok:
        return Response(
            content=json.dumps(response_body),
            status_code=503,
            media_type="application/json",
        )

    return response_body
