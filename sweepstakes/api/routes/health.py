from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text

from sweepstakes.core.config import get_settings
from sweepstakes.db.session import SessionLocal
from sweepstakes.workers.celery_app import celery_app

router = APIRouter(tags=["health"])
logger = structlog.get_logger(__name__)
CELERY_PING_TIMEOUT_SECONDS = 1.0

DependencyCheck = Callable[[], Awaitable[dict[str, Any]]]


def _passed(**extra: Any) -> dict[str, Any]:
    return {"status": "ok", **extra}


def _failed(error_code: str, exc: Exception | None = None) -> dict[str, str]:
    # Raw exception text can carry DSNs or credentials, so only the code is returned.
    if exc is not None:
        logger.warning("dependency_check_failed", error=error_code, error_type=type(exc).__name__)
    return {"status": "failed", "error": error_code}


async def _check_database() -> dict[str, Any]:
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        return _failed("database_unavailable", exc)
    return _passed()


async def _check_redis() -> dict[str, Any]:
    redis_client: Redis | None = None
    try:
        redis_client = Redis.from_url(get_settings().redis_url)
        if await redis_client.ping() is not True:
            return _failed("redis_unexpected_ping")
    except Exception as exc:
        return _failed("redis_unavailable", exc)
    finally:
        if redis_client is not None:
            await redis_client.aclose()
    return _passed()


def _check_celery_worker_sync() -> dict[str, Any]:
    try:
        replies = celery_app.control.inspect(timeout=CELERY_PING_TIMEOUT_SECONDS).ping() or {}
    except Exception as exc:
        return _failed("celery_unavailable", exc)
    if not replies:
        return _failed("celery_no_workers")
    return _passed(workers=len(replies))


async def _check_celery_worker() -> dict[str, Any]:
    return await asyncio.to_thread(_check_celery_worker_sync)


async def _run_checks(checks: dict[str, DependencyCheck]) -> dict[str, dict[str, Any]]:
    results = await asyncio.gather(*(check() for check in checks.values()))
    return dict(zip(checks, results))


def _status_code(results: dict[str, dict[str, Any]]) -> tuple[bool, int]:
    passed = all(result.get("status") == "ok" for result in results.values())
    return passed, status.HTTP_200_OK if passed else status.HTTP_503_SERVICE_UNAVAILABLE


@router.get("/health")
async def health() -> JSONResponse:
    results = await _run_checks(
        {
            "database": _check_database,
            "redis": _check_redis,
            "celery": _check_celery_worker,
        }
    )
    passed, status_code = _status_code(results)
    return JSONResponse(
        status_code=status_code,
        content={"status": "ok" if passed else "degraded", "checks": results},
    )


@router.get("/ready")
async def ready() -> JSONResponse:
    """Readiness only needs the stores the API serves from; workers are optional."""
    results = await _run_checks({"database": _check_database, "redis": _check_redis})
    passed, status_code = _status_code(results)
    return JSONResponse(
        status_code=status_code,
        content={"status": "ready" if passed else "not_ready", "checks": results},
    )


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}
