from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from sweepstakes.core.config import get_settings
from sweepstakes.migration.automation import load_automation_config, run_automation_pass
from sweepstakes.migration.errors import MigrationValidationError
from sweepstakes.services.internal_auth import require_internal_access
from sweepstakes.workers.tasks.migration_automation import run_migration_automation

router = APIRouter(
    tags=["internal", "migration"],
    dependencies=[Depends(require_internal_access)],
)
logger = structlog.get_logger(__name__)


def _is_celery_task(task_obj: object) -> bool:
    return type(task_obj).__module__.startswith("celery.")


def heartbeat_age_seconds(*, last_heartbeat: datetime | None, now_utc: datetime) -> float | None:
    if last_heartbeat is None:
        return None
    if last_heartbeat.tzinfo is None:
        last_heartbeat = last_heartbeat.replace(tzinfo=timezone.utc)
    return max(0.0, (now_utc - last_heartbeat).total_seconds())


async def _enqueue_continuous_run(*, timeout_seconds: float) -> bool:
    def enqueue_call() -> object:
        return run_migration_automation.delay(trigger="continuous")

    try:
        if _is_celery_task(run_migration_automation):
            await asyncio.wait_for(
                asyncio.to_thread(enqueue_call),
                timeout=timeout_seconds,
            )
        else:
            enqueue_call()
        return True
    except asyncio.TimeoutError:
        logger.warning(
            "migration_automation_enqueue_timeout",
            enqueue_timeout_seconds=timeout_seconds,
        )
        return False
    except Exception as exc:
        logger.warning(
            "migration_automation_enqueue_failed",
            error_type=type(exc).__name__,
        )
        return False


@router.get("/internal/migration/automation/heartbeat")
async def automation_heartbeat() -> JSONResponse:
    settings = get_settings()
    config = await load_automation_config()
    now_utc = datetime.now(timezone.utc)
    age_seconds = heartbeat_age_seconds(last_heartbeat=config.last_heartbeat, now_utc=now_utc)
    alive_window = max(1, int(getattr(settings, "migration_heartbeat_alive_seconds", 120)))
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=jsonable_encoder(
            {
                "alive": age_seconds is not None and age_seconds <= alive_window,
                "last_heartbeat": config.last_heartbeat,
                "heartbeat_age_seconds": age_seconds,
                "enabled": config.enabled,
                "status": config.status,
                "config": config.as_dict(),
            }
        ),
    )


@router.post("/internal/migration/automation/run")
async def run_automation_now() -> JSONResponse:
    try:
        result = await run_automation_pass(trigger="manual")
    except Exception as exc:
        # Raw exception text stays in the logs.
        error_code = (
            "automation_misconfigured"
            if isinstance(exc, MigrationValidationError)
            else "automation_run_failed"
        )
        logger.exception("migration_automation_manual_run_failed", error=error_code)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": error_code},
        )
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"success": True, **result.as_dict()},
    )


@router.post("/internal/migration/automation/continuous")
async def trigger_continuous_run() -> JSONResponse:
    settings = get_settings()
    enqueue_timeout_ms = max(
        1,
        int(getattr(settings, "migration_enqueue_timeout_ms", 250)),
    )
    enqueued = await _enqueue_continuous_run(timeout_seconds=enqueue_timeout_ms / 1000.0)
    if not enqueued:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "retry"},
        )
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content={"status": "accepted"},
    )
