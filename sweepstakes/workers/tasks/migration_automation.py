from __future__ import annotations

import structlog

from sweepstakes.core.config import get_settings
from sweepstakes.migration.automation import run_automation_pass
from sweepstakes.workers.asyncio_runner import run_async_job
from sweepstakes.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)
TASK_NAME = "sweepstakes.workers.tasks.migration_automation.run_migration_automation"


async def run_migration_automation_async(*, trigger: str) -> dict[str, object]:
    result = await run_automation_pass(trigger=trigger)
    payload = result.as_dict()
    logger.info(
        "migration_automation_task_finished",
        trigger=trigger,
        status=result.status,
        batch_id=payload["batch_id"],
    )
    return payload


@celery_app.task(name=TASK_NAME)
def run_migration_automation(trigger: str = "scheduler") -> dict[str, object]:
    return run_async_job(
        run_migration_automation_async(trigger=trigger),
        job_name="migration_automation",
    )


_interval_seconds = float(max(1, int(get_settings().migration_automation_interval_seconds)))
celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "migration-automation-tick": {
            "task": TASK_NAME,
            "schedule": _interval_seconds,
            "options": {"queue": "q_normal", "expires": _interval_seconds},
        },
    }
)
