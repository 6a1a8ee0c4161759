from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

import structlog

from sweepstakes.core.config import get_settings
from sweepstakes.db.models.migration_automation import MigrationAutomation
from sweepstakes.db.repo.migration_automation_repo import MigrationAutomationRepo
from sweepstakes.db.repo.migration_subscribers_repo import MigrationSubscribersRepo
from sweepstakes.db.session import SessionLocal
from sweepstakes.migration.batch import BatchResult, migrate_batch
from sweepstakes.migration.stall_recovery import reset_stalled_subscribers
from sweepstakes.services.operation_logs import record_operation_log

logger = structlog.get_logger(__name__)

AUTOMATION_STATUS_DISABLED = "disabled"
AUTOMATION_STATUS_OUTSIDE_HOURS = "outside_hours"
AUTOMATION_STATUS_IDLE = "idle"
AUTOMATION_STATUS_PROCESSING = "processing"
AUTOMATION_STATUS_COMPLETED = "completed"
AUTOMATION_STATUS_ERROR = "error"
PREFERRED_BATCH_SIZE = 10

BatchRunner = Callable[..., Awaitable[BatchResult]]


@dataclass(frozen=True, slots=True)
class AutomationConfigSnapshot:
    enabled: bool
    daily_total_target: int
    start_hour: int
    end_hour: int
    min_batch_size: int
    max_batch_size: int
    publication_id: str | None
    last_automated_run: datetime | None
    current_batch_id: UUID | None
    last_heartbeat: datetime | None
    status_details: dict[str, object]

    @classmethod
    def from_model(cls, config: MigrationAutomation) -> AutomationConfigSnapshot:
        return cls(
            enabled=bool(config.enabled),
            daily_total_target=int(config.daily_total_target),
            start_hour=int(config.start_hour),
            end_hour=int(config.end_hour),
            min_batch_size=int(config.min_batch_size),
            max_batch_size=int(config.max_batch_size),
            publication_id=config.publication_id,
            last_automated_run=config.last_automated_run,
            current_batch_id=config.current_batch_id,
            last_heartbeat=config.last_heartbeat,
            status_details=dict(config.status_details or {}),
        )

    @property
    def status(self) -> str | None:
        status = self.status_details.get("status")
        return str(status) if status is not None else None

    def as_dict(self) -> dict[str, object]:
        return {
            "enabled": self.enabled,
            "daily_total_target": self.daily_total_target,
            "start_hour": self.start_hour,
            "end_hour": self.end_hour,
            "min_batch_size": self.min_batch_size,
            "max_batch_size": self.max_batch_size,
            "publication_id": self.publication_id,
            "last_automated_run": self.last_automated_run,
            "current_batch_id": str(self.current_batch_id) if self.current_batch_id else None,
            "last_heartbeat": self.last_heartbeat,
            "status_details": self.status_details,
        }


@dataclass(frozen=True, slots=True)
class AutomationRunResult:
    status: str
    message: str
    batch: BatchResult | None = None

    def as_dict(self) -> dict[str, object]:
        return {
            "status": self.status,
            "message": self.message,
            "batch_id": str(self.batch.batch_id) if self.batch and self.batch.batch_id else None,
            "results": self.batch.results_dict() if self.batch is not None else None,
        }


def is_within_operating_window(*, hour: int, start_hour: int, end_hour: int) -> bool:
    """Half-open ``[start_hour, end_hour)`` in UTC; wraps past midnight when end < start.

    ``end_hour=24`` runs until midnight. Equal bounds give an empty window.
    """
    start = start_hour % 24
    if end_hour >= 24:
        return hour >= start
    end = end_hour
    if start == end:
        return False
    if start < end:
        return start <= hour < end
    return hour >= start or hour < end


def resolve_batch_size(*, min_batch_size: int, max_batch_size: int) -> int:
    lower = max(1, min_batch_size)
    upper = max(lower, max_batch_size)
    return min(max(PREFERRED_BATCH_SIZE, lower), upper)


def _start_of_utc_day(now_utc: datetime) -> datetime:
    return now_utc.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


async def load_automation_config(*, heartbeat_at: datetime | None = None) -> AutomationConfigSnapshot:
    async with SessionLocal.begin() as session:
        if heartbeat_at is not None:
            await MigrationAutomationRepo.touch_heartbeat(session, now_utc=heartbeat_at)
        config = await MigrationAutomationRepo.get_or_create(session)
        return AutomationConfigSnapshot.from_model(config)


async def update_automation_config(**values: object) -> AutomationConfigSnapshot:
    async with SessionLocal.begin() as session:
        config = await MigrationAutomationRepo.update_fields(session, **values)
        return AutomationConfigSnapshot.from_model(config)


async def _record_status(
    *,
    status: str,
    message: str,
    now_utc: datetime,
    extra: dict[str, object] | None = None,
) -> None:
    async with SessionLocal.begin() as session:
        await MigrationAutomationRepo.set_status(
            session,
            status=status,
            message=message,
            now_utc=now_utc,
            extra=extra,
        )


async def _skip(*, status: str, message: str, now_utc: datetime, trigger: str) -> AutomationRunResult:
    await _record_status(status=status, message=message, now_utc=now_utc, extra={"trigger": trigger})
    logger.info("migration_automation_skipped", status=status, reason=message, trigger=trigger)
    return AutomationRunResult(status=status, message=message)


async def run_automation_pass(
    *,
    trigger: str = "scheduler",
    now_utc: datetime | None = None,
    batch_runner: BatchRunner = migrate_batch,
) -> AutomationRunResult:
    """Runs one gated automation tick.

    Gates, in order: enabled flag, UTC operating window, stall recovery,
    pending queue, daily target. Only when all pass is a single batch run.
    Every tick heartbeats, and the outcome lands in ``status_details``.
    """
    now = now_utc or datetime.now(timezone.utc)
    try:
        config = await load_automation_config(heartbeat_at=now)
        if not config.enabled:
            return await _skip(
                status=AUTOMATION_STATUS_DISABLED,
                message="Automation is disabled",
                now_utc=now,
                trigger=trigger,
            )
        if not is_within_operating_window(
            hour=now.astimezone(timezone.utc).hour,
            start_hour=config.start_hour,
            end_hour=config.end_hour,
        ):
            return await _skip(
                status=AUTOMATION_STATUS_OUTSIDE_HOURS,
                message=(
                    f"Current UTC hour {now.hour} is outside operating hours "
                    f"{config.start_hour}-{config.end_hour}"
                ),
                now_utc=now,
                trigger=trigger,
            )

        stalled_reset = await reset_stalled_subscribers(
            timeout_minutes=int(get_settings().migration_stall_timeout_minutes),
            now_utc=now,
        )
        async with SessionLocal.begin() as session:
            pending_count = await MigrationSubscribersRepo.count_pending(session)
            migrated_today = await MigrationSubscribersRepo.count_migrated_since(
                session,
                since_utc=_start_of_utc_day(now),
            )
        if pending_count == 0:
            return await _skip(
                status=AUTOMATION_STATUS_IDLE,
                message="No pending subscribers",
                now_utc=now,
                trigger=trigger,
            )
        if migrated_today >= config.daily_total_target:
            return await _skip(
                status=AUTOMATION_STATUS_IDLE,
                message=f"Daily target of {config.daily_total_target} reached",
                now_utc=now,
                trigger=trigger,
            )

        batch_size = resolve_batch_size(
            min_batch_size=config.min_batch_size,
            max_batch_size=config.max_batch_size,
        )
        await _record_status(
            status=AUTOMATION_STATUS_PROCESSING,
            message=f"Processing batch of up to {batch_size} subscribers",
            now_utc=now,
            extra={"trigger": trigger, "pending_count": pending_count},
        )
        batch = await batch_runner(
            batch_size=batch_size,
            publication_id=config.publication_id,
            recover_stalled=False,
        )

        finished_at = datetime.now(timezone.utc)
        status_details: dict[str, object] = {
            "status": AUTOMATION_STATUS_COMPLETED,
            "message": f"Processed {batch.total} subscribers",
            "updated_at": finished_at.isoformat(),
            "trigger": trigger,
            "batch_id": str(batch.batch_id) if batch.batch_id else None,
            "batch_size": batch_size,
            "pending_before": pending_count,
            "migrated_today_before": migrated_today,
            "stalled_reset": stalled_reset,
            **batch.results_dict(),
        }
        async with SessionLocal.begin() as session:
            await MigrationAutomationRepo.update_fields(
                session,
                last_automated_run=finished_at,
                current_batch_id=batch.batch_id,
                last_heartbeat=finished_at,
                status_details=status_details,
            )
    except Exception as exc:
        logger.exception("migration_automation_failed", trigger=trigger)
        error_data = {"trigger": trigger, "error": str(exc) or type(exc).__name__}
        try:
            await _record_status(
                status=AUTOMATION_STATUS_ERROR,
                message=str(error_data["error"]),
                now_utc=datetime.now(timezone.utc),
                extra={"trigger": trigger},
            )
        except Exception:
            logger.exception("migration_automation_status_write_failed", trigger=trigger)
        await record_operation_log(context="migration_automation", data=error_data, is_error=True)
        raise

    logger.info(
        "migration_automation_batch_finished",
        **{key: value for key, value in status_details.items() if key != "errors"},
    )
    await record_operation_log(context="migration_automation", data=status_details)
    return AutomationRunResult(
        status=AUTOMATION_STATUS_COMPLETED,
        message=str(status_details["message"]),
        batch=batch,
    )
