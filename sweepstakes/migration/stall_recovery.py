from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.config import get_settings
from sweepstakes.db.repo.migration_subscribers_repo import MigrationSubscribersRepo
from sweepstakes.db.session import SessionLocal
from sweepstakes.migration.statuses import STATUS_IN_PROGRESS
from sweepstakes.services.operation_logs import record_operation_log

logger = structlog.get_logger(__name__)


def stall_reset_message(timeout_minutes: int) -> str:
    return f"Reset after being stuck in progress for > {timeout_minutes} minutes"


async def reset_stalled_in_session(
    session: AsyncSession,
    *,
    timeout_minutes: int,
    now_utc: datetime,
) -> int:
    return await MigrationSubscribersRepo.reset_to_pending(
        session,
        from_status=STATUS_IN_PROGRESS,
        error_message=stall_reset_message(timeout_minutes),
        updated_before=now_utc - timedelta(minutes=timeout_minutes),
    )


async def reset_stalled_subscribers(
    *,
    timeout_minutes: int | None = None,
    now_utc: datetime | None = None,
) -> int:
    resolved_timeout = (
        timeout_minutes
        if timeout_minutes is not None
        else int(get_settings().migration_stall_timeout_minutes)
    )
    resolved_now = now_utc or datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        reset_count = await reset_stalled_in_session(
            session,
            timeout_minutes=resolved_timeout,
            now_utc=resolved_now,
        )

    if reset_count > 0:
        logger.warning(
            "migration_stalled_subscribers_reset",
            reset_count=reset_count,
            timeout_minutes=resolved_timeout,
        )
        await record_operation_log(
            context="migration_stall_recovery",
            data={"reset_count": reset_count, "timeout_minutes": resolved_timeout},
        )
    return reset_count
