from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.db.models.migration_automation import AUTOMATION_CONFIG_ID, MigrationAutomation


class MigrationAutomationRepo:
    @staticmethod
    async def get_or_create(session: AsyncSession) -> MigrationAutomation:
        insert_stmt = (
            postgresql_insert(MigrationAutomation)
            .values(id=AUTOMATION_CONFIG_ID)
            .on_conflict_do_nothing(index_elements=[MigrationAutomation.id])
        )
        await session.execute(insert_stmt)
        stmt = select(MigrationAutomation).where(MigrationAutomation.id == AUTOMATION_CONFIG_ID)
        result = await session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one()

    @staticmethod
    async def update_fields(session: AsyncSession, **values: Any) -> MigrationAutomation:
        await MigrationAutomationRepo.get_or_create(session)
        stmt = (
            update(MigrationAutomation)
            .where(MigrationAutomation.id == AUTOMATION_CONFIG_ID)
            .values(**values, updated_at=func.now())
            .returning(MigrationAutomation)
            .execution_options(populate_existing=True, synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.scalar_one()

    @staticmethod
    async def touch_heartbeat(session: AsyncSession, *, now_utc: datetime) -> None:
        await MigrationAutomationRepo.update_fields(session, last_heartbeat=now_utc)

    @staticmethod
    async def set_status(
        session: AsyncSession,
        *,
        status: str,
        message: str,
        now_utc: datetime,
        extra: dict[str, object] | None = None,
    ) -> MigrationAutomation:
        details: dict[str, object] = {
            "status": status,
            "message": message,
            "updated_at": now_utc.isoformat(),
        }
        if extra:
            details.update(extra)
        return await MigrationAutomationRepo.update_fields(session, status_details=details)
