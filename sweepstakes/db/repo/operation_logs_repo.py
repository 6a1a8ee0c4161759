from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.db.models.operation_logs import OperationLog


class OperationLogsRepo:
    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        context: str,
        data: dict[str, object],
        is_error: bool,
    ) -> OperationLog:
        log_row = OperationLog(context=context, data=data, is_error=is_error)
        session.add(log_row)
        await session.flush()
        return log_row

    @staticmethod
    async def list_recent(
        session: AsyncSession,
        *,
        context: str | None = None,
        limit: int = 50,
    ) -> list[OperationLog]:
        stmt = select(OperationLog).order_by(OperationLog.created_at.desc(), OperationLog.id.desc())
        if context is not None:
            stmt = stmt.where(OperationLog.context == context)
        result = await session.execute(stmt.limit(limit))
        return list(result.scalars().all())
