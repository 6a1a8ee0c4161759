from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.db.models.migration_subscribers import MigrationSubscriber
from sweepstakes.migration.statuses import (
    CLEARABLE_STATUSES,
    MIGRATION_STATUSES,
    STATUS_ALREADY_EXISTS,
    STATUS_FAILED,
    STATUS_IN_PROGRESS,
    STATUS_MIGRATED,
    STATUS_PENDING,
    ensure_transition,
)


class MigrationSubscribersRepo:
    @staticmethod
    async def insert_pending_many(
        session: AsyncSession,
        *,
        rows: Sequence[dict[str, str]],
        source_file: str | None,
    ) -> int:
        if not rows:
            return 0
        stmt = (
            postgresql_insert(MigrationSubscriber)
            .values(
                [
                    {
                        "email": row["email"],
                        "first_name": row.get("first_name", ""),
                        "last_name": row.get("last_name", ""),
                        "status": STATUS_PENDING,
                        "source_file": source_file,
                    }
                    for row in rows
                ]
            )
            .on_conflict_do_nothing(index_elements=[MigrationSubscriber.email])
            .returning(MigrationSubscriber.id)
        )
        result = await session.execute(stmt)
        return len(result.scalars().all())

    @staticmethod
    async def claim_pending_batch(
        session: AsyncSession,
        *,
        batch_id: UUID,
        limit: int,
        source_file: str | None = None,
    ) -> list[MigrationSubscriber]:
        ensure_transition(STATUS_PENDING, STATUS_IN_PROGRESS)
        candidates = select(MigrationSubscriber.id).where(
            MigrationSubscriber.status == STATUS_PENDING
        )
        if source_file is not None:
            candidates = candidates.where(MigrationSubscriber.source_file == source_file)
        candidates = (
            candidates.order_by(MigrationSubscriber.created_at.asc(), MigrationSubscriber.id.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        stmt = (
            update(MigrationSubscriber)
            .where(
                MigrationSubscriber.id.in_(candidates),
                MigrationSubscriber.status == STATUS_PENDING,
            )
            .values(
                status=STATUS_IN_PROGRESS,
                migration_batch=batch_id,
                error_message=None,
                updated_at=func.now(),
            )
            .returning(MigrationSubscriber)
            .execution_options(populate_existing=True, synchronize_session=False)
        )
        result = await session.execute(stmt)
        claimed = list(result.scalars().all())
        claimed.sort(key=lambda subscriber: (subscriber.created_at, subscriber.id))
        return claimed

    @staticmethod
    async def touch_claimed(
        session: AsyncSession,
        *,
        subscriber_id: int,
        batch_id: UUID,
        now_utc: datetime,
    ) -> bool:
        """Refreshes ``updated_at`` so a long-running batch is not mistaken for a stall."""
        stmt = (
            update(MigrationSubscriber)
            .where(
                MigrationSubscriber.id == subscriber_id,
                MigrationSubscriber.status == STATUS_IN_PROGRESS,
                MigrationSubscriber.migration_batch == batch_id,
            )
            .values(updated_at=now_utc)
            .returning(MigrationSubscriber.id)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def finish_claimed(
        session: AsyncSession,
        *,
        subscriber_id: int,
        batch_id: UUID,
        status: str,
        now_utc: datetime,
        error_message: str | None = None,
        remote_subscriber_id: str | None = None,
    ) -> bool:
        ensure_transition(STATUS_IN_PROGRESS, status)
        values: dict[str, object] = {
            "status": status,
            "error_message": error_message,
            "updated_at": now_utc,
        }
        if status == STATUS_MIGRATED:
            values["migrated_at"] = now_utc
            values["remote_subscriber_id"] = remote_subscriber_id

        stmt = (
            update(MigrationSubscriber)
            .where(
                MigrationSubscriber.id == subscriber_id,
                MigrationSubscriber.status == STATUS_IN_PROGRESS,
                MigrationSubscriber.migration_batch == batch_id,
            )
            .values(**values)
            .returning(MigrationSubscriber.id)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def reset_to_pending(
        session: AsyncSession,
        *,
        from_status: str,
        error_message: str | None = None,
        updated_before: datetime | None = None,
    ) -> int:
        ensure_transition(from_status, STATUS_PENDING)
        stmt = update(MigrationSubscriber).where(MigrationSubscriber.status == from_status)
        if updated_before is not None:
            stmt = stmt.where(MigrationSubscriber.updated_at < updated_before)
        stmt = (
            stmt.values(
                status=STATUS_PENDING,
                migration_batch=None,
                error_message=error_message,
                updated_at=func.now(),
            )
            .returning(MigrationSubscriber.id)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return len(result.scalars().all())

    @staticmethod
    async def delete_by_status(session: AsyncSession, *, status: str) -> int:
        if status not in CLEARABLE_STATUSES:
            raise ValueError(f"status {status!r} cannot be cleared")
        stmt = (
            delete(MigrationSubscriber)
            .where(MigrationSubscriber.status == status)
            .returning(MigrationSubscriber.id)
        )
        result = await session.execute(stmt)
        return len(result.scalars().all())

    @staticmethod
    async def count_by_status(session: AsyncSession) -> dict[str, int]:
        stmt = select(MigrationSubscriber.status, func.count(MigrationSubscriber.id)).group_by(
            MigrationSubscriber.status
        )
        result = await session.execute(stmt)
        counts = {status: 0 for status in MIGRATION_STATUSES}
        for status, count in result.all():
            counts[str(status)] = int(count)
        return counts

    @staticmethod
    async def count_pending(session: AsyncSession) -> int:
        stmt = select(func.count(MigrationSubscriber.id)).where(
            MigrationSubscriber.status == STATUS_PENDING
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def count_migrated_since(session: AsyncSession, *, since_utc: datetime) -> int:
        stmt = select(func.count(MigrationSubscriber.id)).where(
            MigrationSubscriber.status == STATUS_MIGRATED,
            MigrationSubscriber.migrated_at >= since_utc,
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def list_latest_batches(
        session: AsyncSession,
        *,
        limit: int = 10,
    ) -> list[dict[str, object]]:
        def _count_status(status: str):
            return func.count(case((MigrationSubscriber.status == status, 1)))

        last_updated_at = func.max(MigrationSubscriber.updated_at).label("last_updated_at")
        stmt = (
            select(
                MigrationSubscriber.migration_batch,
                func.count(MigrationSubscriber.id).label("total"),
                _count_status(STATUS_MIGRATED).label("migrated"),
                _count_status(STATUS_ALREADY_EXISTS).label("already_exists"),
                _count_status(STATUS_FAILED).label("failed"),
                _count_status(STATUS_IN_PROGRESS).label("in_progress"),
                last_updated_at,
            )
            .where(MigrationSubscriber.migration_batch.is_not(None))
            .group_by(MigrationSubscriber.migration_batch)
            .order_by(last_updated_at.desc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [
            {
                "batch_id": str(row.migration_batch),
                "total": int(row.total),
                "migrated": int(row.migrated),
                "already_exists": int(row.already_exists),
                "failed": int(row.failed),
                "in_progress": int(row.in_progress),
                "last_updated_at": row.last_updated_at,
            }
            for row in result.all()
        ]
