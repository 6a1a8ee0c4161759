from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.db.models.entries import Entry


class EntriesRepo:
    @staticmethod
    async def get_by_referral_code(
        session: AsyncSession,
        *,
        referral_code: str,
    ) -> Entry | None:
        stmt = select(Entry).where(Entry.referral_code == referral_code)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email(session: AsyncSession, *, email: str) -> Entry | None:
        stmt = select(Entry).where(Entry.email == email)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def referral_code_exists(session: AsyncSession, *, referral_code: str) -> bool:
        stmt = select(Entry.id).where(Entry.referral_code == referral_code).limit(1)
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def create(session: AsyncSession, *, entry: Entry) -> Entry:
        session.add(entry)
        await session.flush()
        return entry

    @staticmethod
    async def increment_referral_count(
        session: AsyncSession,
        *,
        referral_code: str,
    ) -> Entry | None:
        # SET expressions read the pre-update row, so total is recomputed from entry_count.
        stmt = (
            update(Entry)
            .where(Entry.referral_code == referral_code)
            .values(
                referral_count=Entry.referral_count + 1,
                total_entries=Entry.entry_count + Entry.referral_count + 1,
                updated_at=func.now(),
            )
            .returning(Entry)
            .execution_options(populate_existing=True, synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()
