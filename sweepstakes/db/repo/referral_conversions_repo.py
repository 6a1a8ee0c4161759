from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.db.models.referral_conversions import ReferralConversion


class ReferralConversionsRepo:
    @staticmethod
    async def try_record(
        session: AsyncSession,
        *,
        transaction_id: str,
        referral_code: str,
    ) -> bool:
        stmt = (
            postgresql_insert(ReferralConversion)
            .values(
                transaction_id=transaction_id,
                referral_code=referral_code,
                created_at=func.now(),
            )
            .on_conflict_do_nothing(index_elements=[ReferralConversion.transaction_id])
            .returning(ReferralConversion.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def get_by_transaction_id(
        session: AsyncSession,
        *,
        transaction_id: str,
    ) -> ReferralConversion | None:
        stmt = select(ReferralConversion).where(
            ReferralConversion.transaction_id == transaction_id
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def count_for_referral_code(session: AsyncSession, *, referral_code: str) -> int:
        stmt = select(func.count(ReferralConversion.id)).where(
            ReferralConversion.referral_code == referral_code
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)
