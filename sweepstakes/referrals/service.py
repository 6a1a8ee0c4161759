from __future__ import annotations

from collections.abc import Awaitable, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from sweepstakes.core.referral_codes import normalize_referral_code
from sweepstakes.db.repo.entries_repo import EntriesRepo
from sweepstakes.db.repo.referral_conversions_repo import ReferralConversionsRepo
from sweepstakes.db.session import SessionLocal
from sweepstakes.referrals.errors import ReferralCodeNotFoundError, ReferralValidationError
from sweepstakes.referrals.fanout import notify_referral_conversion
from sweepstakes.referrals.types import (
    ConversionEvent,
    ConversionOutcome,
    EntrySnapshot,
    FanoutResult,
)
from sweepstakes.services.operation_logs import record_operation_log

logger = structlog.get_logger(__name__)

Notifier = Callable[[EntrySnapshot], Awaitable[FanoutResult]]
# Column widths of entries.referral_code and referral_conversions.transaction_id.
MAX_REFERRAL_CODE_LENGTH = 16
MAX_TRANSACTION_ID_LENGTH = 128


class ReferralConversionService:
    @staticmethod
    def build_event(*, referral_code: object, transaction_id: object) -> ConversionEvent:
        normalized_code = normalize_referral_code(referral_code)
        normalized_transaction_id = (
            transaction_id.strip() if isinstance(transaction_id, str) else None
        )
        missing: list[str] = []
        if normalized_code is None:
            missing.append("referral_code")
        if not normalized_transaction_id:
            missing.append("transaction_id")
        if missing:
            raise ReferralValidationError(f"Missing required parameters: {', '.join(missing)}")
        too_long: list[str] = []
        if len(str(normalized_code)) > MAX_REFERRAL_CODE_LENGTH:
            too_long.append(f"referral_code (max {MAX_REFERRAL_CODE_LENGTH})")
        if len(str(normalized_transaction_id)) > MAX_TRANSACTION_ID_LENGTH:
            too_long.append(f"transaction_id (max {MAX_TRANSACTION_ID_LENGTH})")
        if too_long:
            raise ReferralValidationError(f"Parameters too long: {', '.join(too_long)}")
        return ConversionEvent(
            referral_code=str(normalized_code),
            transaction_id=str(normalized_transaction_id),
        )

    @staticmethod
    async def apply_conversion(
        session: AsyncSession,
        *,
        event: ConversionEvent,
    ) -> tuple[EntrySnapshot, bool]:
        """Credits one conversion inside the caller's transaction.

        The ledger row is written before the counters move; a conflict on
        ``transaction_id`` means the conversion was already credited and the
        entry is returned unchanged with ``idempotent_replay=True``.
        """
        entry = await EntriesRepo.get_by_referral_code(session, referral_code=event.referral_code)
        if entry is None:
            raise ReferralCodeNotFoundError(event.referral_code)

        recorded = await ReferralConversionsRepo.try_record(
            session,
            transaction_id=event.transaction_id,
            referral_code=event.referral_code,
        )
        if not recorded:
            logger.info(
                "referral_conversion_duplicate",
                referral_code=event.referral_code,
                transaction_id=event.transaction_id,
            )
            return EntrySnapshot.from_entry(entry), True

        updated_entry = await EntriesRepo.increment_referral_count(
            session,
            referral_code=event.referral_code,
        )
        if updated_entry is None:
            raise ReferralCodeNotFoundError(event.referral_code)
        return EntrySnapshot.from_entry(updated_entry), False

    @staticmethod
    async def record_conversion(
        event: ConversionEvent,
        *,
        notifier: Notifier = notify_referral_conversion,
    ) -> ConversionOutcome:
        async with SessionLocal.begin() as session:
            snapshot, idempotent_replay = await ReferralConversionService.apply_conversion(
                session,
                event=event,
            )

        log_data = {
            "referral_code": event.referral_code,
            "transaction_id": event.transaction_id,
            "referral_count": snapshot.referral_count,
            "total_entries": snapshot.total_entries,
            "idempotent_replay": idempotent_replay,
        }
        logger.info("referral_conversion_recorded", **log_data)
        await record_operation_log(context="referral_conversion", data=log_data)

        if idempotent_replay:
            return ConversionOutcome(entry=snapshot, idempotent_replay=True, fanout=None)

        fanout = await notifier(snapshot)
        return ConversionOutcome(entry=snapshot, idempotent_replay=False, fanout=fanout)
