from __future__ import annotations

import structlog

from sweepstakes.referrals.types import EntrySnapshot, FanoutResult
from sweepstakes.services.beehiiv import build_beehiiv_client, is_beehiiv_configured
from sweepstakes.services.operation_logs import record_operation_log
from sweepstakes.services.referral_notifications import send_referral_notification

logger = structlog.get_logger(__name__)


async def _sync_email_platform(entry: EntrySnapshot) -> tuple[bool, str | None]:
    if not is_beehiiv_configured():
        return False, "email platform is not configured"

    try:
        async with build_beehiiv_client() as client:
            result = await client.sync_entry_total(
                email=entry.email,
                first_name=entry.first_name,
                last_name=entry.last_name,
                referral_code=entry.referral_code,
                total_entries=entry.total_entries,
            )
    except Exception as exc:
        logger.exception("referral_fanout_beehiiv_failed", referral_code=entry.referral_code)
        return False, str(exc) or type(exc).__name__
    return result.updated, result.error


async def _send_notification(entry: EntrySnapshot) -> tuple[bool, str | None]:
    try:
        result = await send_referral_notification(
            email=entry.email,
            first_name=entry.first_name,
            referral_code=entry.referral_code,
            total_entries=entry.total_entries,
        )
    except Exception as exc:
        logger.exception("referral_fanout_notification_failed", referral_code=entry.referral_code)
        return False, str(exc) or type(exc).__name__
    return result.sent, result.error


async def notify_referral_conversion(entry: EntrySnapshot) -> FanoutResult:
    """Runs both best-effort side effects of a credited referral, in order.

    Neither side effect can prevent the other from running and no failure
    propagates to the caller; outcomes are reported as flags.
    """
    beehiiv_updated, beehiiv_error = await _sync_email_platform(entry)
    notification_sent, notification_error = await _send_notification(entry)
    result = FanoutResult(
        beehiiv_updated=beehiiv_updated,
        beehiiv_error=beehiiv_error,
        notification_sent=notification_sent,
        notification_error=notification_error,
    )

    log_data = {
        "referral_code": entry.referral_code,
        "total_entries": entry.total_entries,
        "beehiiv_updated": beehiiv_updated,
        "beehiiv_error": beehiiv_error,
        "notification_sent": notification_sent,
        "notification_error": notification_error,
    }
    is_error = not (beehiiv_updated and notification_sent)
    if is_error:
        logger.warning("referral_fanout_partial_failure", **log_data)
    else:
        logger.info("referral_fanout_finished", **log_data)
    await record_operation_log(context="referral_fanout", data=log_data, is_error=is_error)
    return result
