from __future__ import annotations

import json
from collections.abc import Mapping, Sequence

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from sweepstakes.referrals.errors import ReferralCodeNotFoundError, ReferralValidationError
from sweepstakes.referrals.service import ReferralConversionService
from sweepstakes.referrals.types import ConversionOutcome
from sweepstakes.services.operation_logs import record_operation_log

router = APIRouter(tags=["webhooks"])
logger = structlog.get_logger(__name__)
REFERRAL_CODE_ALIASES = ("referral_code", "sub1", "referralCode")
TRANSACTION_ID_ALIASES = ("transaction_id", "tid", "transactionId")
TEST_ONLY_FLAG = "test_only"


def _error_response(
    status_code: int,
    *,
    error: str,
    details: object | None = None,
) -> JSONResponse:
    content: dict[str, object] = {"success": False, "error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _first_present(sources: Sequence[Mapping[str, object]], aliases: tuple[str, ...]) -> str | None:
    for source in sources:
        for alias in aliases:
            value = source.get(alias)
            if isinstance(value, bool) or value is None:
                continue
            if isinstance(value, (int, float)):
                value = str(value)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def _is_test_only(*, body: Mapping[str, object], query: Mapping[str, object]) -> bool:
    return bool(body.get(TEST_ONLY_FLAG)) or TEST_ONLY_FLAG in query


def _success_content(outcome: ConversionOutcome, *, transaction_id: str) -> dict[str, object]:
    fanout = outcome.fanout
    return {
        "success": True,
        "referral_code": outcome.entry.referral_code,
        "transaction_id": transaction_id,
        "idempotent_replay": outcome.idempotent_replay,
        "data": outcome.entry.as_public_dict(),
        "beehiiv_updated": fanout.beehiiv_updated if fanout else False,
        "beehiiv_error": fanout.beehiiv_error if fanout else None,
        "notification_sent": fanout.notification_sent if fanout else False,
        "notification_error": fanout.notification_error if fanout else None,
    }


@router.api_route("/webhooks/everflow", methods=["GET", "POST"])
async def everflow_webhook(request: Request) -> JSONResponse:
    query: dict[str, object] = dict(request.query_params)
    body: dict[str, object] = {}
    if request.method == "POST":
        raw_body = await request.body()
        if raw_body.strip():
            try:
                parsed = json.loads(raw_body)
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                logger.warning("everflow_webhook_invalid_json")
                return _error_response(
                    status.HTTP_400_BAD_REQUEST,
                    error="Invalid JSON payload",
                    details=str(exc),
                )
            if not isinstance(parsed, dict):
                return _error_response(
                    status.HTTP_400_BAD_REQUEST,
                    error="Invalid JSON payload",
                    details="expected a JSON object",
                )
            body = parsed

    if _is_test_only(body=body, query=query):
        logger.info("everflow_webhook_test_only", method=request.method)
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={
                "success": True,
                "test_only": True,
                "message": f"Test mode: {request.method} webhook connectivity verified",
            },
        )

    sources = (body, query)
    try:
        event = ReferralConversionService.build_event(
            referral_code=_first_present(sources, REFERRAL_CODE_ALIASES),
            transaction_id=_first_present(sources, TRANSACTION_ID_ALIASES),
        )
    except ReferralValidationError as exc:
        logger.warning("everflow_webhook_invalid_params", error=str(exc))
        return _error_response(status.HTTP_400_BAD_REQUEST, error=str(exc))

    try:
        outcome = await ReferralConversionService.record_conversion(event)
    except ReferralCodeNotFoundError as exc:
        logger.warning(
            "everflow_webhook_unknown_referral_code",
            referral_code=exc.referral_code,
            transaction_id=event.transaction_id,
        )
        await record_operation_log(
            context="everflow_webhook",
            data={
                "referral_code": exc.referral_code,
                "transaction_id": event.transaction_id,
                "error": "referral_code_not_found",
            },
            is_error=True,
        )
        return _error_response(
            status.HTTP_404_NOT_FOUND,
            error="Referral code not found",
            details={"referral_code": exc.referral_code},
        )
    except SQLAlchemyError as exc:
        logger.exception(
            "everflow_webhook_database_failed",
            referral_code=event.referral_code,
            transaction_id=event.transaction_id,
        )
        await record_operation_log(
            context="everflow_webhook",
            data={
                "referral_code": event.referral_code,
                "transaction_id": event.transaction_id,
                "error": type(exc).__name__,
            },
            is_error=True,
        )
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            error="Database operation failed",
            details=type(exc).__name__,
        )

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=_success_content(outcome, transaction_id=event.transaction_id),
    )
