from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

import structlog

from sweepstakes.db.repo.operation_logs_repo import OperationLogsRepo
from sweepstakes.db.session import SessionLocal

logger = structlog.get_logger(__name__)


def _to_json_value(value: object) -> object:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_to_json_value(item) for item in value]
    return value


async def record_operation_log(
    *,
    context: str,
    data: Mapping[str, object],
    is_error: bool = False,
) -> bool:
    """Appends a row to the operational log in its own transaction.

    Runs outside the caller's transaction so a rolled-back unit of work still
    leaves its trace. Write failures are logged and reported as ``False``.
    """
    payload = _to_json_value(data)
    try:
        async with SessionLocal.begin() as session:
            await OperationLogsRepo.create(
                session,
                context=context,
                data=payload if isinstance(payload, dict) else {"value": payload},
                is_error=is_error,
            )
    except Exception:
        logger.exception("operation_log_write_failed", context=context, is_error=is_error)
        return False
    return True
