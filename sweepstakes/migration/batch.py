from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID, uuid4

import httpx
import structlog

from sweepstakes.core.config import get_settings
from sweepstakes.db.models.migration_subscribers import MigrationSubscriber
from sweepstakes.db.repo.migration_subscribers_repo import MigrationSubscribersRepo
from sweepstakes.db.session import SessionLocal
from sweepstakes.migration.errors import MigrationValidationError
from sweepstakes.migration.stall_recovery import reset_stalled_subscribers
from sweepstakes.migration.statuses import (
    STATUS_ALREADY_EXISTS,
    STATUS_FAILED,
    STATUS_MIGRATED,
)
from sweepstakes.services.beehiiv import (
    BeehiivClient,
    build_beehiiv_client,
    describe_error_response,
    subscriber_id_from_response,
)
from sweepstakes.services.operation_logs import record_operation_log

logger = structlog.get_logger(__name__)
RATE_LIMIT_BASE_DELAY_SECONDS = 1.0
MIGRATION_UTM_SOURCE = "migration"

ClientFactory = Callable[..., BeehiivClient]


@dataclass(frozen=True, slots=True)
class RecordOutcome:
    status: str
    error_message: str | None = None
    remote_subscriber_id: str | None = None


@dataclass(slots=True)
class BatchResult:
    batch_id: UUID | None
    success: int = 0
    duplicates: int = 0
    failed: int = 0
    total: int = 0
    errors: list[dict[str, object]] = field(default_factory=list)
    stalled_reset: int = 0
    skipped: int = 0

    def results_dict(self) -> dict[str, object]:
        return {
            "success": self.success,
            "duplicates": self.duplicates,
            "failed": self.failed,
            "total": self.total,
            "errors": list(self.errors),
        }


def _retry_after_seconds(response: httpx.Response) -> float | None:
    raw_value = response.headers.get("Retry-After")
    if raw_value is None:
        return None
    try:
        return max(0.0, float(raw_value.strip()))
    except ValueError:
        return None


def rate_limit_delay_seconds(
    *,
    response: httpx.Response,
    attempt: int,
    max_delay_seconds: float,
) -> float:
    delay = _retry_after_seconds(response)
    if delay is None:
        delay = RATE_LIMIT_BASE_DELAY_SECONDS * (2**attempt)
    return min(delay, max_delay_seconds)


def resolve_publication_id(publication_id: str | None) -> str:
    resolved = (publication_id or "").strip()
    if not resolved:
        resolved = str(getattr(get_settings(), "beehiiv_publication_id", "") or "").strip()
    if not resolved:
        raise MigrationValidationError("Publication ID is required")
    return resolved


async def migrate_subscriber(
    client: BeehiivClient,
    subscriber: MigrationSubscriber,
    *,
    max_rate_limit_attempts: int,
    max_backoff_seconds: float,
) -> RecordOutcome:
    """Creates one subscription and maps the response to a terminal status."""
    attempt = 0
    while True:
        try:
            response = await client.create_subscription(
                email=subscriber.email,
                first_name=subscriber.first_name,
                last_name=subscriber.last_name,
                utm_source=MIGRATION_UTM_SOURCE,
                reactivate_existing=False,
            )
        except Exception as exc:
            return RecordOutcome(status=STATUS_FAILED, error_message=str(exc) or type(exc).__name__)

        if response.is_success:
            return RecordOutcome(
                status=STATUS_MIGRATED,
                remote_subscriber_id=subscriber_id_from_response(response),
            )
        if response.status_code == 409:
            return RecordOutcome(status=STATUS_ALREADY_EXISTS)
        if response.status_code == 429 and attempt + 1 < max_rate_limit_attempts:
            delay = rate_limit_delay_seconds(
                response=response,
                attempt=attempt,
                max_delay_seconds=max_backoff_seconds,
            )
            logger.warning(
                "migration_rate_limited",
                subscriber_id=subscriber.id,
                attempt=attempt + 1,
                delay_seconds=delay,
            )
            await asyncio.sleep(delay)
            attempt += 1
            continue
        return RecordOutcome(status=STATUS_FAILED, error_message=describe_error_response(response))


async def migrate_batch(
    *,
    batch_size: int,
    publication_id: str | None = None,
    source_file: str | None = None,
    recover_stalled: bool = True,
    client_factory: ClientFactory = build_beehiiv_client,
) -> BatchResult:
    """Claims up to ``batch_size`` pending subscribers and migrates them one by one.

    The claim stamps every record with a fresh batch id inside one
    ``FOR UPDATE SKIP LOCKED`` update, so concurrent processors never share
    a record. Terminal writes only land while the record is still
    ``in_progress`` under this batch id. Per-record failures are recorded
    on the record and never abort the batch.
    """
    settings = get_settings()
    resolved_publication_id = resolve_publication_id(publication_id)
    if batch_size < 1:
        raise MigrationValidationError("batch size must be positive")

    stalled_reset = await reset_stalled_subscribers() if recover_stalled else 0

    batch_id = uuid4()
    async with SessionLocal.begin() as session:
        claimed = await MigrationSubscribersRepo.claim_pending_batch(
            session,
            batch_id=batch_id,
            limit=batch_size,
            source_file=source_file,
        )
    if not claimed:
        logger.info("migration_batch_empty", source_file=source_file)
        return BatchResult(batch_id=None, stalled_reset=stalled_reset)

    result = BatchResult(batch_id=batch_id, stalled_reset=stalled_reset)
    max_errors = max(0, int(settings.migration_max_batch_errors))
    request_delay_seconds = max(0, int(settings.migration_request_delay_ms)) / 1000
    logger.info("migration_batch_claimed", batch_id=str(batch_id), claimed=len(claimed))

    async with client_factory(publication_id=resolved_publication_id) as client:
        for index, subscriber in enumerate(claimed):
            if index > 0 and request_delay_seconds > 0:
                await asyncio.sleep(request_delay_seconds)

            async with SessionLocal.begin() as session:
                still_claimed = await MigrationSubscribersRepo.touch_claimed(
                    session,
                    subscriber_id=subscriber.id,
                    batch_id=batch_id,
                    now_utc=datetime.now(timezone.utc),
                )
            if not still_claimed:
                logger.warning(
                    "migration_record_reclaimed_before_send",
                    batch_id=str(batch_id),
                    subscriber_id=subscriber.id,
                )
                result.skipped += 1
                continue

            outcome = await migrate_subscriber(
                client,
                subscriber,
                max_rate_limit_attempts=max(1, int(settings.migration_rate_limit_max_attempts)),
                max_backoff_seconds=float(settings.migration_rate_limit_backoff_max_seconds),
            )
            async with SessionLocal.begin() as session:
                written = await MigrationSubscribersRepo.finish_claimed(
                    session,
                    subscriber_id=subscriber.id,
                    batch_id=batch_id,
                    status=outcome.status,
                    now_utc=datetime.now(timezone.utc),
                    error_message=outcome.error_message,
                    remote_subscriber_id=outcome.remote_subscriber_id,
                )
            if not written:
                logger.warning(
                    "migration_record_reclaimed_before_finish",
                    batch_id=str(batch_id),
                    subscriber_id=subscriber.id,
                )

            result.total += 1
            if outcome.status == STATUS_MIGRATED:
                result.success += 1
            elif outcome.status == STATUS_ALREADY_EXISTS:
                result.duplicates += 1
            else:
                result.failed += 1
                if len(result.errors) < max_errors:
                    result.errors.append(
                        {
                            "id": subscriber.id,
                            "email": subscriber.email,
                            "error": outcome.error_message,
                        }
                    )

    log_data = {"batch_id": str(batch_id), "skipped": result.skipped, **result.results_dict()}
    log_data.pop("errors")
    logger.info("migration_batch_finished", **log_data)
    await record_operation_log(
        context="migration_batch",
        data={**log_data, "errors": result.errors},
        is_error=result.failed > 0,
    )
    return result
