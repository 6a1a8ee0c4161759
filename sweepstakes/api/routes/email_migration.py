from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Annotated, Any, Literal, Union, get_args

import structlog
from fastapi import APIRouter, Body, Depends, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy.exc import SQLAlchemyError

from sweepstakes.db.repo.migration_subscribers_repo import MigrationSubscribersRepo
from sweepstakes.db.session import SessionLocal
from sweepstakes.migration.automation import load_automation_config, update_automation_config
from sweepstakes.migration.batch import BatchResult, migrate_batch, resolve_publication_id
from sweepstakes.migration.errors import MigrationValidationError
from sweepstakes.migration.importer import import_subscribers, parse_import_file
from sweepstakes.migration.statuses import STATUS_FAILED, STATUS_IN_PROGRESS
from sweepstakes.services.internal_auth import require_internal_access
from sweepstakes.services.operation_logs import record_operation_log

router = APIRouter(tags=["internal", "migration"], dependencies=[Depends(require_internal_access)])
logger = structlog.get_logger(__name__)
MAX_IMPORT_RECORDS = 50_000
LATEST_BATCHES_LIMIT = 10


class _Command(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ImportCommand(_Command):
    action: Literal["import"]
    subscribers: list[dict[str, Any]] = Field(default_factory=list, max_length=MAX_IMPORT_RECORDS)
    content: str | None = None
    file_name: str | None = Field(default=None, max_length=255, alias="fileName")

    @model_validator(mode="after")
    def _content_needs_file_name(self) -> ImportCommand:
        if self.content is not None and not self.file_name:
            raise ValueError("fileName is required when content is provided")
        return self


class MigrateBatchCommand(_Command):
    action: Literal["migrate-batch"]
    batch_size: int = Field(default=10, ge=1, le=1000, alias="batchSize")
    publication_id: str | None = Field(default=None, max_length=64, alias="publicationId")
    file_name: str | None = Field(default=None, max_length=255, alias="fileName")


class RetryFailedCommand(_Command):
    action: Literal["retry-failed"]
    batch_size: int = Field(default=10, ge=1, le=1000, alias="batchSize")
    publication_id: str | None = Field(default=None, max_length=64, alias="publicationId")


class ResetInProgressCommand(_Command):
    action: Literal["reset-in-progress"]


class ResetFailedCommand(_Command):
    action: Literal["reset-failed"]


class ClearQueueCommand(_Command):
    action: Literal["clear-queue"]
    status: Literal["pending", "failed"]


class StatsCommand(_Command):
    action: Literal["stats"]


class ToggleAutomationCommand(_Command):
    action: Literal["toggle-automation"]
    enabled: bool


class AutomationConfigCommand(_Command):
    action: Literal["automation-config"]
    enabled: bool | None = None
    daily_total_target: int | None = Field(default=None, ge=0, alias="dailyTotalTarget")
    start_hour: int | None = Field(default=None, ge=0, le=23, alias="startHour")
    end_hour: int | None = Field(default=None, ge=0, le=24, alias="endHour")
    min_batch_size: int | None = Field(default=None, ge=1, le=1000, alias="minBatchSize")
    max_batch_size: int | None = Field(default=None, ge=1, le=1000, alias="maxBatchSize")
    publication_id: str | None = Field(default=None, max_length=64, alias="publicationId")

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude={"action"}, exclude_none=True)


MigrationCommand = Annotated[
    Union[
        ImportCommand,
        MigrateBatchCommand,
        RetryFailedCommand,
        ResetInProgressCommand,
        ResetFailedCommand,
        ClearQueueCommand,
        StatsCommand,
        ToggleAutomationCommand,
        AutomationConfigCommand,
    ],
    Field(discriminator="action"),
]
CommandHandler = Callable[[Any], Awaitable[dict[str, Any]]]


def _batch_payload(result: BatchResult) -> dict[str, Any]:
    return {
        "batchId": str(result.batch_id) if result.batch_id else None,
        "results": result.results_dict(),
        "stalledReset": result.stalled_reset,
    }


async def _handle_import(command: ImportCommand) -> dict[str, Any]:
    records: list[dict[str, Any]] = list(command.subscribers)
    if command.content is not None and command.file_name:
        records.extend(parse_import_file(file_name=command.file_name, content=command.content))
    result = await import_subscribers(records, source_file=command.file_name)
    return {"success": True, **result.as_dict()}


async def _handle_migrate_batch(command: MigrateBatchCommand) -> dict[str, Any]:
    result = await migrate_batch(
        batch_size=command.batch_size,
        publication_id=command.publication_id,
        source_file=command.file_name,
    )
    return _batch_payload(result)


async def _handle_retry_failed(command: RetryFailedCommand) -> dict[str, Any]:
    publication_id = resolve_publication_id(command.publication_id)
    async with SessionLocal.begin() as session:
        reset_count = await MigrationSubscribersRepo.reset_to_pending(
            session,
            from_status=STATUS_FAILED,
        )
    if reset_count == 0:
        return {"success": True, "resetCount": 0, "message": "No failed records to retry"}

    result = await migrate_batch(batch_size=command.batch_size, publication_id=publication_id)
    return {"success": True, "resetCount": reset_count, **_batch_payload(result)}


async def _reset(from_status: str) -> dict[str, Any]:
    async with SessionLocal.begin() as session:
        count = await MigrationSubscribersRepo.reset_to_pending(session, from_status=from_status)
    await record_operation_log(
        context="migration_reset",
        data={"from_status": from_status, "count": count},
    )
    return {"success": True, "count": count}


async def _handle_reset_in_progress(command: ResetInProgressCommand) -> dict[str, Any]:
    return await _reset(STATUS_IN_PROGRESS)


async def _handle_reset_failed(command: ResetFailedCommand) -> dict[str, Any]:
    return await _reset(STATUS_FAILED)


async def _handle_clear_queue(command: ClearQueueCommand) -> dict[str, Any]:
    async with SessionLocal.begin() as session:
        count = await MigrationSubscribersRepo.delete_by_status(session, status=command.status)
    logger.warning("migration_queue_cleared", status=command.status, count=count)
    await record_operation_log(
        context="migration_clear_queue",
        data={"status": command.status, "count": count},
    )
    return {"success": True, "count": count}


async def _handle_stats(command: StatsCommand) -> dict[str, Any]:
    async with SessionLocal.begin() as session:
        counts = await MigrationSubscribersRepo.count_by_status(session)
        latest_batches = await MigrationSubscribersRepo.list_latest_batches(
            session,
            limit=LATEST_BATCHES_LIMIT,
        )
    automation = await load_automation_config()
    return {
        "counts": counts,
        "total": sum(counts.values()),
        "latest_batches": latest_batches,
        "automation": automation.as_dict(),
    }


async def _handle_toggle_automation(command: ToggleAutomationCommand) -> dict[str, Any]:
    config = await update_automation_config(enabled=command.enabled)
    logger.info("migration_automation_toggled", enabled=config.enabled)
    await record_operation_log(
        context="migration_automation_config",
        data={"enabled": config.enabled},
    )
    return {"success": True, "enabled": config.enabled}


async def _handle_automation_config(command: AutomationConfigCommand) -> dict[str, Any]:
    changes = command.changes()
    current = await load_automation_config()
    min_batch_size = int(changes.get("min_batch_size", current.min_batch_size))
    max_batch_size = int(changes.get("max_batch_size", current.max_batch_size))
    if max_batch_size < min_batch_size:
        raise MigrationValidationError("maxBatchSize must be greater than or equal to minBatchSize")

    config = await update_automation_config(**changes) if changes else current
    await record_operation_log(context="migration_automation_config", data=changes)
    return {"success": True, "config": config.as_dict()}


COMMAND_HANDLERS: dict[type[BaseModel], CommandHandler] = {
    ImportCommand: _handle_import,
    MigrateBatchCommand: _handle_migrate_batch,
    RetryFailedCommand: _handle_retry_failed,
    ResetInProgressCommand: _handle_reset_in_progress,
    ResetFailedCommand: _handle_reset_failed,
    ClearQueueCommand: _handle_clear_queue,
    StatsCommand: _handle_stats,
    ToggleAutomationCommand: _handle_toggle_automation,
    AutomationConfigCommand: _handle_automation_config,
}

_unhandled_commands = set(get_args(get_args(MigrationCommand)[0])) - set(COMMAND_HANDLERS)
if _unhandled_commands:
    raise RuntimeError(
        "migration commands without handler: "
        + ", ".join(sorted(command.__name__ for command in _unhandled_commands))
    )


@router.post("/internal/migration")
async def run_migration_command(command: Annotated[MigrationCommand, Body()]) -> JSONResponse:
    handler = COMMAND_HANDLERS[type(command)]
    try:
        content = await handler(command)
    except MigrationValidationError as exc:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": str(exc)},
        )
    except SQLAlchemyError as exc:
        logger.exception("migration_command_database_failed", action=command.action)
        await record_operation_log(
            context="migration_command",
            data={"action": command.action, "error": type(exc).__name__},
            is_error=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": "Database operation failed",
                "details": type(exc).__name__,
            },
        )
    return JSONResponse(status_code=status.HTTP_200_OK, content=jsonable_encoder(content))
