from __future__ import annotations

import asyncio
import csv
import io
import json
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

import structlog

from sweepstakes.core.config import get_settings
from sweepstakes.db.repo.migration_subscribers_repo import MigrationSubscribersRepo
from sweepstakes.db.session import SessionLocal
from sweepstakes.migration.errors import MigrationValidationError
from sweepstakes.services.operation_logs import record_operation_log

logger = structlog.get_logger(__name__)
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "email": ("email", "Email", "EMAIL", "email_address", "Email Address"),
    "first_name": ("first_name", "firstName", "First Name", "FirstName", "first name"),
    "last_name": ("last_name", "lastName", "Last Name", "LastName", "last name"),
}


@dataclass(frozen=True, slots=True)
class ImportResult:
    inserted: int
    duplicates: int
    invalid: int
    total: int

    def as_dict(self) -> dict[str, int]:
        return {
            "inserted": self.inserted,
            "duplicates": self.duplicates,
            "invalid": self.invalid,
            "total": self.total,
        }


def _pick(record: Mapping[str, object], field: str) -> str:
    for alias in FIELD_ALIASES[field]:
        value = record.get(alias)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def normalize_subscriber(record: Mapping[str, object]) -> dict[str, str] | None:
    email = _pick(record, "email").lower()
    if not EMAIL_RE.match(email):
        return None
    return {
        "email": email,
        "first_name": _pick(record, "first_name"),
        "last_name": _pick(record, "last_name"),
    }


def parse_csv(content: str) -> list[dict[str, str]]:
    reader = csv.DictReader(io.StringIO(content.lstrip("\ufeff")))
    return [
        {key.strip(): (value or "") for key, value in row.items() if key is not None}
        for row in reader
    ]


def parse_json(content: str) -> list[dict[str, object]]:
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as exc:
        raise MigrationValidationError(f"invalid JSON import file: {exc.msg}") from exc

    if isinstance(parsed, dict):
        parsed = parsed.get("subscribers", parsed.get("data"))
    if not isinstance(parsed, list):
        raise MigrationValidationError("JSON import must contain a list of subscribers")
    return [record for record in parsed if isinstance(record, dict)]


def parse_import_file(*, file_name: str, content: str) -> list[dict[str, object]]:
    lowered = file_name.lower()
    if lowered.endswith(".json"):
        return parse_json(content)
    if lowered.endswith(".csv"):
        return list(parse_csv(content))
    raise MigrationValidationError(f"unsupported import file type: {file_name}")


def _chunks(rows: list[dict[str, str]], size: int) -> Iterable[list[dict[str, str]]]:
    for start in range(0, len(rows), size):
        yield rows[start : start + size]


async def import_subscribers(
    records: list[Mapping[str, object]],
    *,
    source_file: str | None = None,
) -> ImportResult:
    """Queues valid subscriber records as ``pending``.

    Invalid emails are dropped and counted. Emails repeated within the
    input or already queued count as duplicates. Inserts run in fixed-size
    chunks, each in its own transaction, spaced by a fixed delay.
    """
    settings = get_settings()
    chunk_size = max(1, int(settings.migration_import_chunk_size))
    chunk_delay_seconds = max(0, int(settings.migration_import_chunk_delay_ms)) / 1000

    valid_rows: list[dict[str, str]] = []
    seen_emails: set[str] = set()
    invalid = 0
    for record in records:
        normalized = normalize_subscriber(record)
        if normalized is None:
            invalid += 1
            continue
        if normalized["email"] in seen_emails:
            continue
        seen_emails.add(normalized["email"])
        valid_rows.append(normalized)

    inserted = 0
    for index, chunk in enumerate(_chunks(valid_rows, chunk_size)):
        if index > 0 and chunk_delay_seconds > 0:
            await asyncio.sleep(chunk_delay_seconds)
        async with SessionLocal.begin() as session:
            inserted += await MigrationSubscribersRepo.insert_pending_many(
                session,
                rows=chunk,
                source_file=source_file,
            )

    total = len(records)
    result = ImportResult(
        inserted=inserted,
        duplicates=total - invalid - inserted,
        invalid=invalid,
        total=total,
    )
    logger.info("migration_import_finished", source_file=source_file, **result.as_dict())
    await record_operation_log(
        context="migration_import",
        data={"source_file": source_file, **result.as_dict()},
    )
    return result
