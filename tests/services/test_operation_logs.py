from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

import pytest

from sweepstakes.services import operation_logs
from tests.helpers import DummySessionLocal


class BrokenSessionLocal:
    def begin(self):
        raise ConnectionError("database unreachable")


@pytest.mark.asyncio
async def test_record_operation_log_serializes_payload(monkeypatch) -> None:
    written: list[dict[str, object]] = []

    async def fake_create(session, *, context, data, is_error):
        written.append({"context": context, "data": data, "is_error": is_error})

    monkeypatch.setattr(operation_logs, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr(operation_logs.OperationLogsRepo, "create", fake_create)

    ok = await operation_logs.record_operation_log(
        context="migration_batch",
        data={
            "batch_id": UUID("6f1c1f0e-8a57-4c55-9d3f-6a1b9f2f4c11"),
            "at": datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc),
            "emails": ("a@example.com",),
        },
        is_error=True,
    )

    assert ok is True
    assert written == [
        {
            "context": "migration_batch",
            "data": {
                "batch_id": "6f1c1f0e-8a57-4c55-9d3f-6a1b9f2f4c11",
                "at": "2026-10-18T09:30:00+00:00",
                "emails": ["a@example.com"],
            },
            "is_error": True,
        }
    ]


@pytest.mark.asyncio
async def test_record_operation_log_never_raises(monkeypatch) -> None:
    monkeypatch.setattr(operation_logs, "SessionLocal", BrokenSessionLocal())

    ok = await operation_logs.record_operation_log(context="referral_fanout", data={"x": 1})

    assert ok is False
