from __future__ import annotations

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from sweepstakes.api.routes import everflow_webhook
from sweepstakes.main import app
from sweepstakes.referrals.errors import ReferralCodeNotFoundError
from sweepstakes.referrals.types import (
    ConversionEvent,
    ConversionOutcome,
    EntrySnapshot,
    FanoutResult,
)
from tests.helpers import noop_operation_log

SNAPSHOT = EntrySnapshot(
    id=7,
    email="ana@example.com",
    first_name="Ana",
    last_name="Lopez",
    referral_code="ABCD2345",
    entry_count=1,
    referral_count=3,
    total_entries=4,
)


class StubRecorder:
    def __init__(self, outcome: ConversionOutcome | None = None, error: Exception | None = None) -> None:
        self.outcome = outcome
        self.error = error
        self.events: list[ConversionEvent] = []

    async def __call__(self, event: ConversionEvent) -> ConversionOutcome:
        self.events.append(event)
        if self.error is not None:
            raise self.error
        assert self.outcome is not None
        return self.outcome


def _install(monkeypatch, recorder: StubRecorder) -> None:
    monkeypatch.setattr(everflow_webhook.ReferralConversionService, "record_conversion", recorder)
    monkeypatch.setattr(everflow_webhook, "record_operation_log", noop_operation_log)


def test_post_credits_conversion_and_reports_fanout(monkeypatch) -> None:
    recorder = StubRecorder(
        ConversionOutcome(
            entry=SNAPSHOT,
            idempotent_replay=False,
            fanout=FanoutResult(
                beehiiv_updated=True,
                beehiiv_error=None,
                notification_sent=False,
                notification_error="notification provider is not configured",
            ),
        )
    )
    _install(monkeypatch, recorder)

    response = TestClient(app).post(
        "/webhooks/everflow",
        json={"referral_code": " ABCD2345 ", "transaction_id": "tx-1"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["idempotent_replay"] is False
    assert payload["data"]["total_entries"] == 4
    assert payload["beehiiv_updated"] is True
    assert payload["notification_error"] == "notification provider is not configured"
    assert recorder.events == [ConversionEvent(referral_code="ABCD2345", transaction_id="tx-1")]


def test_get_accepts_everflow_query_aliases(monkeypatch) -> None:
    recorder = StubRecorder(ConversionOutcome(entry=SNAPSHOT, idempotent_replay=True, fanout=None))
    _install(monkeypatch, recorder)

    response = TestClient(app).get("/webhooks/everflow", params={"sub1": "ABCD2345", "tid": "tx-9"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["idempotent_replay"] is True
    assert payload["beehiiv_updated"] is False
    assert payload["notification_sent"] is False
    assert recorder.events[0].transaction_id == "tx-9"


def test_body_values_win_over_query_values(monkeypatch) -> None:
    recorder = StubRecorder(ConversionOutcome(entry=SNAPSHOT, idempotent_replay=True, fanout=None))
    _install(monkeypatch, recorder)

    TestClient(app).post(
        "/webhooks/everflow?referral_code=QUERY2345&transaction_id=query-tx",
        json={"referralCode": "ABCD2345", "transactionId": "body-tx"},
    )

    assert recorder.events == [ConversionEvent(referral_code="ABCD2345", transaction_id="body-tx")]


def test_missing_parameters_return_400(monkeypatch) -> None:
    recorder = StubRecorder()
    _install(monkeypatch, recorder)

    response = TestClient(app).post("/webhooks/everflow", json={"referral_code": "ABCD2345"})

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "Missing required parameters: transaction_id",
    }
    assert recorder.events == []



def test_overlong_transaction_id_returns_400_without_processing(monkeypatch) -> None:
    recorder = StubRecorder()
    _install(monkeypatch, recorder)

    response = TestClient(app).post(
        "/webhooks/everflow",
        json={"referral_code": "ABCD2345", "transaction_id": "t" * 200},
    )

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "Parameters too long: transaction_id (max 128)",
    }
    assert recorder.events == []


def test_overlong_referral_code_returns_400_without_processing(monkeypatch) -> None:
    recorder = StubRecorder()
    _install(monkeypatch, recorder)

    response = TestClient(app).get(
        "/webhooks/everflow",
        params={"sub1": "A" * 17, "tid": "tx-1"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Parameters too long: referral_code (max 16)"
    assert recorder.events == []

def test_invalid_json_returns_400(monkeypatch) -> None:
    _install(monkeypatch, StubRecorder())

    response = TestClient(app).post(
        "/webhooks/everflow",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid JSON payload"


def test_test_only_request_skips_processing(monkeypatch) -> None:
    recorder = StubRecorder()
    _install(monkeypatch, recorder)

    response = TestClient(app).get("/webhooks/everflow", params={"test_only": "1"})

    assert response.status_code == 200
    assert response.json()["test_only"] is True
    assert recorder.events == []


def test_unknown_referral_code_returns_404(monkeypatch) -> None:
    logged: list[dict[str, object]] = []

    async def capture_log(**kwargs: object) -> bool:
        logged.append(kwargs)
        return True

    monkeypatch.setattr(
        everflow_webhook.ReferralConversionService,
        "record_conversion",
        StubRecorder(error=ReferralCodeNotFoundError("ZZZZ2345")),
    )
    monkeypatch.setattr(everflow_webhook, "record_operation_log", capture_log)

    response = TestClient(app).post(
        "/webhooks/everflow",
        json={"referral_code": "ZZZZ2345", "transaction_id": "tx-2"},
    )

    assert response.status_code == 404
    assert response.json()["details"] == {"referral_code": "ZZZZ2345"}
    assert logged[0]["is_error"] is True


def test_database_failure_returns_500(monkeypatch) -> None:
    _install(
        monkeypatch,
        StubRecorder(error=OperationalError("SELECT 1", {}, Exception("connection refused"))),
    )

    response = TestClient(app).post(
        "/webhooks/everflow",
        json={"referral_code": "ABCD2345", "transaction_id": "tx-3"},
    )

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "Database operation failed",
        "details": "OperationalError",
    }
