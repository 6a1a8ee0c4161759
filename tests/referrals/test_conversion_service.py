from __future__ import annotations

from types import SimpleNamespace

import pytest

from sweepstakes.referrals import service as service_module
from sweepstakes.referrals.errors import ReferralCodeNotFoundError, ReferralValidationError
from sweepstakes.referrals.service import ReferralConversionService
from sweepstakes.referrals.types import ConversionEvent, EntrySnapshot, FanoutResult
from tests.helpers import DummySessionLocal, noop_operation_log


def _entry(*, referral_count: int) -> SimpleNamespace:
    return SimpleNamespace(
        id=1,
        email="ana@example.com",
        first_name="Ana",
        last_name="Lopez",
        referral_code="ABCD2345",
        entry_count=1,
        referral_count=referral_count,
        total_entries=1 + referral_count,
    )


class FakeStore:
    """In-memory stand-in for the entries table and the conversion ledger."""

    def __init__(self) -> None:
        self.entries = {"ABCD2345": _entry(referral_count=0)}
        self.ledger: set[str] = set()

    async def get_by_referral_code(self, session, *, referral_code):
        return self.entries.get(referral_code)

    async def try_record(self, session, *, transaction_id, referral_code):
        if transaction_id in self.ledger:
            return False
        self.ledger.add(transaction_id)
        return True

    async def increment_referral_count(self, session, *, referral_code):
        current = self.entries.get(referral_code)
        if current is None:
            return None
        self.entries[referral_code] = _entry(referral_count=current.referral_count + 1)
        return self.entries[referral_code]


@pytest.fixture
def store(monkeypatch) -> FakeStore:
    fake = FakeStore()
    monkeypatch.setattr(service_module, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr(service_module, "record_operation_log", noop_operation_log)
    monkeypatch.setattr(service_module.EntriesRepo, "get_by_referral_code", fake.get_by_referral_code)
    monkeypatch.setattr(
        service_module.EntriesRepo,
        "increment_referral_count",
        fake.increment_referral_count,
    )
    monkeypatch.setattr(service_module.ReferralConversionsRepo, "try_record", fake.try_record)
    return fake


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls: list[EntrySnapshot] = []

    async def __call__(self, entry: EntrySnapshot) -> FanoutResult:
        self.calls.append(entry)
        return FanoutResult(
            beehiiv_updated=True,
            beehiiv_error=None,
            notification_sent=True,
            notification_error=None,
        )


def test_build_event_trims_and_reports_missing_fields() -> None:
    event = ReferralConversionService.build_event(referral_code=" ABCD2345 ", transaction_id=" tx ")
    assert event == ConversionEvent(referral_code="ABCD2345", transaction_id="tx")

    with pytest.raises(ReferralValidationError, match="referral_code, transaction_id"):
        ReferralConversionService.build_event(referral_code="", transaction_id=None)


def test_build_event_enforces_column_widths() -> None:
    event = ReferralConversionService.build_event(referral_code="A" * 16, transaction_id="t" * 128)
    assert len(event.transaction_id) == 128

    with pytest.raises(ReferralValidationError, match=r"transaction_id \(max 128\)"):
        ReferralConversionService.build_event(referral_code="ABCD2345", transaction_id="t" * 129)
    with pytest.raises(ReferralValidationError, match=r"referral_code \(max 16\)"):
        ReferralConversionService.build_event(referral_code="A" * 17, transaction_id="tx")


@pytest.mark.asyncio
async def test_first_conversion_credits_entry_and_fans_out(store: FakeStore) -> None:
    notifier = RecordingNotifier()

    outcome = await ReferralConversionService.record_conversion(
        ConversionEvent(referral_code="ABCD2345", transaction_id="tx-1"),
        notifier=notifier,
    )

    assert outcome.idempotent_replay is False
    assert outcome.entry.referral_count == 1
    assert outcome.entry.total_entries == 2
    assert outcome.fanout is not None and outcome.fanout.beehiiv_updated is True
    assert [call.total_entries for call in notifier.calls] == [2]


@pytest.mark.asyncio
async def test_replayed_transaction_changes_nothing(store: FakeStore) -> None:
    notifier = RecordingNotifier()
    event = ConversionEvent(referral_code="ABCD2345", transaction_id="tx-1")

    first = await ReferralConversionService.record_conversion(event, notifier=notifier)
    replay = await ReferralConversionService.record_conversion(event, notifier=notifier)

    assert replay.idempotent_replay is True
    assert replay.fanout is None
    assert replay.entry == first.entry
    assert len(notifier.calls) == 1


@pytest.mark.asyncio
async def test_distinct_transactions_each_credit_once(store: FakeStore) -> None:
    notifier = RecordingNotifier()
    for transaction_id in ("tx-1", "tx-2", "tx-3"):
        await ReferralConversionService.record_conversion(
            ConversionEvent(referral_code="ABCD2345", transaction_id=transaction_id),
            notifier=notifier,
        )

    assert store.entries["ABCD2345"].referral_count == 3
    assert store.entries["ABCD2345"].total_entries == 4


@pytest.mark.asyncio
async def test_unknown_code_raises_without_touching_ledger(store: FakeStore) -> None:
    with pytest.raises(ReferralCodeNotFoundError) as exc_info:
        await ReferralConversionService.record_conversion(
            ConversionEvent(referral_code="NOPE2345", transaction_id="tx-9"),
            notifier=RecordingNotifier(),
        )

    assert exc_info.value.referral_code == "NOPE2345"
    assert store.ledger == set()
