from __future__ import annotations

from types import SimpleNamespace

import pytest

from sweepstakes.referrals import signup
from sweepstakes.referrals.errors import ReferralValidationError
from tests.helpers import DummySessionLocal


class FakeEntries:
    def __init__(self) -> None:
        self.by_email: dict[str, object] = {}
        self.by_code: dict[str, object] = {}
        self.taken_codes: set[str] = set()
        self.created: list[object] = []

    async def get_by_email(self, session, *, email):
        return self.by_email.get(email)

    async def get_by_referral_code(self, session, *, referral_code):
        return self.by_code.get(referral_code)

    async def referral_code_exists(self, session, *, referral_code):
        return referral_code in self.taken_codes

    async def create(self, session, *, entry):
        entry.id = len(self.created) + 1
        self.created.append(entry)
        return entry


@pytest.fixture
def entries(monkeypatch) -> FakeEntries:
    fake = FakeEntries()
    monkeypatch.setattr(signup, "SessionLocal", DummySessionLocal())
    monkeypatch.setattr(signup, "is_beehiiv_configured", lambda: False)
    for name in ("get_by_email", "get_by_referral_code", "referral_code_exists", "create"):
        monkeypatch.setattr(signup.EntriesRepo, name, getattr(fake, name))
    return fake


def test_normalize_email() -> None:
    assert signup.normalize_email("  Ana@Example.COM ") == "ana@example.com"
    assert signup.normalize_email("no-at-sign") is None
    assert signup.normalize_email(None) is None


@pytest.mark.asyncio
async def test_new_entry_starts_with_one_entry(entries: FakeEntries, monkeypatch) -> None:
    codes = iter(["TAKEN234", "FRESH234"])
    entries.taken_codes.add("TAKEN234")
    entries.by_code["ABCD2345"] = SimpleNamespace(referral_code="ABCD2345")
    monkeypatch.setattr(signup, "generate_referral_code", lambda: next(codes))

    result = await signup.create_entry(
        email="Ben@Example.com",
        first_name=" Ben ",
        referred_by="ABCD2345",
    )

    assert result.created is True
    assert result.beehiiv_subscribed is False
    assert result.entry.email == "ben@example.com"
    assert result.entry.first_name == "Ben"
    assert result.entry.referral_code == "FRESH234"
    assert (result.entry.entry_count, result.entry.referral_count, result.entry.total_entries) == (1, 0, 1)
    assert entries.created[0].referred_by == "ABCD2345"


@pytest.mark.asyncio
async def test_unknown_referrer_is_dropped(entries: FakeEntries) -> None:
    await signup.create_entry(email="cy@example.com", first_name="Cy", referred_by="GHOST234")

    assert entries.created[0].referred_by is None


@pytest.mark.asyncio
async def test_existing_email_returns_existing_entry(entries: FakeEntries) -> None:
    entries.by_email["ana@example.com"] = SimpleNamespace(
        id=9,
        email="ana@example.com",
        first_name="Ana",
        last_name="",
        referral_code="ABCD2345",
        entry_count=1,
        referral_count=4,
        total_entries=5,
    )

    result = await signup.create_entry(email="ANA@example.com", first_name="Ana")

    assert result.created is False
    assert result.entry.total_entries == 5
    assert entries.created == []


@pytest.mark.asyncio
async def test_invalid_input_is_rejected(entries: FakeEntries) -> None:
    with pytest.raises(ReferralValidationError, match="valid email"):
        await signup.create_entry(email="nope", first_name="Ana")
    with pytest.raises(ReferralValidationError, match="first_name"):
        await signup.create_entry(email="ana@example.com", first_name="  ")


@pytest.mark.asyncio
async def test_referral_code_allocation_gives_up_after_collisions(entries: FakeEntries, monkeypatch) -> None:
    entries.taken_codes.add("SAME2345")
    monkeypatch.setattr(signup, "generate_referral_code", lambda: "SAME2345")

    with pytest.raises(RuntimeError, match="unique referral code"):
        await signup.create_entry(email="dee@example.com", first_name="Dee")
