from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sweepstakes.db.models.entries import Entry


@dataclass(frozen=True, slots=True)
class ConversionEvent:
    referral_code: str
    transaction_id: str


@dataclass(frozen=True, slots=True)
class EntrySnapshot:
    id: int
    email: str
    first_name: str
    last_name: str
    referral_code: str
    entry_count: int
    referral_count: int
    total_entries: int

    @classmethod
    def from_entry(cls, entry: Entry) -> EntrySnapshot:
        return cls(
            id=int(entry.id),
            email=entry.email,
            first_name=entry.first_name,
            last_name=entry.last_name,
            referral_code=entry.referral_code,
            entry_count=int(entry.entry_count),
            referral_count=int(entry.referral_count),
            total_entries=int(entry.total_entries),
        )

    def as_public_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "referral_count": self.referral_count,
            "total_entries": self.total_entries,
        }


@dataclass(frozen=True, slots=True)
class FanoutResult:
    beehiiv_updated: bool
    beehiiv_error: str | None
    notification_sent: bool
    notification_error: str | None


@dataclass(frozen=True, slots=True)
class ConversionOutcome:
    entry: EntrySnapshot
    idempotent_replay: bool
    fanout: FanoutResult | None
