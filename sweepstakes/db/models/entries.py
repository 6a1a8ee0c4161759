from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from sweepstakes.db.models.base import Base


class Entry(Base):
    __tablename__ = "entries"
    __table_args__ = (
        CheckConstraint("entry_count >= 0", name="ck_entries_entry_count_non_negative"),
        CheckConstraint("referral_count >= 0", name="ck_entries_referral_count_non_negative"),
        CheckConstraint(
            "total_entries = entry_count + referral_count",
            name="ck_entries_total_entries_consistent",
        ),
        Index("idx_entries_referred_by", "referred_by"),
        Index("idx_entries_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(Text, nullable=False)
    last_name: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    referral_code: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    referred_by: Mapped[str | None] = mapped_column(String(16), nullable=True)
    entry_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("1"))
    referral_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    total_entries: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("1"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
