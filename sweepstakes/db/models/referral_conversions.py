from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from sweepstakes.db.models.base import Base


class ReferralConversion(Base):
    __tablename__ = "referral_conversions"
    __table_args__ = (Index("idx_referral_conversions_code_created", "referral_code", "created_at"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    transaction_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    referral_code: Mapped[str] = mapped_column(
        String(16),
        ForeignKey("entries.referral_code"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
