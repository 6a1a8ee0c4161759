from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, SmallInteger, String, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from sweepstakes.db.models.base import Base

AUTOMATION_CONFIG_ID = 1


class MigrationAutomation(Base):
    __tablename__ = "migration_automation"
    __table_args__ = (
        CheckConstraint("id = 1", name="ck_migration_automation_singleton"),
        CheckConstraint("start_hour BETWEEN 0 AND 23", name="ck_migration_automation_start_hour"),
        CheckConstraint("end_hour BETWEEN 0 AND 24", name="ck_migration_automation_end_hour"),
        CheckConstraint("min_batch_size >= 1", name="ck_migration_automation_min_batch"),
        CheckConstraint(
            "max_batch_size >= min_batch_size",
            name="ck_migration_automation_batch_range",
        ),
    )

    id: Mapped[int] = mapped_column(SmallInteger, primary_key=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    daily_total_target: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("1000")
    )
    start_hour: Mapped[int] = mapped_column(SmallInteger, nullable=False, server_default=text("0"))
    end_hour: Mapped[int] = mapped_column(SmallInteger, nullable=False, server_default=text("24"))
    min_batch_size: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("10"))
    max_batch_size: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("100"))
    publication_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_automated_run: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    current_batch_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)
    last_heartbeat: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status_details: Mapped[dict[str, object]] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
