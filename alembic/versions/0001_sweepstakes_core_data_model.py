"""sweepstakes_core_data_model

Revision ID: 0001_sweepstakes_core
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001_sweepstakes_core"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "entries",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("referral_code", sa.String(16), nullable=False),
        sa.Column("referred_by", sa.String(16), nullable=True),
        sa.Column("entry_count", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("referral_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_entries", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("entry_count >= 0", name="ck_entries_entry_count_non_negative"),
        sa.CheckConstraint("referral_count >= 0", name="ck_entries_referral_count_non_negative"),
        sa.CheckConstraint(
            "total_entries = entry_count + referral_count",
            name="ck_entries_total_entries_consistent",
        ),
        sa.UniqueConstraint("email", name="uq_entries_email"),
        sa.UniqueConstraint("referral_code", name="uq_entries_referral_code"),
    )
    op.create_index("idx_entries_referred_by", "entries", ["referred_by"])
    op.create_index("idx_entries_created_at", "entries", ["created_at"])

    op.create_table(
        "referral_conversions",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("transaction_id", sa.String(128), nullable=False),
        sa.Column("referral_code", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["referral_code"], ["entries.referral_code"]),
        sa.UniqueConstraint("transaction_id", name="uq_referral_conversions_transaction_id"),
    )
    op.create_index(
        "idx_referral_conversions_code_created",
        "referral_conversions",
        ["referral_code", "created_at"],
    )

    op.create_table(
        "migration_subscribers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("last_name", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("migration_batch", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("remote_subscriber_id", sa.String(64), nullable=True),
        sa.Column("source_file", sa.String(255), nullable=True),
        sa.Column("migrated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "status IN ('pending','in_progress','migrated','failed','already_exists')",
            name="ck_migration_subscribers_status",
        ),
        sa.UniqueConstraint("email", name="uq_migration_subscribers_email"),
    )
    op.create_index(
        "idx_migration_subscribers_status_created",
        "migration_subscribers",
        ["status", "created_at", "id"],
    )
    op.create_index("idx_migration_subscribers_batch", "migration_subscribers", ["migration_batch"])
    op.create_index(
        "idx_migration_subscribers_in_progress_updated",
        "migration_subscribers",
        ["updated_at"],
        postgresql_where=sa.text("status = 'in_progress'"),
    )

    op.create_table(
        "migration_automation",
        sa.Column("id", sa.SmallInteger(), primary_key=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("daily_total_target", sa.Integer(), nullable=False, server_default=sa.text("1000")),
        sa.Column("start_hour", sa.SmallInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("end_hour", sa.SmallInteger(), nullable=False, server_default=sa.text("24")),
        sa.Column("min_batch_size", sa.Integer(), nullable=False, server_default=sa.text("10")),
        sa.Column("max_batch_size", sa.Integer(), nullable=False, server_default=sa.text("100")),
        sa.Column("publication_id", sa.String(64), nullable=True),
        sa.Column("last_automated_run", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_batch_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("last_heartbeat", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "status_details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("id = 1", name="ck_migration_automation_singleton"),
        sa.CheckConstraint("start_hour BETWEEN 0 AND 23", name="ck_migration_automation_start_hour"),
        sa.CheckConstraint("end_hour BETWEEN 0 AND 24", name="ck_migration_automation_end_hour"),
        sa.CheckConstraint("min_batch_size >= 1", name="ck_migration_automation_min_batch"),
        sa.CheckConstraint(
            "max_batch_size >= min_batch_size",
            name="ck_migration_automation_batch_range",
        ),
    )
    op.execute("INSERT INTO migration_automation (id) VALUES (1) ON CONFLICT (id) DO NOTHING")

    op.create_table(
        "operation_logs",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("context", sa.String(64), nullable=False),
        sa.Column("data", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("is_error", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_operation_logs_context_created", "operation_logs", ["context", "created_at"])
    op.create_index(
        "idx_operation_logs_errors_created",
        "operation_logs",
        ["created_at"],
        postgresql_where=sa.text("is_error"),
    )


def downgrade() -> None:
    op.drop_index("idx_operation_logs_errors_created", table_name="operation_logs")
    op.drop_index("idx_operation_logs_context_created", table_name="operation_logs")
    op.drop_table("operation_logs")

    op.drop_table("migration_automation")

    op.drop_index("idx_migration_subscribers_in_progress_updated", table_name="migration_subscribers")
    op.drop_index("idx_migration_subscribers_batch", table_name="migration_subscribers")
    op.drop_index("idx_migration_subscribers_status_created", table_name="migration_subscribers")
    op.drop_table("migration_subscribers")

    op.drop_index("idx_referral_conversions_code_created", table_name="referral_conversions")
    op.drop_table("referral_conversions")

    op.drop_index("idx_entries_created_at", table_name="entries")
    op.drop_index("idx_entries_referred_by", table_name="entries")
    op.drop_table("entries")
