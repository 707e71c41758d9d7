"""initial schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:01
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "email_archives",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("broker", sa.String(length=255), nullable=True),
        sa.Column("from_header", sa.String(length=512), nullable=True),
        sa.Column("subject", sa.Text(), nullable=True),
        sa.Column("snippet", sa.Text(), nullable=True),
        sa.Column("body_preview", sa.Text(), nullable=True),
        sa.Column("date_header", sa.String(length=128), nullable=True),
        sa.Column("internal_date_ms", sa.BigInteger(), nullable=True),
        sa.Column("ingested_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_email_archives_user_id", "email_archives", ["user_id"], unique=False)
    op.create_index("ix_email_archives_ingested_at", "email_archives", ["ingested_at"], unique=False)

    op.create_table(
        "extraction_runs",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("trigger", sa.String(length=64), nullable=False),
        sa.Column("adapter_source", sa.String(length=128), nullable=True),
        sa.Column("broker_filter", sa.String(length=255), nullable=True),
        sa.Column("requested_archive_ids_json", sa.JSON(), nullable=True),
        sa.Column("requested_limit", sa.Integer(), nullable=False),
        sa.Column("include_already_extracted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("archive_ids_json", sa.JSON(), nullable=False),
        sa.Column("candidate_archives", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("processed_archives", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("extracted_reports", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("skipped_archives", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("failed_archives", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("duplicate_reports", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("failure_samples_json", sa.JSON(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("abort_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("abort_reason", sa.Text(), nullable=True),
        sa.Column("aborted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_extraction_runs_user_id", "extraction_runs", ["user_id"], unique=False)
    op.create_index("ix_extraction_runs_status", "extraction_runs", ["status"], unique=False)
    op.create_index("ix_extraction_runs_created_at", "extraction_runs", ["created_at"], unique=False)

    op.create_table(
        "extracted_reports",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("run_id", sa.String(length=64), nullable=False),
        sa.Column("archive_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("broker", sa.String(length=255), nullable=False),
        sa.Column("company_canonical", sa.String(length=255), nullable=False),
        sa.Column("company_raw", sa.String(length=255), nullable=False),
        sa.Column("report_type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("key_points_json", sa.JSON(), nullable=False),
        sa.Column("key_points_text", sa.Text(), nullable=False, server_default=""),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False, server_default=sa.text("0.25")),
        sa.Column("duplicate_key", sa.String(length=128), nullable=False),
        sa.Column("duplicate_of_report_id", sa.String(length=64), nullable=True),
        sa.Column("dedupe_method", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["duplicate_of_report_id"], ["extracted_reports.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_extracted_reports_run_id", "extracted_reports", ["run_id"], unique=False)
    op.create_index("ix_extracted_reports_user_id", "extracted_reports", ["user_id"], unique=False)
    op.create_index("ix_extracted_reports_published_at", "extracted_reports", ["published_at"], unique=False)
    op.create_index("ix_extracted_reports_created_at", "extracted_reports", ["created_at"], unique=False)
    op.create_index(
        "ix_extracted_reports_duplicate_of_report_id",
        "extracted_reports",
        ["duplicate_of_report_id"],
        unique=False,
    )
    op.create_index("ix_extracted_reports_user_archive", "extracted_reports", ["user_id", "archive_id"], unique=False)
    op.create_index(
        "ix_extracted_reports_user_duplicate_key",
        "extracted_reports",
        ["user_id", "duplicate_key"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_extracted_reports_user_duplicate_key", table_name="extracted_reports")
    op.drop_index("ix_extracted_reports_user_archive", table_name="extracted_reports")
    op.drop_index("ix_extracted_reports_duplicate_of_report_id", table_name="extracted_reports")
    op.drop_index("ix_extracted_reports_created_at", table_name="extracted_reports")
    op.drop_index("ix_extracted_reports_published_at", table_name="extracted_reports")
    op.drop_index("ix_extracted_reports_user_id", table_name="extracted_reports")
    op.drop_index("ix_extracted_reports_run_id", table_name="extracted_reports")
    op.drop_table("extracted_reports")

    op.drop_index("ix_extraction_runs_created_at", table_name="extraction_runs")
    op.drop_index("ix_extraction_runs_status", table_name="extraction_runs")
    op.drop_index("ix_extraction_runs_user_id", table_name="extraction_runs")
    op.drop_table("extraction_runs")

    op.drop_index("ix_email_archives_ingested_at", table_name="email_archives")
    op.drop_index("ix_email_archives_user_id", table_name="email_archives")
    op.drop_table("email_archives")
