"""create certification batch upload, audit log and error tables

Revision ID: 20261001_0002
Revises: 20261001_0001
Create Date: 2026-10-01 09:30:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261001_0002"
down_revision = "20261001_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "certification_batch_uploads",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("filename", sa.String(length=255), nullable=False),
        sa.Column("uploader_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("source_type", sa.String(length=32), nullable=False),
        sa.Column("storage_key", sa.String(length=1024), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("num_rows", sa.Integer(), nullable=False),
        sa.Column("num_rows_processed", sa.Integer(), nullable=False),
        sa.Column("num_rows_succeeded", sa.Integer(), nullable=False),
        sa.Column("num_rows_errored", sa.Integer(), nullable=False),
        sa.Column("results", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("num_rows >= 0", name="ck_batch_uploads_num_rows"),
        sa.CheckConstraint(
            "num_rows_processed <= num_rows",
            name="ck_batch_uploads_processed_le_total",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_certification_batch_uploads_status",
        "certification_batch_uploads",
        ["status"],
        unique=False,
    )
    op.create_index(
        "ix_certification_batch_uploads_uploader_id",
        "certification_batch_uploads",
        ["uploader_id"],
        unique=False,
    )
    op.create_index(
        "ix_certification_batch_uploads_source_type",
        "certification_batch_uploads",
        ["source_type"],
        unique=False,
    )
    op.create_index(
        "ix_certification_batch_uploads_created_at",
        "certification_batch_uploads",
        ["created_at"],
        unique=False,
    )

    op.create_table(
        "certification_batch_upload_audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("batch_upload_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("chunk_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("succeeded_count", sa.Integer(), nullable=False),
        sa.Column("failed_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("chunk_number > 0", name="ck_batch_upload_audit_logs_chunk_number"),
        sa.CheckConstraint(
            "succeeded_count >= 0 AND failed_count >= 0",
            name="ck_batch_upload_audit_logs_counts",
        ),
        sa.ForeignKeyConstraint(
            ["batch_upload_id"],
            ["certification_batch_uploads.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "batch_upload_id",
            "chunk_number",
            name="uq_batch_upload_audit_logs_upload_chunk",
        ),
    )
    op.create_index(
        "ix_batch_upload_audit_logs_status",
        "certification_batch_upload_audit_logs",
        ["status"],
        unique=False,
    )

    op.create_table(
        "certification_batch_upload_errors",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("batch_upload_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("row_number", sa.Integer(), nullable=False),
        sa.Column("error_code", sa.String(length=16), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=False),
        sa.Column("row_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("row_number > 0", name="ck_batch_upload_errors_row_number"),
        sa.ForeignKeyConstraint(
            ["batch_upload_id"],
            ["certification_batch_uploads.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_batch_upload_errors_upload_id",
        "certification_batch_upload_errors",
        ["batch_upload_id"],
        unique=False,
    )
    op.create_index(
        "ix_batch_upload_errors_upload_code",
        "certification_batch_upload_errors",
        ["batch_upload_id", "error_code"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_batch_upload_errors_upload_code", table_name="certification_batch_upload_errors")
    op.drop_index("ix_batch_upload_errors_upload_id", table_name="certification_batch_upload_errors")
    op.drop_table("certification_batch_upload_errors")
    op.drop_index("ix_batch_upload_audit_logs_status", table_name="certification_batch_upload_audit_logs")
    op.drop_table("certification_batch_upload_audit_logs")
    op.drop_index("ix_certification_batch_uploads_created_at", table_name="certification_batch_uploads")
    op.drop_index("ix_certification_batch_uploads_source_type", table_name="certification_batch_uploads")
    op.drop_index("ix_certification_batch_uploads_uploader_id", table_name="certification_batch_uploads")
    op.drop_index("ix_certification_batch_uploads_status", table_name="certification_batch_uploads")
    op.drop_table("certification_batch_uploads")
