"""create certifications and certification_origins tables

Revision ID: 20261001_0001
Revises:
Create Date: 2026-10-01 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261001_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "certifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("member_id", sa.String(length=255), nullable=False),
        sa.Column("case_number", sa.String(length=255), nullable=False),
        sa.Column("certification_date", sa.Date(), nullable=False),
        sa.Column("member_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("certification_requirements", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "member_id",
            "case_number",
            "certification_date",
            name="uq_certifications_compound_key",
        ),
    )
    op.create_index("ix_certifications_member_id", "certifications", ["member_id"], unique=False)
    op.create_index("ix_certifications_case_number", "certifications", ["case_number"], unique=False)

    op.create_table(
        "certification_origins",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("certification_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("source_type", sa.String(length=32), nullable=False),
        sa.Column("source_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "source_type IN ('batch_upload', 'manual', 'api')",
            name="ck_certification_origins_source_type",
        ),
        sa.ForeignKeyConstraint(["certification_id"], ["certifications.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("certification_id"),
    )
    op.create_index(
        "ix_certification_origins_source",
        "certification_origins",
        ["source_type", "source_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_certification_origins_source", table_name="certification_origins")
    op.drop_table("certification_origins")
    op.drop_index("ix_certifications_case_number", table_name="certifications")
    op.drop_index("ix_certifications_member_id", table_name="certifications")
    op.drop_table("certifications")
