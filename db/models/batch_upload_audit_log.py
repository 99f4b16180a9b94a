"""
db/models/batch_upload_audit_log.py

One row per processed chunk of a batch upload.

created_at marks the chunk start and updated_at its completion, so the
difference is the chunk's processing time. A row left in ``started`` means
the chunk crashed and is waiting for a retry.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from db.models.certification_batch_upload import CertificationBatchUpload


class ChunkStatus:
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


class CertificationBatchUploadAuditLog(Base, TimestampMixin):
    __tablename__ = "certification_batch_upload_audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    batch_upload_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("certification_batch_uploads.id", ondelete="CASCADE"),
        nullable=False,
    )
    chunk_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=ChunkStatus.STARTED,
        comment="started, completed, failed",
    )
    succeeded_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    batch_upload: Mapped["CertificationBatchUpload"] = relationship(back_populates="audit_logs")

    __table_args__ = (
        UniqueConstraint(
            "batch_upload_id",
            "chunk_number",
            name="uq_batch_upload_audit_logs_upload_chunk",
        ),
        CheckConstraint("chunk_number > 0", name="ck_batch_upload_audit_logs_chunk_number"),
        CheckConstraint(
            "succeeded_count >= 0 AND failed_count >= 0",
            name="ck_batch_upload_audit_logs_counts",
        ),
        Index("ix_batch_upload_audit_logs_status", "status"),
    )

    @property
    def is_completed(self) -> bool:
        return self.status == ChunkStatus.COMPLETED

    @property
    def processed_count(self) -> int:
        return self.succeeded_count + self.failed_count
