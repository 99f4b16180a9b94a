"""
db/models/batch_upload_error.py

One row per rejected record of a batch upload. ``row_data`` keeps the
original payload so an operator can fix and retry the row.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, JSONDocument, TimestampMixin

if TYPE_CHECKING:
    from db.models.certification_batch_upload import CertificationBatchUpload


class CertificationBatchUploadError(Base, TimestampMixin):
    __tablename__ = "certification_batch_upload_errors"

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
    row_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Line number in the source file; the header is row 1",
    )
    error_code: Mapped[str] = mapped_column(String(16), nullable=False)
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    row_data: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)

    batch_upload: Mapped["CertificationBatchUpload"] = relationship(back_populates="row_errors")

    __table_args__ = (
        CheckConstraint("row_number > 0", name="ck_batch_upload_errors_row_number"),
        Index("ix_batch_upload_errors_upload_id", "batch_upload_id"),
        Index("ix_batch_upload_errors_upload_code", "batch_upload_id", "error_code"),
    )
