"""
db/models/certification_batch_upload.py

Batch upload aggregate: lifecycle state, progress counters and final summary
for one uploaded certification file.

Lifecycle::

    pending -> processing -> completed
                          -> failed

Only the processing worker mutates an upload after creation, and it is
assumed to be the only worker touching a given upload at a time. That
exclusivity comes from the queue configuration, not from this model.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Uuid, func, select
from sqlalchemy.orm import Mapped, mapped_column, object_session, relationship

from db.base import Base, JSONDocument, TimestampMixin, utcnow
from db.models.certification import Certification
from db.models.certification_origin import CertificationOrigin, CertificationOriginSourceType

if TYPE_CHECKING:
    from db.models.batch_upload_audit_log import CertificationBatchUploadAuditLog
    from db.models.batch_upload_error import CertificationBatchUploadError


class BatchUploadStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    TERMINAL: frozenset[str] = frozenset({COMPLETED, FAILED})


class BatchUploadSourceType:
    UI = "ui"
    API = "api"
    STORAGE_EVENT = "storage_event"

    ALL: tuple[str, ...] = (UI, API, STORAGE_EVENT)


class InvalidBatchUploadTransition(RuntimeError):
    """
    Raised when a lifecycle method is called from a state that forbids it.
    """

    def __init__(self, *, batch_upload_id: uuid.UUID | None, current: str, attempted: str) -> None:
        super().__init__(
            f"Batch upload {batch_upload_id} cannot move from '{current}' to '{attempted}'."
        )
        self.batch_upload_id = batch_upload_id
        self.current = current
        self.attempted = attempted


class CertificationBatchUpload(Base, TimestampMixin):
    __tablename__ = "certification_batch_uploads"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    uploader_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    source_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=BatchUploadSourceType.UI,
        comment="ui, api, storage_event",
    )
    storage_key: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
        comment="Object storage key of the uploaded file",
    )
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=BatchUploadStatus.PENDING,
    )
    num_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    num_rows_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    num_rows_succeeded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    num_rows_errored: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    results: Mapped[dict[str, Any] | None] = mapped_column(
        JSONDocument,
        nullable=True,
        comment="Terminal summary, set on completion or failure",
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    audit_logs: Mapped[list["CertificationBatchUploadAuditLog"]] = relationship(
        back_populates="batch_upload",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="CertificationBatchUploadAuditLog.chunk_number",
    )
    row_errors: Mapped[list["CertificationBatchUploadError"]] = relationship(
        back_populates="batch_upload",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="CertificationBatchUploadError.row_number",
    )

    __table_args__ = (
        CheckConstraint("num_rows >= 0", name="ck_batch_uploads_num_rows"),
        CheckConstraint(
            "num_rows_processed <= num_rows",
            name="ck_batch_uploads_processed_le_total",
        ),
        Index("ix_certification_batch_uploads_status", "status"),
        Index("ix_certification_batch_uploads_uploader_id", "uploader_id"),
        Index("ix_certification_batch_uploads_source_type", "source_type"),
        Index("ix_certification_batch_uploads_created_at", "created_at"),
    )

    # ------------------------------------------------------------------
    # State predicates
    # ------------------------------------------------------------------

    @property
    def is_pending(self) -> bool:
        return self.status == BatchUploadStatus.PENDING

    @property
    def is_processing(self) -> bool:
        return self.status == BatchUploadStatus.PROCESSING

    @property
    def is_completed(self) -> bool:
        return self.status == BatchUploadStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == BatchUploadStatus.FAILED

    @property
    def is_terminal(self) -> bool:
        return self.status in BatchUploadStatus.TERMINAL

    @property
    def processable(self) -> bool:
        """
        True only while pending. Check before re-submitting to a worker.
        """

        return self.is_pending

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start_processing(self) -> None:
        """
        Enter processing and reset progress to zero.

        Calling this again while already processing is a restart after a
        worker crash: the status stays put and progress is reset so stale
        counts are not resumed.
        """

        if self.status not in (BatchUploadStatus.PENDING, BatchUploadStatus.PROCESSING):
            self._reject(BatchUploadStatus.PROCESSING)
        self.status = BatchUploadStatus.PROCESSING
        self.num_rows_processed = 0

    def update_progress(self, *, num_rows_processed: int) -> None:
        """
        Advance the processed-row counter. It never moves backwards.
        """

        self._require_processing("update_progress")
        if num_rows_processed < self.num_rows_processed:
            raise ValueError(
                f"num_rows_processed cannot move backwards "
                f"({self.num_rows_processed} -> {num_rows_processed})."
            )
        if num_rows_processed > self.num_rows:
            raise ValueError(
                f"num_rows_processed ({num_rows_processed}) exceeds num_rows ({self.num_rows})."
            )
        self.num_rows_processed = num_rows_processed

    def record_chunk(self, *, processed: int, succeeded: int, errored: int) -> None:
        """
        Add one chunk's row counts to the running totals.
        """

        self.update_progress(num_rows_processed=self.num_rows_processed + processed)
        self.num_rows_succeeded += succeeded
        self.num_rows_errored += errored

    def complete_processing(
        self,
        *,
        num_rows_succeeded: int,
        num_rows_errored: int,
        results: dict[str, Any],
    ) -> None:
        self._require_processing(BatchUploadStatus.COMPLETED)
        self.status = BatchUploadStatus.COMPLETED
        self.num_rows_succeeded = num_rows_succeeded
        self.num_rows_errored = num_rows_errored
        self.results = results
        self.processed_at = utcnow()

    def fail_processing(self, *, error_message: str, results: dict[str, Any] | None = None) -> None:
        self._require_processing(BatchUploadStatus.FAILED)
        self.status = BatchUploadStatus.FAILED
        self.results = {**(results or {}), "error": error_message}
        self.processed_at = utcnow()

    def _require_processing(self, attempted: str) -> None:
        if not self.is_processing:
            self._reject(attempted)

    def _reject(self, attempted: str) -> None:
        raise InvalidBatchUploadTransition(
            batch_upload_id=self.id,
            current=self.status,
            attempted=attempted,
        )

    # ------------------------------------------------------------------
    # Created certifications
    # ------------------------------------------------------------------

    @property
    def certifications(self) -> list[Certification]:
        """
        Certifications created from this upload, oldest first.
        """

        session = object_session(self)
        if session is None:
            return []
        stmt = (
            select(Certification)
            .join(CertificationOrigin, CertificationOrigin.certification_id == Certification.id)
            .where(
                CertificationOrigin.source_type == CertificationOriginSourceType.BATCH_UPLOAD,
                CertificationOrigin.source_id == self.id,
            )
            .order_by(Certification.created_at, Certification.id)
        )
        return list(session.scalars(stmt).all())

    @property
    def certifications_count(self) -> int:
        session = object_session(self)
        if session is None:
            return 0
        stmt = select(func.count(CertificationOrigin.id)).where(
            CertificationOrigin.source_type == CertificationOriginSourceType.BATCH_UPLOAD,
            CertificationOrigin.source_id == self.id,
        )
        return int(session.scalar(stmt) or 0)
