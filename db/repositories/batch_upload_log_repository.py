"""
Repository for per-chunk audit rows and per-row error rows.
"""

from __future__ import annotations

import uuid
from typing import Iterable

from sqlalchemy import func, insert, select
from sqlalchemy.orm import Session

from app.domain.batch_upload import RowFailure
from db.models.batch_upload_audit_log import CertificationBatchUploadAuditLog, ChunkStatus
from db.models.batch_upload_error import CertificationBatchUploadError
from db.repositories.errors import ChunkAuditLogNotFoundError


class BatchUploadLogRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Chunk audit log
    # ------------------------------------------------------------------

    def get_chunk(
        self,
        batch_upload_id: uuid.UUID,
        chunk_number: int,
    ) -> CertificationBatchUploadAuditLog | None:
        stmt = select(CertificationBatchUploadAuditLog).where(
            CertificationBatchUploadAuditLog.batch_upload_id == batch_upload_id,
            CertificationBatchUploadAuditLog.chunk_number == chunk_number,
        )
        return self._session.scalars(stmt).one_or_none()

    def start_chunk(
        self,
        batch_upload_id: uuid.UUID,
        chunk_number: int,
    ) -> CertificationBatchUploadAuditLog:
        """
        Return the audit row for a chunk, creating it as ``started``.

        An existing ``started`` or ``failed`` row is reused and reset, which
        is how a retried chunk picks up its earlier row.
        """

        audit_log = self.get_chunk(batch_upload_id, chunk_number)
        if audit_log is None:
            audit_log = CertificationBatchUploadAuditLog(
                batch_upload_id=batch_upload_id,
                chunk_number=chunk_number,
                status=ChunkStatus.STARTED,
                succeeded_count=0,
                failed_count=0,
            )
            self._session.add(audit_log)
        elif not audit_log.is_completed:
            audit_log.status = ChunkStatus.STARTED
            audit_log.succeeded_count = 0
            audit_log.failed_count = 0
        self._session.flush()
        return audit_log

    def complete_chunk(
        self,
        batch_upload_id: uuid.UUID,
        chunk_number: int,
        *,
        succeeded_count: int,
        failed_count: int,
    ) -> CertificationBatchUploadAuditLog:
        audit_log = self._require_chunk(batch_upload_id, chunk_number)
        audit_log.status = ChunkStatus.COMPLETED
        audit_log.succeeded_count = succeeded_count
        audit_log.failed_count = failed_count
        self._session.flush()
        return audit_log

    def fail_chunk(
        self,
        batch_upload_id: uuid.UUID,
        chunk_number: int,
    ) -> CertificationBatchUploadAuditLog:
        audit_log = self.get_chunk(batch_upload_id, chunk_number)
        if audit_log is None:
            audit_log = CertificationBatchUploadAuditLog(
                batch_upload_id=batch_upload_id,
                chunk_number=chunk_number,
            )
            self._session.add(audit_log)
        audit_log.status = ChunkStatus.FAILED
        self._session.flush()
        return audit_log

    def list_chunks(self, batch_upload_id: uuid.UUID) -> list[CertificationBatchUploadAuditLog]:
        stmt = (
            select(CertificationBatchUploadAuditLog)
            .where(CertificationBatchUploadAuditLog.batch_upload_id == batch_upload_id)
            .order_by(CertificationBatchUploadAuditLog.chunk_number)
        )
        return list(self._session.scalars(stmt).all())

    def count_completed_chunks(self, batch_upload_id: uuid.UUID) -> int:
        stmt = select(func.count(CertificationBatchUploadAuditLog.id)).where(
            CertificationBatchUploadAuditLog.batch_upload_id == batch_upload_id,
            CertificationBatchUploadAuditLog.status == ChunkStatus.COMPLETED,
        )
        return int(self._session.scalar(stmt) or 0)

    def _require_chunk(
        self,
        batch_upload_id: uuid.UUID,
        chunk_number: int,
    ) -> CertificationBatchUploadAuditLog:
        audit_log = self.get_chunk(batch_upload_id, chunk_number)
        if audit_log is None:
            raise ChunkAuditLogNotFoundError(batch_upload_id, chunk_number)
        return audit_log

    # ------------------------------------------------------------------
    # Row errors
    # ------------------------------------------------------------------

    def add_row_errors(self, batch_upload_id: uuid.UUID, failures: Iterable[RowFailure]) -> int:
        """
        Bulk insert row errors in one statement. Returns the number stored.
        """

        rows = [
            {
                "id": uuid.uuid4(),
                "batch_upload_id": batch_upload_id,
                "row_number": failure.row_number,
                "error_code": failure.error_code,
                "error_message": failure.error_message,
                "row_data": failure.row_data,
            }
            for failure in failures
        ]
        if not rows:
            return 0
        self._session.execute(insert(CertificationBatchUploadError), rows)
        return len(rows)

    def list_row_errors(
        self,
        batch_upload_id: uuid.UUID,
        *,
        error_code: str | None = None,
        limit: int | None = None,
    ) -> list[CertificationBatchUploadError]:
        stmt = select(CertificationBatchUploadError).where(
            CertificationBatchUploadError.batch_upload_id == batch_upload_id
        )
        if error_code:
            stmt = stmt.where(CertificationBatchUploadError.error_code == error_code)
        stmt = stmt.order_by(CertificationBatchUploadError.row_number)
        if limit is not None:
            stmt = stmt.limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def error_code_counts(self, batch_upload_id: uuid.UUID) -> dict[str, int]:
        stmt = (
            select(CertificationBatchUploadError.error_code, func.count(CertificationBatchUploadError.id))
            .where(CertificationBatchUploadError.batch_upload_id == batch_upload_id)
            .group_by(CertificationBatchUploadError.error_code)
            .order_by(CertificationBatchUploadError.error_code)
        )
        return {code: int(count) for code, count in self._session.execute(stmt).all()}
