"""
Repository for batch upload creation and lookup.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from db.models.certification_batch_upload import (
    BatchUploadSourceType,
    BatchUploadStatus,
    CertificationBatchUpload,
)
from db.repositories.errors import BatchUploadNotFoundError


class BatchUploadRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create(
        self,
        *,
        filename: str,
        storage_key: str,
        uploader_id: uuid.UUID,
        source_type: str = BatchUploadSourceType.UI,
    ) -> CertificationBatchUpload:
        if source_type not in BatchUploadSourceType.ALL:
            raise ValueError(f"Unsupported batch upload source_type '{source_type}'.")
        batch_upload = CertificationBatchUpload(
            filename=filename,
            storage_key=storage_key,
            uploader_id=uploader_id,
            source_type=source_type,
            status=BatchUploadStatus.PENDING,
        )
        self._session.add(batch_upload)
        self._session.flush()
        return batch_upload

    def get(self, batch_upload_id: uuid.UUID) -> CertificationBatchUpload | None:
        return self._session.get(CertificationBatchUpload, batch_upload_id)

    def get_or_raise(self, batch_upload_id: uuid.UUID) -> CertificationBatchUpload:
        batch_upload = self.get(batch_upload_id)
        if batch_upload is None:
            raise BatchUploadNotFoundError(batch_upload_id)
        return batch_upload

    def get_for_update(self, batch_upload_id: uuid.UUID) -> CertificationBatchUpload | None:
        """
        Load a batch upload with a row lock held until the transaction ends.

        The lock is a no-op on SQLite.
        """

        stmt = (
            select(CertificationBatchUpload)
            .where(CertificationBatchUpload.id == batch_upload_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._session.scalars(stmt).one_or_none()

    def list_recent(
        self,
        *,
        limit: int = 50,
        status: str | None = None,
    ) -> list[CertificationBatchUpload]:
        stmt: Select[tuple[CertificationBatchUpload]] = select(CertificationBatchUpload)
        if status:
            stmt = stmt.where(CertificationBatchUpload.status == status)
        stmt = stmt.order_by(CertificationBatchUpload.created_at.desc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def list_by_uploader(
        self,
        uploader_id: uuid.UUID,
        *,
        limit: int = 50,
    ) -> list[CertificationBatchUpload]:
        stmt = (
            select(CertificationBatchUpload)
            .where(CertificationBatchUpload.uploader_id == uploader_id)
            .order_by(CertificationBatchUpload.created_at.desc())
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())
