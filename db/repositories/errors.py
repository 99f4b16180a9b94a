"""
Repository-layer exceptions for batch upload persistence.
"""

from __future__ import annotations

import uuid


class BatchUploadRepositoryError(Exception):
    """Base exception for batch upload repository failures."""


class BatchUploadNotFoundError(BatchUploadRepositoryError):
    """Raised when a referenced batch upload does not exist."""

    def __init__(self, batch_upload_id: uuid.UUID) -> None:
        super().__init__(f"Batch upload {batch_upload_id} not found.")
        self.batch_upload_id = batch_upload_id


class ChunkAuditLogNotFoundError(BatchUploadRepositoryError):
    """Raised when a chunk audit row is missing for an update."""

    def __init__(self, batch_upload_id: uuid.UUID, chunk_number: int) -> None:
        super().__init__(
            f"No audit log for chunk {chunk_number} of batch upload {batch_upload_id}."
        )
        self.batch_upload_id = batch_upload_id
        self.chunk_number = chunk_number
