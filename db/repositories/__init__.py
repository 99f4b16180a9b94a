"""
Repository layer exports.
"""

from db.repositories.batch_upload_log_repository import BatchUploadLogRepository
from db.repositories.batch_upload_repository import BatchUploadRepository
from db.repositories.certification_repository import CertificationRepository
from db.repositories.errors import (
    BatchUploadNotFoundError,
    BatchUploadRepositoryError,
    ChunkAuditLogNotFoundError,
)

__all__ = [
    "BatchUploadLogRepository",
    "BatchUploadRepository",
    "CertificationRepository",
    "BatchUploadRepositoryError",
    "BatchUploadNotFoundError",
    "ChunkAuditLogNotFoundError",
]
