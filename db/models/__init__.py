"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.batch_upload_audit_log import CertificationBatchUploadAuditLog, ChunkStatus
from db.models.batch_upload_error import CertificationBatchUploadError
from db.models.certification import COMPOUND_KEY_CONSTRAINT, Certification, CertificationType
from db.models.certification_batch_upload import (
    BatchUploadSourceType,
    BatchUploadStatus,
    CertificationBatchUpload,
    InvalidBatchUploadTransition,
)
from db.models.certification_origin import CertificationOrigin, CertificationOriginSourceType

__all__ = [
    "BatchUploadSourceType",
    "BatchUploadStatus",
    "COMPOUND_KEY_CONSTRAINT",
    "Certification",
    "CertificationBatchUpload",
    "CertificationBatchUploadAuditLog",
    "CertificationBatchUploadError",
    "CertificationOrigin",
    "CertificationOriginSourceType",
    "CertificationType",
    "ChunkStatus",
    "InvalidBatchUploadTransition",
]
