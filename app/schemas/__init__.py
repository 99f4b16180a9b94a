"""
app/schemas package marker.
"""

from app.schemas.batch_upload import (
    BatchUploadResults,
    BatchUploadStatusResponse,
    ChunkAuditLogResponse,
    RowErrorResponse,
)

__all__ = [
    "BatchUploadResults",
    "BatchUploadStatusResponse",
    "ChunkAuditLogResponse",
    "RowErrorResponse",
]
