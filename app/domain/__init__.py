"""
app/domain package marker.
"""

from app.domain.batch_upload import (
    ChunkRange,
    ChunkResult,
    CompoundKey,
    ProcessingContext,
    RecordChunk,
    RowFailure,
    ValidationFailure,
    ValidationResult,
)

__all__ = [
    "ChunkRange",
    "ChunkResult",
    "CompoundKey",
    "ProcessingContext",
    "RecordChunk",
    "RowFailure",
    "ValidationFailure",
    "ValidationResult",
]
