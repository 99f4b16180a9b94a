"""
app/services package marker.
"""

from app.services.batch_chunk_service import BatchChunkService, row_number_for
from app.services.batch_upload_orchestrator import (
    BatchUploadFileNotFoundError,
    BatchUploadOrchestrator,
    BatchUploadTaskExecutor,
    FastAPIBackgroundTaskExecutor,
    InlineTaskExecutor,
    initiate_batch_upload,
)
from app.services.batch_upload_worker import (
    BatchUploadWorker,
    ChunkRetryExhaustedError,
    process_batch_upload,
)
from app.services.csv_stream_reader import CSVHeaderError, CSVStreamReader
from app.services.unified_record_processor import (
    DatabaseError,
    DuplicateError,
    ProcessingError,
    UnifiedRecordProcessor,
    ValidationError,
)

__all__ = [
    "BatchChunkService",
    "row_number_for",
    "BatchUploadFileNotFoundError",
    "BatchUploadOrchestrator",
    "BatchUploadTaskExecutor",
    "FastAPIBackgroundTaskExecutor",
    "InlineTaskExecutor",
    "initiate_batch_upload",
    "BatchUploadWorker",
    "ChunkRetryExhaustedError",
    "process_batch_upload",
    "CSVHeaderError",
    "CSVStreamReader",
    "DatabaseError",
    "DuplicateError",
    "ProcessingError",
    "UnifiedRecordProcessor",
    "ValidationError",
]
