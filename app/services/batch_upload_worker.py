"""
app/services/batch_upload_worker.py

Worker entry point that processes one batch upload end to end.

A run makes two passes over the stored file:

    1. scan: stream the file once, keep only chunk locations and record
       counts, and store the total as ``num_rows``
    2. process: range-read each chunk and hand it to BatchChunkService

Retries follow the failure code catalog. A crashed chunk whose failure is
retryable at chunk level (database errors) is re-read and retried in place.
A storage failure restarts the whole job, which skips chunks already
completed. Anything else fails the batch.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable

from sqlalchemy.orm import Session, sessionmaker

from app.config import get_batch_upload_settings
from app.domain.batch_upload import ChunkRange
from app.events import EventPublisher
from app.failure_codes import ErrorCode, RetryStrategy, classify_exception
from app.logging_utils import log_event, log_failure
from app.services.batch_chunk_service import BatchChunkService
from app.services.csv_stream_reader import CSVStreamReader
from app.storage.base import ObjectStorage, ObjectStorageError
from db.models.certification_batch_upload import BatchUploadStatus
from db.repositories.batch_upload_log_repository import BatchUploadLogRepository
from db.repositories.batch_upload_repository import BatchUploadRepository
from db.repositories.errors import BatchUploadNotFoundError

logger = logging.getLogger(__name__)

_STORAGE_POLICY = ErrorCode.READ_FAILED.policy


class ChunkRetryExhaustedError(Exception):
    """
    Raised when a chunk keeps failing after every allowed attempt.

    Attributes:
        chunk_number: The chunk that failed.
        attempts: Total number of attempts made.
        last_error: The exception from the final attempt.
    """

    def __init__(self, chunk_number: int, attempts: int, last_error: BaseException) -> None:
        self.chunk_number = chunk_number
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Chunk {chunk_number} failed after {attempts} attempt(s). Last error: {last_error}"
        )


class BatchUploadWorker:
    """
    Runs the scan and process passes for a batch upload.
    """

    def __init__(
        self,
        *,
        storage: ObjectStorage,
        session_factory: sessionmaker[Session] | None = None,
        publisher: EventPublisher | None = None,
        chunk_size: int | None = None,
        retry_backoff_seconds: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory
        self._chunk_size = chunk_size or get_batch_upload_settings().chunk_size
        self._reader = CSVStreamReader(storage)
        self._chunk_service = BatchChunkService(
            session_factory=self._session_factory,
            reader=self._reader,
            publisher=publisher,
            chunk_size=self._chunk_size,
        )
        self._retry_backoff_seconds = max(0.0, retry_backoff_seconds)
        self._sleep = sleep

    def run(self, batch_upload_id: uuid.UUID, *, resume: bool = False) -> str:
        """
        Process a batch upload and return its final status.

        ``resume=True`` accepts a batch left in ``processing`` by a crashed
        worker. Batches in any other non-pending state are left untouched.
        """

        storage_key = self._start(batch_upload_id, resume=resume)
        if storage_key is None:
            return self._status_of(batch_upload_id)

        for attempt in range(1, _STORAGE_POLICY.max_attempts + 1):
            try:
                if attempt > 1:
                    self._restart_progress(batch_upload_id)
                self._run_passes(batch_upload_id, storage_key)
                break
            except ObjectStorageError as exc:
                if attempt >= _STORAGE_POLICY.max_attempts:
                    self._fail_batch(batch_upload_id, exc)
                    raise
                log_failure(
                    logger,
                    "batch_upload_job_retry",
                    exc,
                    level=logging.WARNING,
                    batch_upload_id=batch_upload_id,
                    attempt=attempt,
                    max_attempts=_STORAGE_POLICY.max_attempts,
                )
                self._backoff(attempt)
            except ChunkRetryExhaustedError as exc:
                self._fail_batch(batch_upload_id, exc.last_error, chunk_number=exc.chunk_number)
                break
            except Exception as exc:
                self._fail_batch(batch_upload_id, exc)
                break

        return self._status_of(batch_upload_id)

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def _run_passes(self, batch_upload_id: uuid.UUID, storage_key: str) -> None:
        chunk_ranges = self._scan(batch_upload_id, storage_key)
        for chunk_range in chunk_ranges:
            self._process_with_retry(batch_upload_id, storage_key, chunk_range)
        # Covers empty and header-only files, which have no chunks.
        self._chunk_service.complete_if_done(batch_upload_id)

    def _scan(self, batch_upload_id: uuid.UUID, storage_key: str) -> list[ChunkRange]:
        chunk_ranges = list(self._reader.scan_chunks(storage_key, self._chunk_size))
        num_rows = sum(chunk_range.record_count for chunk_range in chunk_ranges)
        with self._session_factory() as db:
            batch_upload = BatchUploadRepository(db).get_for_update(batch_upload_id)
            if batch_upload is None:
                raise BatchUploadNotFoundError(batch_upload_id)
            batch_upload.num_rows = num_rows
            db.commit()
        log_event(
            logger,
            logging.INFO,
            "batch_upload_scanned",
            batch_upload_id=batch_upload_id,
            num_rows=num_rows,
            chunk_count=len(chunk_ranges),
        )
        return chunk_ranges

    def _process_with_retry(
        self,
        batch_upload_id: uuid.UUID,
        storage_key: str,
        chunk_range: ChunkRange,
    ) -> None:
        attempt = 0
        while True:
            attempt += 1
            try:
                self._chunk_service.process_chunk_range(
                    batch_upload_id,
                    chunk_range.chunk_number,
                    storage_key=storage_key,
                    headers=chunk_range.headers,
                    start_byte=chunk_range.start_byte,
                    end_byte=chunk_range.end_byte,
                )
                if attempt > 1:
                    log_event(
                        logger,
                        logging.INFO,
                        "batch_chunk_recovered",
                        batch_upload_id=batch_upload_id,
                        chunk_number=chunk_range.chunk_number,
                        attempt=attempt,
                    )
                return
            except ObjectStorageError:
                raise
            except Exception as exc:
                policy = classify_exception(exc).policy
                if policy.strategy is not RetryStrategy.RETRY_CHUNK or attempt >= policy.max_attempts:
                    raise ChunkRetryExhaustedError(chunk_range.chunk_number, attempt, exc) from exc
                log_failure(
                    logger,
                    "batch_chunk_retry",
                    exc,
                    level=logging.WARNING,
                    batch_upload_id=batch_upload_id,
                    chunk_number=chunk_range.chunk_number,
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                )
                self._backoff(attempt)

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    def _start(self, batch_upload_id: uuid.UUID, *, resume: bool) -> str | None:
        with self._session_factory() as db:
            batch_upload = BatchUploadRepository(db).get_for_update(batch_upload_id)
            if batch_upload is None:
                raise BatchUploadNotFoundError(batch_upload_id)
            resumable = resume and batch_upload.is_processing
            if not batch_upload.processable and not resumable:
                log_event(
                    logger,
                    logging.WARNING,
                    "batch_upload_not_processable",
                    batch_upload_id=batch_upload_id,
                    status=batch_upload.status,
                    resume=resume,
                )
                return None
            batch_upload.start_processing()
            db.commit()
            log_event(
                logger,
                logging.INFO,
                "batch_upload_processing_started",
                batch_upload_id=batch_upload_id,
                resume=resumable,
            )
            return batch_upload.storage_key

    def _restart_progress(self, batch_upload_id: uuid.UUID) -> None:
        with self._session_factory() as db:
            batch_upload = BatchUploadRepository(db).get_for_update(batch_upload_id)
            if batch_upload is None:
                raise BatchUploadNotFoundError(batch_upload_id)
            batch_upload.start_processing()
            db.commit()

    def _fail_batch(
        self,
        batch_upload_id: uuid.UUID,
        exc: BaseException,
        *,
        chunk_number: int | None = None,
    ) -> None:
        code = classify_exception(exc)
        log_failure(
            logger,
            "batch_upload_failed",
            exc,
            batch_upload_id=batch_upload_id,
            chunk_number=chunk_number,
            category=code.category.value,
        )
        with self._session_factory() as db:
            try:
                if chunk_number is not None:
                    BatchUploadLogRepository(db).fail_chunk(batch_upload_id, chunk_number)
                batch_upload = BatchUploadRepository(db).get_for_update(batch_upload_id)
                if batch_upload is None or not batch_upload.is_processing:
                    db.commit()
                    return
                batch_upload.fail_processing(
                    error_message=f"{type(exc).__name__}: {exc}"[:2000],
                    results={
                        "error_code": code.value,
                        "failed_chunk": chunk_number,
                        "num_rows_processed": batch_upload.num_rows_processed,
                    },
                )
                db.commit()
            except Exception:
                db.rollback()
                logger.exception("Failed to persist failed batch upload state id=%s", batch_upload_id)
                raise

    def _status_of(self, batch_upload_id: uuid.UUID) -> str:
        with self._session_factory() as db:
            batch_upload = BatchUploadRepository(db).get(batch_upload_id)
            return batch_upload.status if batch_upload is not None else BatchUploadStatus.FAILED

    def _backoff(self, attempt: int) -> None:
        if self._retry_backoff_seconds > 0:
            self._sleep(self._retry_backoff_seconds * (2 ** (attempt - 1)))


def process_batch_upload(
    batch_upload_id: uuid.UUID,
    *,
    storage: ObjectStorage,
    session_factory: sessionmaker[Session] | None = None,
    publisher: EventPublisher | None = None,
    resume: bool = False,
) -> str:
    """
    Job entry point handed to task executors.
    """

    worker = BatchUploadWorker(
        storage=storage,
        session_factory=session_factory,
        publisher=publisher,
    )
    return worker.run(batch_upload_id, resume=resume)
