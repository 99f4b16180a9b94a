"""
app/services/batch_chunk_service.py

Processes one chunk of a batch upload and records its outcome.

For each chunk the service:

    1. opens (or reuses) the chunk's audit row as ``started`` and commits it
    2. pre-screens every record for existing certifications in one query
    3. runs each record through the UnifiedRecordProcessor
    4. in a single transaction: stores row errors, completes the audit row,
       adds the chunk's counts to the batch under a row lock and completes
       the batch once every row has been processed

A crash anywhere after step 1 leaves the audit row ``started``; retrying
the chunk picks the same row up again. Certifications committed by an
earlier attempt of the same chunk are counted as successes on retry rather
than reported as duplicates.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping, Sequence

from sqlalchemy.orm import Session, sessionmaker

from app.config import get_batch_upload_settings
from app.domain.batch_upload import ChunkResult, CompoundKey, ProcessingContext, RowFailure
from app.events import EventPublisher
from app.failure_codes import ErrorCode
from app.logging_utils import log_event, log_failure
from app.mappers.certification_mapper import compound_key_for
from app.schemas.batch_upload import BatchUploadResults
from app.services.csv_stream_reader import CSVStreamReader
from app.services.unified_record_processor import (
    ProcessingError,
    UnifiedRecordProcessor,
    duplicate_error_for,
)
from db.models.batch_upload_audit_log import CertificationBatchUploadAuditLog
from db.models.certification_batch_upload import CertificationBatchUpload
from db.models.certification_origin import CertificationOriginSourceType
from db.repositories.batch_upload_log_repository import BatchUploadLogRepository
from db.repositories.batch_upload_repository import BatchUploadRepository
from db.repositories.certification_repository import CertificationRepository

logger = logging.getLogger(__name__)

HEADER_ROWS = 1


def row_number_for(chunk_number: int, index: int, chunk_size: int) -> int:
    """
    User-facing line number of a record. The header is row 1.
    """

    return (chunk_number - 1) * chunk_size + index + 1 + HEADER_ROWS


class BatchChunkService:
    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session] | None = None,
        reader: CSVStreamReader | None = None,
        publisher: EventPublisher | None = None,
        chunk_size: int | None = None,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory
        self._reader = reader
        self._publisher = publisher
        self._chunk_size = chunk_size or get_batch_upload_settings().chunk_size

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def process_chunk(
        self,
        batch_upload_id: uuid.UUID,
        chunk_number: int,
        records: Sequence[Mapping[str, Any]],
    ) -> ChunkResult | None:
        """
        Process one chunk. Returns None when the batch upload no longer
        exists or is not processing; nothing is stored in either case.
        """

        with self._session_factory() as db:
            batch_upload = BatchUploadRepository(db).get(batch_upload_id)
            if batch_upload is None:
                log_event(
                    logger,
                    logging.WARNING,
                    "batch_chunk_skipped_missing_upload",
                    batch_upload_id=batch_upload_id,
                    chunk_number=chunk_number,
                )
                return None

            logs = BatchUploadLogRepository(db)
            existing = logs.get_chunk(batch_upload_id, chunk_number)
            if existing is not None and existing.is_completed:
                return self._replay_completed_chunk(db, batch_upload_id, existing)

            if not batch_upload.is_processing:
                log_event(
                    logger,
                    logging.WARNING,
                    "batch_chunk_skipped_not_processing",
                    batch_upload_id=batch_upload_id,
                    chunk_number=chunk_number,
                    status=batch_upload.status,
                )
                return None

            retrying = existing is not None
            try:
                audit_log = logs.start_chunk(batch_upload_id, chunk_number)
                db.commit()
                log_event(
                    logger,
                    logging.INFO,
                    "batch_chunk_started",
                    batch_upload_id=batch_upload_id,
                    chunk_number=chunk_number,
                    record_count=len(records),
                    retry=retrying,
                )

                result = self._process_records(
                    db,
                    batch_upload_id=batch_upload_id,
                    chunk_number=chunk_number,
                    records=records,
                    previous_attempt=audit_log if retrying else None,
                )
                self._finish_chunk(db, batch_upload_id, result)
                db.commit()
            except Exception as exc:
                db.rollback()
                log_failure(
                    logger,
                    "batch_chunk_crashed",
                    exc,
                    batch_upload_id=batch_upload_id,
                    chunk_number=chunk_number,
                )
                raise

        log_event(
            logger,
            logging.INFO,
            "batch_chunk_completed",
            batch_upload_id=batch_upload_id,
            chunk_number=chunk_number,
            succeeded=result.succeeded,
            failed=result.failed,
        )
        return result

    def process_chunk_range(
        self,
        batch_upload_id: uuid.UUID,
        chunk_number: int,
        *,
        storage_key: str,
        headers: list[str],
        start_byte: int,
        end_byte: int,
    ) -> ChunkResult | None:
        """
        Re-read one chunk from storage by byte range and process it.
        """

        if self._reader is None:
            raise RuntimeError("A CSVStreamReader is required to process chunk ranges.")
        records = self._reader.read_range(storage_key, headers, start_byte, end_byte)
        return self.process_chunk(batch_upload_id, chunk_number, records)

    def complete_if_done(self, batch_upload_id: uuid.UUID) -> bool:
        """
        Complete the batch if every row has been processed. Returns True
        when the batch is completed after the call.
        """

        with self._session_factory() as db:
            batch_upload = BatchUploadRepository(db).get_for_update(batch_upload_id)
            if batch_upload is None:
                return False
            self._check_completion(db, batch_upload)
            db.commit()
            return batch_upload.is_completed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _process_records(
        self,
        db: Session,
        *,
        batch_upload_id: uuid.UUID,
        chunk_number: int,
        records: Sequence[Mapping[str, Any]],
        previous_attempt: CertificationBatchUploadAuditLog | None,
    ) -> ChunkResult:
        processor = UnifiedRecordProcessor(db, publisher=self._publisher)
        context = ProcessingContext.for_batch_upload(batch_upload_id)
        duplicate_keys = processor.find_existing_duplicates(records)
        already_stored = self._stored_by_previous_attempt(
            db, batch_upload_id, duplicate_keys, previous_attempt
        )

        result = ChunkResult(chunk_number=chunk_number)
        for index, record in enumerate(records):
            row_number = row_number_for(chunk_number, index, self._chunk_size)
            key = compound_key_for(record)
            if key is not None and key in already_stored:
                already_stored.discard(key)
                result.succeeded += 1
                continue
            if key is not None and key in duplicate_keys:
                duplicate = duplicate_error_for(key)
                result.failed += 1
                result.errors.append(self._row_failure(row_number, duplicate.code, duplicate.message, record))
                continue

            try:
                processor.process(record, context)
                result.succeeded += 1
            except ProcessingError as exc:
                result.failed += 1
                result.errors.append(self._row_failure(row_number, exc.code, exc.message, record))
            except Exception as exc:
                log_failure(
                    logger,
                    "batch_row_unexpected_error",
                    exc,
                    batch_upload_id=batch_upload_id,
                    chunk_number=chunk_number,
                    row_number=row_number,
                )
                result.failed += 1
                result.errors.append(
                    self._row_failure(
                        row_number,
                        ErrorCode.UNEXPECTED,
                        ErrorCode.UNEXPECTED.render(error_type=type(exc).__name__, reason=exc),
                        record,
                    )
                )
        return result

    def _stored_by_previous_attempt(
        self,
        db: Session,
        batch_upload_id: uuid.UUID,
        duplicate_keys: set[CompoundKey],
        previous_attempt: CertificationBatchUploadAuditLog | None,
    ) -> set[CompoundKey]:
        if previous_attempt is None or not duplicate_keys:
            return set()
        return CertificationRepository(db).find_keys_created_by(
            duplicate_keys,
            source_type=CertificationOriginSourceType.BATCH_UPLOAD,
            source_id=batch_upload_id,
            created_since=previous_attempt.created_at,
        )

    def _row_failure(
        self,
        row_number: int,
        code: ErrorCode,
        message: str,
        record: Mapping[str, Any],
    ) -> RowFailure:
        return RowFailure(
            row_number=row_number,
            error_code=code.value,
            error_message=message,
            row_data=dict(record),
        )

    def _finish_chunk(self, db: Session, batch_upload_id: uuid.UUID, result: ChunkResult) -> None:
        logs = BatchUploadLogRepository(db)
        logs.add_row_errors(batch_upload_id, result.errors)
        logs.complete_chunk(
            batch_upload_id,
            result.chunk_number,
            succeeded_count=result.succeeded,
            failed_count=result.failed,
        )

        batch_upload = BatchUploadRepository(db).get_for_update(batch_upload_id)
        if batch_upload is None:
            return
        batch_upload.record_chunk(
            processed=result.processed,
            succeeded=result.succeeded,
            errored=result.failed,
        )
        db.flush()
        self._check_completion(db, batch_upload)

    def _replay_completed_chunk(
        self,
        db: Session,
        batch_upload_id: uuid.UUID,
        audit_log: CertificationBatchUploadAuditLog,
    ) -> ChunkResult:
        """
        Re-add a finished chunk's rows to progress without reprocessing it.
        """

        result = ChunkResult(
            chunk_number=audit_log.chunk_number,
            succeeded=audit_log.succeeded_count,
            failed=audit_log.failed_count,
            skipped=True,
        )
        batch_upload = BatchUploadRepository(db).get_for_update(batch_upload_id)
        if batch_upload is not None and batch_upload.is_processing:
            batch_upload.update_progress(
                num_rows_processed=batch_upload.num_rows_processed + audit_log.processed_count
            )
            db.flush()
            self._check_completion(db, batch_upload)
            db.commit()
        log_event(
            logger,
            logging.INFO,
            "batch_chunk_already_completed",
            batch_upload_id=batch_upload_id,
            chunk_number=audit_log.chunk_number,
        )
        return result

    def _check_completion(self, db: Session, batch_upload: CertificationBatchUpload) -> None:
        if not batch_upload.is_processing:
            return
        if batch_upload.num_rows_processed < batch_upload.num_rows:
            return

        logs = BatchUploadLogRepository(db)
        summary = BatchUploadResults(
            num_rows=batch_upload.num_rows,
            num_rows_succeeded=batch_upload.num_rows_succeeded,
            num_rows_errored=batch_upload.num_rows_errored,
            chunks_completed=logs.count_completed_chunks(batch_upload.id),
            error_codes=logs.error_code_counts(batch_upload.id),
        )
        batch_upload.complete_processing(
            num_rows_succeeded=batch_upload.num_rows_succeeded,
            num_rows_errored=batch_upload.num_rows_errored,
            results=summary.to_results(),
        )
        log_event(
            logger,
            logging.INFO,
            "batch_upload_completed",
            batch_upload_id=batch_upload.id,
            num_rows=batch_upload.num_rows,
            num_rows_succeeded=batch_upload.num_rows_succeeded,
            num_rows_errored=batch_upload.num_rows_errored,
        )
