"""
tests/test_batch_upload_worker.py

End-to-end tests for BatchUploadWorker: two-pass processing of a stored
file, refusal of batches that are not processable, job-level storage
retries, chunk-level database retries and batch failure.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from app.events import CERTIFICATION_CREATED, RecordingEventPublisher
from app.schemas.batch_upload import BatchUploadStatusResponse
from app.services.batch_upload_worker import BatchUploadWorker, process_batch_upload
from app.storage.base import ObjectStorageError
from app.storage.local import LocalObjectStorage
from db.models.batch_upload_audit_log import ChunkStatus
from db.models.certification import Certification
from db.models.certification_batch_upload import BatchUploadStatus, CertificationBatchUpload
from db.repositories.batch_upload_log_repository import BatchUploadLogRepository
from db.repositories.errors import BatchUploadNotFoundError
from tests.support import build_csv, csv_row

KEY = "batch-uploads/test/upload.csv"


class FlakyStorage(LocalObjectStorage):
    """
    Local storage whose range reads fail on selected calls.
    """

    def __init__(self, root_dir: Path, *, fail_on: set[int] | None = None, always: bool = False) -> None:
        super().__init__(root_dir)
        self.fail_on = fail_on or set()
        self.always = always
        self.range_calls = 0

    def stream_object_range(self, key: str, start_byte: int, end_byte: int) -> Iterator[str]:
        self.range_calls += 1
        if self.always or self.range_calls in self.fail_on:
            raise ObjectStorageError(key, "connection reset by peer")
        return super().stream_object_range(key, start_byte, end_byte)


def _worker(
    storage: LocalObjectStorage,
    session_factory: sessionmaker[Session],
    publisher: RecordingEventPublisher,
    **kwargs,
) -> BatchUploadWorker:
    return BatchUploadWorker(
        storage=storage,
        session_factory=session_factory,
        publisher=publisher,
        chunk_size=kwargs.pop("chunk_size", 2),
        **kwargs,
    )


def _snapshot(session_factory: sessionmaker[Session], batch_upload_id: uuid.UUID) -> BatchUploadStatusResponse:
    with session_factory() as session:
        upload = session.get(CertificationBatchUpload, batch_upload_id)
        assert upload is not None
        return BatchUploadStatusResponse.model_validate(upload)


def _certification_count(session_factory: sessionmaker[Session]) -> int:
    with session_factory() as session:
        return int(session.scalar(select(func.count(Certification.id))) or 0)


def _fail_complete_chunk(
    monkeypatch: pytest.MonkeyPatch,
    exc_factory: Callable[[], Exception],
    *,
    times: int,
) -> list[int]:
    original = BatchUploadLogRepository.complete_chunk
    calls: list[int] = []

    def flaky(self, *args, **kwargs):
        calls.append(len(calls) + 1)
        if len(calls) <= times:
            raise exc_factory()
        return original(self, *args, **kwargs)

    monkeypatch.setattr(BatchUploadLogRepository, "complete_chunk", flaky)
    return calls


def _lost_connection() -> OperationalError:
    return OperationalError("UPDATE", {}, Exception("server closed the connection unexpectedly"))


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestRun:
    def test_processes_every_chunk(
        self,
        storage: LocalObjectStorage,
        session_factory: sessionmaker[Session],
        publisher: RecordingEventPublisher,
        make_batch_upload: Callable[..., uuid.UUID],
    ) -> None:
        rows = [csv_row(i) for i in range(1, 6)]
        rows[2] = csv_row(3, member_email="not-an-email")
        storage.put_object(KEY, build_csv(rows))
        batch_upload_id = make_batch_upload()

        status = _worker(storage, session_factory, publisher).run(batch_upload_id)

        assert status == BatchUploadStatus.COMPLETED
        snapshot = _snapshot(session_factory, batch_upload_id)
        assert snapshot.num_rows == 5
        assert snapshot.num_rows_processed == 5
        assert (snapshot.num_rows_succeeded, snapshot.num_rows_errored) == (4, 1)
        assert snapshot.results["error_codes"] == {"VAL_003": 1}
        assert snapshot.results["chunks_completed"] == 3
        assert snapshot.processed_at is not None
        assert [log.chunk_number for log in snapshot.audit_logs] == [1, 2, 3]
        assert {log.status for log in snapshot.audit_logs} == {ChunkStatus.COMPLETED}
        assert len(publisher.payloads_for(CERTIFICATION_CREATED)) == 4

        with session_factory() as session:
            (row_error,) = BatchUploadLogRepository(session).list_row_errors(batch_upload_id)
            assert row_error.row_number == 4
            assert row_error.error_code == "VAL_003"

    def test_header_only_file_completes_with_zero_rows(
        self,
        storage: LocalObjectStorage,
        session_factory: sessionmaker[Session],
        publisher: RecordingEventPublisher,
        make_batch_upload: Callable[..., uuid.UUID],
    ) -> None:
        storage.put_object(KEY, build_csv([]))
        batch_upload_id = make_batch_upload()

        assert _worker(storage, session_factory, publisher).run(batch_upload_id) == BatchUploadStatus.COMPLETED

        snapshot = _snapshot(session_factory, batch_upload_id)
        assert snapshot.num_rows == 0
        assert snapshot.results["num_rows"] == 0
        assert snapshot.audit_logs == []

    def test_entry_point_uses_default_chunk_size(
        self,
        storage: LocalObjectStorage,
        session_factory: sessionmaker[Session],
        publisher: RecordingEventPublisher,
        make_batch_upload: Callable[..., uuid.UUID],
    ) -> None:
        storage.put_object(KEY, build_csv([csv_row(i) for i in range(1, 4)]))
        batch_upload_id = make_batch_upload()

        status = process_batch_upload(
            batch_upload_id,
            storage=storage,
            session_factory=session_factory,
            publisher=publisher,
        )

        assert status == BatchUploadStatus.COMPLETED
        assert len(_snapshot(session_factory, batch_upload_id).audit_logs) == 1


# ---------------------------------------------------------------------------
# Refusal
# ---------------------------------------------------------------------------


class TestRefusal:
    @pytest.mark.parametrize(
        "status",
        [BatchUploadStatus.PROCESSING, BatchUploadStatus.COMPLETED, BatchUploadStatus.FAILED],
    )
    def test_non_pending_batches_are_left_alone(
        self,
        status: str,
        storage: LocalObjectStorage,
        session_factory: sessionmaker[Session],
        publisher: RecordingEventPublisher,
        make_batch_upload: Callable[..., uuid.UUID],
    ) -> None:
        storage.put_object(KEY, build_csv([csv_row(1)]))
        batch_upload_id = make_batch_upload(status=status)

        assert _worker(storage, session_factory, publisher).run(batch_upload_id) == status
        assert _snapshot(session_factory, batch_upload_id).audit_logs == []
        assert _certification_count(session_factory) == 0

    def test_resume_picks_up_a_processing_batch(
        self,
        storage: LocalObjectStorage,
        session_factory: sessionmaker[Session],
        publisher: RecordingEventPublisher,
        make_batch_upload: Callable[..., uuid.UUID],
    ) -> None:
        storage.put_object(KEY, build_csv([csv_row(1), csv_row(2)]))
        batch_upload_id = make_batch_upload(status=BatchUploadStatus.PROCESSING)

        status = _worker(storage, session_factory, publisher).run(batch_upload_id, resume=True)

        assert status == BatchUploadStatus.COMPLETED
        assert _certification_count(session_factory) == 2

    def test_missing_batch_raises(
        self,
        storage: LocalObjectStorage,
        session_factory: sessionmaker[Session],
        publisher: RecordingEventPublisher,
    ) -> None:
        with pytest.raises(BatchUploadNotFoundError):
            _worker(storage, session_factory, publisher).run(uuid.uuid4())


# ---------------------------------------------------------------------------
# Storage failures
# ---------------------------------------------------------------------------


class TestStorageRetries:
    def test_transient_failure_restarts_the_job(
        self,
        tmp_path: Path,
        session_factory: sessionmaker[Session],
        publisher: RecordingEventPublisher,
        make_batch_upload: Callable[..., uuid.UUID],
    ) -> None:
        storage = FlakyStorage(tmp_path / "flaky", fail_on={2})
        storage.put_object(KEY, build_csv([csv_row(i) for i in range(1, 6)]))
        batch_upload_id = make_batch_upload()
        sleeps: list[float] = []

        status = _worker(
            storage,
            session_factory,
            publisher,
            retry_backoff_seconds=0.5,
            sleep=sleeps.append,
        ).run(batch_upload_id)

        assert status == BatchUploadStatus.COMPLETED
        assert sleeps == [0.5]
        snapshot = _snapshot(session_factory, batch_upload_id)
        assert snapshot.num_rows_processed == 5
        assert (snapshot.num_rows_succeeded, snapshot.num_rows_errored) == (5, 0)
        assert snapshot.results["error_codes"] == {}
        assert _certification_count(session_factory) == 5
        assert len(publisher.events) == 5

    def test_persistent_failure_fails_the_batch_after_five_attempts(
        self,
        tmp_path: Path,
        session_factory: sessionmaker[Session],
        publisher: RecordingEventPublisher,
        make_batch_upload: Callable[..., uuid.UUID],
    ) -> None:
        storage = FlakyStorage(tmp_path / "flaky", always=True)
        storage.put_object(KEY, build_csv([csv_row(i) for i in range(1, 4)]))
        batch_upload_id = make_batch_upload()

        with pytest.raises(ObjectStorageError):
            _worker(storage, session_factory, publisher).run(batch_upload_id)

        assert storage.range_calls == 5
        snapshot = _snapshot(session_factory, batch_upload_id)
        assert snapshot.status == BatchUploadStatus.FAILED
        assert snapshot.results["error_code"] == "STG_001"
        assert "connection reset by peer" in snapshot.results["error"]

    def test_missing_file_fails_the_batch(
        self,
        storage: LocalObjectStorage,
        session_factory: sessionmaker[Session],
        publisher: RecordingEventPublisher,
        make_batch_upload: Callable[..., uuid.UUID],
    ) -> None:
        batch_upload_id = make_batch_upload()

        with pytest.raises(ObjectStorageError):
            _worker(storage, session_factory, publisher).run(batch_upload_id)

        assert _snapshot(session_factory, batch_upload_id).status == BatchUploadStatus.FAILED


# ---------------------------------------------------------------------------
# Chunk failures
# ---------------------------------------------------------------------------


class TestChunkFailures:
    def test_database_error_is_retried_in_place(
        self,
        storage: LocalObjectStorage,
        session_factory: sessionmaker[Session],
        publisher: RecordingEventPublisher,
        make_batch_upload: Callable[..., uuid.UUID],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        calls = _fail_complete_chunk(monkeypatch, _lost_connection, times=1)
        storage.put_object(KEY, build_csv([csv_row(i) for i in range(1, 4)]))
        batch_upload_id = make_batch_upload()

        status = _worker(storage, session_factory, publisher).run(batch_upload_id)

        assert status == BatchUploadStatus.COMPLETED
        assert len(calls) == 3
        snapshot = _snapshot(session_factory, batch_upload_id)
        assert (snapshot.num_rows_succeeded, snapshot.num_rows_errored) == (3, 0)
        assert snapshot.results["error_codes"] == {}
        assert _certification_count(session_factory) == 3

    def test_exhausted_database_retries_fail_the_batch(
        self,
        storage: LocalObjectStorage,
        session_factory: sessionmaker[Session],
        publisher: RecordingEventPublisher,
        make_batch_upload: Callable[..., uuid.UUID],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        calls = _fail_complete_chunk(monkeypatch, _lost_connection, times=100)
        storage.put_object(KEY, build_csv([csv_row(i) for i in range(1, 4)]))
        batch_upload_id = make_batch_upload()

        status = _worker(storage, session_factory, publisher).run(batch_upload_id)

        assert status == BatchUploadStatus.FAILED
        assert len(calls) == 3
        snapshot = _snapshot(session_factory, batch_upload_id)
        assert snapshot.results["error_code"] == "DB_001"
        assert snapshot.results["failed_chunk"] == 1
        assert [(log.chunk_number, log.status) for log in snapshot.audit_logs] == [(1, ChunkStatus.FAILED)]

    def test_unexpected_error_fails_the_batch_without_retry(
        self,
        storage: LocalObjectStorage,
        session_factory: sessionmaker[Session],
        publisher: RecordingEventPublisher,
        make_batch_upload: Callable[..., uuid.UUID],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        calls = _fail_complete_chunk(monkeypatch, lambda: RuntimeError("bad state"), times=100)
        storage.put_object(KEY, build_csv([csv_row(i) for i in range(1, 6)]))
        batch_upload_id = make_batch_upload()

        status = _worker(storage, session_factory, publisher).run(batch_upload_id)

        assert status == BatchUploadStatus.FAILED
        assert len(calls) == 1
        snapshot = _snapshot(session_factory, batch_upload_id)
        assert snapshot.results["error_code"] == "UNK_001"
        assert snapshot.results["num_rows_processed"] == 0
        assert snapshot.results["error"] == "RuntimeError: bad state"
