"""
Orchestrator for batch upload creation and async dispatch.

The orchestrator never reads file contents. It checks that the object
exists, records a pending batch upload and hands the batch id to a task
executor. Parsing and validation happen in the worker.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from functools import partial
from typing import Any, Protocol

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session, sessionmaker

from app.config import get_batch_upload_settings
from app.events import EventPublisher
from app.logging_utils import log_event, log_failure
from app.services.batch_upload_worker import process_batch_upload
from app.storage.base import ObjectStorage, generate_storage_key
from db.models.certification_batch_upload import BatchUploadSourceType, CertificationBatchUpload
from db.repositories.batch_upload_repository import BatchUploadRepository

logger = logging.getLogger(__name__)


class BatchUploadFileNotFoundError(FileNotFoundError):
    """
    Raised when the referenced object is missing from storage.
    """

    def __init__(self, storage_key: str) -> None:
        super().__init__(f"File not found in storage: {storage_key}")
        self.storage_key = storage_key


class BatchUploadTaskExecutor(Protocol):
    def submit(self, task: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        ...


class FastAPIBackgroundTaskExecutor:
    def __init__(self, background_tasks: BackgroundTasks) -> None:
        self._background_tasks = background_tasks

    def submit(self, task: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        self._background_tasks.add_task(task, *args, **kwargs)


class InlineTaskExecutor:
    """
    Runs tasks immediately in the calling thread.
    """

    def submit(self, task: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        task(*args, **kwargs)


class BatchUploadOrchestrator:
    """
    Creates batch uploads and schedules their processing.
    """

    def __init__(
        self,
        *,
        storage: ObjectStorage,
        executor: BatchUploadTaskExecutor,
        session_factory: sessionmaker[Session] | None = None,
        publisher: EventPublisher | None = None,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory
        self._storage = storage
        self._executor = executor
        self._publisher = publisher

    def initiate(
        self,
        *,
        source_type: str,
        filename: str,
        storage_key: str,
        uploader_id: uuid.UUID,
    ) -> CertificationBatchUpload:
        """
        Create a pending batch upload for a stored file and enqueue it.

        Raises BatchUploadFileNotFoundError without creating anything when
        the object does not exist. If dispatch fails the batch stays
        pending, so it can be re-submitted.
        """

        if not self._storage.object_exists(storage_key):
            log_event(
                logger,
                logging.WARNING,
                "batch_upload_file_missing",
                storage_key=storage_key,
                source_type=source_type,
            )
            raise BatchUploadFileNotFoundError(storage_key)

        with self._session_factory() as db:
            batch_upload = BatchUploadRepository(db).create(
                filename=filename,
                storage_key=storage_key,
                uploader_id=uploader_id,
                source_type=source_type,
            )
            db.commit()

        log_event(
            logger,
            logging.INFO,
            "batch_upload_created",
            batch_upload_id=batch_upload.id,
            source_type=source_type,
            storage_key=storage_key,
        )
        self.enqueue(batch_upload.id)
        return batch_upload

    def enqueue(self, batch_upload_id: uuid.UUID) -> None:
        try:
            self._executor.submit(self._job_for(), batch_upload_id)
        except Exception as exc:
            log_failure(
                logger,
                "batch_upload_dispatch_failed",
                exc,
                batch_upload_id=batch_upload_id,
            )
            raise

    def request_upload_url(self, filename: str, *, content_type: str = "text/csv") -> tuple[str, str]:
        """
        Return ``(storage_key, signed_url)`` for a direct-to-storage upload.
        """

        storage_key = generate_storage_key(filename)
        signed_url = self._storage.generate_signed_upload_url(
            storage_key,
            content_type=content_type,
            expires_in=get_batch_upload_settings().signed_url_expiry_seconds,
        )
        return storage_key, signed_url

    def _job_for(self) -> Callable[..., Any]:
        return partial(
            process_batch_upload,
            storage=self._storage,
            session_factory=self._session_factory,
            publisher=self._publisher,
        )


def initiate_batch_upload(
    *,
    storage: ObjectStorage,
    executor: BatchUploadTaskExecutor,
    filename: str,
    storage_key: str,
    uploader_id: uuid.UUID,
    source_type: str = BatchUploadSourceType.UI,
    session_factory: sessionmaker[Session] | None = None,
) -> CertificationBatchUpload:
    orchestrator = BatchUploadOrchestrator(
        storage=storage,
        executor=executor,
        session_factory=session_factory,
    )
    return orchestrator.initiate(
        source_type=source_type,
        filename=filename,
        storage_key=storage_key,
        uploader_id=uploader_id,
    )
