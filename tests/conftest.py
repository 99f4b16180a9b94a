"""
tests/conftest.py

Shared fixtures: an in-memory SQLite database with foreign keys enforced,
a session factory bound to it, a temp-dir object store and a recording
event publisher.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import db.models  # noqa: F401  registers every model on Base.metadata
from app.events import RecordingEventPublisher
from app.storage.local import LocalObjectStorage
from db.base import Base
from db.models.certification_batch_upload import (
    BatchUploadSourceType,
    BatchUploadStatus,
    CertificationBatchUpload,
)
from db.session import build_session_factory


@pytest.fixture()
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return build_session_factory(engine)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def storage(tmp_path: Path) -> LocalObjectStorage:
    return LocalObjectStorage(tmp_path / "object-storage")


@pytest.fixture()
def publisher() -> RecordingEventPublisher:
    return RecordingEventPublisher()


@pytest.fixture()
def make_batch_upload(
    session_factory: sessionmaker[Session],
) -> Callable[..., uuid.UUID]:
    """Persist a batch upload and return its id."""

    def _make(
        *,
        status: str = BatchUploadStatus.PENDING,
        num_rows: int = 0,
        storage_key: str = "batch-uploads/test/upload.csv",
    ) -> uuid.UUID:
        with session_factory() as session:
            batch_upload = CertificationBatchUpload(
                filename="upload.csv",
                uploader_id=uuid.uuid4(),
                source_type=BatchUploadSourceType.UI,
                storage_key=storage_key,
                status=status,
                num_rows=num_rows,
                num_rows_processed=0,
                num_rows_succeeded=0,
                num_rows_errored=0,
            )
            session.add(batch_upload)
            session.commit()
            return batch_upload.id

    return _make
