"""
Object storage abstractions for uploaded batch files.
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import BinaryIO, Iterator, Protocol

from app.failure_codes import ErrorCode

BATCH_UPLOAD_KEY_PREFIX = "batch-uploads"


class ObjectStorageError(Exception):
    """
    Raised when an object cannot be read, written or deleted.
    """

    code = ErrorCode.READ_FAILED

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(ErrorCode.READ_FAILED.render(key=key, reason=reason))
        self.key = key
        self.reason = reason


class ObjectStorage(Protocol):
    """
    Narrow storage interface consumed by the batch upload pipeline.

    ``stream_object`` and ``stream_object_range`` yield decoded text lines
    with their line terminators kept, so callers can recover byte offsets.
    ``end_byte`` is inclusive.
    """

    def object_exists(self, key: str) -> bool:
        ...

    def stream_object(self, key: str) -> Iterator[str]:
        ...

    def stream_object_range(self, key: str, start_byte: int, end_byte: int) -> Iterator[str]:
        ...

    def generate_signed_upload_url(self, key: str, *, content_type: str, expires_in: int) -> str:
        ...

    def delete_object(self, key: str) -> None:
        ...

    def download_to_file(self, key: str, destination: BinaryIO) -> None:
        ...


def generate_storage_key(filename: str) -> str:
    """
    Build a unique object key for an uploaded file.
    """

    safe_name = Path(filename).name.strip()
    if not safe_name:
        raise ValueError("Invalid file name.")
    return f"{BATCH_UPLOAD_KEY_PREFIX}/{uuid.uuid4()}/{safe_name}"
