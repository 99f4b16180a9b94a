"""
app/storage package marker.
"""

from app.storage.base import (
    BATCH_UPLOAD_KEY_PREFIX,
    ObjectStorage,
    ObjectStorageError,
    generate_storage_key,
)
from app.storage.local import LocalObjectStorage

__all__ = [
    "BATCH_UPLOAD_KEY_PREFIX",
    "LocalObjectStorage",
    "ObjectStorage",
    "ObjectStorageError",
    "generate_storage_key",
]
