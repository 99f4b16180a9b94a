"""
Local filesystem implementation of the object storage interface.

Used for development and tests; keys map to paths under ``root_dir``.
"""

from __future__ import annotations

import io
import shutil
import time
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterator
from urllib.parse import urlencode

from app.config import get_batch_upload_settings
from app.storage.base import ObjectStorageError

_READ_BLOCK_SIZE = 64 * 1024


class LocalObjectStorage:
    def __init__(self, root_dir: str | Path | None = None) -> None:
        if root_dir is None:
            root_dir = get_batch_upload_settings().storage_root
        self._root_dir = Path(root_dir)

    @property
    def root_dir(self) -> Path:
        return self._root_dir

    def _path_for(self, key: str) -> Path:
        relative = PurePosixPath(key)
        if not key or relative.is_absolute() or ".." in relative.parts:
            raise ObjectStorageError(key, "invalid object key")
        return self._root_dir.joinpath(*relative.parts)

    def put_object(self, key: str, content: bytes) -> None:
        target = self._path_for(key)
        tmp_path = target.with_suffix(f"{target.suffix}.tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("wb") as handle:
                handle.write(content)
            tmp_path.replace(target)
        except OSError as exc:
            raise ObjectStorageError(key, str(exc)) from exc
        finally:
            if tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError:
                    pass

    def object_exists(self, key: str) -> bool:
        try:
            return self._path_for(key).is_file()
        except ObjectStorageError:
            return False

    def stream_object(self, key: str) -> Iterator[str]:
        path = self._path_for(key)
        try:
            with path.open("rb") as handle:
                for raw_line in handle:
                    yield raw_line.decode("utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ObjectStorageError(key, str(exc)) from exc

    def stream_object_range(self, key: str, start_byte: int, end_byte: int) -> Iterator[str]:
        if start_byte < 0 or end_byte < start_byte:
            raise ObjectStorageError(key, f"invalid byte range {start_byte}-{end_byte}")
        path = self._path_for(key)
        try:
            with path.open("rb") as handle:
                handle.seek(start_byte)
                remaining = end_byte - start_byte + 1
                content = handle.read(remaining)
        except OSError as exc:
            raise ObjectStorageError(key, str(exc)) from exc
        try:
            for raw_line in io.BytesIO(content):
                yield raw_line.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ObjectStorageError(key, str(exc)) from exc

    def generate_signed_upload_url(self, key: str, *, content_type: str, expires_in: int) -> str:
        target = self._path_for(key).resolve()
        query = urlencode(
            {
                "content_type": content_type,
                "expires_at": int(time.time()) + max(1, int(expires_in)),
            }
        )
        return f"{target.as_uri()}?{query}"

    def delete_object(self, key: str) -> None:
        target = self._path_for(key)
        if not target.exists():
            return
        try:
            target.unlink()
        except OSError as exc:
            raise ObjectStorageError(key, str(exc)) from exc

    def download_to_file(self, key: str, destination: BinaryIO) -> None:
        path = self._path_for(key)
        try:
            with path.open("rb") as handle:
                shutil.copyfileobj(handle, destination, _READ_BLOCK_SIZE)
        except OSError as exc:
            raise ObjectStorageError(key, str(exc)) from exc
