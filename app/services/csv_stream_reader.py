"""
app/services/csv_stream_reader.py

Streaming CSV reader that turns a stored object into bounded chunks of
records with exact byte ranges.

Offsets are counted in UTF-8 bytes over every line seen, including blank
and malformed ones, so a chunk's ``[start_byte, end_byte]`` span can be
re-read later with ``read_range`` and yields exactly the same records.
"""

from __future__ import annotations

import csv
import logging
from typing import Iterable, Iterator

from app.config import DEFAULT_CHUNK_SIZE
from app.domain.batch_upload import ChunkRange, RecordChunk
from app.logging_utils import log_event
from app.storage.base import ObjectStorage

logger = logging.getLogger(__name__)

_BOM = "\ufeff"
_LINE_TERMINATORS = "\r\n"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class CSVHeaderError(ValueError):
    """
    Raised when the header line of a stored file cannot be parsed.
    """


# ---------------------------------------------------------------------------
# Line parsing
# ---------------------------------------------------------------------------


def _byte_length(line: str) -> int:
    return len(line.encode("utf-8"))


def _is_blank(line: str) -> bool:
    return not line.strip()


def _parse_values(line: str) -> list[str] | None:
    """
    Parse one physical line into raw values, or None when it is malformed.
    """

    try:
        rows = list(csv.reader([line.rstrip(_LINE_TERMINATORS)], strict=True))
    except csv.Error:
        return None
    if not rows:
        return None
    return rows[0]


def parse_headers(line: str) -> list[str]:
    values = _parse_values(line)
    if values is None:
        raise CSVHeaderError(f"Unable to parse CSV header line: {line.strip()!r}")
    headers = [value.strip() for value in values]
    if headers:
        headers[0] = headers[0].lstrip(_BOM)
    return headers


def parse_record(line: str, headers: list[str]) -> dict[str, str | None] | None:
    """
    Parse a data line into a header-keyed record.

    Missing trailing values become None and surplus values are ignored.
    Returns None for malformed lines and lines whose fields are all empty.
    """

    values = _parse_values(line)
    if values is None or not values or all(value == "" for value in values):
        return None
    record: dict[str, str | None] = {}
    for index, header in enumerate(headers):
        value = values[index] if index < len(values) else ""
        record[header] = value if value != "" else None
    return record


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------


class CSVStreamReader:
    """
    Reads stored CSV objects line by line without buffering the whole file.
    """

    def __init__(self, storage: ObjectStorage) -> None:
        self._storage = storage

    def each_chunk(self, storage_key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[RecordChunk]:
        """
        Yield chunks of at most ``chunk_size`` records, in file order.

        The iterator is lazy and single-use. An empty or header-only object
        yields nothing. A non-positive ``chunk_size`` raises ValueError when
        iteration starts.
        """

        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}.")
        headers: list[str] | None = None
        offset = 0
        records: list[dict[str, str | None]] = []
        start_byte = 0
        end_byte = 0
        dropped = 0

        for line in self._storage.stream_object(storage_key):
            line_start = offset
            offset += _byte_length(line)

            if _is_blank(line):
                continue
            if headers is None:
                headers = parse_headers(line)
                continue

            record = parse_record(line, headers)
            if record is None:
                dropped += 1
                continue

            if not records:
                start_byte = line_start
            records.append(record)
            end_byte = offset - 1

            if len(records) >= chunk_size:
                yield self._close_chunk(storage_key, records, headers, start_byte, end_byte, dropped)
                records = []
                dropped = 0

        if records and headers is not None:
            yield self._close_chunk(storage_key, records, headers, start_byte, end_byte, dropped)
        elif dropped:
            self._log_dropped(storage_key, dropped)

    def scan_chunks(self, storage_key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[ChunkRange]:
        """
        Yield chunk locations only, numbered from 1, discarding records as
        soon as each chunk closes.
        """

        for chunk_number, chunk in enumerate(self.each_chunk(storage_key, chunk_size), start=1):
            yield ChunkRange(
                chunk_number=chunk_number,
                headers=list(chunk.headers),
                start_byte=chunk.start_byte,
                end_byte=chunk.end_byte,
                record_count=len(chunk),
            )

    def read_range(
        self,
        storage_key: str,
        headers: list[str],
        start_byte: int,
        end_byte: int,
    ) -> list[dict[str, str | None]]:
        """
        Re-read exactly one chunk's byte span and parse it with ``headers``.
        """

        lines = self._storage.stream_object_range(storage_key, start_byte, end_byte)
        return self._parse_lines(lines, headers)

    def _parse_lines(self, lines: Iterable[str], headers: list[str]) -> list[dict[str, str | None]]:
        records: list[dict[str, str | None]] = []
        for line in lines:
            if _is_blank(line):
                continue
            record = parse_record(line, headers)
            if record is not None:
                records.append(record)
        return records

    def _close_chunk(
        self,
        storage_key: str,
        records: list[dict[str, str | None]],
        headers: list[str],
        start_byte: int,
        end_byte: int,
        dropped: int,
    ) -> RecordChunk:
        if dropped:
            self._log_dropped(storage_key, dropped)
        return RecordChunk(
            records=records,
            headers=list(headers),
            start_byte=start_byte,
            end_byte=end_byte,
            dropped_lines=dropped,
        )

    def _log_dropped(self, storage_key: str, dropped: int) -> None:
        log_event(
            logger,
            logging.WARNING,
            "csv_malformed_lines_dropped",
            storage_key=storage_key,
            dropped_lines=dropped,
        )
