"""
app/domain/batch_upload.py

Transient value types shared by the batch upload reader, validator and
processors.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from app.failure_codes import ErrorCode

# (member_id, case_number, certification_date)
CompoundKey = tuple[str, str, date]


@dataclass(frozen=True)
class ValidationFailure:
    """
    One violated rule: a taxonomy code plus a human-readable message.
    """

    code: ErrorCode
    message: str


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating one record. Failures are exhaustive and ordered
    by the validator's check order.
    """

    failures: tuple[ValidationFailure, ...] = ()

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls()

    @classmethod
    def from_failures(cls, failures: list[ValidationFailure]) -> "ValidationResult":
        return cls(failures=tuple(failures))

    @property
    def success(self) -> bool:
        return not self.failures

    @property
    def error_codes(self) -> list[str]:
        return [failure.code.value for failure in self.failures]

    @property
    def error_messages(self) -> list[str]:
        return [failure.message for failure in self.failures]

    @property
    def first(self) -> ValidationFailure | None:
        return self.failures[0] if self.failures else None


@dataclass(frozen=True)
class RecordChunk:
    """
    A bounded group of parsed records and the exact byte span they came
    from. ``end_byte`` is inclusive. ``dropped_lines`` counts malformed
    lines skipped while the chunk was filling.
    """

    records: list[dict[str, str | None]]
    headers: list[str]
    start_byte: int
    end_byte: int
    dropped_lines: int = 0

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class ChunkRange:
    """
    Location of one chunk inside a stored file, without its records.
    """

    chunk_number: int
    headers: list[str]
    start_byte: int
    end_byte: int
    record_count: int


@dataclass(frozen=True)
class ProcessingContext:
    """
    Where a record came from. A batch upload id wins over a bare source type
    when both are set.
    """

    batch_upload_id: uuid.UUID | None = None
    source_type: str | None = None

    @classmethod
    def for_batch_upload(cls, batch_upload_id: uuid.UUID) -> "ProcessingContext":
        return cls(batch_upload_id=batch_upload_id)


@dataclass(frozen=True)
class RowFailure:
    """
    One rejected row, ready to be stored as a batch upload error.
    """

    row_number: int
    error_code: str
    error_message: str
    row_data: dict[str, Any] | None = None


@dataclass
class ChunkResult:
    """
    Row-level outcome of one processed chunk.
    """

    chunk_number: int
    succeeded: int = 0
    failed: int = 0
    errors: list[RowFailure] = field(default_factory=list)
    skipped: bool = False

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed
