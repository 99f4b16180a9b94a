"""
Schemas for batch upload summaries and status snapshots.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class BatchUploadResults(BaseModel):
    """
    Terminal summary stored in ``CertificationBatchUpload.results``.
    """

    num_rows: int = Field(ge=0)
    num_rows_succeeded: int = Field(ge=0)
    num_rows_errored: int = Field(ge=0)
    chunks_completed: int = Field(ge=0)
    error_codes: dict[str, int] = Field(default_factory=dict)

    def to_results(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class ChunkAuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    chunk_number: int
    status: str
    succeeded_count: int
    failed_count: int
    created_at: datetime
    updated_at: datetime


class RowErrorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    row_number: int
    error_code: str
    error_message: str
    row_data: dict[str, Any] | None = None


class BatchUploadStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    filename: str
    source_type: str
    status: str
    num_rows: int
    num_rows_processed: int
    num_rows_succeeded: int
    num_rows_errored: int
    results: dict[str, Any] | None = None
    created_at: datetime
    processed_at: datetime | None = None
    audit_logs: list[ChunkAuditLogResponse] = Field(default_factory=list)
