"""
app/failure_codes.py

Shared failure code catalog for batch upload error handling.

Every failure that crosses a component boundary carries exactly one code
from this catalog. Codes are grouped into categories; the category decides
the retry strategy the calling worker applies:

    VAL_*  Validation  log the row and skip it, never retried
    DUP_*  Duplicate   log the row and skip it, never retried
    DB_*   Database    retry the containing chunk (3 attempts)
    STG_*  Storage     retry the containing job (5 attempts)
    UNK_*  Unknown     abort the batch, manual intervention

This module only classifies. Retrying is the caller's job.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from sqlalchemy.exc import SQLAlchemyError


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    DUPLICATE = "duplicate"
    DATABASE = "database"
    STORAGE = "storage"
    UNKNOWN = "unknown"


class RetryStrategy(str, Enum):
    LOG_AND_SKIP = "log_and_skip"
    RETRY_CHUNK = "retry_chunk"
    RETRY_JOB = "retry_job"
    ABORT_BATCH = "abort_batch"


class ErrorCode(str, Enum):
    MISSING_FIELDS = "VAL_001"
    INVALID_DATE = "VAL_002"
    INVALID_EMAIL = "VAL_003"
    INVALID_TYPE = "VAL_004"
    INVALID_INTEGER = "VAL_005"
    EXISTING_CERTIFICATION = "DUP_001"
    SAVE_FAILED = "DB_001"
    READ_FAILED = "STG_001"
    UNEXPECTED = "UNK_001"

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORY_BY_PREFIX[self.value.split("_", 1)[0]]

    @property
    def policy(self) -> "RetryPolicy":
        return RETRY_POLICIES[self.category]

    def render(self, **params: Any) -> str:
        """
        Format this code's message template with the given parameters.
        """

        return MESSAGE_TEMPLATES[self].format(**params)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry behaviour attached to one error category.

    ``max_attempts`` counts the first attempt, so 1 means "never retried".
    """

    strategy: RetryStrategy
    max_attempts: int

    @property
    def retryable(self) -> bool:
        return self.max_attempts > 1


_CATEGORY_BY_PREFIX: Mapping[str, ErrorCategory] = MappingProxyType(
    {
        "VAL": ErrorCategory.VALIDATION,
        "DUP": ErrorCategory.DUPLICATE,
        "DB": ErrorCategory.DATABASE,
        "STG": ErrorCategory.STORAGE,
        "UNK": ErrorCategory.UNKNOWN,
    }
)

RETRY_POLICIES: Mapping[ErrorCategory, RetryPolicy] = MappingProxyType(
    {
        ErrorCategory.VALIDATION: RetryPolicy(RetryStrategy.LOG_AND_SKIP, max_attempts=1),
        ErrorCategory.DUPLICATE: RetryPolicy(RetryStrategy.LOG_AND_SKIP, max_attempts=1),
        ErrorCategory.DATABASE: RetryPolicy(RetryStrategy.RETRY_CHUNK, max_attempts=3),
        ErrorCategory.STORAGE: RetryPolicy(RetryStrategy.RETRY_JOB, max_attempts=5),
        ErrorCategory.UNKNOWN: RetryPolicy(RetryStrategy.ABORT_BATCH, max_attempts=1),
    }
)

MESSAGE_TEMPLATES: Mapping[ErrorCode, str] = MappingProxyType(
    {
        ErrorCode.MISSING_FIELDS: "Missing required fields: {fields}",
        ErrorCode.INVALID_DATE: (
            "Field '{field}' has invalid date '{value}' (wrong format or unparseable). "
            "Expected valid date in YYYY-MM-DD format (e.g., 2025-01-15)"
        ),
        ErrorCode.INVALID_EMAIL: (
            "Field '{field}' has invalid email format '{value}'. "
            "Expected valid email (e.g., user@example.com)"
        ),
        ErrorCode.INVALID_TYPE: (
            "Field '{field}' has invalid value '{value}'. Allowed values: {allowed}"
        ),
        ErrorCode.INVALID_INTEGER: (
            "Field '{field}' has invalid integer value '{value}'. "
            "Expected non-negative integer (e.g., 30)"
        ),
        ErrorCode.EXISTING_CERTIFICATION: (
            "Duplicate certification for member_id {member_id}, "
            "case_number {case_number}, certification_date {certification_date}"
        ),
        ErrorCode.SAVE_FAILED: "Failed to save certification: {reason}",
        ErrorCode.READ_FAILED: "Failed to read '{key}' from storage: {reason}",
        ErrorCode.UNEXPECTED: "Unexpected error: {error_type} - {reason}",
    }
)


def all_codes() -> tuple[str, ...]:
    return tuple(code.value for code in ErrorCode)


def codes_for(category: ErrorCategory) -> tuple[ErrorCode, ...]:
    return tuple(code for code in ErrorCode if code.category is category)


def classify_exception(exc: BaseException) -> ErrorCode:
    """
    Map any exception to exactly one taxonomy code.

    Exceptions that already carry a code (processing and storage errors)
    keep it; raw SQLAlchemy failures become DB_001; everything else is
    UNK_001.
    """

    code = getattr(exc, "code", None)
    if isinstance(code, ErrorCode):
        return code
    if isinstance(code, str):
        try:
            return ErrorCode(code)
        except ValueError:
            pass
    if isinstance(exc, SQLAlchemyError):
        return ErrorCode.SAVE_FAILED
    return ErrorCode.UNEXPECTED
