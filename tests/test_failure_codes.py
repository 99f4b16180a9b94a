"""
tests/test_failure_codes.py

Unit tests for the failure code catalog: categories, retry policies,
message templates and exception classification.
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from app.failure_codes import (
    MESSAGE_TEMPLATES,
    RETRY_POLICIES,
    ErrorCategory,
    ErrorCode,
    RetryStrategy,
    all_codes,
    classify_exception,
    codes_for,
)
from app.services.unified_record_processor import DuplicateError
from app.storage.base import ObjectStorageError


# ---------------------------------------------------------------------------
# Catalog shape
# ---------------------------------------------------------------------------


class TestCatalog:
    def test_all_codes_are_stable_strings(self) -> None:
        assert all_codes() == (
            "VAL_001",
            "VAL_002",
            "VAL_003",
            "VAL_004",
            "VAL_005",
            "DUP_001",
            "DB_001",
            "STG_001",
            "UNK_001",
        )

    def test_every_code_has_a_template(self) -> None:
        assert set(MESSAGE_TEMPLATES) == set(ErrorCode)

    def test_every_category_has_a_policy(self) -> None:
        assert set(RETRY_POLICIES) == set(ErrorCategory)

    @pytest.mark.parametrize(
        ("code", "category"),
        [
            (ErrorCode.MISSING_FIELDS, ErrorCategory.VALIDATION),
            (ErrorCode.INVALID_INTEGER, ErrorCategory.VALIDATION),
            (ErrorCode.EXISTING_CERTIFICATION, ErrorCategory.DUPLICATE),
            (ErrorCode.SAVE_FAILED, ErrorCategory.DATABASE),
            (ErrorCode.READ_FAILED, ErrorCategory.STORAGE),
            (ErrorCode.UNEXPECTED, ErrorCategory.UNKNOWN),
        ],
    )
    def test_category_follows_prefix(self, code: ErrorCode, category: ErrorCategory) -> None:
        assert code.category is category

    def test_codes_for_validation(self) -> None:
        assert [code.value for code in codes_for(ErrorCategory.VALIDATION)] == [
            "VAL_001",
            "VAL_002",
            "VAL_003",
            "VAL_004",
            "VAL_005",
        ]


# ---------------------------------------------------------------------------
# Retry policies
# ---------------------------------------------------------------------------


class TestRetryPolicies:
    def test_row_level_categories_are_never_retried(self) -> None:
        for code in (ErrorCode.INVALID_DATE, ErrorCode.EXISTING_CERTIFICATION):
            assert code.policy.strategy is RetryStrategy.LOG_AND_SKIP
            assert code.policy.retryable is False

    def test_database_retries_the_chunk_three_times(self) -> None:
        policy = ErrorCode.SAVE_FAILED.policy
        assert policy.strategy is RetryStrategy.RETRY_CHUNK
        assert policy.max_attempts == 3

    def test_storage_retries_the_job_five_times(self) -> None:
        policy = ErrorCode.READ_FAILED.policy
        assert policy.strategy is RetryStrategy.RETRY_JOB
        assert policy.max_attempts == 5

    def test_unknown_aborts_the_batch(self) -> None:
        policy = ErrorCode.UNEXPECTED.policy
        assert policy.strategy is RetryStrategy.ABORT_BATCH
        assert policy.retryable is False


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


class TestRender:
    def test_missing_fields_message(self) -> None:
        message = ErrorCode.MISSING_FIELDS.render(fields="case_number, member_email")
        assert message == "Missing required fields: case_number, member_email"

    def test_invalid_date_message_mentions_format(self) -> None:
        message = ErrorCode.INVALID_DATE.render(field="certification_date", value="2025-02-30")
        assert "certification_date" in message
        assert "2025-02-30" in message
        assert "unparseable" in message
        assert "YYYY-MM-DD" in message

    def test_duplicate_message_names_the_key(self) -> None:
        message = ErrorCode.EXISTING_CERTIFICATION.render(
            member_id="M1",
            case_number="C1",
            certification_date="2025-01-15",
        )
        assert "M1" in message and "C1" in message and "2025-01-15" in message


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class TestClassifyException:
    def test_processing_errors_keep_their_code(self) -> None:
        exc = DuplicateError(ErrorCode.EXISTING_CERTIFICATION, "dup")
        assert classify_exception(exc) is ErrorCode.EXISTING_CERTIFICATION

    def test_storage_errors_are_storage(self) -> None:
        exc = ObjectStorageError("batch-uploads/x.csv", "connection reset")
        assert classify_exception(exc) is ErrorCode.READ_FAILED

    def test_sqlalchemy_errors_are_database(self) -> None:
        exc = OperationalError("SELECT 1", {}, Exception("database is locked"))
        assert classify_exception(exc) is ErrorCode.SAVE_FAILED

    def test_string_code_attribute_is_honoured(self) -> None:
        class CodedError(Exception):
            code = "VAL_003"

        assert classify_exception(CodedError()) is ErrorCode.INVALID_EMAIL

    def test_unrecognised_code_and_plain_errors_are_unknown(self) -> None:
        class OtherCodedError(Exception):
            code = "HTTP_404"

        assert classify_exception(OtherCodedError()) is ErrorCode.UNEXPECTED
        assert classify_exception(KeyError("boom")) is ErrorCode.UNEXPECTED
