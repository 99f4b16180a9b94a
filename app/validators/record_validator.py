"""
app/validators/record_validator.py

Field-level validation for uploaded certification records.

Validation collects every failure instead of stopping at the first one, so
an operator sees everything wrong with a row in a single pass. Checks run
in a fixed order:

1. Required fields present and not blank            VAL_001
2. Date fields in YYYY-MM-DD and a real date        VAL_002
3. Member email format                              VAL_003
4. Certification type in the allow-list             VAL_004
5. Optional integer fields are non-negative ints    VAL_005
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any, Mapping

from app.domain.batch_upload import ValidationFailure, ValidationResult
from app.failure_codes import ErrorCode
from db.models.certification import CertificationType

REQUIRED_FIELDS: tuple[str, ...] = (
    "member_id",
    "case_number",
    "member_email",
    "certification_date",
    "certification_type",
)

DATE_FIELDS: tuple[str, ...] = ("certification_date",)
OPTIONAL_DATE_FIELDS: tuple[str, ...] = ("date_of_birth",)

INTEGER_FIELDS: tuple[str, ...] = (
    "lookback_period",
    "number_of_months_to_certify",
    "due_period_days",
    "work_hours",
)

CERTIFICATION_TYPES: tuple[str, ...] = CertificationType.ALL

DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}", re.ASCII)
INTEGER_PATTERN = re.compile(r"\d+", re.ASCII)

# HTML5 / RFC 5322 practical subset.
EMAIL_PATTERN = re.compile(
    r"[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*"
)


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    return str(value).strip() == ""


def parse_iso_date(value: Any) -> date | None:
    """
    Parse a strict YYYY-MM-DD string, returning None for anything else.
    """

    if value is None:
        return None
    raw = str(value)
    if DATE_PATTERN.fullmatch(raw) is None:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        return None


class CertificationRecordValidator:
    """
    Validates one flat certification record keyed by column name.
    """

    def validate(self, record: Mapping[str, Any]) -> ValidationResult:
        failures: list[ValidationFailure] = []
        failures.extend(self._validate_required_fields(record))
        failures.extend(self._validate_date_fields(record))
        failures.extend(self._validate_email(record))
        failures.extend(self._validate_certification_type(record))
        failures.extend(self._validate_integer_fields(record))

        if not failures:
            return ValidationResult.ok()
        return ValidationResult.from_failures(failures)

    def _validate_required_fields(self, record: Mapping[str, Any]) -> list[ValidationFailure]:
        missing = [field for field in REQUIRED_FIELDS if is_blank(record.get(field))]
        if not missing:
            return []
        return [
            ValidationFailure(
                code=ErrorCode.MISSING_FIELDS,
                message=ErrorCode.MISSING_FIELDS.render(fields=", ".join(missing)),
            )
        ]

    def _validate_date_fields(self, record: Mapping[str, Any]) -> list[ValidationFailure]:
        failures: list[ValidationFailure] = []
        for field in DATE_FIELDS + OPTIONAL_DATE_FIELDS:
            value = record.get(field)
            # Blank required dates are already reported as missing.
            if is_blank(value):
                continue
            if parse_iso_date(value) is None:
                failures.append(
                    ValidationFailure(
                        code=ErrorCode.INVALID_DATE,
                        message=ErrorCode.INVALID_DATE.render(field=field, value=value),
                    )
                )
        return failures

    def _validate_email(self, record: Mapping[str, Any]) -> list[ValidationFailure]:
        email = record.get("member_email")
        if is_blank(email) or EMAIL_PATTERN.fullmatch(str(email)):
            return []
        return [
            ValidationFailure(
                code=ErrorCode.INVALID_EMAIL,
                message=ErrorCode.INVALID_EMAIL.render(field="member_email", value=email),
            )
        ]

    def _validate_certification_type(self, record: Mapping[str, Any]) -> list[ValidationFailure]:
        certification_type = record.get("certification_type")
        if is_blank(certification_type) or certification_type in CERTIFICATION_TYPES:
            return []
        return [
            ValidationFailure(
                code=ErrorCode.INVALID_TYPE,
                message=ErrorCode.INVALID_TYPE.render(
                    field="certification_type",
                    value=certification_type,
                    allowed=", ".join(CERTIFICATION_TYPES),
                ),
            )
        ]

    def _validate_integer_fields(self, record: Mapping[str, Any]) -> list[ValidationFailure]:
        failures: list[ValidationFailure] = []
        for field in INTEGER_FIELDS:
            value = record.get(field)
            if is_blank(value):
                continue
            if INTEGER_PATTERN.fullmatch(str(value)) is None:
                failures.append(
                    ValidationFailure(
                        code=ErrorCode.INVALID_INTEGER,
                        message=ErrorCode.INVALID_INTEGER.render(field=field, value=value),
                    )
                )
        return failures
