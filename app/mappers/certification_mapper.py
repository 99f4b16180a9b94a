"""
app/mappers/certification_mapper.py

Pure mapping from a validated flat record to certification column values.

Both the single-row and the bulk persistence paths build their payloads
here, so a record produces identical stored data whichever path saves it.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Mapping

from app.domain.batch_upload import CompoundKey
from app.validators.record_validator import is_blank, parse_iso_date
from db.models.certification import CertificationType

# Type-specific requirement parameters. When a record names one of these
# types, these values replace any explicit ones on the record.
CERTIFICATION_TYPE_PARAMS: dict[str, dict[str, int]] = {
    CertificationType.NEW_APPLICATION: {
        "lookback_period": 1,
        "number_of_months_to_certify": 1,
        "due_period_days": 30,
    },
    CertificationType.RECERTIFICATION: {
        "lookback_period": 6,
        "number_of_months_to_certify": 3,
        "due_period_days": 30,
    },
}

REQUIREMENT_PARAM_FIELDS: tuple[str, ...] = (
    "lookback_period",
    "number_of_months_to_certify",
    "due_period_days",
)


class RequirementDerivationError(ValueError):
    """
    Raised when certification requirements cannot be derived from a record.
    """


def _compact(values: Mapping[str, Any]) -> dict[str, Any]:
    compacted: dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, Mapping):
            if value:
                compacted[key] = dict(value)
            continue
        if is_blank(value):
            continue
        compacted[key] = value
    return compacted


def _optional_int(value: Any) -> int | None:
    if is_blank(value):
        return None
    return int(str(value).strip())


def _shift_months(month_start: date, months_back: int) -> date:
    month_index = month_start.year * 12 + (month_start.month - 1) - months_back
    return date(month_index // 12, month_index % 12 + 1, 1)


def months_that_can_be_certified(certification_date: date, lookback_period: int) -> list[date]:
    """
    First-of-month dates, newest first, going back ``lookback_period``
    months from (and including) the certification month.
    """

    month_start = certification_date.replace(day=1)
    return [_shift_months(month_start, offset) for offset in range(lookback_period)]


def parse_compound_key(member_id: Any, case_number: Any, certification_date: Any) -> CompoundKey | None:
    """
    Return the normalized compound key, or None if any part is blank or the
    date does not parse.
    """

    if is_blank(member_id) or is_blank(case_number):
        return None
    parsed = certification_date if isinstance(certification_date, date) else parse_iso_date(certification_date)
    if parsed is None:
        return None
    return (str(member_id), str(case_number), parsed)


def compound_key_for(record: Mapping[str, Any]) -> CompoundKey | None:
    return parse_compound_key(
        record.get("member_id"),
        record.get("case_number"),
        record.get("certification_date"),
    )


def build_member_data(record: Mapping[str, Any]) -> dict[str, Any]:
    name = _compact(
        {
            "first": record.get("first_name"),
            "middle": record.get("middle_name"),
            "last": record.get("last_name"),
        }
    )
    contact = _compact({"email": record.get("member_email")})
    return _compact(
        {
            "name": name,
            "account_email": record.get("member_email"),
            "contact": contact,
            "address": record.get("address"),
            "county": record.get("county"),
            "zip": record.get("zip_code"),
            "date_of_birth": record.get("date_of_birth"),
            "pregnancy_status": record.get("pregnancy_status"),
            "race_ethnicity": record.get("race_ethnicity"),
            "work_hours": record.get("work_hours"),
            "other_income_sources": record.get("other_income_sources"),
        }
    )


def build_certification_requirements(record: Mapping[str, Any]) -> dict[str, Any]:
    """
    Derive the stored requirements document from a record.

    Dates are serialized as ISO strings so the document is JSON-safe.
    """

    certification_date = parse_iso_date(record.get("certification_date"))
    if certification_date is None:
        raise RequirementDerivationError(
            f"certification_date '{record.get('certification_date')}' is not a valid date."
        )

    certification_type = record.get("certification_type")
    params: dict[str, int | None] = {
        field: _optional_int(record.get(field)) for field in REQUIREMENT_PARAM_FIELDS
    }
    if certification_type in CERTIFICATION_TYPE_PARAMS:
        params.update(CERTIFICATION_TYPE_PARAMS[certification_type])

    missing = [field for field, value in params.items() if value is None]
    if missing:
        raise RequirementDerivationError(
            f"Cannot derive certification requirements without: {', '.join(missing)}"
        )

    lookback_period = int(params["lookback_period"])
    due_date = certification_date + timedelta(days=int(params["due_period_days"]))
    return {
        "certification_date": certification_date.isoformat(),
        "certification_type": certification_type,
        "months_that_can_be_certified": [
            month.isoformat()
            for month in months_that_can_be_certified(certification_date, lookback_period)
        ],
        "number_of_months_to_certify": params["number_of_months_to_certify"],
        "due_date": due_date.isoformat(),
        "params": {
            "certification_date": certification_date.isoformat(),
            "certification_type": certification_type,
            **params,
        },
    }


def build_certification_payload(record: Mapping[str, Any]) -> dict[str, Any]:
    """
    Build the column values for one Certification row.
    """

    key = compound_key_for(record)
    if key is None:
        raise RequirementDerivationError("Record is missing a usable compound key.")
    member_id, case_number, certification_date = key
    return {
        "member_id": member_id,
        "case_number": case_number,
        "certification_date": certification_date,
        "member_data": build_member_data(record),
        "certification_requirements": build_certification_requirements(record),
    }
