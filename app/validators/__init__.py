"""
app/validators package marker.
"""

from app.validators.record_validator import (
    REQUIRED_FIELDS,
    CertificationRecordValidator,
    parse_iso_date,
)

__all__ = [
    "REQUIRED_FIELDS",
    "CertificationRecordValidator",
    "parse_iso_date",
]
