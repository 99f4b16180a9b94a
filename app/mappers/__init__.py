"""
app/mappers package marker.
"""

from app.mappers.certification_mapper import (
    CERTIFICATION_TYPE_PARAMS,
    RequirementDerivationError,
    build_certification_payload,
    build_certification_requirements,
    build_member_data,
    compound_key_for,
    months_that_can_be_certified,
    parse_compound_key,
)

__all__ = [
    "CERTIFICATION_TYPE_PARAMS",
    "RequirementDerivationError",
    "build_certification_payload",
    "build_certification_requirements",
    "build_member_data",
    "compound_key_for",
    "months_that_can_be_certified",
    "parse_compound_key",
]
