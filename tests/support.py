"""
tests/support.py

CSV and record builders shared by the test modules.
"""

from __future__ import annotations

CSV_HEADER = "member_id,case_number,member_email,certification_date,certification_type,first_name,last_name"


def csv_row(
    index: int,
    *,
    member_id: str | None = None,
    case_number: str | None = None,
    member_email: str | None = None,
    certification_date: str = "2025-01-15",
    certification_type: str = "new_application",
) -> str:
    return ",".join(
        [
            member_id if member_id is not None else f"M{index:05d}",
            case_number if case_number is not None else f"C{index:05d}",
            member_email if member_email is not None else f"member{index}@example.com",
            certification_date,
            certification_type,
            f"First{index}",
            f"Last{index}",
        ]
    )


def build_csv(rows: list[str], *, header: str = CSV_HEADER) -> bytes:
    return ("\n".join([header, *rows]) + "\n").encode("utf-8")


def valid_record(index: int = 1, **overrides: str | None) -> dict[str, str | None]:
    record: dict[str, str | None] = {
        "member_id": f"M{index:05d}",
        "case_number": f"C{index:05d}",
        "member_email": f"member{index}@example.com",
        "certification_date": "2025-01-15",
        "certification_type": "new_application",
        "first_name": f"First{index}",
        "last_name": f"Last{index}",
    }
    record.update(overrides)
    return record
