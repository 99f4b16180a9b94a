"""
Repository for certification rows and their provenance records.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, Iterable

from sqlalchemy import insert, select
from sqlalchemy.orm import Session

from db.models.certification import Certification
from db.models.certification_origin import CertificationOrigin

CompoundKey = tuple[str, str, date]


class CertificationRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, certification_id: uuid.UUID) -> Certification | None:
        return self._session.get(Certification, certification_id)

    def exists_for(self, *, member_id: str, case_number: str, certification_date: date) -> bool:
        stmt = (
            select(Certification.id)
            .where(
                Certification.member_id == member_id,
                Certification.case_number == case_number,
                Certification.certification_date == certification_date,
            )
            .limit(1)
        )
        return self._session.scalar(stmt) is not None

    def find_existing_keys(self, keys: Iterable[CompoundKey]) -> set[CompoundKey]:
        """
        Return the subset of ``keys`` already stored, using one query.

        The query narrows by member and case; the exact three-part match is
        done on the returned candidates.
        """

        wanted = set(keys)
        if not wanted:
            return set()
        member_ids = {member_id for member_id, _, _ in wanted}
        case_numbers = {case_number for _, case_number, _ in wanted}
        stmt = select(
            Certification.member_id,
            Certification.case_number,
            Certification.certification_date,
        ).where(
            Certification.member_id.in_(member_ids),
            Certification.case_number.in_(case_numbers),
        )
        existing = {
            (member_id, case_number, certification_date)
            for member_id, case_number, certification_date in self._session.execute(stmt).all()
        }
        return wanted & existing

    def find_keys_created_by(
        self,
        keys: Iterable[CompoundKey],
        *,
        source_type: str,
        source_id: uuid.UUID,
        created_since: datetime,
    ) -> set[CompoundKey]:
        """
        Return the subset of ``keys`` stored by the given source at or after
        ``created_since``.
        """

        wanted = set(keys)
        if not wanted:
            return set()
        stmt = (
            select(
                Certification.member_id,
                Certification.case_number,
                Certification.certification_date,
            )
            .join(CertificationOrigin, CertificationOrigin.certification_id == Certification.id)
            .where(
                CertificationOrigin.source_type == source_type,
                CertificationOrigin.source_id == source_id,
                Certification.member_id.in_({member_id for member_id, _, _ in wanted}),
                Certification.created_at >= created_since,
            )
        )
        created = {tuple(row) for row in self._session.execute(stmt).all()}
        return wanted & created

    def add(
        self,
        payload: dict[str, Any],
        *,
        origin_source_type: str | None = None,
        origin_source_id: uuid.UUID | None = None,
    ) -> Certification:
        certification = Certification(**payload)
        if origin_source_type is not None:
            certification.origin = CertificationOrigin(
                source_type=origin_source_type,
                source_id=origin_source_id,
            )
        self._session.add(certification)
        self._session.flush()
        return certification

    def bulk_insert(
        self,
        payloads: list[dict[str, Any]],
        *,
        origin_source_type: str | None = None,
        origin_source_id: uuid.UUID | None = None,
    ) -> list[uuid.UUID]:
        """
        Insert certifications (and origins, when a source is given) with one
        statement per table. Payloads without an ``id`` are assigned one.
        """

        if not payloads:
            return []
        rows = [{**payload, "id": payload.get("id") or uuid.uuid4()} for payload in payloads]
        self._session.execute(insert(Certification), rows)

        certification_ids = [row["id"] for row in rows]
        if origin_source_type is not None:
            self._session.execute(
                insert(CertificationOrigin),
                [
                    {
                        "id": uuid.uuid4(),
                        "certification_id": certification_id,
                        "source_type": origin_source_type,
                        "source_id": origin_source_id,
                    }
                    for certification_id in certification_ids
                ],
            )
        return certification_ids

    def get_origin(self, certification_id: uuid.UUID) -> CertificationOrigin | None:
        stmt = select(CertificationOrigin).where(
            CertificationOrigin.certification_id == certification_id
        )
        return self._session.scalars(stmt).one_or_none()
