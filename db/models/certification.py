"""
db/models/certification.py

Certification record created for each valid uploaded row.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import TYPE_CHECKING, Any

from sqlalchemy import Date, Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, JSONDocument, TimestampMixin

if TYPE_CHECKING:
    from db.models.certification_origin import CertificationOrigin

COMPOUND_KEY_CONSTRAINT = "uq_certifications_compound_key"


class CertificationType:
    NEW_APPLICATION = "new_application"
    RECERTIFICATION = "recertification"

    ALL: tuple[str, ...] = (NEW_APPLICATION, RECERTIFICATION)


class Certification(Base, TimestampMixin):
    __tablename__ = "certifications"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    member_id: Mapped[str] = mapped_column(String(255), nullable=False)
    case_number: Mapped[str] = mapped_column(String(255), nullable=False)
    certification_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Denormalized from certification_requirements for the compound key",
    )
    member_data: Mapped[dict[str, Any] | None] = mapped_column(
        JSONDocument,
        nullable=True,
        comment="Name, contact and demographic details",
    )
    certification_requirements: Mapped[dict[str, Any]] = mapped_column(
        JSONDocument,
        nullable=False,
        comment="Certification type, lookback months and due date",
    )

    origin: Mapped["CertificationOrigin | None"] = relationship(
        back_populates="certification",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint(
            "member_id",
            "case_number",
            "certification_date",
            name=COMPOUND_KEY_CONSTRAINT,
        ),
        Index("ix_certifications_member_id", "member_id"),
        Index("ix_certifications_case_number", "case_number"),
    )

    @property
    def compound_key(self) -> tuple[str, str, date]:
        return (self.member_id, self.case_number, self.certification_date)

    @property
    def member_email(self) -> str | None:
        data = self.member_data or {}
        contact = data.get("contact") or {}
        return data.get("account_email") or contact.get("email")
