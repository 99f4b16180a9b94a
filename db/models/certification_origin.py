"""
db/models/certification_origin.py

Provenance record linking a certification to the channel that created it.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from db.models.certification import Certification


class CertificationOriginSourceType:
    BATCH_UPLOAD = "batch_upload"
    MANUAL = "manual"
    API = "api"

    ALL: tuple[str, ...] = (BATCH_UPLOAD, MANUAL, API)


class CertificationOrigin(Base, TimestampMixin):
    __tablename__ = "certification_origins"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    certification_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("certifications.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    source_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="batch_upload, manual, api",
    )
    source_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        nullable=True,
        comment="Id of the producing entity, e.g. the batch upload",
    )

    certification: Mapped["Certification"] = relationship(back_populates="origin")

    __table_args__ = (
        CheckConstraint(
            "source_type IN ('batch_upload', 'manual', 'api')",
            name="ck_certification_origins_source_type",
        ),
        Index("ix_certification_origins_source", "source_type", "source_id"),
    )

    @property
    def is_batch_upload(self) -> bool:
        return self.source_type == CertificationOriginSourceType.BATCH_UPLOAD

    @property
    def is_manual(self) -> bool:
        return self.source_type == CertificationOriginSourceType.MANUAL

    @property
    def is_api(self) -> bool:
        return self.source_type == CertificationOriginSourceType.API
