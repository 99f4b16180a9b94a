"""
app/services/unified_record_processor.py

Single entry point that turns flat certification records into stored
certifications, whatever channel the record came from.

Every channel runs the same steps, short-circuiting at the first failure:

    1. CertificationRecordValidator.validate()      -> ValidationError
    2. required-key re-check                         -> ValidationError
    3. compound key lookup                           -> DuplicateError
    4. build and persist certification (+ origin)    -> DatabaseError

``CertificationCreated`` is published only after the transaction commits.
A publisher failure is logged and never undoes the stored certification.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable, Mapping

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.batch_upload import CompoundKey, ProcessingContext
from app.events import CERTIFICATION_CREATED, EventPublisher, LoggingEventPublisher
from app.failure_codes import ErrorCode
from app.logging_utils import log_event, log_failure
from app.mappers.certification_mapper import (
    RequirementDerivationError,
    build_certification_payload,
    compound_key_for,
)
from app.validators.record_validator import REQUIRED_FIELDS, CertificationRecordValidator
from db.models.certification import Certification
from db.models.certification_origin import CertificationOriginSourceType
from db.repositories.certification_repository import CertificationRepository

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ProcessingError(Exception):
    """
    Base error for a record that could not be processed. Always carries a
    failure code.
    """

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class ValidationError(ProcessingError):
    """Raised when a record fails field validation."""


class DuplicateError(ProcessingError):
    """Raised when a certification with the same compound key exists."""


class DatabaseError(ProcessingError):
    """Raised when persisting a certification fails."""


def duplicate_error_for(key: CompoundKey) -> DuplicateError:
    member_id, case_number, certification_date = key
    return DuplicateError(
        ErrorCode.EXISTING_CERTIFICATION,
        ErrorCode.EXISTING_CERTIFICATION.render(
            member_id=member_id,
            case_number=case_number,
            certification_date=certification_date.isoformat(),
        ),
    )


def _database_error_for(exc: SQLAlchemyError) -> DatabaseError:
    reason = getattr(exc, "orig", None) or exc
    return DatabaseError(ErrorCode.SAVE_FAILED, ErrorCode.SAVE_FAILED.render(reason=reason))


def _origin_for(context: ProcessingContext | None) -> tuple[str | None, uuid.UUID | None]:
    if context is None:
        return None, None
    if context.batch_upload_id is not None:
        return CertificationOriginSourceType.BATCH_UPLOAD, context.batch_upload_id
    if context.source_type is not None:
        return context.source_type, None
    return None, None


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------


class UnifiedRecordProcessor:
    def __init__(
        self,
        session: Session,
        *,
        validator: CertificationRecordValidator | None = None,
        publisher: EventPublisher | None = None,
    ) -> None:
        self._session = session
        self._validator = validator or CertificationRecordValidator()
        self._publisher = publisher or LoggingEventPublisher()
        self._certifications = CertificationRepository(session)

    def process(
        self,
        record: Mapping[str, Any],
        context: ProcessingContext | None = None,
    ) -> Certification:
        """
        Validate, de-duplicate and persist one record in its own transaction.
        """

        self._validate(record)
        self._check_schema(record)
        key = self._require_key(record)
        self._check_duplicate(key)
        certification = self._persist(record, key, context)
        self._publish_created([certification.id])
        return certification

    def bulk_persist(
        self,
        records: Iterable[Mapping[str, Any]],
        context: ProcessingContext | None = None,
    ) -> list[uuid.UUID]:
        """
        Insert many already-screened records in one transaction.

        Either every record is stored or none is. Callers are expected to
        have removed duplicates; an invalid record raises ValidationError
        before anything is written.
        """

        payloads: list[dict[str, Any]] = []
        for record in records:
            self._validate(record)
            payloads.append({"id": uuid.uuid4(), **self._build_payload(record)})
        if not payloads:
            return []

        source_type, source_id = _origin_for(context)
        try:
            certification_ids = self._certifications.bulk_insert(
                payloads,
                origin_source_type=source_type,
                origin_source_id=source_id,
            )
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            log_failure(
                logger,
                "certification_bulk_persist_failed",
                exc,
                record_count=len(payloads),
                batch_upload_id=source_id,
            )
            raise _database_error_for(exc) from exc

        log_event(
            logger,
            logging.INFO,
            "certification_bulk_persisted",
            record_count=len(certification_ids),
            batch_upload_id=source_id,
        )
        self._publish_created(certification_ids)
        return certification_ids

    def find_existing_duplicates(self, records: Iterable[Mapping[str, Any]]) -> set[CompoundKey]:
        """
        Return the compound keys among ``records`` that are already stored.

        Records without a usable key are ignored. Issues a single query.
        """

        keys = {key for key in (compound_key_for(record) for record in records) if key is not None}
        return self._certifications.find_existing_keys(keys)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _validate(self, record: Mapping[str, Any]) -> None:
        result = self._validator.validate(record)
        if result.success:
            return
        failure = result.first
        raise ValidationError(failure.code, failure.message)

    def _check_schema(self, record: Mapping[str, Any]) -> None:
        missing = [field for field in REQUIRED_FIELDS if field not in record]
        if missing:
            raise ValidationError(
                ErrorCode.MISSING_FIELDS,
                ErrorCode.MISSING_FIELDS.render(fields=", ".join(missing)),
            )

    def _require_key(self, record: Mapping[str, Any]) -> CompoundKey:
        key = compound_key_for(record)
        if key is None:
            raise ValidationError(
                ErrorCode.MISSING_FIELDS,
                ErrorCode.MISSING_FIELDS.render(fields="member_id, case_number, certification_date"),
            )
        return key

    def _check_duplicate(self, key: CompoundKey) -> None:
        member_id, case_number, certification_date = key
        if self._certifications.exists_for(
            member_id=member_id,
            case_number=case_number,
            certification_date=certification_date,
        ):
            raise duplicate_error_for(key)

    def _build_payload(self, record: Mapping[str, Any]) -> dict[str, Any]:
        try:
            return build_certification_payload(record)
        except RequirementDerivationError as exc:
            raise ValidationError(ErrorCode.MISSING_FIELDS, str(exc)) from exc

    def _persist(
        self,
        record: Mapping[str, Any],
        key: CompoundKey,
        context: ProcessingContext | None,
    ) -> Certification:
        payload = self._build_payload(record)
        source_type, source_id = _origin_for(context)
        try:
            certification = self._certifications.add(
                payload,
                origin_source_type=source_type,
                origin_source_id=source_id,
            )
            self._session.commit()
        except IntegrityError as exc:
            self._session.rollback()
            # Lost a race with a concurrent insert of the same key.
            if self._certifications.exists_for(
                member_id=key[0],
                case_number=key[1],
                certification_date=key[2],
            ):
                raise duplicate_error_for(key) from exc
            raise _database_error_for(exc) from exc
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise _database_error_for(exc) from exc
        return certification

    def _publish_created(self, certification_ids: list[uuid.UUID]) -> None:
        for certification_id in certification_ids:
            try:
                self._publisher.publish(CERTIFICATION_CREATED, {"certification_id": certification_id})
            except Exception as exc:
                log_failure(
                    logger,
                    "certification_created_publish_failed",
                    exc,
                    level=logging.WARNING,
                    certification_id=certification_id,
                )
