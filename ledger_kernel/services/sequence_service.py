"""
SequenceService -- per-year, per-type document number allocation.

Responsibility:
    Hands out strictly increasing integers for each
    (academic year, document type, scope).  Formatting (``INV-12``) is the
    caller's job (domain/numbering.py).

Architecture position:
    Kernel > Services -- imperative shell.
    Called by DocumentService, PaymentService and ReturnService inside the
    caller's transaction, after validation and immediately before the
    rows that carry the number are inserted.

Invariants enforced:
    - Numbers come from the locked counter row (``SELECT ... FOR UPDATE``).
      The MAX(number)+1 anti-pattern is never used.
    - Numbers are never reused.  The service never commits, so a rolled
      back transaction returns its number; a committed one keeps it forever.
    - A missing counter row is created inside a savepoint.  If a concurrent
      transaction wins the insert (IntegrityError on uq_document_sequence)
      the savepoint is rolled back and the winner's row is re-read under
      lock.

Failure modes:
    - InvalidDocumentNumberError: claim_number() with a number not greater
      than the last one issued.
    - ConcurrentSequenceConflictError (retryable): the counter row could
      neither be inserted nor found after a race.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock
from ledger_kernel.exceptions import (
    ConcurrentSequenceConflictError,
    InvalidDocumentNumberError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sequence import DEFAULT_SCOPE, DocumentSequence, DocumentType
from ledger_kernel.services.base import BaseService

logger = get_logger("services.sequence")


class SequenceService(BaseService[DocumentSequence]):
    """
    Service for generating document numbers.

    Usage:
        number = sequence_service.next_number(year.id, DocumentType.INVOICE)
        # If the transaction rolls back, the number is not consumed
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    def next_number(
        self,
        academic_year_id: UUID,
        document_type: DocumentType,
        scope: str = DEFAULT_SCOPE,
    ) -> int:
        """
        Allocate the next number.

        Postconditions:
            - Returns an integer > 0, strictly greater than any number
              previously returned for the same key.
            - The counter row stays locked until the transaction ends.
        """
        document_type = DocumentType(document_type)
        counter = self._lock_counter(academic_year_id, document_type, scope)

        if counter is None:
            created = self._insert_counter(academic_year_id, document_type, scope, 1)
            if created is not None:
                logger.debug(
                    "sequence_allocated",
                    extra={
                        "document_type": document_type.value,
                        "scope": scope,
                        "value": 1,
                    },
                )
                return 1
            counter = self._relock_after_race(academic_year_id, document_type, scope)

        counter.last_number += 1
        self.session.flush()
        logger.debug(
            "sequence_allocated",
            extra={
                "document_type": document_type.value,
                "scope": scope,
                "value": counter.last_number,
            },
        )
        return counter.last_number

    def peek_next(
        self,
        academic_year_id: UUID,
        document_type: DocumentType,
        scope: str = DEFAULT_SCOPE,
    ) -> int:
        """Preview the number the next allocation would return.  No lock, no write."""
        last = self.session.execute(
            select(DocumentSequence.last_number).where(
                DocumentSequence.academic_year_id == academic_year_id,
                DocumentSequence.document_type == DocumentType(document_type).value,
                DocumentSequence.scope == scope,
            )
        ).scalar_one_or_none()
        return (last or 0) + 1

    def claim_number(
        self,
        academic_year_id: UUID,
        document_type: DocumentType,
        requested: int,
        scope: str = DEFAULT_SCOPE,
    ) -> int:
        """
        Accept an operator-supplied number.

        The number must be strictly greater than the last one issued; the
        counter jumps to it so later automatic numbers continue from there.

        Raises:
            InvalidDocumentNumberError: requested <= last issued number.
        """
        document_type = DocumentType(document_type)
        if isinstance(requested, bool) or not isinstance(requested, int) or requested < 1:
            raise InvalidDocumentNumberError(document_type.value, requested, 0)

        counter = self._lock_counter(academic_year_id, document_type, scope)
        if counter is None:
            created = self._insert_counter(academic_year_id, document_type, scope, requested)
            if created is not None:
                self._log_claim(document_type, scope, requested)
                return requested
            counter = self._relock_after_race(academic_year_id, document_type, scope)

        if requested <= counter.last_number:
            logger.warning(
                "sequence_claim_rejected",
                extra={
                    "document_type": document_type.value,
                    "scope": scope,
                    "requested": requested,
                    "last_number": counter.last_number,
                },
            )
            raise InvalidDocumentNumberError(
                document_type.value, requested, counter.last_number
            )

        counter.last_number = requested
        self.session.flush()
        self._log_claim(document_type, scope, requested)
        return requested

    def _log_claim(self, document_type: DocumentType, scope: str, value: int) -> None:
        logger.info(
            "sequence_number_claimed",
            extra={"document_type": document_type.value, "scope": scope, "value": value},
        )

    def _lock_counter(
        self,
        academic_year_id: UUID,
        document_type: DocumentType,
        scope: str,
    ) -> DocumentSequence | None:
        return self.session.execute(
            select(DocumentSequence)
            .where(
                DocumentSequence.academic_year_id == academic_year_id,
                DocumentSequence.document_type == document_type.value,
                DocumentSequence.scope == scope,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _insert_counter(
        self,
        academic_year_id: UUID,
        document_type: DocumentType,
        scope: str,
        initial: int,
    ) -> DocumentSequence | None:
        """Insert the counter row at ``initial``; None if a concurrent insert won."""
        savepoint = self.session.begin_nested()
        try:
            counter = DocumentSequence(
                academic_year_id=academic_year_id,
                document_type=document_type.value,
                scope=scope,
                last_number=initial,
            )
            self.session.add(counter)
            self.session.flush()
            savepoint.commit()
            return counter
        except IntegrityError:
            logger.debug(
                "sequence_counter_race_retry",
                extra={"document_type": document_type.value, "scope": scope},
            )
            savepoint.rollback()
            return None

    def _relock_after_race(
        self,
        academic_year_id: UUID,
        document_type: DocumentType,
        scope: str,
    ) -> DocumentSequence:
        counter = self._lock_counter(academic_year_id, document_type, scope)
        if counter is None:
            raise ConcurrentSequenceConflictError(document_type.value, str(academic_year_id))
        return counter
