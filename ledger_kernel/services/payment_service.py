"""
PaymentService -- money received from or paid to a partner.

Responsibility:
    Records payments against an OPEN flow group with a sequence-issued (or
    operator-claimed) receipt number, enforces the outstanding-balance rule
    for partners that require it, and reverses payments.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - amount > 0, Decimal, at most two decimal places.  Payments are always
      credits on the statement; the stored amount is never signed.
    - BANK payments carry a reference (reference_no, or failing that the
      note).
    - For partner kinds subject to the outstanding check, the flow group
      row is locked FOR UPDATE before the balance is replayed, so two
      concurrent payments cannot both fit under the same balance.  A payment
      that brings the balance to exactly zero settles the group.
    - Reversal flips status to REVERSED; the row is never deleted.

Failure modes:
    - InvalidPaymentAmountError, MissingBankReferenceError
    - NoOutstandingBalanceError, PaymentExceedsOutstandingError
    - InvalidDocumentNumberError (claimed receipt number not above counter)
    - AcademicYearClosedError, FlowGroupSettledError
    - PaymentNotFoundError, AlreadyReversedError
"""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import MONEY_DECIMAL_PLACES
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import AcademicYearInfo, PaymentInfo
from ledger_kernel.domain.numbering import NumberFormatter
from ledger_kernel.exceptions import (
    AcademicYearClosedError,
    AlreadyReversedError,
    InvalidPartnerReferenceError,
    InvalidPaymentAmountError,
    MissingBankReferenceError,
    NoOutstandingBalanceError,
    PaymentExceedsOutstandingError,
    PaymentNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.flow_group import PartnerKind
from ledger_kernel.models.payment import Payment, PaymentMode, PaymentStatus
from ledger_kernel.models.sequence import DEFAULT_SCOPE, DocumentType
from ledger_kernel.selectors.statement_builder import StatementBuilder
from ledger_kernel.services.academic_year_service import AcademicYearService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.flow_group_service import FlowGroupService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.payment")

BANK_REFERENCE_PREFIX = "Ref: "


def validate_amount(amount) -> Decimal:
    if isinstance(amount, (float, bool)):
        raise InvalidPaymentAmountError(amount)
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidPaymentAmountError(amount)
    if not value.is_finite() or value <= 0:
        raise InvalidPaymentAmountError(value)
    if value.as_tuple().exponent < -MONEY_DECIMAL_PLACES:
        raise InvalidPaymentAmountError(value)
    return value


class PaymentService(BaseService[Payment]):
    """Service for recording and reversing payments."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        number_formatter: NumberFormatter | None = None,
        outstanding_check_partners: Iterable[PartnerKind] = (PartnerKind.DEALER,),
    ):
        super().__init__(session, clock)
        self._numbers = number_formatter or NumberFormatter()
        self._outstanding_check = frozenset(PartnerKind(k) for k in outstanding_check_partners)
        self._years = AcademicYearService(session, self._clock)
        self._flow_groups = FlowGroupService(session, self._clock)
        self._sequences = SequenceService(session, self._clock)
        self._statements = StatementBuilder(session)

    def record_payment(
        self,
        year: AcademicYearInfo,
        flow_group_id: UUID,
        amount: Decimal,
        mode: PaymentMode,
        actor_id: UUID,
        paid_on: date | None = None,
        note: str | None = None,
        reference_no: str | None = None,
        receipt_number: int | None = None,
        idempotency_key: str | None = None,
    ) -> PaymentInfo:
        """
        Record a payment.

        Args:
            year: Scope resolved by the caller for this request.
            flow_group_id: OPEN flow group the payment settles against.
            amount: Positive Decimal.
            mode: CASH, UPI or BANK.
            actor_id: Who recorded it.
            paid_on: Value date; defaults to today.
            note: Free text.  For BANK payments without one it becomes
                ``Ref: <reference_no>``.
            reference_no: Bank / UPI transaction reference.
            receipt_number: Operator-entered receipt number; must be above
                the counter.
        """
        amount = validate_amount(amount)
        mode = PaymentMode(mode)
        note = (note or "").strip() or None
        reference_no = (reference_no or "").strip() or None

        if mode == PaymentMode.BANK:
            if reference_no is None and note is None:
                raise MissingBankReferenceError()
            if note is None:
                note = f"{BANK_REFERENCE_PREFIX}{reference_no}"

        if not year.is_open:
            raise AcademicYearClosedError(str(year.id))

        flow_group = self._flow_groups.require_open(flow_group_id)
        if flow_group.academic_year_id != year.id:
            raise InvalidPartnerReferenceError(
                f"flow group {flow_group_id} belongs to another academic year"
            )

        settles = False
        if flow_group.partner.kind in self._outstanding_check:
            # Lock before replaying the balance
            self._flow_groups.require_open(flow_group_id, for_update=True)
            outstanding = self._statements.outstanding(flow_group_id)
            if outstanding <= 0:
                raise NoOutstandingBalanceError(str(flow_group_id))
            if amount > outstanding:
                logger.warning(
                    "payment_exceeds_outstanding",
                    extra={
                        "flow_group_id": str(flow_group_id),
                        "amount": amount,
                        "outstanding": outstanding,
                    },
                )
                raise PaymentExceedsOutstandingError(amount, outstanding)
            settles = amount == outstanding

        if receipt_number is not None:
            number = self._sequences.claim_number(
                year.id, DocumentType.PAYMENT, receipt_number, DEFAULT_SCOPE
            )
        else:
            number = self._sequences.next_number(year.id, DocumentType.PAYMENT, DEFAULT_SCOPE)

        now = self._clock.now()
        payment = Payment(
            academic_year_id=year.id,
            flow_group_id=flow_group_id,
            receipt_no=self._numbers.format(DocumentType.PAYMENT, number),
            receipt_number=number,
            receipt_scope=DEFAULT_SCOPE,
            amount=amount,
            mode=mode,
            reference_no=reference_no,
            note=note,
            paid_on=paid_on or self._clock.today(),
            status=PaymentStatus.POSTED,
            idempotency_key=idempotency_key,
            created_by_id=actor_id,
            created_at=now,
            updated_at=now,
        )
        self.session.add(payment)
        self.session.flush()

        logger.info(
            "payment_recorded",
            extra={
                "payment_id": str(payment.id),
                "receipt_no": payment.receipt_no,
                "flow_group_id": str(flow_group_id),
                "amount": amount,
                "mode": mode.value,
            },
        )

        if settles:
            self._flow_groups.settle(flow_group_id, actor_id)

        return PaymentInfo.from_model(payment)

    def reverse_payment(self, payment_id: UUID, actor_id: UUID) -> PaymentInfo:
        """Reverse a POSTED payment."""
        payment = self.session.execute(
            select(Payment)
            .where(Payment.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        if payment.is_reversed:
            raise AlreadyReversedError(str(payment_id))

        self._years.require_open(payment.academic_year_id)
        self._flow_groups.require_open(payment.flow_group_id)

        payment.status = PaymentStatus.REVERSED
        payment.reversed_by_id = actor_id
        payment.reversed_at = self._clock.now()
        payment.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "payment_reversed",
            extra={
                "payment_id": str(payment_id),
                "receipt_no": payment.receipt_no,
                "amount": payment.amount,
            },
        )
        return PaymentInfo.from_model(payment)

    def get(self, payment_id: UUID) -> PaymentInfo:
        payment = self.session.get(Payment, payment_id)
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        return PaymentInfo.from_model(payment)

    def find_by_idempotency_key(self, idempotency_key: str) -> PaymentInfo | None:
        payment = self.session.execute(
            select(Payment).where(Payment.idempotency_key == idempotency_key)
        ).scalar_one_or_none()
        return PaymentInfo.from_model(payment) if payment is not None else None
