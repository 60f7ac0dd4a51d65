"""
ledger_services.ledger_core -- LedgerCore, the external interface of the ledger.

Responsibility:
    One method per external operation.  Each method runs its work in a
    single transaction: resolve the OPEN academic year, find or create the
    partner's flow group, call the engine, commit.  Any exception rolls the
    whole request back, including sequence increments and stock appends.

Architecture position:
    Services -- composition root above the kernel.  Kernel services are
    constructed here per transaction and share that transaction's Session
    and the facade's Clock.

Invariants enforced:
    - Services never commit; the facade is the only place a transaction
      ends.
    - Lock waits are bounded by database.transaction_timeout_ms.  A lock
      or statement timeout is raised as TransactionTimeoutError
      (retryable).
    - Retryable failures are re-run up to ``max_retries`` times in a fresh
      transaction.  Requests carrying an idempotency key are replayed from
      the stored row instead of being written twice.

Failure modes:
    - Every LedgerKernelError raised by the kernel propagates unchanged
      after being logged with its structured fields.
    - TransactionTimeoutError when retries are exhausted on lock timeouts.

Usage:
    core = LedgerCore.from_config(create_schema=True)
    result = core.create_document(
        DocumentKind.INVOICE,
        PartnerRef.school(school_id),
        [LineItemInput("Maths 5", 10, Decimal("100.00"), Decimal("10"))],
        DocumentMeta(actor_id=user_id),
    )
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from datetime import date
from decimal import Decimal
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from ledger_config import LedgerSettings, get_active_config
from ledger_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    is_lock_timeout,
    transaction,
)
from ledger_kernel.db.immutability import register_immutability_listeners
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    AcademicYearInfo,
    DocumentInfo,
    DocumentMeta,
    DocumentResult,
    PartnerRef,
    PaymentInfo,
    PaymentResult,
    ProjectionDrift,
    ReturnLineInput,
    ReturnResult,
)
from ledger_kernel.domain.numbering import NumberFormatter
from ledger_kernel.domain.pricing import LineItemInput
from ledger_kernel.domain.statement import Statement
from ledger_kernel.exceptions import LedgerKernelError, TransactionTimeoutError
from ledger_kernel.logging_config import LogContext, configure_logging, get_logger
from ledger_kernel.models.document import DocumentKind
from ledger_kernel.models.flow_group import PartnerKind
from ledger_kernel.models.payment import PaymentMode
from ledger_kernel.models.sequence import DEFAULT_SCOPE, DocumentType
from ledger_kernel.selectors.document_selector import DocumentSelector
from ledger_kernel.selectors.statement_builder import StatementBuilder
from ledger_kernel.selectors.stock_selector import StockSelector
from ledger_kernel.services.academic_year_service import AcademicYearService
from ledger_kernel.services.document_service import DocumentService
from ledger_kernel.services.flow_group_service import FlowGroupService
from ledger_kernel.services.payment_service import PaymentService
from ledger_kernel.services.return_service import ReturnService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.stock_ledger_service import StockLedgerService

logger = get_logger("services.ledger_core")

T = TypeVar("T")


class LedgerCore:
    """Transaction-owning facade over the ledger kernel.

    Contract:
        Receives a session factory (one session per transaction) and the
        runtime settings.  Returns DTOs only; no ORM instance escapes a
        transaction.

    Non-goals:
        - Does NOT validate that partner or textbook ids exist; those are
          owned by the surrounding application.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
        max_retries: int | None = None,
    ) -> None:
        self._session_factory = session_factory or get_session_factory()
        self._settings = settings
        self._clock = clock or SystemClock()

        if settings is not None:
            self._numbers = settings.numbering.formatter()
            self._outstanding_check = settings.payments.outstanding_check_partners
            self._timeout_ms = settings.database.transaction_timeout_ms
            self._backoff_ms = settings.retry.backoff_ms
            default_retries = settings.retry.max_retries
        else:
            self._numbers = NumberFormatter()
            self._outstanding_check = frozenset({PartnerKind.DEALER})
            self._timeout_ms = 5000
            self._backoff_ms = 50
            default_retries = 3
        self._max_retries = default_retries if max_retries is None else max_retries

        register_immutability_listeners()

    @classmethod
    def from_config(
        cls,
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
        create_schema: bool = False,
    ) -> LedgerCore:
        """Build a LedgerCore from ``get_active_config()`` and initialize the engine."""
        settings = settings or get_active_config()
        configure_logging(level=settings.log_level)

        db = settings.database
        init_engine_from_url(
            db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_recycle=db.pool_recycle,
            sqlite_busy_timeout_s=db.sqlite_busy_timeout_s,
        )
        if create_schema:
            create_tables()
        return cls(get_session_factory(), settings=settings, clock=clock)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def create_document(
        self,
        kind: DocumentKind,
        partner: PartnerRef,
        items: Sequence[LineItemInput],
        meta: DocumentMeta,
    ) -> DocumentResult:
        """Create a priced document in the partner's OPEN flow group for the current year."""
        kind = DocumentKind(kind)

        def work(session: Session) -> DocumentResult:
            if meta.idempotency_key:
                replayed = self._document_replay(session, meta.idempotency_key)
                if replayed is not None:
                    return replayed

            year = AcademicYearService(session, self._clock).current_scope()
            flow_group = FlowGroupService(session, self._clock).open_flow_group(
                partner, year.id, meta.actor_id
            )
            with LogContext.bind(academic_year_id=year.id, flow_group_id=flow_group.id):
                document = DocumentService(
                    session, self._clock, self._numbers
                ).create_document(year, kind, flow_group.id, items, meta)
            return DocumentResult(
                document_id=document.id,
                document_no=document.document_no,
                net_amount=document.net_amount,
            )

        replay = None
        if meta.idempotency_key:
            key = meta.idempotency_key
            replay = lambda session: self._document_replay(session, key)  # noqa: E731

        return self._run("create_document", work, actor_id=meta.actor_id, replay=replay)

    def void_document(self, document_id: UUID, actor_id: UUID, reason: str) -> DocumentInfo:
        def work(session: Session) -> DocumentInfo:
            with LogContext.bind(document_id=document_id):
                return DocumentService(session, self._clock, self._numbers).void_document(
                    document_id, actor_id, reason
                )

        return self._run("void_document", work, actor_id=actor_id)

    def get_document(self, document_id: UUID) -> DocumentInfo:
        return self._read(lambda session: DocumentSelector(session).get(document_id))

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def record_payment(
        self,
        partner: PartnerRef,
        amount: Decimal,
        mode: PaymentMode,
        note: str | None,
        actor_id: UUID,
        paid_on: date | None = None,
        reference_no: str | None = None,
        receipt_number: int | None = None,
        idempotency_key: str | None = None,
    ) -> PaymentResult:
        """Record a payment in the partner's OPEN flow group for the current year."""

        def work(session: Session) -> PaymentResult:
            if idempotency_key:
                replayed = self._payment_replay(session, idempotency_key)
                if replayed is not None:
                    return replayed

            year = AcademicYearService(session, self._clock).current_scope()
            flow_groups = FlowGroupService(session, self._clock)
            flow_group = flow_groups.open_flow_group(partner, year.id, actor_id)
            with LogContext.bind(academic_year_id=year.id, flow_group_id=flow_group.id):
                payment = self._payment_service(session).record_payment(
                    year,
                    flow_group.id,
                    amount,
                    mode,
                    actor_id,
                    paid_on=paid_on,
                    note=note,
                    reference_no=reference_no,
                    receipt_number=receipt_number,
                    idempotency_key=idempotency_key,
                )
            return PaymentResult(
                payment_id=payment.id,
                receipt_no=payment.receipt_no,
                flow_group_settled=not flow_groups.get(flow_group.id).is_open,
            )

        replay = None
        if idempotency_key:
            replay = lambda session: self._payment_replay(session, idempotency_key)  # noqa: E731

        return self._run("record_payment", work, actor_id=actor_id, replay=replay)

    def reverse_payment(self, payment_id: UUID, actor_id: UUID) -> PaymentInfo:
        return self._run(
            "reverse_payment",
            lambda session: self._payment_service(session).reverse_payment(payment_id, actor_id),
            actor_id=actor_id,
        )

    def get_payment(self, payment_id: UUID) -> PaymentInfo:
        return self._read(lambda session: self._payment_service(session).get(payment_id))

    # ------------------------------------------------------------------
    # Returns
    # ------------------------------------------------------------------

    def create_return(
        self,
        parent_document_id: UUID,
        items: Sequence[ReturnLineInput],
        actor_id: UUID,
        return_date: date | None = None,
        notes: str | None = None,
    ) -> ReturnResult:
        """Return stock against a provisional invoice or a purchase invoice."""

        def work(session: Session) -> ReturnResult:
            with LogContext.bind(document_id=parent_document_id):
                ret = ReturnService(session, self._clock, self._numbers).create_return(
                    parent_document_id,
                    items,
                    actor_id,
                    return_date=return_date,
                    notes=notes,
                )
            return ReturnResult(
                return_id=ret.id,
                return_no=ret.return_no,
                total_amount=ret.total_amount,
                items=ret.items,
            )

        return self._run("create_return", work, actor_id=actor_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def statement(
        self,
        partner: PartnerRef,
        academic_year_id: UUID | None = None,
    ) -> Statement:
        """Running-balance statement of every flow group of ``partner`` in the year."""

        def work(session: Session) -> Statement:
            year_id = academic_year_id or self._current_year(session).id
            return StatementBuilder(session).partner_statement(partner, year_id)

        return self._read(work)

    def available_stock(
        self,
        textbook_id: UUID,
        academic_year_id: UUID | None = None,
    ) -> int:
        def work(session: Session) -> int:
            year_id = academic_year_id or self._current_year(session).id
            return StockSelector(session).available_qty(textbook_id, year_id)

        return self._read(work)

    def next_number_preview(
        self,
        doc_type: DocumentType,
        scope: str = DEFAULT_SCOPE,
    ) -> str:
        """The number the next document of ``doc_type`` would get.  Nothing is reserved."""
        doc_type = DocumentType(doc_type)

        def work(session: Session) -> str:
            year = self._current_year(session)
            number = SequenceService(session, self._clock).peek_next(year.id, doc_type, scope)
            return self._numbers.format(doc_type, number)

        return self._read(work)

    # ------------------------------------------------------------------
    # Academic years and maintenance
    # ------------------------------------------------------------------

    def open_year(
        self,
        start_date: date,
        end_date: date,
        actor_id: UUID,
        name: str | None = None,
    ) -> AcademicYearInfo:
        return self._run(
            "open_year",
            lambda session: AcademicYearService(session, self._clock).create_year(
                start_date, end_date, actor_id, name=name
            ),
            actor_id=actor_id,
        )

    def close_year(self, academic_year_id: UUID, actor_id: UUID) -> AcademicYearInfo:
        return self._run(
            "close_year",
            lambda session: AcademicYearService(session, self._clock).close_year(
                academic_year_id, actor_id
            ),
            actor_id=actor_id,
        )

    def current_year(self) -> AcademicYearInfo:
        return self._read(self._current_year)

    def verify_stock_projection(
        self,
        academic_year_id: UUID | None = None,
    ) -> list[ProjectionDrift]:
        """Compare StockItem.cached_quantity with the ledger sums.  Empty means consistent."""

        def work(session: Session) -> list[ProjectionDrift]:
            year_id = academic_year_id or self._current_year(session).id
            return StockLedgerService(session, self._clock).verify_projection(year_id)

        return self._read(work)

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        work: Callable[[Session], T],
        actor_id: UUID | None = None,
        replay: Callable[[Session], T | None] | None = None,
    ) -> T:
        """
        Run ``work`` in its own transaction, retrying retryable failures.

        ``replay`` is consulted after a unique-key violation: when it finds
        the row a concurrent request with the same idempotency key already
        committed, that row is returned instead of the error.
        """
        attempt = 0
        with LogContext.bind(correlation_id=uuid4(), actor_id=actor_id):
            while True:
                try:
                    try:
                        with transaction(self._timeout_ms, self._session_factory) as session:
                            return work(session)
                    except OperationalError as exc:
                        if not is_lock_timeout(exc):
                            raise
                        raise TransactionTimeoutError(operation, self._timeout_ms) from exc
                except IntegrityError:
                    if replay is not None:
                        with transaction(self._timeout_ms, self._session_factory) as session:
                            existing = replay(session)
                        if existing is not None:
                            logger.info("idempotent_replay", extra={"operation": operation})
                            return existing
                    logger.error(
                        "ledger_operation_failed",
                        exc_info=True,
                        extra={"operation": operation},
                    )
                    raise
                except LedgerKernelError as exc:
                    if exc.retryable and attempt < self._max_retries:
                        attempt += 1
                        logger.warning(
                            "ledger_operation_retry",
                            extra={
                                "operation": operation,
                                "attempt": attempt,
                                "error_code": exc.code,
                            },
                        )
                        time.sleep(self._backoff_ms / 1000 * (2 ** (attempt - 1)))
                        continue
                    logger.warning(
                        "ledger_operation_rejected",
                        exc_info=True,
                        extra={"operation": operation, "attempts": attempt + 1},
                    )
                    raise

    def _read(self, work: Callable[[Session], T]) -> T:
        with transaction(self._timeout_ms, self._session_factory) as session:
            return work(session)

    def _current_year(self, session: Session) -> AcademicYearInfo:
        return AcademicYearService(session, self._clock).current_scope()

    def _payment_service(self, session: Session) -> PaymentService:
        return PaymentService(
            session,
            self._clock,
            self._numbers,
            outstanding_check_partners=self._outstanding_check,
        )

    def _document_replay(self, session: Session, idempotency_key: str) -> DocumentResult | None:
        existing = DocumentSelector(session).find_by_idempotency_key(idempotency_key)
        if existing is None:
            return None
        return DocumentResult(
            document_id=existing.id,
            document_no=existing.document_no,
            net_amount=existing.net_amount,
            replayed=True,
        )

    def _payment_replay(self, session: Session, idempotency_key: str) -> PaymentResult | None:
        existing = self._payment_service(session).find_by_idempotency_key(idempotency_key)
        if existing is None:
            return None
        flow_group = FlowGroupService(session, self._clock).get(existing.flow_group_id)
        return PaymentResult(
            payment_id=existing.id,
            receipt_no=existing.receipt_no,
            flow_group_settled=not flow_group.is_open,
            replayed=True,
        )
