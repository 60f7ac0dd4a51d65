"""
DocumentService -- priced documents and their voiding.

Responsibility:
    Creates invoices, provisional invoices, credit notes, estimations and
    purchase invoices with server-computed totals, moves stock for the
    kinds that carry it, and voids documents with compensating stock
    entries.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by LedgerCore inside one transaction per request.  Pricing is
    pure (domain/pricing.py); kind behaviour comes from
    domain/document_kinds.py.

Invariants enforced:
    - Totals are recomputed here from the items; the caller never supplies
      them.  net_amount == sum(item.net_amount).
    - Order of work: validate everything, move stock (locks, availability
      check, ledger append), stamp the number, insert the rows.  Any
      failure raises before commit, so the facade's rollback undoes all of
      it including the sequence increment.
    - Stock kinds lock the StockItem anchor of every textbook referenced,
      in sorted order, and compare the SUMMED requested quantity per
      textbook with availability.
    - Voiding never deletes.  Stock documents get VOID_REVERSAL entries that
      exactly negate their original movements.  Documents with returns
      cannot be voided.

Failure modes:
    - UnsupportedDocumentKindError, EmptyDocumentError,
      InvalidLineItemError, InvalidDiscountError, NonPositiveTotalError
    - InsufficientStockError (ISSUE; or voiding a purchase whose stock has
      already gone out)
    - InvalidDocumentNumberError (manual number not above the counter)
    - AcademicYearClosedError, FlowGroupSettledError
    - AlreadyVoidedError, DocumentHasReturnsError, DocumentNotFoundError
"""

from collections import defaultdict
from collections.abc import Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.document_kinds import check_partner, policy_for
from ledger_kernel.domain.dtos import AcademicYearInfo, DocumentInfo, DocumentMeta
from ledger_kernel.domain.numbering import NumberFormatter
from ledger_kernel.domain.pricing import LineItemInput, price_document
from ledger_kernel.exceptions import (
    AcademicYearClosedError,
    AlreadyVoidedError,
    DocumentHasReturnsError,
    DocumentNotFoundError,
    InvalidLineItemError,
    InvalidPartnerReferenceError,
    UnsupportedDocumentKindError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.document import (
    Document,
    DocumentItem,
    DocumentKind,
    DocumentStatus,
)
from ledger_kernel.models.stock import StockEventType
from ledger_kernel.selectors.document_selector import DocumentSelector
from ledger_kernel.selectors.stock_selector import StockSelector
from ledger_kernel.services.academic_year_service import AcademicYearService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.flow_group_service import FlowGroupService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.stock_ledger_service import StockLedgerService

logger = get_logger("services.document")


class DocumentService(BaseService[Document]):
    """Service for document creation and voiding."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        number_formatter: NumberFormatter | None = None,
    ):
        super().__init__(session, clock)
        self._numbers = number_formatter or NumberFormatter()
        self._years = AcademicYearService(session, self._clock)
        self._flow_groups = FlowGroupService(session, self._clock)
        self._sequences = SequenceService(session, self._clock)
        self._stock = StockLedgerService(session, self._clock)
        self._documents = DocumentSelector(session)
        self._stock_reads = StockSelector(session)

    def create_document(
        self,
        year: AcademicYearInfo,
        kind: DocumentKind,
        flow_group_id: UUID,
        items: Sequence[LineItemInput],
        meta: DocumentMeta,
    ) -> DocumentInfo:
        """
        Create and persist a priced document.

        Args:
            year: Scope resolved by the caller for this request.
            kind: Document kind.
            flow_group_id: OPEN flow group of the partner.
            items: Raw lines; prices and discounts only.
            meta: Header fields, actor and optional manual/supplier number.

        Returns:
            DocumentInfo of the new document.
        """
        policy = policy_for(kind)

        if not year.is_open:
            raise AcademicYearClosedError(str(year.id))

        flow_group = self._flow_groups.require_open(flow_group_id)
        if flow_group.academic_year_id != year.id:
            raise InvalidPartnerReferenceError(
                f"flow group {flow_group_id} belongs to another academic year"
            )
        check_partner(policy, flow_group.partner.kind)

        totals = price_document(list(items))

        if policy.affects_stock:
            for line in totals.lines:
                if line.textbook_id is None:
                    raise InvalidLineItemError(
                        line.line_no,
                        "textbook_id",
                        f"required on {policy.kind.value} lines",
                    )

        supplier_no = (meta.supplier_document_no or "").strip() or None
        if supplier_no is not None and not policy.accepts_supplier_number:
            raise UnsupportedDocumentKindError(
                policy.kind.value, "does not accept a supplier document number"
            )

        document_id = uuid4()

        if policy.affects_stock:
            changes = {
                textbook_id: policy.stock_sign * qty
                for textbook_id, qty in totals.quantity_by_textbook().items()
            }
            self._stock.apply_movements(year.id, changes, policy.stock_event, document_id)

        # Number last: the counter row is the hottest lock we take
        if supplier_no is not None:
            sequence_number = None
            document_no = supplier_no
        else:
            if meta.manual_number is not None:
                sequence_number = self._sequences.claim_number(
                    year.id, policy.sequence_type, meta.manual_number
                )
            else:
                sequence_number = self._sequences.next_number(year.id, policy.sequence_type)
            document_no = self._numbers.format(policy.sequence_type, sequence_number)

        now = self._clock.now()
        document = Document(
            id=document_id,
            academic_year_id=year.id,
            flow_group_id=flow_group.id,
            kind=policy.kind,
            document_no=document_no,
            sequence_number=sequence_number,
            document_date=meta.document_date or self._clock.today(),
            status=DocumentStatus.ISSUED,
            total_quantity=totals.total_quantity,
            gross_amount=totals.gross_amount,
            total_discount=totals.total_discount,
            net_amount=totals.net_amount,
            notes=meta.notes,
            idempotency_key=meta.idempotency_key,
            created_by_id=meta.actor_id,
            created_at=now,
            updated_at=now,
        )
        document.items = [
            DocumentItem(
                line_no=line.line_no,
                description=line.description,
                textbook_id=line.textbook_id,
                class_label=line.class_label,
                publisher=line.publisher,
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount_percent=line.discount_percent,
                gross_amount=line.gross_amount,
                discount_amount=line.discount_amount,
                net_amount=line.net_amount,
            )
            for line in totals.lines
        ]
        self.session.add(document)
        self.session.flush()

        logger.info(
            "document_created",
            extra={
                "document_id": str(document_id),
                "document_no": document_no,
                "kind": policy.kind.value,
                "flow_group_id": str(flow_group.id),
                "net_amount": totals.net_amount,
                "line_count": len(totals.lines),
            },
        )
        return DocumentInfo.from_model(document)

    def void_document(self, document_id: UUID, actor_id: UUID, reason: str) -> DocumentInfo:
        """
        Void a document.

        The document row is locked first so concurrent voids (and returns,
        which lock the same row) serialize; the loser of two voids sees
        AlreadyVoidedError.
        """
        document = self.session.execute(
            select(Document)
            .where(Document.id == document_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if document is None:
            raise DocumentNotFoundError(str(document_id))
        if document.is_voided:
            raise AlreadyVoidedError(str(document_id))

        self._years.require_open(document.academic_year_id)
        self._flow_groups.require_open(document.flow_group_id)

        return_count = self._documents.return_count(document_id)
        if return_count:
            raise DocumentHasReturnsError(str(document_id), return_count)

        policy = policy_for(document.kind)
        if policy.affects_stock:
            reversal: dict[UUID, int] = defaultdict(int)
            for movement in self._stock_reads.movements_for_reference(document_id):
                reversal[movement.textbook_id] -= movement.qty_change
            self._stock.apply_movements(
                document.academic_year_id,
                reversal,
                StockEventType.VOID_REVERSAL,
                document_id,
            )

        document.status = DocumentStatus.VOIDED
        document.voided_by_id = actor_id
        document.voided_at = self._clock.now()
        document.void_reason = reason
        document.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "document_voided",
            extra={
                "document_id": str(document_id),
                "document_no": document.document_no,
                "kind": document.kind.value,
                "reason": reason,
            },
        )
        return DocumentInfo.from_model(document)

    def get(self, document_id: UUID) -> DocumentInfo:
        return self._documents.get(document_id)
