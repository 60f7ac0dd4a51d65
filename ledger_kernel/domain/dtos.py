"""
DTOs -- immutable data crossing the service boundary.

Responsibility:
    Services accept these as inputs and return them as outputs, so callers
    never hold ORM instances after the transaction that loaded them has
    ended.  from_model() class methods are the ORM-to-DTO converters; they
    are only invoked from the service and selector layers.

Architecture position:
    Kernel > Domain -- no database access.  ORM types appear only under
    TYPE_CHECKING.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from ledger_kernel.exceptions import InvalidPartnerReferenceError
from ledger_kernel.models.academic_year import AcademicYearStatus
from ledger_kernel.models.document import DocumentKind, DocumentStatus
from ledger_kernel.models.flow_group import FlowGroupStatus, PartnerKind
from ledger_kernel.models.payment import PaymentMode, PaymentStatus
from ledger_kernel.models.returns import ReturnKind
from ledger_kernel.models.stock import StockEventType

if TYPE_CHECKING:
    from ledger_kernel.models.academic_year import AcademicYear
    from ledger_kernel.models.document import Document, DocumentItem
    from ledger_kernel.models.flow_group import FlowGroup
    from ledger_kernel.models.payment import Payment
    from ledger_kernel.models.returns import ReturnDocument
    from ledger_kernel.models.stock import StockLedgerEntry


@dataclass(frozen=True, slots=True)
class PartnerRef:
    """Exactly one trading partner: a school, a company or a dealer."""

    kind: PartnerKind
    partner_id: UUID

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "kind", PartnerKind(self.kind))
        except ValueError:
            raise InvalidPartnerReferenceError(f"unknown partner kind {self.kind!r}")
        if not isinstance(self.partner_id, UUID):
            raise InvalidPartnerReferenceError("partner_id must be a UUID")

    @classmethod
    def school(cls, partner_id: UUID) -> PartnerRef:
        return cls(PartnerKind.SCHOOL, partner_id)

    @classmethod
    def company(cls, partner_id: UUID) -> PartnerRef:
        return cls(PartnerKind.COMPANY, partner_id)

    @classmethod
    def dealer(cls, partner_id: UUID) -> PartnerRef:
        return cls(PartnerKind.DEALER, partner_id)


@dataclass(frozen=True, slots=True)
class AcademicYearInfo:
    id: UUID
    name: str
    start_date: date
    end_date: date
    status: AcademicYearStatus

    @property
    def is_open(self) -> bool:
        return self.status == AcademicYearStatus.OPEN

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    @classmethod
    def from_model(cls, model: AcademicYear) -> AcademicYearInfo:
        return cls(
            id=model.id,
            name=model.name,
            start_date=model.start_date,
            end_date=model.end_date,
            status=model.status,
        )


@dataclass(frozen=True, slots=True)
class FlowGroupInfo:
    id: UUID
    academic_year_id: UUID
    partner: PartnerRef
    status: FlowGroupStatus
    settled_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status == FlowGroupStatus.OPEN

    @classmethod
    def from_model(cls, model: FlowGroup) -> FlowGroupInfo:
        return cls(
            id=model.id,
            academic_year_id=model.academic_year_id,
            partner=PartnerRef(model.partner_kind, model.partner_id),
            status=model.status,
            settled_at=model.settled_at,
        )


@dataclass(frozen=True, slots=True)
class DocumentMeta:
    """Caller-supplied header fields for a new document."""

    actor_id: UUID
    document_date: date | None = None
    notes: str | None = None
    # Operator-entered number (estimations) or the supplier's own number
    # (purchase invoices)
    manual_number: int | None = None
    supplier_document_no: str | None = None
    idempotency_key: str | None = None


@dataclass(frozen=True, slots=True)
class DocumentItemInfo:
    line_no: int
    description: str
    textbook_id: UUID | None
    class_label: str | None
    publisher: str | None
    quantity: int
    unit_price: Decimal
    discount_percent: Decimal
    gross_amount: Decimal
    discount_amount: Decimal
    net_amount: Decimal

    @classmethod
    def from_model(cls, model: DocumentItem) -> DocumentItemInfo:
        return cls(
            line_no=model.line_no,
            description=model.description,
            textbook_id=model.textbook_id,
            class_label=model.class_label,
            publisher=model.publisher,
            quantity=model.quantity,
            unit_price=model.unit_price,
            discount_percent=model.discount_percent,
            gross_amount=model.gross_amount,
            discount_amount=model.discount_amount,
            net_amount=model.net_amount,
        )


@dataclass(frozen=True, slots=True)
class DocumentInfo:
    id: UUID
    academic_year_id: UUID
    flow_group_id: UUID
    kind: DocumentKind
    document_no: str
    sequence_number: int | None
    document_date: date
    status: DocumentStatus
    total_quantity: int
    gross_amount: Decimal
    total_discount: Decimal
    net_amount: Decimal
    created_by_id: UUID
    items: tuple[DocumentItemInfo, ...] = ()
    notes: str | None = None
    voided_by_id: UUID | None = None
    voided_at: datetime | None = None
    void_reason: str | None = None

    @property
    def is_voided(self) -> bool:
        return self.status == DocumentStatus.VOIDED

    @classmethod
    def from_model(cls, model: Document) -> DocumentInfo:
        return cls(
            id=model.id,
            academic_year_id=model.academic_year_id,
            flow_group_id=model.flow_group_id,
            kind=model.kind,
            document_no=model.document_no,
            sequence_number=model.sequence_number,
            document_date=model.document_date,
            status=model.status,
            total_quantity=model.total_quantity,
            gross_amount=model.gross_amount,
            total_discount=model.total_discount,
            net_amount=model.net_amount,
            created_by_id=model.created_by_id,
            items=tuple(DocumentItemInfo.from_model(i) for i in model.items),
            notes=model.notes,
            voided_by_id=model.voided_by_id,
            voided_at=model.voided_at,
            void_reason=model.void_reason,
        )


@dataclass(frozen=True, slots=True)
class PaymentInfo:
    id: UUID
    academic_year_id: UUID
    flow_group_id: UUID
    receipt_no: str
    receipt_number: int
    amount: Decimal
    mode: PaymentMode
    paid_on: date
    status: PaymentStatus
    created_by_id: UUID
    reference_no: str | None = None
    note: str | None = None
    reversed_by_id: UUID | None = None
    reversed_at: datetime | None = None

    @property
    def is_reversed(self) -> bool:
        return self.status == PaymentStatus.REVERSED

    @classmethod
    def from_model(cls, model: Payment) -> PaymentInfo:
        return cls(
            id=model.id,
            academic_year_id=model.academic_year_id,
            flow_group_id=model.flow_group_id,
            receipt_no=model.receipt_no,
            receipt_number=model.receipt_number,
            amount=model.amount,
            mode=model.mode,
            paid_on=model.paid_on,
            status=model.status,
            created_by_id=model.created_by_id,
            reference_no=model.reference_no,
            note=model.note,
            reversed_by_id=model.reversed_by_id,
            reversed_at=model.reversed_at,
        )


@dataclass(frozen=True, slots=True)
class ReturnLineInput:
    textbook_id: UUID
    quantity: int


@dataclass(frozen=True, slots=True)
class ReturnItemInfo:
    textbook_id: UUID
    qty_returned: int
    unit_price: Decimal
    amount: Decimal


@dataclass(frozen=True, slots=True)
class ReturnInfo:
    id: UUID
    kind: ReturnKind
    return_no: str
    academic_year_id: UUID
    flow_group_id: UUID
    parent_document_id: UUID
    return_date: date
    total_quantity: int
    total_amount: Decimal
    items: tuple[ReturnItemInfo, ...] = ()

    @classmethod
    def from_model(cls, model: ReturnDocument) -> ReturnInfo:
        return cls(
            id=model.id,
            kind=model.kind,
            return_no=model.return_no,
            academic_year_id=model.academic_year_id,
            flow_group_id=model.flow_group_id,
            parent_document_id=model.parent_document_id,
            return_date=model.return_date,
            total_quantity=model.total_quantity,
            total_amount=model.total_amount,
            items=tuple(
                ReturnItemInfo(
                    textbook_id=i.textbook_id,
                    qty_returned=i.qty_returned,
                    unit_price=i.unit_price,
                    amount=i.amount,
                )
                for i in model.items
            ),
        )


@dataclass(frozen=True, slots=True)
class StockMovement:
    id: UUID
    textbook_id: UUID
    qty_change: int
    event_type: StockEventType
    reference_id: UUID
    created_at: datetime

    @classmethod
    def from_model(cls, model: StockLedgerEntry) -> StockMovement:
        return cls(
            id=model.id,
            textbook_id=model.textbook_id,
            qty_change=model.qty_change,
            event_type=model.event_type,
            reference_id=model.reference_id,
            created_at=model.created_at,
        )


@dataclass(frozen=True, slots=True)
class ProjectionDrift:
    """Disagreement between StockItem.cached_quantity and the ledger sum."""

    textbook_id: UUID
    cached_quantity: int
    ledger_quantity: int

    @property
    def difference(self) -> int:
        return self.cached_quantity - self.ledger_quantity


@dataclass(frozen=True, slots=True)
class DocumentResult:
    document_id: UUID
    document_no: str
    net_amount: Decimal
    replayed: bool = False


@dataclass(frozen=True, slots=True)
class PaymentResult:
    payment_id: UUID
    receipt_no: str
    flow_group_settled: bool = False
    replayed: bool = False


@dataclass(frozen=True, slots=True)
class ReturnResult:
    return_id: UUID
    return_no: str
    total_amount: Decimal
    items: tuple[ReturnItemInfo, ...] = field(default=())
