"""
Document kinds -- per-kind behaviour table.

Responsibility:
    One place that says, for each DocumentKind, which side of the statement
    it posts to, how it moves stock, which sequence numbers it, which
    partners it may be issued to and which return kind it accepts.
    DocumentService, ReturnService and the statement builder all read this
    table; none of them branch on kind themselves.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from ledger_kernel.exceptions import UnsupportedDocumentKindError
from ledger_kernel.models.document import DocumentKind
from ledger_kernel.models.flow_group import PartnerKind
from ledger_kernel.models.returns import ReturnKind
from ledger_kernel.models.sequence import DocumentType
from ledger_kernel.models.stock import StockEventType


class StatementSide(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class KindPolicy:
    kind: DocumentKind
    statement_side: StatementSide
    sequence_type: DocumentType
    allowed_partners: frozenset[PartnerKind]
    # Signed multiplier applied to item quantity; 0 means no stock movement
    stock_sign: int = 0
    stock_event: StockEventType | None = None
    return_kind: ReturnKind | None = None
    accepts_supplier_number: bool = False

    @property
    def affects_stock(self) -> bool:
        return self.stock_sign != 0

    @property
    def issues_stock(self) -> bool:
        return self.stock_sign < 0

    @property
    def on_statement(self) -> bool:
        return self.statement_side != StatementSide.NONE


@dataclass(frozen=True, slots=True)
class ReturnPolicy:
    kind: ReturnKind
    sequence_type: DocumentType
    stock_sign: int
    stock_event: StockEventType

    @property
    def removes_stock(self) -> bool:
        return self.stock_sign < 0


KIND_POLICIES = MappingProxyType(
    {
        DocumentKind.INVOICE: KindPolicy(
            kind=DocumentKind.INVOICE,
            statement_side=StatementSide.DEBIT,
            sequence_type=DocumentType.INVOICE,
            allowed_partners=frozenset({PartnerKind.SCHOOL, PartnerKind.COMPANY}),
        ),
        DocumentKind.PROVISIONAL_INVOICE: KindPolicy(
            kind=DocumentKind.PROVISIONAL_INVOICE,
            statement_side=StatementSide.DEBIT,
            sequence_type=DocumentType.PROVISIONAL_INVOICE,
            allowed_partners=frozenset({PartnerKind.SCHOOL}),
            stock_sign=-1,
            stock_event=StockEventType.ISSUE,
            return_kind=ReturnKind.SALES_RETURN,
        ),
        DocumentKind.CREDIT_NOTE: KindPolicy(
            kind=DocumentKind.CREDIT_NOTE,
            statement_side=StatementSide.CREDIT,
            sequence_type=DocumentType.CREDIT_NOTE,
            allowed_partners=frozenset({PartnerKind.SCHOOL, PartnerKind.COMPANY}),
        ),
        DocumentKind.ESTIMATION: KindPolicy(
            kind=DocumentKind.ESTIMATION,
            statement_side=StatementSide.NONE,
            sequence_type=DocumentType.ESTIMATION,
            allowed_partners=frozenset({PartnerKind.SCHOOL}),
        ),
        DocumentKind.PURCHASE_INVOICE: KindPolicy(
            kind=DocumentKind.PURCHASE_INVOICE,
            statement_side=StatementSide.DEBIT,
            sequence_type=DocumentType.PURCHASE_INVOICE,
            allowed_partners=frozenset({PartnerKind.DEALER}),
            stock_sign=1,
            stock_event=StockEventType.PURCHASE,
            return_kind=ReturnKind.PURCHASE_RETURN,
            accepts_supplier_number=True,
        ),
    }
)


RETURN_POLICIES = MappingProxyType(
    {
        ReturnKind.SALES_RETURN: ReturnPolicy(
            kind=ReturnKind.SALES_RETURN,
            sequence_type=DocumentType.SALES_RETURN,
            stock_sign=1,
            stock_event=StockEventType.SALES_RETURN,
        ),
        ReturnKind.PURCHASE_RETURN: ReturnPolicy(
            kind=ReturnKind.PURCHASE_RETURN,
            sequence_type=DocumentType.PURCHASE_RETURN,
            stock_sign=-1,
            stock_event=StockEventType.DEALER_RETURN,
        ),
    }
)


def policy_for(kind: DocumentKind | str) -> KindPolicy:
    try:
        return KIND_POLICIES[DocumentKind(kind)]
    except ValueError:
        raise UnsupportedDocumentKindError(str(kind), "unknown document kind")


def check_partner(policy: KindPolicy, partner_kind: PartnerKind) -> None:
    if partner_kind not in policy.allowed_partners:
        raise UnsupportedDocumentKindError(
            policy.kind.value,
            f"cannot be issued to a {partner_kind.value}",
        )
