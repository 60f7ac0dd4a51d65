"""ORM models for the ledger kernel."""

from ledger_kernel.models.academic_year import AcademicYear, AcademicYearStatus
from ledger_kernel.models.document import (
    Document,
    DocumentItem,
    DocumentKind,
    DocumentStatus,
)
from ledger_kernel.models.flow_group import FlowGroup, FlowGroupStatus, PartnerKind
from ledger_kernel.models.payment import Payment, PaymentMode, PaymentStatus
from ledger_kernel.models.returns import ReturnDocument, ReturnItem, ReturnKind
from ledger_kernel.models.sequence import DEFAULT_SCOPE, DocumentSequence, DocumentType
from ledger_kernel.models.stock import StockEventType, StockItem, StockLedgerEntry

__all__ = [
    "AcademicYear",
    "AcademicYearStatus",
    "FlowGroup",
    "FlowGroupStatus",
    "PartnerKind",
    "DocumentSequence",
    "DocumentType",
    "DEFAULT_SCOPE",
    "Document",
    "DocumentItem",
    "DocumentKind",
    "DocumentStatus",
    "StockItem",
    "StockLedgerEntry",
    "StockEventType",
    "Payment",
    "PaymentMode",
    "PaymentStatus",
    "ReturnDocument",
    "ReturnItem",
    "ReturnKind",
]
