"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.academic_year_service import AcademicYearService
from ledger_kernel.services.document_service import DocumentService
from ledger_kernel.services.flow_group_service import FlowGroupService
from ledger_kernel.services.payment_service import PaymentService
from ledger_kernel.services.return_service import ReturnService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.stock_ledger_service import StockLedgerService

__all__ = [
    "AcademicYearService",
    "DocumentService",
    "FlowGroupService",
    "PaymentService",
    "ReturnService",
    "SequenceService",
    "StockLedgerService",
]
