"""
Pure domain layer: pricing, statement folding, kind policies, numbering,
clocks and the DTOs that cross the service boundary.

Nothing here touches the database.
"""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.dtos import (
    AcademicYearInfo,
    DocumentInfo,
    DocumentItemInfo,
    DocumentMeta,
    DocumentResult,
    FlowGroupInfo,
    PartnerRef,
    PaymentInfo,
    PaymentResult,
    ProjectionDrift,
    ReturnInfo,
    ReturnItemInfo,
    ReturnLineInput,
    ReturnResult,
    StockMovement,
)
from ledger_kernel.domain.pricing import (
    DocumentTotals,
    LineItemInput,
    PricedLine,
    price_document,
    price_line,
)
from ledger_kernel.domain.statement import (
    Statement,
    StatementEntryType,
    StatementEvent,
    StatementRow,
    fold_running_balance,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "AcademicYearInfo",
    "DocumentInfo",
    "DocumentItemInfo",
    "DocumentMeta",
    "DocumentResult",
    "FlowGroupInfo",
    "PartnerRef",
    "PaymentInfo",
    "PaymentResult",
    "ProjectionDrift",
    "ReturnInfo",
    "ReturnItemInfo",
    "ReturnLineInput",
    "ReturnResult",
    "StockMovement",
    "DocumentTotals",
    "LineItemInput",
    "PricedLine",
    "price_document",
    "price_line",
    "Statement",
    "StatementEntryType",
    "StatementEvent",
    "StatementRow",
    "fold_running_balance",
]
