"""Read-only selectors for the ledger kernel."""

from ledger_kernel.selectors.document_selector import DocumentSelector, RecomputedTotals
from ledger_kernel.selectors.statement_builder import StatementBuilder
from ledger_kernel.selectors.stock_selector import StockSelector

__all__ = [
    "DocumentSelector",
    "RecomputedTotals",
    "StatementBuilder",
    "StockSelector",
]
