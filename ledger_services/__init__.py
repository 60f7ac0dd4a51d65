"""
ledger_services -- the outer surface of the textbook ledger.

Responsibility:
    Owns transaction boundaries.  Every mutating call opens exactly one
    database transaction, resolves the academic year once, calls the
    kernel services (which only flush), and commits or rolls back.

Architecture position:
    Sits above ledger_kernel and ledger_config.  This is the only package
    that reads configuration and turns it into kernel constructor
    arguments (number formats, outstanding-check partners, timeouts).
"""

from ledger_services.ledger_core import LedgerCore

__all__ = [
    "LedgerCore",
]
