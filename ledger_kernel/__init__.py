"""
Ledger Kernel

The ledger & document engine of the textbook-distribution back office:
- Per-year gapless document numbering
- Flow groups (one running account per partner per academic year)
- Append-only stock ledger with derived availability
- Server-priced documents, payments and returns
- Statements rebuilt from event history
"""

__version__ = "0.1.0"
