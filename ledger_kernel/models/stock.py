"""
Module: ledger_kernel.models.stock
Responsibility: Append-only stock ledger and the per-textbook anchor row
    that serializes writers to it.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - StockLedgerEntry rows are never updated or deleted
      (db/immutability.py).  Corrections are new rows, e.g. VOID_REVERSAL.
    - Available quantity for (textbook, year) == SUM(qty_change).  The
      ledger is the only truth.
    - StockItem.cached_quantity is a materialized projection of that sum,
      written in the same transaction as each append and checked by
      StockLedgerService.verify_projection().  Never authoritative.
    - StockItem is the lock target: writers take SELECT ... FOR UPDATE on
      the anchor rows of every textbook they touch, in sorted textbook_id
      order, before reading availability.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString
from ledger_kernel.db.types import StrEnumType


class StockEventType(str, Enum):
    PURCHASE = "purchase"
    ISSUE = "issue"
    SALES_RETURN = "sales_return"
    DEALER_RETURN = "dealer_return"
    VOID_REVERSAL = "void_reversal"


class StockLedgerEntry(Base):
    """One signed quantity movement for a textbook in an academic year."""

    __tablename__ = "stock_ledger_entries"

    __table_args__ = (
        CheckConstraint("qty_change <> 0", name="ck_stock_ledger_nonzero"),
        Index("idx_stock_ledger_textbook", "academic_year_id", "textbook_id"),
        Index("idx_stock_ledger_reference", "reference_id"),
    )

    academic_year_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("academic_years.id"),
        nullable=False,
    )

    textbook_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    qty_change: Mapped[int] = mapped_column(BigInteger, nullable=False)

    event_type: Mapped[StockEventType] = mapped_column(
        StrEnumType(StockEventType),
        nullable=False,
    )

    # Document or return that caused the movement
    reference_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<StockLedgerEntry {self.event_type.value} {self.textbook_id}: {self.qty_change:+d}>"


class StockItem(Base):
    """Lock anchor and cached on-hand quantity for one textbook in one year."""

    __tablename__ = "stock_items"

    __table_args__ = (
        UniqueConstraint("academic_year_id", "textbook_id", name="uq_stock_item"),
    )

    academic_year_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("academic_years.id"),
        nullable=False,
    )

    textbook_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    cached_quantity: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<StockItem {self.textbook_id}: {self.cached_quantity}>"
