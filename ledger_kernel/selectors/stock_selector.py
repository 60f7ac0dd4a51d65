"""
Module: ledger_kernel.selectors.stock_selector
Responsibility: Read side of the stock ledger.  Available quantity is the
    sum of qty_change over the append-only StockLedgerEntry rows.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Availability is always the ledger aggregate.  StockItem.cached_quantity
      is never read here.
    - available_many() is one grouped query regardless of how many textbooks
      are asked for; missing textbooks report 0.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import StockMovement
from ledger_kernel.models.stock import StockLedgerEntry
from ledger_kernel.selectors.base import BaseSelector


class StockSelector(BaseSelector[StockLedgerEntry]):
    """Derived stock quantities and movement history."""

    def __init__(self, session: Session):
        super().__init__(session)

    def available_qty(self, textbook_id: UUID, academic_year_id: UUID) -> int:
        total = self.session.execute(
            select(func.coalesce(func.sum(StockLedgerEntry.qty_change), 0)).where(
                StockLedgerEntry.academic_year_id == academic_year_id,
                StockLedgerEntry.textbook_id == textbook_id,
            )
        ).scalar_one()
        return int(total)

    def available_many(
        self,
        textbook_ids: Iterable[UUID],
        academic_year_id: UUID,
    ) -> dict[UUID, int]:
        ids = list(dict.fromkeys(textbook_ids))
        if not ids:
            return {}

        rows = self.session.execute(
            select(
                StockLedgerEntry.textbook_id,
                func.sum(StockLedgerEntry.qty_change),
            )
            .where(
                StockLedgerEntry.academic_year_id == academic_year_id,
                StockLedgerEntry.textbook_id.in_(ids),
            )
            .group_by(StockLedgerEntry.textbook_id)
        ).all()

        result = {textbook_id: 0 for textbook_id in ids}
        for textbook_id, total in rows:
            result[textbook_id] = int(total)
        return result

    def ledger_totals(self, academic_year_id: UUID) -> dict[UUID, int]:
        """Ledger sum for every textbook with at least one movement in the year."""
        rows = self.session.execute(
            select(
                StockLedgerEntry.textbook_id,
                func.sum(StockLedgerEntry.qty_change),
            )
            .where(StockLedgerEntry.academic_year_id == academic_year_id)
            .group_by(StockLedgerEntry.textbook_id)
        ).all()
        return {textbook_id: int(total) for textbook_id, total in rows}

    def movements(self, textbook_id: UUID, academic_year_id: UUID) -> list[StockMovement]:
        """Movement history, oldest first."""
        entries = self.session.execute(
            select(StockLedgerEntry)
            .where(
                StockLedgerEntry.academic_year_id == academic_year_id,
                StockLedgerEntry.textbook_id == textbook_id,
            )
            .order_by(StockLedgerEntry.created_at, StockLedgerEntry.id)
        ).scalars().all()
        return [StockMovement.from_model(e) for e in entries]

    def movements_for_reference(self, reference_id: UUID) -> list[StockMovement]:
        entries = self.session.execute(
            select(StockLedgerEntry)
            .where(StockLedgerEntry.reference_id == reference_id)
            .order_by(StockLedgerEntry.textbook_id, StockLedgerEntry.id)
        ).scalars().all()
        return [StockMovement.from_model(e) for e in entries]
