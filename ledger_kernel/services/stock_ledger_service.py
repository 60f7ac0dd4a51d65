"""
StockLedgerService -- append-only writes to the stock ledger.

Responsibility:
    Appends signed quantity movements and keeps the StockItem anchor rows
    (lock target and cached quantity) in step with them.

Architecture position:
    Kernel > Services -- imperative shell.
    Used by DocumentService (ISSUE, PURCHASE, VOID_REVERSAL) and
    ReturnService (SALES_RETURN, DEALER_RETURN).  Reads go through
    selectors/stock_selector.py.

Invariants enforced:
    - The ledger is append-only.  record() only inserts; updates and deletes
      are blocked by db/immutability.py.
    - Lock ordering: lock_items() takes the anchor rows in sorted
      textbook_id order, so two transactions touching overlapping textbooks
      cannot deadlock.
    - No overselling: apply_movements() checks every outflow against the
      ledger sum AFTER the locks are held, and before anything is written.
      Available quantity is therefore never negative after commit.
    - StockItem.cached_quantity is updated in the same flush as the ledger
      rows it summarizes.  verify_projection() reports any drift.

Failure modes:
    - InsufficientStockError: an outflow exceeds availability.
"""

from collections.abc import Iterable, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import ProjectionDrift, StockMovement
from ledger_kernel.exceptions import InsufficientStockError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.stock import StockEventType, StockItem, StockLedgerEntry
from ledger_kernel.selectors.stock_selector import StockSelector
from ledger_kernel.services.base import BaseService

logger = get_logger("services.stock_ledger")


class StockLedgerService(BaseService[StockLedgerEntry]):
    """Service for stock movements."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._selector = StockSelector(session)

    def lock_items(
        self,
        academic_year_id: UUID,
        textbook_ids: Iterable[UUID],
    ) -> dict[UUID, StockItem]:
        """
        Lock (creating where missing) the anchor rows, in sorted id order.

        Returns:
            Anchor rows keyed by textbook_id.
        """
        locked: dict[UUID, StockItem] = {}
        for textbook_id in sorted(set(textbook_ids), key=str):
            item = self._lock_one(academic_year_id, textbook_id)
            if item is None:
                item = self._insert_anchor(academic_year_id, textbook_id)
            locked[textbook_id] = item
        return locked

    def record(
        self,
        textbook_id: UUID,
        academic_year_id: UUID,
        qty_change: int,
        event_type: StockEventType,
        reference_id: UUID,
    ) -> StockMovement:
        """
        Append one movement.  A pure append: no availability check.

        Callers that move stock out use apply_movements(), which locks and
        checks first.
        """
        if qty_change == 0:
            raise ValueError("qty_change must not be zero")

        entry = StockLedgerEntry(
            academic_year_id=academic_year_id,
            textbook_id=textbook_id,
            qty_change=qty_change,
            event_type=StockEventType(event_type),
            reference_id=reference_id,
            created_at=self._clock.now(),
        )
        self.session.add(entry)
        self.session.flush()
        return StockMovement.from_model(entry)

    def apply_movements(
        self,
        academic_year_id: UUID,
        changes: Mapping[UUID, int],
        event_type: StockEventType,
        reference_id: UUID,
    ) -> list[StockMovement]:
        """
        Lock, validate and append one movement per textbook.

        Args:
            changes: Signed quantity per textbook (already summed across
                duplicate lines).  Negative values are outflows.

        Raises:
            InsufficientStockError: for the first (sorted) textbook whose
                outflow exceeds availability.  Nothing is written.
        """
        changes = {tid: qty for tid, qty in changes.items() if qty != 0}
        if not changes:
            return []

        anchors = self.lock_items(academic_year_id, changes)

        outflows = {tid: -qty for tid, qty in changes.items() if qty < 0}
        if outflows:
            available = self._selector.available_many(outflows, academic_year_id)
            for textbook_id in sorted(outflows, key=str):
                requested = outflows[textbook_id]
                if requested > available[textbook_id]:
                    logger.warning(
                        "insufficient_stock",
                        extra={
                            "textbook_id": str(textbook_id),
                            "available": available[textbook_id],
                            "requested": requested,
                            "event_type": StockEventType(event_type).value,
                        },
                    )
                    raise InsufficientStockError(
                        str(textbook_id), available[textbook_id], requested
                    )

        movements = []
        for textbook_id in sorted(changes, key=str):
            qty = changes[textbook_id]
            movements.append(
                self.record(textbook_id, academic_year_id, qty, event_type, reference_id)
            )
            anchors[textbook_id].cached_quantity += qty
        self.session.flush()

        logger.info(
            "stock_movements_recorded",
            extra={
                "event_type": StockEventType(event_type).value,
                "reference_id": str(reference_id),
                "textbook_count": len(movements),
                "net_change": sum(changes.values()),
            },
        )
        return movements

    def verify_projection(self, academic_year_id: UUID) -> list[ProjectionDrift]:
        """
        Compare every StockItem.cached_quantity with the ledger sum.

        Returns:
            One ProjectionDrift per disagreeing textbook; empty when the
            projection is consistent.
        """
        ledger = self._selector.ledger_totals(academic_year_id)
        cached = dict(
            self.session.execute(
                select(StockItem.textbook_id, StockItem.cached_quantity).where(
                    StockItem.academic_year_id == academic_year_id
                )
            ).all()
        )

        drift = [
            ProjectionDrift(
                textbook_id=textbook_id,
                cached_quantity=int(cached.get(textbook_id, 0)),
                ledger_quantity=ledger.get(textbook_id, 0),
            )
            for textbook_id in sorted(set(ledger) | set(cached), key=str)
            if int(cached.get(textbook_id, 0)) != ledger.get(textbook_id, 0)
        ]

        if drift:
            logger.error(
                "stock_projection_drift",
                extra={
                    "academic_year_id": str(academic_year_id),
                    "drift_count": len(drift),
                    "textbook_ids": [str(d.textbook_id) for d in drift],
                },
            )
        else:
            logger.info(
                "stock_projection_verified",
                extra={
                    "academic_year_id": str(academic_year_id),
                    "textbook_count": len(ledger),
                },
            )
        return drift

    def _lock_one(self, academic_year_id: UUID, textbook_id: UUID) -> StockItem | None:
        return self.session.execute(
            select(StockItem)
            .where(
                StockItem.academic_year_id == academic_year_id,
                StockItem.textbook_id == textbook_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _insert_anchor(self, academic_year_id: UUID, textbook_id: UUID) -> StockItem:
        savepoint = self.session.begin_nested()
        try:
            item = StockItem(
                academic_year_id=academic_year_id,
                textbook_id=textbook_id,
                cached_quantity=0,
            )
            self.session.add(item)
            self.session.flush()
            savepoint.commit()
            return item
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "stock_anchor_race_retry",
                extra={"textbook_id": str(textbook_id)},
            )
            item = self._lock_one(academic_year_id, textbook_id)
            if item is None:
                raise
            return item
