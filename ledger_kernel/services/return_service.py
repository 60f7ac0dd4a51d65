"""
ReturnService -- sales and purchase returns bounded by the parent document.

Responsibility:
    Validates and records returns against a provisional invoice (sales
    return: stock comes back) or a purchase invoice (purchase return: stock
    goes back to the supplier).

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - The parent document row is locked FOR UPDATE before any quantity is
      read, so two concurrent returns against the same remaining quantity
      serialize and the second sees the first's rows.
    - Per textbook: requested <= issued - already_returned, where issued is
      the summed quantity on the parent and already_returned the summed
      quantity on earlier returns.  Duplicate lines in one request are
      summed before the check.
    - Items are valued at the parent lines' unit prices.  When a textbook
      appears on several parent lines, returns consume those lines in
      line order, earlier returns first, and one item is written per
      price.  The caller never supplies a price.
    - Purchase returns are stock outflows and go through the same locked
      availability check as issues.

Failure modes:
    - DocumentNotFoundError, InvalidReturnParentError (wrong kind, voided)
    - EmptyDocumentError, InvalidReturnQuantityError
    - ReturnItemNotOnDocumentError, ReturnExceedsIssuedError
    - InsufficientStockError (purchase return of stock already issued)
    - AcademicYearClosedError, FlowGroupSettledError
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.document_kinds import RETURN_POLICIES, policy_for
from ledger_kernel.domain.dtos import ReturnInfo, ReturnLineInput
from ledger_kernel.domain.numbering import NumberFormatter
from ledger_kernel.exceptions import (
    DocumentNotFoundError,
    EmptyDocumentError,
    InvalidReturnParentError,
    InvalidReturnQuantityError,
    ReturnExceedsIssuedError,
    ReturnItemNotOnDocumentError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.document import Document, DocumentItem
from ledger_kernel.models.returns import ReturnDocument, ReturnItem
from ledger_kernel.selectors.document_selector import DocumentSelector
from ledger_kernel.services.academic_year_service import AcademicYearService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.flow_group_service import FlowGroupService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.stock_ledger_service import StockLedgerService

logger = get_logger("services.return")


def summarize_lines(lines: Sequence[ReturnLineInput]) -> dict[UUID, int]:
    """Validate quantities and sum duplicates per textbook."""
    if not lines:
        raise EmptyDocumentError()

    requested: dict[UUID, int] = {}
    for line in lines:
        qty = line.quantity
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            raise InvalidReturnQuantityError(str(line.textbook_id), qty)
        requested[line.textbook_id] = requested.get(line.textbook_id, 0) + qty
    return requested


def allocate_to_lines(
    lines: Sequence[tuple[int, Decimal]],
    already_returned: int,
    quantity: int,
) -> list[tuple[Decimal, int]]:
    """
    Split a returned quantity across the parent's (quantity, unit_price) lines.

    The first ``already_returned`` copies are skipped, in line order.
    Consecutive allocations at the same price are merged.
    """
    allocations: list[tuple[Decimal, int]] = []
    skip = already_returned
    remaining = quantity
    for line_qty, unit_price in lines:
        if remaining == 0:
            break
        skipped = min(skip, line_qty)
        skip -= skipped
        take = min(line_qty - skipped, remaining)
        if take == 0:
            continue
        remaining -= take
        if allocations and allocations[-1][0] == unit_price:
            allocations[-1] = (unit_price, allocations[-1][1] + take)
        else:
            allocations.append((unit_price, take))
    return allocations


class ReturnService(BaseService[ReturnDocument]):
    """Service for sales and purchase returns."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        number_formatter: NumberFormatter | None = None,
    ):
        super().__init__(session, clock)
        self._numbers = number_formatter or NumberFormatter()
        self._years = AcademicYearService(session, self._clock)
        self._flow_groups = FlowGroupService(session, self._clock)
        self._sequences = SequenceService(session, self._clock)
        self._stock = StockLedgerService(session, self._clock)
        self._documents = DocumentSelector(session)

    def create_return(
        self,
        parent_document_id: UUID,
        lines: Sequence[ReturnLineInput],
        actor_id: UUID,
        return_date: date | None = None,
        notes: str | None = None,
    ) -> ReturnInfo:
        """
        Record a return against ``parent_document_id``.

        The return is scoped to the parent's academic year, which must
        still be OPEN.
        """
        parent = self.session.execute(
            select(Document)
            .where(Document.id == parent_document_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if parent is None:
            raise DocumentNotFoundError(str(parent_document_id))

        kind_policy = policy_for(parent.kind)
        if kind_policy.return_kind is None:
            raise InvalidReturnParentError(
                str(parent_document_id),
                f"{parent.kind.value} documents do not accept returns",
            )
        if parent.is_voided:
            raise InvalidReturnParentError(str(parent_document_id), "document is voided")

        self._years.require_open(parent.academic_year_id)
        self._flow_groups.require_open(parent.flow_group_id)

        requested = summarize_lines(lines)
        issued = self._documents.issued_quantities(parent_document_id)
        already = self._documents.returned_quantities(parent_document_id)

        for textbook_id in sorted(requested, key=str):
            if textbook_id not in issued:
                raise ReturnItemNotOnDocumentError(str(parent_document_id), str(textbook_id))
            max_returnable = issued[textbook_id] - already.get(textbook_id, 0)
            if requested[textbook_id] > max_returnable:
                logger.warning(
                    "return_exceeds_issued",
                    extra={
                        "document_id": str(parent_document_id),
                        "textbook_id": str(textbook_id),
                        "issued": issued[textbook_id],
                        "already_returned": already.get(textbook_id, 0),
                        "requested": requested[textbook_id],
                    },
                )
                raise ReturnExceedsIssuedError(
                    str(textbook_id), max_returnable, requested[textbook_id]
                )

        return_policy = RETURN_POLICIES[kind_policy.return_kind]
        price_lines = self._price_lines(parent_document_id)
        return_id = uuid4()

        self._stock.apply_movements(
            parent.academic_year_id,
            {tid: return_policy.stock_sign * qty for tid, qty in requested.items()},
            return_policy.stock_event,
            return_id,
        )

        number = self._sequences.next_number(parent.academic_year_id, return_policy.sequence_type)

        items = [
            ReturnItem(
                parent_document_id=parent_document_id,
                textbook_id=textbook_id,
                qty_returned=qty,
                unit_price=unit_price,
                amount=round_money(unit_price * qty),
            )
            for textbook_id in sorted(requested, key=str)
            for unit_price, qty in allocate_to_lines(
                price_lines[textbook_id],
                already.get(textbook_id, 0),
                requested[textbook_id],
            )
        ]

        now = self._clock.now()
        ret = ReturnDocument(
            id=return_id,
            kind=return_policy.kind,
            return_no=self._numbers.format(return_policy.sequence_type, number),
            return_number=number,
            academic_year_id=parent.academic_year_id,
            flow_group_id=parent.flow_group_id,
            parent_document_id=parent_document_id,
            return_date=return_date or self._clock.today(),
            total_quantity=sum(i.qty_returned for i in items),
            total_amount=sum((i.amount for i in items), Decimal("0.00")),
            notes=notes,
            created_by_id=actor_id,
            created_at=now,
            updated_at=now,
        )
        ret.items = items
        self.session.add(ret)
        self.session.flush()

        logger.info(
            "return_recorded",
            extra={
                "return_id": str(return_id),
                "return_no": ret.return_no,
                "kind": return_policy.kind.value,
                "document_id": str(parent_document_id),
                "total_quantity": ret.total_quantity,
                "total_amount": ret.total_amount,
            },
        )
        return ReturnInfo.from_model(ret)

    def _price_lines(self, document_id: UUID) -> dict[UUID, list[tuple[int, Decimal]]]:
        """(quantity, unit_price) of each line per textbook, in line order."""
        rows = self.session.execute(
            select(DocumentItem.textbook_id, DocumentItem.quantity, DocumentItem.unit_price)
            .where(
                DocumentItem.document_id == document_id,
                DocumentItem.textbook_id.is_not(None),
            )
            .order_by(DocumentItem.line_no)
        ).all()
        lines: dict[UUID, list[tuple[int, Decimal]]] = {}
        for textbook_id, quantity, unit_price in rows:
            lines.setdefault(textbook_id, []).append((quantity, unit_price))
        return lines
