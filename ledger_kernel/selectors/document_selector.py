"""
Module: ledger_kernel.selectors.document_selector
Responsibility: Read-only queries over documents, their items and the
    returns raised against them.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - recompute_totals() derives header totals from the item rows, so the
      stored Document totals can be verified rather than trusted.
    - Issued / returned quantities are grouped aggregates keyed by
      textbook_id; duplicate lines on the parent are summed.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import DocumentInfo
from ledger_kernel.exceptions import DocumentNotFoundError
from ledger_kernel.models.document import Document, DocumentItem
from ledger_kernel.models.returns import ReturnDocument, ReturnItem
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True, slots=True)
class RecomputedTotals:
    document_id: UUID
    total_quantity: int
    gross_amount: Decimal
    total_discount: Decimal
    net_amount: Decimal
    matches_stored: bool


class DocumentSelector(BaseSelector[Document]):
    """Document reads."""

    def __init__(self, session: Session):
        super().__init__(session)

    def get(self, document_id: UUID) -> DocumentInfo:
        document = self.session.get(Document, document_id)
        if document is None:
            raise DocumentNotFoundError(str(document_id))
        return DocumentInfo.from_model(document)

    def find_by_idempotency_key(self, idempotency_key: str) -> DocumentInfo | None:
        document = self.session.execute(
            select(Document).where(Document.idempotency_key == idempotency_key)
        ).scalar_one_or_none()
        return DocumentInfo.from_model(document) if document is not None else None

    def recompute_totals(self, document_id: UUID) -> RecomputedTotals:
        document = self.session.get(Document, document_id)
        if document is None:
            raise DocumentNotFoundError(str(document_id))

        quantity, gross, discount, net = self.session.execute(
            select(
                func.coalesce(func.sum(DocumentItem.quantity), 0),
                func.coalesce(func.sum(DocumentItem.gross_amount), 0),
                func.coalesce(func.sum(DocumentItem.discount_amount), 0),
                func.coalesce(func.sum(DocumentItem.net_amount), 0),
            ).where(DocumentItem.document_id == document_id)
        ).one()

        quantity = int(quantity)
        gross, discount, net = (Decimal(str(v)) for v in (gross, discount, net))
        return RecomputedTotals(
            document_id=document_id,
            total_quantity=quantity,
            gross_amount=gross,
            total_discount=discount,
            net_amount=net,
            matches_stored=(
                quantity == document.total_quantity
                and gross == document.gross_amount
                and discount == document.total_discount
                and net == document.net_amount
            ),
        )

    def issued_quantities(self, document_id: UUID) -> dict[UUID, int]:
        rows = self.session.execute(
            select(DocumentItem.textbook_id, func.sum(DocumentItem.quantity))
            .where(
                DocumentItem.document_id == document_id,
                DocumentItem.textbook_id.is_not(None),
            )
            .group_by(DocumentItem.textbook_id)
        ).all()
        return {textbook_id: int(qty) for textbook_id, qty in rows}

    def returned_quantities(self, parent_document_id: UUID) -> dict[UUID, int]:
        rows = self.session.execute(
            select(ReturnItem.textbook_id, func.sum(ReturnItem.qty_returned))
            .where(ReturnItem.parent_document_id == parent_document_id)
            .group_by(ReturnItem.textbook_id)
        ).all()
        return {textbook_id: int(qty) for textbook_id, qty in rows}

    def return_count(self, parent_document_id: UUID) -> int:
        return int(
            self.session.execute(
                select(func.count(ReturnDocument.id)).where(
                    ReturnDocument.parent_document_id == parent_document_id
                )
            ).scalar_one()
        )

