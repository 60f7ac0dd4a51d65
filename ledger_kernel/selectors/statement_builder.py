"""
Module: ledger_kernel.selectors.statement_builder
Responsibility: Gathers the statement events of one or more flow groups and
    hands them to the pure fold in domain/statement.py.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - Event sources:
        * ISSUED documents whose kind posts to the statement (estimations
          never do); debit or credit per domain/document_kinds.py.
        * POSTED payments, always credit.
        * Sales and purchase returns, always credit, valued at the parent
          line's unit price times quantity returned.
      VOIDED documents and REVERSED payments contribute nothing.
    - No stored balance is read; the closing balance is always replayed.
"""

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.document_kinds import KIND_POLICIES, StatementSide
from ledger_kernel.domain.dtos import PartnerRef
from ledger_kernel.domain.statement import (
    Statement,
    StatementEntryType,
    StatementEvent,
    fold_running_balance,
)
from ledger_kernel.models.document import Document, DocumentStatus
from ledger_kernel.models.flow_group import FlowGroup
from ledger_kernel.models.payment import Payment, PaymentStatus
from ledger_kernel.models.returns import ReturnDocument
from ledger_kernel.selectors.base import BaseSelector

_STATEMENT_KINDS = [kind for kind, policy in KIND_POLICIES.items() if policy.on_statement]


class StatementBuilder(BaseSelector[FlowGroup]):
    """Point-in-time statements replayed from document, payment and return rows."""

    def __init__(self, session: Session):
        super().__init__(session)

    def statement(self, flow_group_id: UUID) -> Statement:
        return fold_running_balance(self.events([flow_group_id]))

    def outstanding(self, flow_group_id: UUID) -> Decimal:
        """Closing balance alone: sum(debit) - sum(credit)."""
        return self.statement(flow_group_id).closing_balance

    def partner_statement(self, partner: PartnerRef, academic_year_id: UUID) -> Statement:
        """Every flow group of the partner in the year, OPEN and SETTLED, merged."""
        column = getattr(FlowGroup, FlowGroup.partner_column(partner.kind))
        flow_group_ids = self.session.execute(
            select(FlowGroup.id).where(
                FlowGroup.academic_year_id == academic_year_id,
                column == partner.partner_id,
            )
        ).scalars().all()
        return fold_running_balance(self.events(flow_group_ids))

    def events(self, flow_group_ids: Iterable[UUID]) -> list[StatementEvent]:
        ids = list(flow_group_ids)
        if not ids:
            return []
        return [
            *self._document_events(ids),
            *self._payment_events(ids),
            *self._return_events(ids),
        ]

    def _document_events(self, flow_group_ids: list[UUID]) -> list[StatementEvent]:
        documents = self.session.execute(
            select(Document).where(
                Document.flow_group_id.in_(flow_group_ids),
                Document.status == DocumentStatus.ISSUED,
                Document.kind.in_(_STATEMENT_KINDS),
            )
        ).scalars().all()

        events = []
        for document in documents:
            policy = KIND_POLICIES[document.kind]
            is_debit = policy.statement_side == StatementSide.DEBIT
            events.append(
                StatementEvent(
                    event_date=document.document_date,
                    recorded_at=document.created_at,
                    reference=document.document_no,
                    entry_type=StatementEntryType(document.kind.value),
                    source_id=document.id,
                    flow_group_id=document.flow_group_id,
                    debit=document.net_amount if is_debit else Decimal("0.00"),
                    credit=Decimal("0.00") if is_debit else document.net_amount,
                    description=document.notes or "",
                )
            )
        return events

    def _payment_events(self, flow_group_ids: list[UUID]) -> list[StatementEvent]:
        payments = self.session.execute(
            select(Payment).where(
                Payment.flow_group_id.in_(flow_group_ids),
                Payment.status == PaymentStatus.POSTED,
            )
        ).scalars().all()
        return [
            StatementEvent(
                event_date=payment.paid_on,
                recorded_at=payment.created_at,
                reference=payment.receipt_no,
                entry_type=StatementEntryType.PAYMENT,
                source_id=payment.id,
                flow_group_id=payment.flow_group_id,
                credit=payment.amount,
                description=payment.note or payment.mode.value,
            )
            for payment in payments
        ]

    def _return_events(self, flow_group_ids: list[UUID]) -> list[StatementEvent]:
        returns = self.session.execute(
            select(ReturnDocument).where(ReturnDocument.flow_group_id.in_(flow_group_ids))
        ).scalars().all()
        return [
            StatementEvent(
                event_date=ret.return_date,
                recorded_at=ret.created_at,
                reference=ret.return_no,
                entry_type=StatementEntryType(ret.kind.value),
                source_id=ret.id,
                flow_group_id=ret.flow_group_id,
                credit=ret.total_amount,
                description=ret.notes or "",
            )
            for ret in returns
        ]
