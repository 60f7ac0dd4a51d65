"""Statements replayed from document, payment and return rows."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from ledger_kernel.domain.dtos import ReturnLineInput
from ledger_kernel.domain.statement import StatementEntryType
from ledger_kernel.models.document import DocumentKind
from ledger_kernel.models.payment import PaymentMode
from ledger_kernel.selectors.statement_builder import StatementBuilder
from tests.factories import line


class TestFlowGroupStatement:

    def test_mixed_statement(
        self, session, create_document, stock_purchase, payment_service, return_service,
        flow_group_for, school, open_year, test_actor_id, deterministic_clock,
    ):
        textbook_id = uuid4()
        stock_purchase(textbook_id, 100)

        create_document(
            DocumentKind.INVOICE, school, [line("Atlas", 1, "500")],
            document_date=date(2024, 6, 1),
        )
        deterministic_clock.advance(60)
        pinv = create_document(
            DocumentKind.PROVISIONAL_INVOICE,
            school,
            [line("Science 6", 10, "100", textbook_id=textbook_id)],
            document_date=date(2024, 6, 2),
        )
        create_document(
            DocumentKind.ESTIMATION, school, [line("Quote", 1, "9999")],
            document_date=date(2024, 6, 2),
        )
        create_document(
            DocumentKind.CREDIT_NOTE, school, [line("Damaged", 1, "50")],
            document_date=date(2024, 6, 3),
        )
        payment_service.record_payment(
            open_year, flow_group_for(school).id, Decimal("600"), PaymentMode.CASH,
            test_actor_id, paid_on=date(2024, 6, 4),
        )
        return_service.create_return(
            pinv.id, [ReturnLineInput(textbook_id, 2)], test_actor_id,
            return_date=date(2024, 6, 5),
        )

        statement = StatementBuilder(session).statement(pinv.flow_group_id)

        assert [r.entry_type for r in statement.rows] == [
            StatementEntryType.INVOICE,
            StatementEntryType.PROVISIONAL_INVOICE,
            StatementEntryType.CREDIT_NOTE,
            StatementEntryType.PAYMENT,
            StatementEntryType.SALES_RETURN,
        ]
        assert [r.balance for r in statement.rows] == [
            Decimal("500.00"),
            Decimal("1500.00"),
            Decimal("1450.00"),
            Decimal("850.00"),
            Decimal("650.00"),
        ]
        assert [r.reference for r in statement.rows] == ["INV-1", "PINV-1", "1", "RCPT-1", "RET-1"]

    def test_outstanding(self, session, stock_purchase, flow_group_for, dealer):
        stock_purchase(uuid4(), 4, "25.00")
        assert StatementBuilder(session).outstanding(flow_group_for(dealer).id) == Decimal("100.00")


class TestPartnerStatement:

    def test_merges_settled_and_open_groups(
        self, session, stock_purchase, payment_service, flow_group_for, dealer, open_year,
        test_actor_id, deterministic_clock,
    ):
        stock_purchase(uuid4(), 2, "50.00")
        settled = flow_group_for(dealer)
        payment_service.record_payment(
            open_year, settled.id, Decimal("100.00"), PaymentMode.CASH, test_actor_id
        )
        deterministic_clock.advance(60)
        stock_purchase(uuid4(), 1, "30.00")

        builder = StatementBuilder(session)
        statement = builder.partner_statement(dealer, open_year.id)

        assert len({r.event.flow_group_id for r in statement.rows}) == 2
        assert statement.closing_balance == Decimal("30.00")
        assert builder.outstanding(settled.id) == Decimal("0.00")

    def test_unknown_partner_is_empty(self, session, dealer, open_year):
        assert StatementBuilder(session).partner_statement(dealer, open_year.id).is_empty
