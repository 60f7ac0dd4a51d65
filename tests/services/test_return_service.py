"""
Return tests.

A return is bounded per textbook by what the parent document issued minus
what earlier returns already took back.  Items are valued at the parent
lines' unit prices, consumed in line order.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import ReturnLineInput
from ledger_kernel.exceptions import (
    DocumentNotFoundError,
    EmptyDocumentError,
    InsufficientStockError,
    InvalidReturnParentError,
    InvalidReturnQuantityError,
    ReturnExceedsIssuedError,
    ReturnItemNotOnDocumentError,
)
from ledger_kernel.models.document import DocumentKind
from ledger_kernel.models.returns import ReturnKind
from ledger_kernel.selectors.document_selector import DocumentSelector
from ledger_kernel.selectors.statement_builder import StatementBuilder
from ledger_kernel.selectors.stock_selector import StockSelector
from ledger_kernel.services.return_service import allocate_to_lines
from tests.factories import line


@pytest.fixture
def issued(create_document, stock_purchase, school):
    """A provisional invoice to the school for 10 copies of one textbook (in stock: 50)."""
    textbook_id = uuid4()
    stock_purchase(textbook_id, 50)
    document = create_document(
        DocumentKind.PROVISIONAL_INVOICE,
        school,
        [line("Science 6", 10, "120", "10", textbook_id=textbook_id)],
    )
    return document, textbook_id


class TestSalesReturn:

    def test_return_within_issued(self, session, return_service, issued, test_actor_id,
                                  open_year):
        document, textbook_id = issued

        ret = return_service.create_return(
            document.id, [ReturnLineInput(textbook_id, 3)], test_actor_id
        )

        assert ret.return_no == "RET-1"
        assert ret.kind == ReturnKind.SALES_RETURN
        assert ret.total_quantity == 3
        assert StockSelector(session).available_qty(textbook_id, open_year.id) == 43

    def test_cannot_exceed_remaining(self, return_service, issued, test_actor_id):
        document, textbook_id = issued
        return_service.create_return(document.id, [ReturnLineInput(textbook_id, 3)], test_actor_id)

        with pytest.raises(ReturnExceedsIssuedError) as exc_info:
            return_service.create_return(
                document.id, [ReturnLineInput(textbook_id, 8)], test_actor_id
            )

        assert exc_info.value.max_returnable == 7
        assert exc_info.value.requested == 8

    def test_duplicate_lines_summed(self, return_service, issued, test_actor_id):
        document, textbook_id = issued

        with pytest.raises(ReturnExceedsIssuedError) as exc_info:
            return_service.create_return(
                document.id,
                [ReturnLineInput(textbook_id, 6), ReturnLineInput(textbook_id, 5)],
                test_actor_id,
            )
        assert exc_info.value.requested == 11

    def test_full_return_then_nothing_left(self, session, return_service, issued,
                                           test_actor_id):
        document, textbook_id = issued
        return_service.create_return(document.id, [ReturnLineInput(textbook_id, 10)], test_actor_id)

        with pytest.raises(ReturnExceedsIssuedError) as exc_info:
            return_service.create_return(
                document.id, [ReturnLineInput(textbook_id, 1)], test_actor_id
            )
        assert exc_info.value.max_returnable == 0
        assert DocumentSelector(session).returned_quantities(document.id) == {textbook_id: 10}

    def test_valued_at_parent_unit_price(self, session, return_service, issued, test_actor_id):
        document, textbook_id = issued

        ret = return_service.create_return(
            document.id, [ReturnLineInput(textbook_id, 2)], test_actor_id
        )

        assert ret.items[0].unit_price == Decimal("120.00")
        assert ret.total_amount == Decimal("240.00")
        statement = StatementBuilder(session).statement(document.flow_group_id)
        # 10 x 120 less 10% = 1080, then a 240 credit
        assert statement.total_debit == Decimal("1080.00")
        assert statement.total_credit == Decimal("240.00")
        assert statement.closing_balance == Decimal("840.00")


class TestMixedPriceLines:
    """A textbook listed on several parent lines at different prices."""

    @pytest.fixture
    def two_prices(self, create_document, stock_purchase, school):
        textbook_id = uuid4()
        stock_purchase(textbook_id, 50)
        document = create_document(
            DocumentKind.PROVISIONAL_INVOICE,
            school,
            [
                line("Science 6", 5, "100", textbook_id=textbook_id),
                line("Science 6 (offer)", 5, "80", textbook_id=textbook_id),
            ],
        )
        return document, textbook_id

    def test_valued_line_by_line(self, return_service, two_prices, test_actor_id):
        document, textbook_id = two_prices

        ret = return_service.create_return(
            document.id, [ReturnLineInput(textbook_id, 6)], test_actor_id
        )

        assert ret.total_amount == Decimal("580.00")
        assert [(i.unit_price, i.qty_returned) for i in ret.items] == [
            (Decimal("100.00"), 5),
            (Decimal("80.00"), 1),
        ]

    def test_later_returns_take_remaining_lines(self, session, return_service, two_prices,
                                                test_actor_id):
        document, textbook_id = two_prices
        return_service.create_return(document.id, [ReturnLineInput(textbook_id, 6)], test_actor_id)

        ret = return_service.create_return(
            document.id, [ReturnLineInput(textbook_id, 4)], test_actor_id
        )

        assert ret.total_amount == Decimal("320.00")
        assert StatementBuilder(session).statement(document.flow_group_id).closing_balance == (
            Decimal("0.00")
        )


class TestAllocateToLines:

    def test_skips_already_returned_copies(self):
        lines = [(5, Decimal("100")), (5, Decimal("80"))]
        assert allocate_to_lines(lines, 3, 4) == [(Decimal("100"), 2), (Decimal("80"), 2)]

    def test_same_price_merged(self):
        lines = [(3, Decimal("50")), (2, Decimal("50"))]
        assert allocate_to_lines(lines, 0, 4) == [(Decimal("50"), 4)]

    def test_skip_spans_whole_lines(self):
        lines = [(2, Decimal("10")), (2, Decimal("20")), (2, Decimal("30"))]
        assert allocate_to_lines(lines, 3, 3) == [(Decimal("20"), 1), (Decimal("30"), 2)]


class TestReturnValidation:

    def test_textbook_not_on_document(self, return_service, issued, test_actor_id):
        document, _ = issued
        with pytest.raises(ReturnItemNotOnDocumentError):
            return_service.create_return(document.id, [ReturnLineInput(uuid4(), 1)], test_actor_id)

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_quantity_must_be_positive(self, return_service, issued, test_actor_id, quantity):
        document, textbook_id = issued
        with pytest.raises(InvalidReturnQuantityError):
            return_service.create_return(
                document.id, [ReturnLineInput(textbook_id, quantity)], test_actor_id
            )

    def test_empty_request(self, return_service, issued, test_actor_id):
        document, _ = issued
        with pytest.raises(EmptyDocumentError):
            return_service.create_return(document.id, [], test_actor_id)

    def test_invoice_takes_no_returns(self, return_service, create_document, school,
                                      test_actor_id):
        textbook_id = uuid4()
        invoice = create_document(
            DocumentKind.INVOICE, school, [line("Maths", 2, "50", textbook_id=textbook_id)]
        )
        with pytest.raises(InvalidReturnParentError):
            return_service.create_return(
                invoice.id, [ReturnLineInput(textbook_id, 1)], test_actor_id
            )

    def test_voided_parent(self, return_service, document_service, issued, test_actor_id):
        document, textbook_id = issued
        document_service.void_document(document.id, test_actor_id, "cancelled")

        with pytest.raises(InvalidReturnParentError):
            return_service.create_return(
                document.id, [ReturnLineInput(textbook_id, 1)], test_actor_id
            )

    def test_unknown_parent(self, return_service, open_year, test_actor_id):
        with pytest.raises(DocumentNotFoundError):
            return_service.create_return(uuid4(), [ReturnLineInput(uuid4(), 1)], test_actor_id)


class TestPurchaseReturn:

    def test_purchase_return_removes_stock(self, session, return_service, stock_purchase,
                                           test_actor_id, open_year):
        textbook_id = uuid4()
        purchase = stock_purchase(textbook_id, 20)

        ret = return_service.create_return(
            purchase.id, [ReturnLineInput(textbook_id, 5)], test_actor_id
        )

        assert ret.return_no == "PRET-1"
        assert ret.kind == ReturnKind.PURCHASE_RETURN
        assert ret.total_amount == Decimal("400.00")
        assert StockSelector(session).available_qty(textbook_id, open_year.id) == 15

    def test_purchase_return_of_issued_stock(self, return_service, stock_purchase,
                                             create_document, school, test_actor_id):
        textbook_id = uuid4()
        purchase = stock_purchase(textbook_id, 10)
        create_document(
            DocumentKind.PROVISIONAL_INVOICE,
            school,
            [line("Science 6", 8, "120", textbook_id=textbook_id)],
        )

        with pytest.raises(InsufficientStockError) as exc_info:
            return_service.create_return(
                purchase.id, [ReturnLineInput(textbook_id, 5)], test_actor_id
            )
        assert exc_info.value.available == 2
