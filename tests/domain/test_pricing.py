"""
Document pricing tests.

Line rule, each step rounded to the cent ROUND_HALF_UP:
    gross    = round(quantity * unit_price)
    discount = round(gross * discount_percent / 100)
    net      = round(gross - discount)
Document totals are sums of the rounded line values.
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from ledger_kernel.domain.pricing import LineItemInput, price_document, price_line
from ledger_kernel.exceptions import (
    EmptyDocumentError,
    InvalidDiscountError,
    InvalidLineItemError,
    NonPositiveTotalError,
)
from tests.factories import line


class TestWorkedExample:

    def test_two_lines_total_950(self):
        totals = price_document([
            line("Maths 5", 10, "100", "10"),
            line("Atlas", 1, "50"),
        ])

        first, second = totals.lines
        assert first.gross_amount == Decimal("1000.00")
        assert first.discount_amount == Decimal("100.00")
        assert first.net_amount == Decimal("900.00")
        assert second.net_amount == Decimal("50.00")

        assert totals.total_quantity == 11
        assert totals.gross_amount == Decimal("1050.00")
        assert totals.total_discount == Decimal("100.00")
        assert totals.net_amount == Decimal("950.00")

    def test_lines_numbered_from_one(self):
        totals = price_document([line("A", 1, "1"), line("B", 1, "1"), line("C", 1, "1")])
        assert [row.line_no for row in totals.lines] == [1, 2, 3]


class TestRounding:

    def test_discount_rounds_half_up(self):
        # 3 x 0.15 = 0.45; 10% of it is 0.045 -> 0.05
        priced = price_line(1, line("Pencil", 3, "0.15", "10"))
        assert priced.gross_amount == Decimal("0.45")
        assert priced.discount_amount == Decimal("0.05")
        assert priced.net_amount == Decimal("0.40")

    def test_fractional_discount_percent(self):
        priced = price_line(1, line("Guide", 7, "33.33", "12.5"))
        assert priced.gross_amount == Decimal("233.31")
        # 233.31 * 0.125 = 29.16375
        assert priced.discount_amount == Decimal("29.16")
        assert priced.net_amount == Decimal("204.15")

    def test_zero_price_line_allowed_alongside_priced_line(self):
        totals = price_document([line("Free sample", 2, "0"), line("Reader", 1, "20")])
        assert totals.net_amount == Decimal("20.00")

    def test_description_is_trimmed(self):
        assert price_line(1, line("  Science 6  ", 1, "5")).description == "Science 6"


class TestValidation:

    def test_empty_document_rejected(self):
        with pytest.raises(EmptyDocumentError):
            price_document([])

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_quantity_must_be_positive(self, quantity):
        with pytest.raises(InvalidLineItemError) as exc_info:
            price_line(1, line("Book", quantity, "10"))
        assert exc_info.value.field == "quantity"

    @pytest.mark.parametrize("quantity", [True, 2.0, "3"])
    def test_quantity_must_be_int(self, quantity):
        with pytest.raises(InvalidLineItemError):
            price_line(1, LineItemInput("Book", quantity, Decimal("10")))

    def test_negative_unit_price_rejected(self):
        with pytest.raises(InvalidLineItemError) as exc_info:
            price_line(1, line("Book", 1, "-0.01"))
        assert exc_info.value.field == "unit_price"

    def test_float_unit_price_rejected(self):
        with pytest.raises(InvalidLineItemError):
            price_line(1, LineItemInput("Book", 1, 10.5))

    def test_sub_paisa_unit_price_rejected(self):
        with pytest.raises(InvalidLineItemError):
            price_line(1, line("Book", 1, "10.005"))

    def test_blank_description_rejected(self):
        with pytest.raises(InvalidLineItemError) as exc_info:
            price_line(4, line("   ", 1, "10"))
        assert exc_info.value.line_no == 4
        assert exc_info.value.field == "description"

    @pytest.mark.parametrize("discount", ["100", "100.00", "-1", "150"])
    def test_discount_outside_range_rejected(self, discount):
        with pytest.raises(InvalidDiscountError):
            price_line(1, line("Book", 1, "10", discount))

    def test_discount_just_below_hundred_allowed(self):
        priced = price_line(1, line("Book", 1, "100", "99.99"))
        assert priced.net_amount == Decimal("0.01")

    def test_non_positive_total_rejected(self):
        with pytest.raises(NonPositiveTotalError) as exc_info:
            price_document([line("Free", 3, "0")])
        assert exc_info.value.net_amount == Decimal("0.00")


money = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("10000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
percent = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("99.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
lines = st.lists(
    st.builds(
        LineItemInput,
        description=st.just("Textbook"),
        quantity=st.integers(min_value=1, max_value=500),
        unit_price=money,
        discount_percent=percent,
    ),
    min_size=1,
    max_size=8,
)


class TestPricingProperties:

    @settings(max_examples=200)
    @given(items=lines)
    def test_totals_are_sums_of_rounded_lines(self, items):
        try:
            totals = price_document(items)
        except NonPositiveTotalError:
            return

        assert totals.net_amount == sum(row.net_amount for row in totals.lines)
        assert totals.gross_amount == sum(row.gross_amount for row in totals.lines)
        assert totals.total_discount == sum(row.discount_amount for row in totals.lines)
        assert totals.net_amount > 0

    @settings(max_examples=200)
    @given(items=lines)
    def test_each_line_is_gross_minus_discount(self, items):
        for i, item in enumerate(items, start=1):
            priced = price_line(i, item)
            assert priced.net_amount == priced.gross_amount - priced.discount_amount
            assert priced.net_amount >= 0
            assert priced.net_amount.as_tuple().exponent == -2
