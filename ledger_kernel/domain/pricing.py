"""
Pricing -- server-side line and document totals.

Responsibility:
    Validates raw line items and prices them.  Totals are never accepted
    from the caller; they are always recomputed here.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    Per line, each step rounded to the cent (ROUND_HALF_UP):

        gross    = round(quantity * unit_price)
        discount = round(gross * discount_percent / 100)
        net      = round(gross - discount)

    Document totals are sums of the already-rounded line values, so
    net_amount == sum(line.net_amount) holds exactly.

Failure modes:
    - EmptyDocumentError: no items.
    - InvalidLineItemError: blank description, quantity not a positive
      int, negative or float unit price, more than two decimal places.
    - InvalidDiscountError: discount outside [0, 100).
    - NonPositiveTotalError: document net total <= 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from uuid import UUID

from ledger_kernel.db.types import MONEY_DECIMAL_PLACES, round_money
from ledger_kernel.exceptions import (
    EmptyDocumentError,
    InvalidDiscountError,
    InvalidLineItemError,
    NonPositiveTotalError,
)

HUNDRED = Decimal("100")


@dataclass(frozen=True, slots=True)
class LineItemInput:
    """A line as the caller supplies it: no derived amounts."""

    description: str
    quantity: int
    unit_price: Decimal
    discount_percent: Decimal = Decimal("0")
    textbook_id: UUID | None = None
    class_label: str | None = None
    publisher: str | None = None


@dataclass(frozen=True, slots=True)
class PricedLine:
    line_no: int
    description: str
    quantity: int
    unit_price: Decimal
    discount_percent: Decimal
    gross_amount: Decimal
    discount_amount: Decimal
    net_amount: Decimal
    textbook_id: UUID | None = None
    class_label: str | None = None
    publisher: str | None = None


@dataclass(frozen=True, slots=True)
class DocumentTotals:
    lines: tuple[PricedLine, ...]
    total_quantity: int
    gross_amount: Decimal
    total_discount: Decimal
    net_amount: Decimal

    def quantity_by_textbook(self) -> dict[UUID, int]:
        """Requested quantity per textbook, duplicates summed."""
        totals: dict[UUID, int] = {}
        for line in self.lines:
            if line.textbook_id is not None:
                totals[line.textbook_id] = totals.get(line.textbook_id, 0) + line.quantity
        return totals


def _as_decimal(value, line_no: int, field: str) -> Decimal:
    if isinstance(value, float):
        raise InvalidLineItemError(line_no, field, "must be Decimal or str, not float")
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidLineItemError(line_no, field, f"not a number: {value!r}")
    if not result.is_finite():
        raise InvalidLineItemError(line_no, field, "must be finite")
    if result.as_tuple().exponent < -MONEY_DECIMAL_PLACES:
        raise InvalidLineItemError(
            line_no, field, f"at most {MONEY_DECIMAL_PLACES} decimal places allowed"
        )
    return result


def price_line(line_no: int, item: LineItemInput) -> PricedLine:
    """Validate and price a single line."""
    description = (item.description or "").strip()
    if not description:
        raise InvalidLineItemError(line_no, "description", "must not be blank")

    # bool is an int subclass; reject it explicitly
    if isinstance(item.quantity, bool) or not isinstance(item.quantity, int):
        raise InvalidLineItemError(line_no, "quantity", "must be an integer")
    if item.quantity < 1:
        raise InvalidLineItemError(line_no, "quantity", "must be at least 1")

    unit_price = _as_decimal(item.unit_price, line_no, "unit_price")
    if unit_price < 0:
        raise InvalidLineItemError(line_no, "unit_price", "must not be negative")

    discount_percent = _as_decimal(item.discount_percent, line_no, "discount_percent")
    if discount_percent < 0 or discount_percent >= HUNDRED:
        raise InvalidDiscountError(line_no, discount_percent)

    gross = round_money(item.quantity * unit_price)
    discount = round_money(gross * discount_percent / HUNDRED)
    net = round_money(gross - discount)

    return PricedLine(
        line_no=line_no,
        description=description,
        quantity=item.quantity,
        unit_price=unit_price,
        discount_percent=discount_percent,
        gross_amount=gross,
        discount_amount=discount,
        net_amount=net,
        textbook_id=item.textbook_id,
        class_label=item.class_label,
        publisher=item.publisher,
    )


def price_document(items: list[LineItemInput] | tuple[LineItemInput, ...]) -> DocumentTotals:
    """
    Price every line and sum the rounded results.

    Raises NonPositiveTotalError if the net total is not strictly positive.
    """
    if not items:
        raise EmptyDocumentError()

    lines = tuple(price_line(i, item) for i, item in enumerate(items, start=1))

    totals = DocumentTotals(
        lines=lines,
        total_quantity=sum(line.quantity for line in lines),
        gross_amount=sum((line.gross_amount for line in lines), Decimal("0.00")),
        total_discount=sum((line.discount_amount for line in lines), Decimal("0.00")),
        net_amount=sum((line.net_amount for line in lines), Decimal("0.00")),
    )
    if totals.net_amount <= 0:
        raise NonPositiveTotalError(totals.net_amount)
    return totals
