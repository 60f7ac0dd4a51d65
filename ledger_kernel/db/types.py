"""
Module: ledger_kernel.db.types
Responsibility: Annotated column aliases and the enum column type shared by
    every model, plus the single sanctioned money rounding function.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Money is Decimal rounded to MONEY_DECIMAL_PLACES with ROUND_HALF_UP.
      round_money() is the ONLY rounding function used for amounts.
    - Enum-valued columns store the enum's string value (not its name), so
      partial-index predicates such as ``status = 'open'`` match on both
      PostgreSQL and SQLite.
"""

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String
from sqlalchemy.types import TypeDecorator

MONEY_DECIMAL_PLACES = 2
MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)
DEFAULT_ROUNDING = ROUND_HALF_UP

Money = Annotated[Decimal, Numeric(18, MONEY_DECIMAL_PLACES)]

# Discount percentage, 0.00 - 99.99
Percent = Annotated[Decimal, Numeric(5, 2)]

# Signed stock delta / sequence counter
Quantity = Annotated[int, BigInteger]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(2000)]


def round_money(amount: Decimal | int | str) -> Decimal:
    """Round an amount to the cent, half-up.

    Strings and ints are accepted so callers never pass through float.
    """
    if isinstance(amount, float):
        raise TypeError("Money must not be a float; pass Decimal or str")
    return Decimal(amount).quantize(MONEY_QUANTUM, rounding=DEFAULT_ROUNDING)


class StrEnumType(TypeDecorator):
    """Store a ``str``-valued Enum by value and load it back as the member."""

    impl = String
    cache_ok = True

    def __init__(self, enum_cls: type[Enum], length: int = 20):
        super().__init__(length)
        self.enum_cls = enum_cls

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, self.enum_cls):
            return value.value
        # Accept raw values; reject anything the enum does not know
        return self.enum_cls(value).value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.enum_cls(value)
