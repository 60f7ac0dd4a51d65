"""
Statement -- pure running-balance projection.

Responsibility:
    Orders statement events deterministically and folds them into running
    balances.  The selector (selectors/statement_builder.py) gathers the
    events; everything here is pure.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Rows are ordered by (event_date, recorded_at, reference, source_id).
      Because the key is total, the result is independent of the order the
      events were fetched in.
    - balance_n = balance_{n-1} + debit_n - credit_n, starting at zero.
      The closing balance therefore equals sum(debit) - sum(credit).
    - Amounts are unsigned.  Debit increases what is outstanding on the
      account, credit decreases it, for every partner kind.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import UUID

ZERO = Decimal("0.00")


class StatementEntryType(str, Enum):
    INVOICE = "invoice"
    PROVISIONAL_INVOICE = "provisional_invoice"
    CREDIT_NOTE = "credit_note"
    PURCHASE_INVOICE = "purchase_invoice"
    PAYMENT = "payment"
    SALES_RETURN = "sales_return"
    PURCHASE_RETURN = "purchase_return"


@dataclass(frozen=True, slots=True)
class StatementEvent:
    """An unfolded statement line."""

    event_date: date
    recorded_at: datetime
    reference: str
    entry_type: StatementEntryType
    source_id: UUID
    flow_group_id: UUID
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str = ""

    def __post_init__(self) -> None:
        if self.debit < 0 or self.credit < 0:
            raise ValueError("Statement amounts are unsigned")


@dataclass(frozen=True, slots=True)
class StatementRow:
    event: StatementEvent
    balance: Decimal

    @property
    def debit(self) -> Decimal:
        return self.event.debit

    @property
    def credit(self) -> Decimal:
        return self.event.credit

    @property
    def reference(self) -> str:
        return self.event.reference

    @property
    def entry_type(self) -> StatementEntryType:
        return self.event.entry_type


@dataclass(frozen=True, slots=True)
class Statement:
    rows: tuple[StatementRow, ...]
    total_debit: Decimal
    total_credit: Decimal
    closing_balance: Decimal

    @property
    def is_empty(self) -> bool:
        return not self.rows


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored timestamp is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def sort_key(event: StatementEvent) -> tuple:
    return (event.event_date, _aware(event.recorded_at), event.reference, str(event.source_id))


def fold_running_balance(events) -> Statement:
    """Sort events and compute the running balance."""
    ordered = sorted(events, key=sort_key)

    balance = ZERO
    total_debit = ZERO
    total_credit = ZERO
    rows = []
    for event in ordered:
        balance = balance + event.debit - event.credit
        total_debit += event.debit
        total_credit += event.credit
        rows.append(StatementRow(event=event, balance=balance))

    return Statement(
        rows=tuple(rows),
        total_debit=total_debit,
        total_credit=total_credit,
        closing_balance=balance,
    )
