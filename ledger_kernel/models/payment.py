"""
Module: ledger_kernel.models.payment
Responsibility: ORM persistence for money received from or paid to a
    partner against a flow group.
Architecture position: Kernel > Models.  May import from db/ and other models.

Invariants enforced:
    - amount > 0 always.  Direction comes from the statement (a payment is
      always a credit), never from the sign of the stored amount.
    - (academic_year_id, receipt_scope, receipt_number) is unique.
    - A payment is never deleted.  Reversal flips status to REVERSED and
      stamps reversed_by/reversed_at.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import Money, StrEnumType


class PaymentMode(str, Enum):
    CASH = "cash"
    UPI = "upi"
    BANK = "bank"


class PaymentStatus(str, Enum):
    POSTED = "posted"
    REVERSED = "reversed"


class Payment(TrackedBase):
    """A receipt (school) or a payout (company, dealer)."""

    __tablename__ = "payments"

    __table_args__ = (
        UniqueConstraint(
            "academic_year_id",
            "receipt_scope",
            "receipt_number",
            name="uq_payment_receipt_number",
        ),
        UniqueConstraint("idempotency_key", name="uq_payment_idempotency_key"),
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        Index("idx_payment_flow_group", "flow_group_id", "status"),
    )

    academic_year_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("academic_years.id"),
        nullable=False,
    )

    flow_group_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("flow_groups.id"),
        nullable=False,
    )

    receipt_no: Mapped[str] = mapped_column(String(50), nullable=False)

    receipt_number: Mapped[int] = mapped_column(BigInteger, nullable=False)

    receipt_scope: Mapped[str] = mapped_column(String(30), nullable=False)

    amount: Mapped[Money] = mapped_column(nullable=False)

    mode: Mapped[PaymentMode] = mapped_column(
        StrEnumType(PaymentMode),
        nullable=False,
    )

    reference_no: Mapped[str | None] = mapped_column(String(100), nullable=True)

    note: Mapped[str | None] = mapped_column(String(500), nullable=True)

    paid_on: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[PaymentStatus] = mapped_column(
        StrEnumType(PaymentStatus),
        default=PaymentStatus.POSTED,
        nullable=False,
    )

    idempotency_key: Mapped[str | None] = mapped_column(String(200), nullable=True)

    reversed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reversed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Payment {self.receipt_no} {self.amount}: {self.status.value}>"

    @property
    def is_reversed(self) -> bool:
        return self.status == PaymentStatus.REVERSED
