"""
Module: ledger_kernel.models.sequence
Responsibility: Counter rows behind per-year document numbering.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One counter per (academic_year_id, document_type, scope)
      (``uq_document_sequence``).  The locked counter row is the sole source
      of the next number; MAX(document_no)+1 is never used.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class DocumentType(str, Enum):
    """Everything that draws a number from a sequence."""

    INVOICE = "invoice"
    PROVISIONAL_INVOICE = "provisional_invoice"
    CREDIT_NOTE = "credit_note"
    ESTIMATION = "estimation"
    PURCHASE_INVOICE = "purchase_invoice"
    PAYMENT = "payment"
    SALES_RETURN = "sales_return"
    PURCHASE_RETURN = "purchase_return"


DEFAULT_SCOPE = "default"


class DocumentSequence(Base):
    """Last number issued for one document type in one academic year."""

    __tablename__ = "document_sequences"

    __table_args__ = (
        UniqueConstraint(
            "academic_year_id",
            "document_type",
            "scope",
            name="uq_document_sequence",
        ),
    )

    academic_year_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("academic_years.id"),
        nullable=False,
    )

    document_type: Mapped[str] = mapped_column(String(30), nullable=False)

    # Separate counters for the same type (e.g. school receipts vs company payments)
    scope: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=DEFAULT_SCOPE,
    )

    last_number: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    def __repr__(self) -> str:
        return f"<DocumentSequence {self.document_type}/{self.scope}: {self.last_number}>"
