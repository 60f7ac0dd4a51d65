"""
Module: ledger_kernel.models.document
Responsibility: ORM persistence for priced documents (invoices, provisional
    invoices, credit notes, estimations, purchase invoices) and their items.
Architecture position: Kernel > Models.  May import from db/ and other models.

Invariants enforced:
    - Totals on Document are a materialized projection of its items:
      net_amount == SUM(item.net_amount) and likewise for gross, discount and
      quantity.  DocumentService writes both in one flush;
      DocumentSelector.recompute_totals() re-derives them for verification.
    - Item money columns are rounded to the cent per line and only then
      summed (never the reverse).
    - (academic_year_id, kind, sequence_number) is unique for sequence-issued
      numbers.  Supplier-numbered purchase invoices carry a NULL
      sequence_number and are exempt.
    - Voiding flips status and stamps voided_by/voided_at; rows are never
      deleted (db/immutability.py).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, TrackedBase, UUIDString
from ledger_kernel.db.types import Money, Percent, StrEnumType


class DocumentKind(str, Enum):
    INVOICE = "invoice"
    PROVISIONAL_INVOICE = "provisional_invoice"
    CREDIT_NOTE = "credit_note"
    ESTIMATION = "estimation"
    PURCHASE_INVOICE = "purchase_invoice"


class DocumentStatus(str, Enum):
    ISSUED = "issued"
    VOIDED = "voided"


class Document(TrackedBase):
    """A priced document attached to a flow group."""

    __tablename__ = "documents"

    __table_args__ = (
        UniqueConstraint(
            "academic_year_id",
            "kind",
            "sequence_number",
            name="uq_document_number",
        ),
        UniqueConstraint("idempotency_key", name="uq_document_idempotency_key"),
        Index("idx_document_flow_group", "flow_group_id", "status"),
        Index("idx_document_date", "document_date"),
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

    kind: Mapped[DocumentKind] = mapped_column(
        StrEnumType(DocumentKind, length=30),
        nullable=False,
    )

    document_no: Mapped[str] = mapped_column(String(50), nullable=False)

    sequence_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    document_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[DocumentStatus] = mapped_column(
        StrEnumType(DocumentStatus),
        default=DocumentStatus.ISSUED,
        nullable=False,
    )

    total_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    gross_amount: Mapped[Money] = mapped_column(nullable=False)
    total_discount: Mapped[Money] = mapped_column(nullable=False)
    net_amount: Mapped[Money] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    idempotency_key: Mapped[str | None] = mapped_column(String(200), nullable=True)

    voided_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    void_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    items: Mapped[list["DocumentItem"]] = relationship(
        back_populates="document",
        order_by="DocumentItem.line_no",
        cascade="save-update, merge",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Document {self.kind.value} {self.document_no}: {self.status.value}>"

    @property
    def is_voided(self) -> bool:
        return self.status == DocumentStatus.VOIDED


class DocumentItem(Base):
    """One priced line of a document."""

    __tablename__ = "document_items"

    __table_args__ = (
        UniqueConstraint("document_id", "line_no", name="uq_document_item_line"),
        CheckConstraint("quantity > 0", name="ck_document_item_quantity"),
        CheckConstraint("unit_price >= 0", name="ck_document_item_unit_price"),
        CheckConstraint(
            "discount_percent >= 0 AND discount_percent < 100",
            name="ck_document_item_discount",
        ),
        Index("idx_document_item_textbook", "document_id", "textbook_id"),
    )

    document_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("documents.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    description: Mapped[str] = mapped_column(String(300), nullable=False)

    # Null for free-text lines on non-stock documents
    textbook_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Classification tags
    class_label: Mapped[str | None] = mapped_column(String(50), nullable=True)
    publisher: Mapped[str | None] = mapped_column(String(100), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Money] = mapped_column(nullable=False)
    discount_percent: Mapped[Percent] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    gross_amount: Mapped[Money] = mapped_column(nullable=False)
    discount_amount: Mapped[Money] = mapped_column(nullable=False)
    net_amount: Mapped[Money] = mapped_column(nullable=False)

    document: Mapped[Document] = relationship(back_populates="items")
