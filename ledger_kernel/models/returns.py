"""
Module: ledger_kernel.models.returns
Responsibility: ORM persistence for sales returns (stock back from a school
    against a provisional invoice) and purchase returns (stock back to a
    supplier against a purchase invoice).
Architecture position: Kernel > Models.  May import from db/ and other models.

Invariants enforced:
    - For every (parent_document_id, textbook_id):
      SUM(ReturnItem.qty_returned) <= quantity on the parent document.
      Checked by ReturnService under a FOR UPDATE lock on the parent row;
      ReturnItem.parent_document_id is denormalized so the check is a single
      grouped query.
    - ReturnItem rows are immutable once written (db/immutability.py).
    - ReturnItem.unit_price is the parent line's unit price, never a
      price supplied with the return.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, TrackedBase, UUIDString
from ledger_kernel.db.types import Money, StrEnumType


class ReturnKind(str, Enum):
    SALES_RETURN = "sales_return"
    PURCHASE_RETURN = "purchase_return"


class ReturnDocument(TrackedBase):
    """Header of one return against a parent document."""

    __tablename__ = "return_documents"

    __table_args__ = (
        UniqueConstraint(
            "academic_year_id",
            "kind",
            "return_number",
            name="uq_return_number",
        ),
        Index("idx_return_parent", "parent_document_id"),
        Index("idx_return_flow_group", "flow_group_id"),
    )

    kind: Mapped[ReturnKind] = mapped_column(
        StrEnumType(ReturnKind),
        nullable=False,
    )

    return_no: Mapped[str] = mapped_column(String(50), nullable=False)

    return_number: Mapped[int] = mapped_column(BigInteger, nullable=False)

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

    parent_document_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("documents.id"),
        nullable=False,
    )

    return_date: Mapped[date] = mapped_column(Date, nullable=False)

    total_quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    total_amount: Mapped[Money] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    items: Mapped[list["ReturnItem"]] = relationship(
        back_populates="return_document",
        cascade="save-update, merge",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<ReturnDocument {self.kind.value} {self.return_no}>"


class ReturnItem(Base):
    """Quantity of one textbook returned."""

    __tablename__ = "return_items"

    __table_args__ = (
        CheckConstraint("qty_returned > 0", name="ck_return_item_quantity"),
        Index("idx_return_item_parent_textbook", "parent_document_id", "textbook_id"),
    )

    return_document_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("return_documents.id"),
        nullable=False,
    )

    parent_document_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("documents.id"),
        nullable=False,
    )

    textbook_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    qty_returned: Mapped[int] = mapped_column(Integer, nullable=False)

    unit_price: Mapped[Money] = mapped_column(nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    return_document: Mapped[ReturnDocument] = relationship(back_populates="items")
