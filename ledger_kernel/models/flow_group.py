"""
Module: ledger_kernel.models.flow_group
Responsibility: ORM persistence for flow groups -- one trading partner's
    running account within one academic year.
Architecture position: Kernel > Models.  May import from db/ and
    models/academic_year.py.

Invariants enforced:
    - Exactly one of school_id / company_id / dealer_id is set
      (``ck_flow_group_single_partner``).
    - At most one OPEN flow group per (partner, academic year).  One partial
      unique index per partner column, because NULLs never collide in a
      composite unique index.  FlowGroupService relies on these indexes for
      its insert-then-retry-as-find resolution.

Failure modes:
    - IntegrityError on a second concurrent OPEN insert for the same partner.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import StrEnumType


class FlowGroupStatus(str, Enum):
    OPEN = "open"
    SETTLED = "settled"


class PartnerKind(str, Enum):
    """Who the flow group's account is with.

    SCHOOL is a customer (the balance is receivable); COMPANY and DEALER
    supply stock (the balance is payable).
    """

    SCHOOL = "school"
    COMPANY = "company"
    DEALER = "dealer"


_PARTNER_COLUMNS = {
    PartnerKind.SCHOOL: "school_id",
    PartnerKind.COMPANY: "company_id",
    PartnerKind.DEALER: "dealer_id",
}


def _open_partner_index(column: str) -> Index:
    predicate = text(f"status = 'open' AND {column} IS NOT NULL")
    return Index(
        f"uq_flow_group_open_{column}",
        "academic_year_id",
        column,
        unique=True,
        postgresql_where=predicate,
        sqlite_where=predicate,
    )


class FlowGroup(TrackedBase):
    """A partner's ledger folder for one academic year."""

    __tablename__ = "flow_groups"

    __table_args__ = (
        CheckConstraint(
            "(CASE WHEN school_id IS NOT NULL THEN 1 ELSE 0 END)"
            " + (CASE WHEN company_id IS NOT NULL THEN 1 ELSE 0 END)"
            " + (CASE WHEN dealer_id IS NOT NULL THEN 1 ELSE 0 END) = 1",
            name="ck_flow_group_single_partner",
        ),
        _open_partner_index("school_id"),
        _open_partner_index("company_id"),
        _open_partner_index("dealer_id"),
        Index("idx_flow_group_year_status", "academic_year_id", "status"),
    )

    academic_year_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("academic_years.id"),
        nullable=False,
    )

    school_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    company_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    dealer_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    status: Mapped[FlowGroupStatus] = mapped_column(
        StrEnumType(FlowGroupStatus),
        default=FlowGroupStatus.OPEN,
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(String(200), nullable=True)

    settled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<FlowGroup {self.partner_kind.value}:{self.partner_id} {self.status.value}>"

    @property
    def partner_kind(self) -> PartnerKind:
        for kind, column in _PARTNER_COLUMNS.items():
            if getattr(self, column) is not None:
                return kind
        raise ValueError(f"Flow group {self.id} has no partner")

    @property
    def partner_id(self) -> UUID:
        return getattr(self, _PARTNER_COLUMNS[self.partner_kind])

    @property
    def is_open(self) -> bool:
        return self.status == FlowGroupStatus.OPEN

    @staticmethod
    def partner_column(kind: PartnerKind) -> str:
        return _PARTNER_COLUMNS[kind]
