"""
Module: ledger_kernel.models.academic_year
Responsibility: ORM persistence for the academic year, the accounting period
    that scopes every flow group, sequence, stock ledger entry and payment.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - At most one OPEN academic year system-wide.  Enforced at the storage
      layer by the partial unique index ``uq_academic_year_single_open``;
      AcademicYearService additionally closes the previous OPEN year in the
      same transaction that opens a new one.
    - start_date < end_date (service layer).

Failure modes:
    - IntegrityError if two transactions race to open a year (the loser
      rolls back; its caller sees the error from the index).
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, DateTime, Index, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import StrEnumType


class AcademicYearStatus(str, Enum):
    """OPEN -> CLOSED, one-way."""

    OPEN = "open"
    CLOSED = "closed"


class AcademicYear(TrackedBase):
    """Accounting period, e.g. ``2024-25`` running April to March."""

    __tablename__ = "academic_years"

    __table_args__ = (
        UniqueConstraint("name", name="uq_academic_year_name"),
        Index("idx_academic_year_dates", "start_date", "end_date"),
        Index(
            "uq_academic_year_single_open",
            "status",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
    )

    name: Mapped[str] = mapped_column(String(20), nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[AcademicYearStatus] = mapped_column(
        StrEnumType(AcademicYearStatus),
        default=AcademicYearStatus.OPEN,
        nullable=False,
    )

    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    closed_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<AcademicYear {self.name}: {self.status.value}>"

    @property
    def is_open(self) -> bool:
        return self.status == AcademicYearStatus.OPEN

    def close(self, actor_id: UUID, closed_at: datetime) -> None:
        """Close the year.

        Requires closed_at from the injected clock; never reads the wall
        clock itself.
        """
        if not self.is_open:
            raise ValueError(f"Academic year {self.name} is already closed")
        self.status = AcademicYearStatus.CLOSED
        self.closed_at = closed_at
        self.closed_by_id = actor_id
