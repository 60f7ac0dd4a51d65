"""
AcademicYearService -- academic year lifecycle and scope resolution.

Responsibility:
    Resolves the single OPEN academic year that scopes a request, and
    manages the OPEN -> CLOSED lifecycle.

Architecture position:
    Kernel > Services -- imperative shell.
    LedgerCore calls ``current_scope()`` once per request and passes the
    resulting AcademicYearInfo explicitly to every engine call; nothing
    below the facade looks the year up on its own.

Invariants enforced:
    - At most one OPEN year.  ``create_year()`` closes the previous OPEN
      year in the same transaction before inserting the new one; the
      partial unique index ``uq_academic_year_single_open`` backs this up.
    - Year date ranges never overlap.
    - Writes only go to OPEN years (``require_open()``).

Failure modes:
    - NoOpenPeriodError: no OPEN year.
    - AcademicYearNotFoundError: unknown id.
    - AcademicYearOverlapError: new range overlaps an existing year.
    - AcademicYearClosedError: write attempted against a CLOSED year.
    - AcademicYearAlreadyClosedError: close of a CLOSED year.
    - ValueError: start_date not before end_date.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import AcademicYearInfo
from ledger_kernel.exceptions import (
    AcademicYearAlreadyClosedError,
    AcademicYearClosedError,
    AcademicYearNotFoundError,
    AcademicYearOverlapError,
    NoOpenPeriodError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.academic_year import AcademicYear, AcademicYearStatus
from ledger_kernel.services.base import BaseService

logger = get_logger("services.academic_year")


def default_year_name(start_date: date, end_date: date) -> str:
    """``2024-25`` style name for a year starting in 2024 and ending in 2025."""
    return f"{start_date.year}-{end_date.year % 100:02d}"


class AcademicYearService(BaseService[AcademicYear]):
    """
    Service for the academic year lifecycle.

    Guarantees:
        - Returns frozen AcademicYearInfo DTOs, never ORM entities.
        - Flush-only.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    def current_scope(self) -> AcademicYearInfo:
        """
        Return the OPEN academic year.

        Raises:
            NoOpenPeriodError: if no year is OPEN.
        """
        year = self.session.execute(
            select(AcademicYear).where(AcademicYear.status == AcademicYearStatus.OPEN)
        ).scalar_one_or_none()
        if year is None:
            raise NoOpenPeriodError()
        return AcademicYearInfo.from_model(year)

    def get_year(self, academic_year_id: UUID) -> AcademicYearInfo:
        year = self.session.get(AcademicYear, academic_year_id)
        if year is None:
            raise AcademicYearNotFoundError(str(academic_year_id))
        return AcademicYearInfo.from_model(year)

    def require_open(self, academic_year_id: UUID) -> AcademicYearInfo:
        """
        Return the year if it is OPEN.

        Raises:
            AcademicYearNotFoundError: unknown id.
            AcademicYearClosedError: the year is CLOSED.
        """
        info = self.get_year(academic_year_id)
        if not info.is_open:
            logger.warning(
                "academic_year_closed_violation",
                extra={"academic_year_id": str(academic_year_id)},
            )
            raise AcademicYearClosedError(str(academic_year_id))
        return info

    def create_year(
        self,
        start_date: date,
        end_date: date,
        actor_id: UUID,
        name: str | None = None,
    ) -> AcademicYearInfo:
        """
        Open a new academic year, closing the currently OPEN one.

        Args:
            start_date: First day (inclusive).
            end_date: Last day (inclusive).
            actor_id: Who is opening the year.
            name: Display name; defaults to ``YYYY-YY``.

        Raises:
            ValueError: start_date is not before end_date.
            AcademicYearOverlapError: the range overlaps an existing year.
        """
        if start_date >= end_date:
            raise ValueError(
                f"start_date ({start_date}) must be before end_date ({end_date})"
            )

        self._validate_no_overlap(start_date, end_date)

        previous = self.session.execute(
            select(AcademicYear)
            .where(AcademicYear.status == AcademicYearStatus.OPEN)
            .with_for_update()
        ).scalar_one_or_none()
        if previous is not None:
            previous.close(actor_id, self._clock.now())
            previous.updated_by_id = actor_id
            # Flush the close first so the single-open index sees one OPEN row
            self.session.flush()
            logger.info(
                "academic_year_closed",
                extra={
                    "academic_year_id": str(previous.id),
                    "year_name": previous.name,
                    "reason": "superseded",
                },
            )

        year = AcademicYear(
            name=name or default_year_name(start_date, end_date),
            start_date=start_date,
            end_date=end_date,
            status=AcademicYearStatus.OPEN,
            created_by_id=actor_id,
        )
        self.session.add(year)
        self.session.flush()

        logger.info(
            "academic_year_opened",
            extra={
                "academic_year_id": str(year.id),
                "year_name": year.name,
                "start_date": str(start_date),
                "end_date": str(end_date),
            },
        )
        return AcademicYearInfo.from_model(year)

    def close_year(self, academic_year_id: UUID, actor_id: UUID) -> AcademicYearInfo:
        """
        Close a year.

        Locks the row so that concurrent closes serialize and the loser
        sees AcademicYearAlreadyClosedError.
        """
        year = self.session.execute(
            select(AcademicYear)
            .where(AcademicYear.id == academic_year_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if year is None:
            raise AcademicYearNotFoundError(str(academic_year_id))
        if not year.is_open:
            raise AcademicYearAlreadyClosedError(str(academic_year_id))

        year.close(actor_id, self._clock.now())
        year.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "academic_year_closed",
            extra={"academic_year_id": str(year.id), "year_name": year.name},
        )
        return AcademicYearInfo.from_model(year)

    def _validate_no_overlap(self, start_date: date, end_date: date) -> None:
        # Two ranges overlap iff start1 <= end2 AND start2 <= end1
        overlapping = self.session.execute(
            select(AcademicYear)
            .where(
                AcademicYear.start_date <= end_date,
                AcademicYear.end_date >= start_date,
            )
            .order_by(AcademicYear.start_date)
            .limit(1)
        ).scalar_one_or_none()

        if overlapping is not None:
            raise AcademicYearOverlapError(
                existing_name=overlapping.name,
                overlap_start=str(max(start_date, overlapping.start_date)),
                overlap_end=str(min(end_date, overlapping.end_date)),
            )
