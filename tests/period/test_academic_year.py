"""
Academic year lifecycle tests.

Verifies:
- Exactly one OPEN year scopes every write
- Opening a new year closes the previous one
- Date ranges must not overlap
- Closed years reject writes
"""

from datetime import date
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import (
    AcademicYearAlreadyClosedError,
    AcademicYearClosedError,
    AcademicYearNotFoundError,
    AcademicYearOverlapError,
    NoOpenPeriodError,
)
from ledger_kernel.models.academic_year import AcademicYearStatus
from ledger_kernel.services.academic_year_service import default_year_name
from tests.factories import YEAR_END, YEAR_START


class TestCurrentScope:

    def test_no_open_year(self, academic_year_service):
        with pytest.raises(NoOpenPeriodError):
            academic_year_service.current_scope()

    def test_returns_open_year(self, academic_year_service, open_year):
        scope = academic_year_service.current_scope()
        assert scope.id == open_year.id
        assert scope.is_open
        assert scope.contains(date(2024, 12, 31))
        assert not scope.contains(date(2025, 4, 1))


class TestCreateYear:

    def test_default_name(self, open_year):
        assert open_year.name == "2024-25"

    def test_default_name_across_century(self):
        assert default_year_name(date(2099, 4, 1), date(2100, 3, 31)) == "2099-00"

    def test_explicit_name(self, academic_year_service, test_actor_id):
        year = academic_year_service.create_year(
            YEAR_START, YEAR_END, test_actor_id, name="AY 24/25"
        )
        assert year.name == "AY 24/25"

    def test_new_year_closes_previous(self, academic_year_service, open_year, test_actor_id):
        next_year = academic_year_service.create_year(
            date(2025, 4, 1), date(2026, 3, 31), test_actor_id
        )

        assert academic_year_service.get_year(open_year.id).status == AcademicYearStatus.CLOSED
        assert academic_year_service.current_scope().id == next_year.id

    def test_overlap_rejected(self, academic_year_service, open_year, test_actor_id):
        with pytest.raises(AcademicYearOverlapError) as exc_info:
            academic_year_service.create_year(
                date(2025, 1, 1), date(2025, 12, 31), test_actor_id
            )
        assert exc_info.value.existing_name == "2024-25"
        assert exc_info.value.overlap_start == "2025-01-01"
        assert exc_info.value.overlap_end == "2025-03-31"

    def test_shared_boundary_day_overlaps(self, academic_year_service, open_year, test_actor_id):
        with pytest.raises(AcademicYearOverlapError):
            academic_year_service.create_year(YEAR_END, date(2026, 3, 31), test_actor_id)

    @pytest.mark.parametrize("end", [YEAR_START, date(2024, 3, 31)])
    def test_start_must_precede_end(self, academic_year_service, test_actor_id, end):
        with pytest.raises(ValueError):
            academic_year_service.create_year(YEAR_START, end, test_actor_id)


class TestCloseYear:

    def test_close(self, academic_year_service, open_year, test_actor_id):
        closed = academic_year_service.close_year(open_year.id, test_actor_id)
        assert closed.status == AcademicYearStatus.CLOSED

        with pytest.raises(NoOpenPeriodError):
            academic_year_service.current_scope()

    def test_close_twice(self, academic_year_service, open_year, test_actor_id):
        academic_year_service.close_year(open_year.id, test_actor_id)
        with pytest.raises(AcademicYearAlreadyClosedError):
            academic_year_service.close_year(open_year.id, test_actor_id)

    def test_close_unknown(self, academic_year_service, test_actor_id):
        with pytest.raises(AcademicYearNotFoundError):
            academic_year_service.close_year(uuid4(), test_actor_id)

    def test_require_open_after_close(self, academic_year_service, open_year, test_actor_id):
        academic_year_service.close_year(open_year.id, test_actor_id)
        with pytest.raises(AcademicYearClosedError):
            academic_year_service.require_open(open_year.id)
