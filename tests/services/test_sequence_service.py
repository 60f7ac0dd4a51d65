"""
Sequence allocation tests.

Numbers come from a locked counter row per (year, document type, scope).
They start at 1, never repeat and are returned when the allocating
transaction rolls back.
"""

from datetime import date

import pytest

from ledger_kernel.exceptions import InvalidDocumentNumberError
from ledger_kernel.models.sequence import DocumentType


class TestNextNumber:

    def test_starts_at_one_and_increments(self, sequence_service, open_year):
        numbers = [
            sequence_service.next_number(open_year.id, DocumentType.INVOICE) for _ in range(3)
        ]
        assert numbers == [1, 2, 3]

    def test_counters_are_per_type(self, sequence_service, open_year):
        sequence_service.next_number(open_year.id, DocumentType.INVOICE)
        sequence_service.next_number(open_year.id, DocumentType.INVOICE)

        assert sequence_service.next_number(open_year.id, DocumentType.PAYMENT) == 1
        assert sequence_service.next_number(open_year.id, "credit_note") == 1

    def test_counters_are_per_scope(self, sequence_service, open_year):
        sequence_service.next_number(open_year.id, DocumentType.PAYMENT)
        assert sequence_service.next_number(open_year.id, DocumentType.PAYMENT, "company") == 1

    def test_counters_are_per_year(
        self, sequence_service, academic_year_service, open_year, test_actor_id
    ):
        sequence_service.next_number(open_year.id, DocumentType.INVOICE)
        next_year = academic_year_service.create_year(
            date(2025, 4, 1), date(2026, 3, 31), test_actor_id
        )
        assert sequence_service.next_number(next_year.id, DocumentType.INVOICE) == 1

    def test_rolled_back_number_is_reissued(self, session, sequence_service, open_year):
        sequence_service.next_number(open_year.id, DocumentType.INVOICE)

        savepoint = session.begin_nested()
        assert sequence_service.next_number(open_year.id, DocumentType.INVOICE) == 2
        savepoint.rollback()

        assert sequence_service.next_number(open_year.id, DocumentType.INVOICE) == 2

    def test_rolled_back_first_number_is_reissued(self, session, sequence_service, open_year):
        savepoint = session.begin_nested()
        assert sequence_service.next_number(open_year.id, DocumentType.ESTIMATION) == 1
        savepoint.rollback()

        assert sequence_service.next_number(open_year.id, DocumentType.ESTIMATION) == 1


class TestPeek:

    def test_peek_on_fresh_counter(self, sequence_service, open_year):
        assert sequence_service.peek_next(open_year.id, DocumentType.INVOICE) == 1

    def test_peek_does_not_consume(self, sequence_service, open_year):
        sequence_service.next_number(open_year.id, DocumentType.INVOICE)

        assert sequence_service.peek_next(open_year.id, DocumentType.INVOICE) == 2
        assert sequence_service.peek_next(open_year.id, DocumentType.INVOICE) == 2
        assert sequence_service.next_number(open_year.id, DocumentType.INVOICE) == 2


class TestClaimNumber:

    def test_claim_on_fresh_counter(self, sequence_service, open_year):
        assert sequence_service.claim_number(open_year.id, DocumentType.ESTIMATION, 40) == 40
        assert sequence_service.next_number(open_year.id, DocumentType.ESTIMATION) == 41

    def test_claim_jumps_counter(self, sequence_service, open_year):
        sequence_service.next_number(open_year.id, DocumentType.ESTIMATION)
        sequence_service.claim_number(open_year.id, DocumentType.ESTIMATION, 10)

        assert sequence_service.next_number(open_year.id, DocumentType.ESTIMATION) == 11

    @pytest.mark.parametrize("requested", [1, 3])
    def test_claim_at_or_below_counter_rejected(self, sequence_service, open_year, requested):
        for _ in range(3):
            sequence_service.next_number(open_year.id, DocumentType.ESTIMATION)

        with pytest.raises(InvalidDocumentNumberError) as exc_info:
            sequence_service.claim_number(open_year.id, DocumentType.ESTIMATION, requested)
        assert exc_info.value.last_number == 3
        assert exc_info.value.requested == requested

    @pytest.mark.parametrize("requested", [0, -5, True])
    def test_claim_must_be_positive_int(self, sequence_service, open_year, requested):
        with pytest.raises(InvalidDocumentNumberError):
            sequence_service.claim_number(open_year.id, DocumentType.ESTIMATION, requested)

    def test_claim_is_logged(self, sequence_service, open_year, captured_logs):
        sequence_service.claim_number(open_year.id, DocumentType.PAYMENT, 7)

        claimed = [r for r in captured_logs() if r["message"] == "sequence_number_claimed"]
        assert claimed[0]["value"] == 7
        assert claimed[0]["document_type"] == "payment"
