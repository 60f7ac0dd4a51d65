"""
Concurrency tests for the ledger.

Threads are released together through a Barrier and each runs its own
LedgerCore request in its own transaction.  On SQLite the write lock
serializes them; on PostgreSQL (DATABASE_URL set) they contend on row
locks.

Verifies:
- Document numbers are unique and gap-free under concurrent allocation
- Stock never goes negative when issues race for the same textbook
- Returns never exceed what was issued
- A dealer's outstanding balance is never overpaid
- Racing requests for a partner share a single OPEN flow group
- Racing requests with the same idempotency key write exactly one row

Run with: pytest tests/concurrency/test_concurrent_ledger.py -v
Skip with: pytest -m "not slow_locks"
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier, Lock
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import DocumentMeta, PartnerRef, ReturnLineInput
from ledger_kernel.exceptions import (
    InsufficientStockError,
    LedgerKernelError,
    ReturnExceedsIssuedError,
)
from ledger_kernel.models.document import DocumentKind
from ledger_kernel.models.payment import PaymentMode
from tests.factories import line

pytestmark = pytest.mark.slow_locks


def run_concurrently(num_threads: int, fn):
    """Run ``fn(thread_id)`` in ``num_threads`` threads released together.

    Returns (results, errors) where errors holds the raised exceptions.
    """
    barrier = Barrier(num_threads, timeout=30)
    lock = Lock()
    results = []
    errors = []

    def worker(thread_id: int):
        barrier.wait()
        try:
            value = fn(thread_id)
        except Exception as exc:
            with lock:
                errors.append(exc)
        else:
            with lock:
                results.append(value)

    with ThreadPoolExecutor(max_workers=num_threads) as pool:
        for future in [pool.submit(worker, i) for i in range(num_threads)]:
            future.result(timeout=120)

    return results, errors


@pytest.fixture
def meta(test_actor_id):
    return DocumentMeta(actor_id=test_actor_id)


@pytest.fixture
def stocked(ledger, dealer, meta):
    """Purchase ``quantity`` copies of a fresh textbook and return its id."""

    def _stock(quantity: int, unit_price: str = "80.00"):
        textbook_id = uuid4()
        ledger.create_document(
            DocumentKind.PURCHASE_INVOICE,
            dealer,
            [line("Stock", quantity, unit_price, textbook_id=textbook_id)],
            meta,
        )
        return textbook_id

    return _stock


class TestConcurrentNumbering:

    def test_numbers_unique_and_sequential(self, ledger, meta):
        num_threads = 10

        results, errors = run_concurrently(
            num_threads,
            lambda i: ledger.create_document(
                DocumentKind.INVOICE,
                PartnerRef.school(uuid4()),
                [line("Reader", 1, "10")],
                meta,
            ),
        )

        assert errors == []
        assert sorted(r.document_no for r in results) == sorted(
            f"INV-{n}" for n in range(1, num_threads + 1)
        )


class TestConcurrentStock:

    def test_no_overselling(self, ledger, stocked, meta):
        textbook_id = stocked(10)

        results, errors = run_concurrently(
            8,
            lambda i: ledger.create_document(
                DocumentKind.PROVISIONAL_INVOICE,
                PartnerRef.school(uuid4()),
                [line("Science 6", 3, "120", textbook_id=textbook_id)],
                meta,
            ),
        )

        assert len(results) == 3
        assert len(errors) == 5
        assert all(isinstance(e, InsufficientStockError) for e in errors)
        assert ledger.available_stock(textbook_id) == 1
        assert ledger.verify_stock_projection() == []

    def test_returns_never_exceed_issued(self, ledger, stocked, school, meta, test_actor_id):
        textbook_id = stocked(20)
        issued = ledger.create_document(
            DocumentKind.PROVISIONAL_INVOICE,
            school,
            [line("Science 6", 9, "120", textbook_id=textbook_id)],
            meta,
        )

        results, errors = run_concurrently(
            6,
            lambda i: ledger.create_return(
                issued.document_id, [ReturnLineInput(textbook_id, 3)], test_actor_id
            ),
        )

        assert len(results) == 3
        assert all(isinstance(e, ReturnExceedsIssuedError) for e in errors)
        assert sorted(r.return_no for r in results) == ["RET-1", "RET-2", "RET-3"]
        assert ledger.available_stock(textbook_id) == 20
        assert ledger.statement(school).closing_balance == Decimal("0.00")


class TestConcurrentPayments:

    def test_dealer_never_overpaid(self, ledger, stocked, dealer, test_actor_id):
        stocked(1, "100.00")

        results, errors = run_concurrently(
            4,
            lambda i: ledger.record_payment(
                dealer, Decimal("50.00"), PaymentMode.CASH, None, test_actor_id
            ),
        )

        assert len(results) == 2
        assert len(errors) == 2
        assert all(isinstance(e, LedgerKernelError) and not e.retryable for e in errors)
        assert sum(r.flow_group_settled for r in results) == 1
        assert ledger.statement(dealer).closing_balance == Decimal("0.00")

    def test_single_flow_group_per_partner(self, ledger, school, test_actor_id):
        results, errors = run_concurrently(
            8,
            lambda i: ledger.record_payment(
                school, Decimal("10.00"), PaymentMode.CASH, None, test_actor_id
            ),
        )

        assert errors == []
        flow_groups = {ledger.get_payment(r.payment_id).flow_group_id for r in results}
        assert len(flow_groups) == 1
        assert ledger.statement(school).closing_balance == Decimal("-80.00")


class TestConcurrentIdempotency:

    def test_same_key_writes_once(self, ledger, school, test_actor_id):
        keyed = DocumentMeta(actor_id=test_actor_id, idempotency_key="order-7")

        results, errors = run_concurrently(
            6,
            lambda i: ledger.create_document(
                DocumentKind.INVOICE, school, [line("Reader", 2, "40")], keyed
            ),
        )

        assert errors == []
        assert len({r.document_id for r in results}) == 1
        assert sum(not r.replayed for r in results) == 1
        assert ledger.statement(school).closing_balance == Decimal("80.00")
