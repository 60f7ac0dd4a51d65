"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The HTTP layer that sits above this kernel must render actionable messages
("only 7 copies left to return", "38 in stock") without parsing strings.
Every error therefore:

  1. Has its own class (catch by type, not by message)
  2. Carries a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as instance attributes
  4. Declares whether it is RETRYABLE (lock timeouts, sequence races)

Example:

    try:
        core.create_document(DocumentKind.PROVISIONAL_INVOICE, school, items, meta)
    except InsufficientStockError as e:
        return {"error": e.code, "textbook": e.textbook_id,
                "available": e.available, "requested": e.requested}
    except LedgerKernelError as e:
        if e.retryable:
            ...  # re-submit with the same idempotency key

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- PeriodError
    |   +-- NoOpenPeriodError
    |   +-- AcademicYearNotFoundError
    |   +-- AcademicYearOverlapError
    |   +-- AcademicYearClosedError
    |   +-- AcademicYearAlreadyClosedError
    |
    +-- FlowGroupError
    |   +-- FlowGroupNotFoundError
    |   +-- FlowGroupSettledError
    |   +-- InvalidPartnerReferenceError
    |
    +-- DocumentError
    |   +-- DocumentNotFoundError
    |   +-- UnsupportedDocumentKindError
    |   +-- EmptyDocumentError
    |   +-- InvalidLineItemError
    |   +-- InvalidDiscountError
    |   +-- NonPositiveTotalError
    |   +-- AlreadyVoidedError
    |   +-- DocumentHasReturnsError
    |   +-- InvalidDocumentNumberError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |
    +-- ReturnError
    |   +-- ReturnExceedsIssuedError
    |   +-- ReturnItemNotOnDocumentError
    |   +-- InvalidReturnParentError
    |   +-- InvalidReturnQuantityError
    |
    +-- PaymentError
    |   +-- PaymentNotFoundError
    |   +-- InvalidPaymentAmountError
    |   +-- MissingBankReferenceError
    |   +-- PaymentExceedsOutstandingError
    |   +-- NoOutstandingBalanceError
    |   +-- AlreadyReversedError
    |
    +-- ConcurrencyError                 (retryable)
    |   +-- ConcurrentSequenceConflictError
    |   +-- TransactionTimeoutError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Codes are class attributes so that InsufficientStockError.code is usable
   without an instance (API docs, client-side mapping tables).

2. Quantities stay ints and amounts stay Decimals on the exception.  The
   structured log formatter serializes them; callers never round-trip
   through strings.

3. All validation errors are raised BEFORE the first write of a transaction
   and the facade rolls the whole transaction back, so an exception always
   means "nothing happened".

===============================================================================
"""

from decimal import Decimal


class LedgerKernelError(Exception):
    """Base exception for all ledger kernel errors."""

    code: str = "LEDGER_KERNEL_ERROR"
    retryable: bool = False


# Period (academic year) exceptions


class PeriodError(LedgerKernelError):
    code: str = "PERIOD_ERROR"


class NoOpenPeriodError(PeriodError):
    """No academic year is currently OPEN."""

    code: str = "NO_OPEN_PERIOD"

    def __init__(self):
        super().__init__("No open academic year")


class AcademicYearNotFoundError(PeriodError):
    code: str = "ACADEMIC_YEAR_NOT_FOUND"

    def __init__(self, academic_year_id: str):
        self.academic_year_id = academic_year_id
        super().__init__(f"Academic year not found: {academic_year_id}")


class AcademicYearOverlapError(PeriodError):
    """New academic year date range overlaps an existing year."""

    code: str = "ACADEMIC_YEAR_OVERLAP"

    def __init__(self, existing_name: str, overlap_start: str, overlap_end: str):
        self.existing_name = existing_name
        self.overlap_start = overlap_start
        self.overlap_end = overlap_end
        super().__init__(
            f"Academic year overlaps with {existing_name} "
            f"({overlap_start} to {overlap_end})"
        )


class AcademicYearClosedError(PeriodError):
    """Operation targets a record whose academic year is CLOSED."""

    code: str = "ACADEMIC_YEAR_CLOSED"

    def __init__(self, academic_year_id: str):
        self.academic_year_id = academic_year_id
        super().__init__(f"Academic year {academic_year_id} is closed")


class AcademicYearAlreadyClosedError(PeriodError):
    code: str = "ACADEMIC_YEAR_ALREADY_CLOSED"

    def __init__(self, academic_year_id: str):
        self.academic_year_id = academic_year_id
        super().__init__(f"Academic year {academic_year_id} is already closed")


# Flow group exceptions


class FlowGroupError(LedgerKernelError):
    code: str = "FLOW_GROUP_ERROR"


class FlowGroupNotFoundError(FlowGroupError):
    code: str = "FLOW_GROUP_NOT_FOUND"

    def __init__(self, flow_group_id: str):
        self.flow_group_id = flow_group_id
        super().__init__(f"Flow group not found: {flow_group_id}")


class FlowGroupSettledError(FlowGroupError):
    """Flow group is SETTLED and accepts no further activity."""

    code: str = "FLOW_GROUP_SETTLED"

    def __init__(self, flow_group_id: str):
        self.flow_group_id = flow_group_id
        super().__init__(f"Flow group {flow_group_id} is settled")


class InvalidPartnerReferenceError(FlowGroupError):
    """A partner reference must name exactly one of school/company/dealer."""

    code: str = "INVALID_PARTNER_REFERENCE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid partner reference: {reason}")


# Document exceptions


class DocumentError(LedgerKernelError):
    code: str = "DOCUMENT_ERROR"


class DocumentNotFoundError(DocumentError):
    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


class UnsupportedDocumentKindError(DocumentError):
    code: str = "UNSUPPORTED_DOCUMENT_KIND"

    def __init__(self, kind: str, reason: str):
        self.kind = kind
        self.reason = reason
        super().__init__(f"Document kind {kind} not allowed: {reason}")


class EmptyDocumentError(DocumentError):
    code: str = "EMPTY_DOCUMENT"

    def __init__(self):
        super().__init__("At least one item is required")


class InvalidLineItemError(DocumentError):
    """A line item failed validation (quantity, price, description, textbook)."""

    code: str = "INVALID_LINE_ITEM"

    def __init__(self, line_no: int, field: str, reason: str):
        self.line_no = line_no
        self.field = field
        self.reason = reason
        super().__init__(f"Item {line_no}: {field} {reason}")


class InvalidDiscountError(DocumentError):
    """Discount percent must lie in [0, 100)."""

    code: str = "INVALID_DISCOUNT"

    def __init__(self, line_no: int, discount_percent: Decimal):
        self.line_no = line_no
        self.discount_percent = discount_percent
        super().__init__(
            f"Item {line_no}: discount {discount_percent}% must be >= 0 and < 100"
        )


class NonPositiveTotalError(DocumentError):
    code: str = "NON_POSITIVE_TOTAL"

    def __init__(self, net_amount: Decimal):
        self.net_amount = net_amount
        super().__init__(f"Document total must be greater than zero (got {net_amount})")


class AlreadyVoidedError(DocumentError):
    code: str = "ALREADY_VOIDED"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document {document_id} is already voided")


class DocumentHasReturnsError(DocumentError):
    """Documents with recorded returns cannot be voided."""

    code: str = "DOCUMENT_HAS_RETURNS"

    def __init__(self, document_id: str, return_count: int):
        self.document_id = document_id
        self.return_count = return_count
        super().__init__(
            f"Document {document_id} has {return_count} return(s) and cannot be voided"
        )


class InvalidDocumentNumberError(DocumentError):
    """Operator-supplied number would reuse or precede an issued number."""

    code: str = "INVALID_DOCUMENT_NUMBER"

    def __init__(self, document_type: str, requested: int, last_number: int):
        self.document_type = document_type
        self.requested = requested
        self.last_number = last_number
        super().__init__(
            f"{document_type} number {requested} must be greater than "
            f"last issued number {last_number}"
        )


# Stock exceptions


class StockError(LedgerKernelError):
    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, textbook_id: str, available: int, requested: int):
        self.textbook_id = textbook_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for textbook {textbook_id}: "
            f"available {available}, requested {requested}"
        )


# Return exceptions


class ReturnError(LedgerKernelError):
    code: str = "RETURN_ERROR"


class ReturnExceedsIssuedError(ReturnError):
    code: str = "RETURN_EXCEEDS_ISSUED"

    def __init__(self, textbook_id: str, max_returnable: int, requested: int):
        self.textbook_id = textbook_id
        self.max_returnable = max_returnable
        self.requested = requested
        super().__init__(
            f"Return of {requested} exceeds returnable quantity for textbook "
            f"{textbook_id}. Max allowed: {max_returnable}"
        )


class ReturnItemNotOnDocumentError(ReturnError):
    code: str = "RETURN_ITEM_NOT_ON_DOCUMENT"

    def __init__(self, document_id: str, textbook_id: str):
        self.document_id = document_id
        self.textbook_id = textbook_id
        super().__init__(
            f"Textbook {textbook_id} does not appear on document {document_id}"
        )


class InvalidReturnParentError(ReturnError):
    code: str = "INVALID_RETURN_PARENT"

    def __init__(self, document_id: str, reason: str):
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"Cannot return against document {document_id}: {reason}")


class InvalidReturnQuantityError(ReturnError):
    code: str = "INVALID_RETURN_QUANTITY"

    def __init__(self, textbook_id: str, quantity: int):
        self.textbook_id = textbook_id
        self.quantity = quantity
        super().__init__(
            f"Return quantity for textbook {textbook_id} must be >= 1 (got {quantity})"
        )


# Payment exceptions


class PaymentError(LedgerKernelError):
    code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


class InvalidPaymentAmountError(PaymentError):
    code: str = "INVALID_PAYMENT_AMOUNT"

    def __init__(self, amount: Decimal):
        self.amount = amount
        super().__init__(f"Payment amount must be greater than zero (got {amount})")


class MissingBankReferenceError(PaymentError):
    code: str = "MISSING_BANK_REFERENCE"

    def __init__(self):
        super().__init__("Bank payments require a reference number")


class PaymentExceedsOutstandingError(PaymentError):
    code: str = "PAYMENT_EXCEEDS_OUTSTANDING"

    def __init__(self, amount: Decimal, outstanding: Decimal):
        self.amount = amount
        self.outstanding = outstanding
        super().__init__(
            f"Payment {amount} exceeds outstanding balance {outstanding}"
        )


class NoOutstandingBalanceError(PaymentError):
    code: str = "NO_OUTSTANDING_BALANCE"

    def __init__(self, flow_group_id: str):
        self.flow_group_id = flow_group_id
        super().__init__(f"No outstanding balance on flow group {flow_group_id}")


class AlreadyReversedError(PaymentError):
    code: str = "ALREADY_REVERSED"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} is already reversed")


# Concurrency exceptions


class ConcurrencyError(LedgerKernelError):
    """Transient conflict. Safe to retry with the same idempotency key."""

    code: str = "CONCURRENCY_ERROR"
    retryable: bool = True


class ConcurrentSequenceConflictError(ConcurrencyError):
    code: str = "CONCURRENT_SEQUENCE_CONFLICT"

    def __init__(self, document_type: str, academic_year_id: str):
        self.document_type = document_type
        self.academic_year_id = academic_year_id
        super().__init__(
            f"Concurrent allocation conflict on {document_type} sequence "
            f"for academic year {academic_year_id}"
        )


class TransactionTimeoutError(ConcurrencyError):
    code: str = "TRANSACTION_TIMEOUT"

    def __init__(self, operation: str, timeout_ms: int):
        self.operation = operation
        self.timeout_ms = timeout_ms
        super().__init__(
            f"{operation} did not complete within {timeout_ms}ms; rolled back"
        )


# Immutability exceptions


class ImmutabilityError(LedgerKernelError):
    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
