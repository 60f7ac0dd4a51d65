"""
ORM-level immutability enforcement for the ledger tables.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  We register listeners that check the rules below and raise
ImmutabilityViolationError, which aborts the flush and (through the facade)
the whole transaction:

    session.flush()
         |
         v
    [before_update] --> _check_*_update() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | Rule
------------------|------------------------------------------------------------
StockLedgerEntry  | No UPDATE, no DELETE.  Corrections are new VOID_REVERSAL rows.
ReturnItem        | No UPDATE, no DELETE.
ReturnDocument    | No DELETE.
DocumentItem      | No UPDATE, no DELETE.  Lines are priced once.
Document          | No DELETE.  Only the void fields may change, once.
Payment           | No DELETE.  Only the reversal fields may change, once.

updated_at / updated_by_id are audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup; idempotent

Tests that need to bypass the guard (e.g. cleanup) call
unregister_immutability_listeners() and re-register afterwards.
"""

from sqlalchemy import event, inspect

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

_DOCUMENT_VOID_FIELDS = frozenset({"status", "voided_by_id", "voided_at", "void_reason"})

_PAYMENT_REVERSAL_FIELDS = frozenset({"status", "reversed_by_id", "reversed_at"})


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.attrs
        if attr.key not in _AUDIT_FIELDS and attr.history.has_changes()
    ]


def _block(entity_type: str, target, operation: str, reason: str, **extra) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            **extra,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _old_value(target, field: str):
    history = inspect(target).attrs[field].history
    if history.deleted:
        return history.deleted[0]
    return getattr(target, field)


def _check_stock_ledger_update(mapper, connection, target):
    _block("StockLedgerEntry", target, "UPDATE", "Stock ledger entries are append-only")


def _check_stock_ledger_delete(mapper, connection, target):
    _block("StockLedgerEntry", target, "DELETE", "Stock ledger entries are append-only")


def _check_return_item_update(mapper, connection, target):
    fields = _changed_fields(target)
    if fields:
        _block(
            "ReturnItem",
            target,
            "UPDATE",
            f"Cannot modify field '{fields[0]}' on a return item",
            field=fields[0],
        )


def _check_return_item_delete(mapper, connection, target):
    _block("ReturnItem", target, "DELETE", "Return items cannot be deleted")


def _check_return_document_delete(mapper, connection, target):
    _block("ReturnDocument", target, "DELETE", "Returns cannot be deleted")


def _check_document_item_update(mapper, connection, target):
    fields = _changed_fields(target)
    if fields:
        _block(
            "DocumentItem",
            target,
            "UPDATE",
            f"Cannot modify field '{fields[0]}' on a priced line",
            field=fields[0],
        )


def _check_document_item_delete(mapper, connection, target):
    _block("DocumentItem", target, "DELETE", "Document lines cannot be deleted")


def _check_document_update(mapper, connection, target):
    """
    Allow exactly one transition: ISSUED -> VOIDED with its void stamp.

    Anything else (re-pricing, renumbering, un-voiding, editing a voided
    document) is blocked.
    """
    from ledger_kernel.models.document import DocumentStatus

    fields = _changed_fields(target)
    if not fields:
        return

    if _old_value(target, "status") == DocumentStatus.VOIDED:
        _block(
            "Document",
            target,
            "UPDATE",
            "Voided documents cannot be modified",
            field=fields[0],
        )

    frozen = [f for f in fields if f not in _DOCUMENT_VOID_FIELDS]
    if frozen:
        _block(
            "Document",
            target,
            "UPDATE",
            f"Cannot modify field '{frozen[0]}' on an issued document",
            field=frozen[0],
        )


def _check_document_delete(mapper, connection, target):
    _block("Document", target, "DELETE", "Documents are voided, never deleted")


def _check_payment_update(mapper, connection, target):
    from ledger_kernel.models.payment import PaymentStatus

    fields = _changed_fields(target)
    if not fields:
        return

    if _old_value(target, "status") == PaymentStatus.REVERSED:
        _block(
            "Payment",
            target,
            "UPDATE",
            "Reversed payments cannot be modified",
            field=fields[0],
        )

    frozen = [f for f in fields if f not in _PAYMENT_REVERSAL_FIELDS]
    if frozen:
        _block(
            "Payment",
            target,
            "UPDATE",
            f"Cannot modify field '{frozen[0]}' on a posted payment",
            field=frozen[0],
        )


def _check_payment_delete(mapper, connection, target):
    _block("Payment", target, "DELETE", "Payments are reversed, never deleted")


def _listeners():
    from ledger_kernel.models.document import Document, DocumentItem
    from ledger_kernel.models.payment import Payment
    from ledger_kernel.models.returns import ReturnDocument, ReturnItem
    from ledger_kernel.models.stock import StockLedgerEntry

    return [
        (StockLedgerEntry, "before_update", _check_stock_ledger_update),
        (StockLedgerEntry, "before_delete", _check_stock_ledger_delete),
        (ReturnItem, "before_update", _check_return_item_update),
        (ReturnItem, "before_delete", _check_return_item_delete),
        (ReturnDocument, "before_delete", _check_return_document_delete),
        (DocumentItem, "before_update", _check_document_item_update),
        (DocumentItem, "before_delete", _check_document_item_delete),
        (Document, "before_update", _check_document_update),
        (Document, "before_delete", _check_document_delete),
        (Payment, "before_update", _check_payment_update),
        (Payment, "before_delete", _check_payment_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability listeners.

    Safe to call more than once; a listener already attached is skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the immutability listeners.

    WARNING: tests only.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
