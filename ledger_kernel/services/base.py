"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor for every write-side service.  Services receive the
    caller's Session and an injected Clock, persist with
    ``session.flush()`` and never commit or roll back.  The caller
    (LedgerCore, or a test) owns the transaction, so a document, its items,
    its stock entries and its sequence increment land or vanish together.

Architecture position:
    Kernel > Services -- imperative shell.  Read-only queries belong in
    ``ledger_kernel/selectors/``.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base
from ledger_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()
