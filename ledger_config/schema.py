"""
Ledger settings schema.

Frozen dataclasses that the YAML configuration set is parsed into by
``ledger_config.loader``.  Validation lives in ``validate()`` methods so a
settings object that exists is a settings object that is usable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from ledger_kernel.domain.numbering import NumberFormatter, validate_template
from ledger_kernel.models.flow_group import PartnerKind
from ledger_kernel.models.sequence import DocumentType

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    transaction_timeout_ms: int = 5000
    sqlite_busy_timeout_s: float = 30.0

    def validate(self) -> None:
        if not self.url:
            raise ValueError("database.url is required")
        if self.transaction_timeout_ms < 0:
            raise ValueError("database.transaction_timeout_ms must be >= 0")
        if self.pool_size < 1:
            raise ValueError("database.pool_size must be >= 1")


@dataclass(frozen=True)
class NumberingSettings:
    formats: Mapping[DocumentType, str] = field(default_factory=lambda: MappingProxyType({}))

    def validate(self) -> None:
        for doc_type, template in self.formats.items():
            validate_template(doc_type, template)

    def formatter(self) -> NumberFormatter:
        return NumberFormatter(self.formats)


@dataclass(frozen=True)
class PaymentSettings:
    outstanding_check_partners: frozenset[PartnerKind] = frozenset({PartnerKind.DEALER})


@dataclass(frozen=True)
class RetrySettings:
    max_retries: int = 3
    backoff_ms: int = 50

    def validate(self) -> None:
        if self.max_retries < 0:
            raise ValueError("retry.max_retries must be >= 0")
        if self.backoff_ms < 0:
            raise ValueError("retry.backoff_ms must be >= 0")


@dataclass(frozen=True)
class LedgerSettings:
    """Root of the runtime configuration."""

    config_id: str
    version: int
    database: DatabaseSettings
    numbering: NumberingSettings = field(default_factory=NumberingSettings)
    payments: PaymentSettings = field(default_factory=PaymentSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    log_level: str = "INFO"

    def validate(self) -> None:
        self.database.validate()
        self.numbering.validate()
        self.retry.validate()
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log_level {self.log_level!r}")
