"""
Configuration loader (``ledger_config.loader``).

Responsibility
--------------
Reads a YAML configuration file and parses it into the frozen dataclasses
of ``ledger_config.schema``.  Runtime callers go through
``ledger_config.get_active_config()``; this module is the parsing step
behind it.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown document type or partner kind  -> ``ValueError``.
* Unknown top-level section  -> ``ValueError``.
"""

from __future__ import annotations

from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from ledger_config.schema import (
    DatabaseSettings,
    LedgerSettings,
    NumberingSettings,
    PaymentSettings,
    RetrySettings,
)
from ledger_kernel.models.flow_group import PartnerKind
from ledger_kernel.models.sequence import DocumentType

_SECTIONS = frozenset({
    "config_id", "version", "log_level", "database", "numbering", "payments", "retry",
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    return DatabaseSettings(
        url=data["url"],
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=int(data.get("pool_timeout", 30)),
        pool_recycle=int(data.get("pool_recycle", 1800)),
        transaction_timeout_ms=int(data.get("transaction_timeout_ms", 5000)),
        sqlite_busy_timeout_s=float(data.get("sqlite_busy_timeout_s", 30.0)),
    )


def parse_numbering(data: dict[str, Any]) -> NumberingSettings:
    formats = {DocumentType(k): str(v) for k, v in (data.get("formats") or {}).items()}
    return NumberingSettings(formats=MappingProxyType(formats))


def parse_payments(data: dict[str, Any]) -> PaymentSettings:
    partners = data.get("outstanding_check_partners", ["dealer"]) or []
    return PaymentSettings(
        outstanding_check_partners=frozenset(PartnerKind(p) for p in partners),
    )


def parse_retry(data: dict[str, Any]) -> RetrySettings:
    return RetrySettings(
        max_retries=int(data.get("max_retries", 3)),
        backoff_ms=int(data.get("backoff_ms", 50)),
    )


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    """Parse the root mapping of a configuration file."""
    unknown = sorted(set(data) - _SECTIONS)
    if unknown:
        raise ValueError(f"Unknown configuration sections: {', '.join(unknown)}")
    return LedgerSettings(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        database=parse_database(data["database"]),
        numbering=parse_numbering(data.get("numbering") or {}),
        payments=parse_payments(data.get("payments") or {}),
        retry=parse_retry(data.get("retry") or {}),
        log_level=str(data.get("log_level", "INFO")).upper(),
    )


def load_settings(path: Path) -> LedgerSettings:
    return parse_settings(load_yaml_file(path))
