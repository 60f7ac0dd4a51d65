"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables.  The kernel never imports from this package;
    the facade (ledger_services) translates settings into constructor
    arguments.

Environment overrides (read here and nowhere else):
    LEDGER_CONFIG        path to a YAML file replacing sets/default.yaml
    LEDGER_DATABASE_URL  replaces database.url

Failure modes:
    - FileNotFoundError -- the configuration file does not exist.
    - yaml.YAMLError -- malformed YAML.
    - KeyError / ValueError -- missing or invalid settings.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

from ledger_config.loader import load_settings
from ledger_config.schema import (
    DatabaseSettings,
    LedgerSettings,
    NumberingSettings,
    PaymentSettings,
    RetrySettings,
)

__all__ = [
    "DatabaseSettings",
    "LedgerSettings",
    "NumberingSettings",
    "PaymentSettings",
    "RetrySettings",
    "get_active_config",
]

_logger = logging.getLogger("ledger_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_PATH_ENV = "LEDGER_CONFIG"
DATABASE_URL_ENV = "LEDGER_DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> LedgerSettings:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: explicit ``path``, then
    ``$LEDGER_CONFIG``, then ``ledger_config/sets/default.yaml``.
    ``$LEDGER_DATABASE_URL`` then overrides ``database.url``.

    Returns:
        A validated, frozen LedgerSettings.
    """
    config_path = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    settings = load_settings(config_path)

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        settings = dataclasses.replace(
            settings,
            database=dataclasses.replace(settings.database, url=database_url),
        )

    settings.validate()

    _logger.info(
        "ledger_config_loaded",
        extra={
            "config_id": settings.config_id,
            "config_version": settings.version,
            "config_path": str(config_path),
            "database_url_overridden": bool(database_url),
        },
    )
    return settings
