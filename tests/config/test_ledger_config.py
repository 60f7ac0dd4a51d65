"""Configuration loading: the shipped default set, file and env overrides, validation."""

from __future__ import annotations

import textwrap

import pytest
import yaml

from ledger_config import get_active_config
from ledger_config.loader import parse_settings
from ledger_kernel.models.flow_group import PartnerKind
from ledger_kernel.models.sequence import DocumentType

MINIMAL = {
    "config_id": "test-set",
    "database": {"url": "sqlite:///ledger.db"},
}


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("LEDGER_CONFIG", raising=False)
    monkeypatch.delenv("LEDGER_DATABASE_URL", raising=False)


def _write(tmp_path, text: str):
    path = tmp_path / "ledger.yaml"
    path.write_text(textwrap.dedent(text))
    return path


class TestDefaultSet:

    def test_defaults(self):
        settings = get_active_config()

        assert settings.config_id == "textbook-ledger-default"
        assert settings.database.url.startswith("postgresql://")
        assert settings.database.transaction_timeout_ms == 5000
        assert settings.payments.outstanding_check_partners == frozenset({PartnerKind.DEALER})
        assert settings.retry.max_retries == 3
        assert settings.log_level == "INFO"

    def test_default_formats(self):
        numbers = get_active_config().numbering.formatter()
        assert numbers.format(DocumentType.INVOICE, 3) == "INV-3"
        assert numbers.format(DocumentType.CREDIT_NOTE, 3) == "3"
        assert numbers.format(DocumentType.PURCHASE_RETURN, 3) == "PRET-3"

    def test_database_url_env_override(self, monkeypatch):
        monkeypatch.setenv("LEDGER_DATABASE_URL", "sqlite:////tmp/override.db")
        assert get_active_config().database.url == "sqlite:////tmp/override.db"


class TestConfigFile:

    def test_env_points_at_file(self, tmp_path, monkeypatch):
        path = _write(
            tmp_path,
            """
            config_id: school-2024
            log_level: debug
            database:
              url: sqlite:///school.db
              transaction_timeout_ms: 250
            numbering:
              formats:
                invoice: "TI/{n}"
            payments:
              outstanding_check_partners: [dealer, company]
            """,
        )
        monkeypatch.setenv("LEDGER_CONFIG", str(path))

        settings = get_active_config()

        assert settings.config_id == "school-2024"
        assert settings.log_level == "DEBUG"
        assert settings.database.transaction_timeout_ms == 250
        assert settings.payments.outstanding_check_partners == frozenset(
            {PartnerKind.DEALER, PartnerKind.COMPANY}
        )
        numbers = settings.numbering.formatter()
        assert numbers.format(DocumentType.INVOICE, 9) == "TI/9"
        assert numbers.format(DocumentType.ESTIMATION, 9) == "EST-9"

    def test_explicit_path_beats_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LEDGER_CONFIG", str(tmp_path / "missing.yaml"))
        path = _write(tmp_path, yaml.safe_dump(MINIMAL))

        assert get_active_config(path).config_id == "test-set"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nope.yaml")

    def test_missing_database_section(self, tmp_path):
        with pytest.raises(KeyError):
            get_active_config(_write(tmp_path, "config_id: x\n"))


class TestValidation:

    @pytest.mark.parametrize(
        "overrides",
        [
            {"numbering": {"formats": {"invoice": "INV"}}},
            {"numbering": {"formats": {"quotation": "Q-{n}"}}},
            {"payments": {"outstanding_check_partners": ["publisher"]}},
            {"retry": {"max_retries": -1}},
            {"log_level": "verbose"},
        ],
    )
    def test_invalid_settings_rejected(self, overrides):
        with pytest.raises(ValueError):
            parse_settings({**MINIMAL, **overrides}).validate()

    def test_minimal_set_is_valid(self):
        settings = parse_settings(MINIMAL)
        settings.validate()
        assert settings.version == 1
        assert settings.retry.max_retries == 3

    def test_unknown_section_rejected(self):
        with pytest.raises(ValueError) as exc_info:
            parse_settings({**MINIMAL, "money": {"decimal_places": 3}})
        assert "money" in str(exc_info.value)
