"""
Numbering -- turns sequence integers into printed document numbers.

The sequence generator hands out bare integers; formatting is the caller's
job.  Templates use ``{n}`` for the number, e.g. ``INV-{n}``.  Overrides
come from ledger_config (``numbering.formats``).
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from ledger_kernel.models.sequence import DocumentType

DEFAULT_NUMBER_FORMATS: Mapping[DocumentType, str] = MappingProxyType(
    {
        DocumentType.INVOICE: "INV-{n}",
        DocumentType.PROVISIONAL_INVOICE: "PINV-{n}",
        DocumentType.CREDIT_NOTE: "{n}",
        DocumentType.ESTIMATION: "EST-{n}",
        DocumentType.PURCHASE_INVOICE: "PUR-{n}",
        DocumentType.PAYMENT: "RCPT-{n}",
        DocumentType.SALES_RETURN: "RET-{n}",
        DocumentType.PURCHASE_RETURN: "PRET-{n}",
    }
)


class NumberFormatter:
    """Formats sequence numbers per document type."""

    def __init__(self, formats: Mapping[DocumentType, str] | None = None):
        merged = dict(DEFAULT_NUMBER_FORMATS)
        if formats:
            merged.update({DocumentType(k): v for k, v in formats.items()})
        for doc_type, template in merged.items():
            validate_template(doc_type, template)
        self._formats = MappingProxyType(merged)

    def format(self, doc_type: DocumentType, number: int) -> str:
        return self._formats[DocumentType(doc_type)].format(n=number)

    def template(self, doc_type: DocumentType) -> str:
        return self._formats[DocumentType(doc_type)]


def validate_template(doc_type: DocumentType, template: str) -> None:
    if "{n}" not in template:
        raise ValueError(f"Number format for {doc_type.value} must contain '{{n}}': {template!r}")
    try:
        template.format(n=1)
    except (KeyError, IndexError, ValueError) as exc:
        raise ValueError(f"Invalid number format for {doc_type.value}: {template!r}") from exc
