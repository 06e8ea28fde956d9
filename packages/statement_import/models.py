"""Data models for ``statement_import``.

Internal records are frozen dataclasses; the wire-facing request is a pydantic
model so JSON callers get validation and camelCase aliases for free.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Any, Literal, TypedDict

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import DiagnosticCode

# ---------------------------------------------------------------------------
# Raw input
# ---------------------------------------------------------------------------


class SourceFormat(StrEnum):
    CSV = "csv"
    DELIMITED = "delimited"
    TEXT = "text"
    PDF = "pdf"


@dataclass(frozen=True, slots=True)
class RawStatement:
    """An uploaded statement, alive only for the duration of one request.

    ``content`` is text for csv/delimited/text sources and raw bytes for pdf.
    """

    source_format: SourceFormat
    content: str | bytes
    file_name: str | None = None

    def text(self) -> str:
        if isinstance(self.content, bytes):
            return self.content.decode("utf-8-sig", errors="replace")
        return self.content

    def document_bytes(self) -> bytes:
        if isinstance(self.content, bytes):
            return self.content
        return self.content.encode("utf-8")


# ---------------------------------------------------------------------------
# Column mappings
# ---------------------------------------------------------------------------


class ColumnRole(StrEnum):
    DATE = "date"
    DESCRIPTION = "description"
    AMOUNT = "amount"
    CREDIT = "credit"
    DEBIT = "debit"
    BANK_REFERENCE = "bank_reference"
    COUNTERPARTY = "counterparty"
    IGNORE = "ignore"


@dataclass(frozen=True, slots=True)
class ColumnMapping:
    column_index: int
    role: ColumnRole


class ColumnMappingPayload(BaseModel):
    """Wire form of a column mapping: ``{"columnIndex": 2, "role": "amount"}``."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    column_index: int = Field(alias="columnIndex", ge=0)
    role: ColumnRole

    def to_mapping(self) -> ColumnMapping:
        return ColumnMapping(column_index=self.column_index, role=self.role)


# ---------------------------------------------------------------------------
# Candidates and diagnostics
# ---------------------------------------------------------------------------


class CandidateMetadata(TypedDict, total=False):
    """Closed set of optional per-candidate annotations."""

    source_format: str
    row_number: int
    date_defaulted: bool
    entry_type: Literal["INCOME", "EXPENSE"]


@dataclass(frozen=True, slots=True)
class CanonicalTransactionCandidate:
    """One normalized statement row, ready for dedup and review.

    ``amount`` is signed: positive is money in, negative is money out.
    ``description`` is already upper-cased and whitespace-collapsed.
    """

    date: date
    description: str
    amount: Decimal
    fingerprint: str
    is_invoice_payment: bool = False
    suggested_instrument_match: str | None = None
    bank_reference: str | None = None
    counterparty: str | None = None
    raw_row: tuple[str, ...] = ()
    metadata: CandidateMetadata = field(default_factory=lambda: CandidateMetadata())

    def to_wire(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "description": self.description,
            "amount": f"{self.amount:.2f}",
            "bankReference": self.bank_reference,
            "counterparty": self.counterparty,
            "fingerprint": self.fingerprint,
            "isInvoicePayment": self.is_invoice_payment,
            "suggestedCardMatch": self.suggested_instrument_match,
            "rawData": list(self.raw_row),
        }


@dataclass(frozen=True, slots=True)
class Diagnostic:
    code: DiagnosticCode
    message: str
    row: int | None = None


@dataclass(slots=True)
class ImportResult:
    """Outcome of parsing one statement (no persistence involved)."""

    transactions: list[CanonicalTransactionCandidate] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    detected_separator: str | None = None

    @property
    def errors(self) -> list[str]:
        return [d.message for d in self.diagnostics]

    def to_wire(self) -> dict[str, Any]:
        out: dict[str, Any] = {"transactions": [t.to_wire() for t in self.transactions]}
        if self.diagnostics:
            out["errors"] = self.errors
        return out


@dataclass(frozen=True, slots=True)
class ImportSummary:
    """Outcome of parsing and persisting one statement for an account."""

    account_id: str
    batch_id: str
    imported: int
    duplicates: int
    line_ids: tuple[int, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()

    @property
    def errors(self) -> list[str]:
        return [d.message for d in self.diagnostics]


# ---------------------------------------------------------------------------
# Wire request
# ---------------------------------------------------------------------------


class ImportRequest(BaseModel):
    """JSON import request.

    ``content`` is plain text for csv/text sources and base64 for pdf.
    """

    model_config = ConfigDict(populate_by_name=True)

    source_format: SourceFormat = Field(alias="sourceFormat")
    content: str
    file_name: str | None = Field(default=None, alias="fileName")
    column_mappings: list[ColumnMappingPayload] | None = Field(
        default=None, alias="columnMappings"
    )

    @field_validator("file_name")
    @classmethod
    def _strip_file_name(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def _check_pdf_payload(self) -> ImportRequest:
        if self.source_format is SourceFormat.PDF:
            _decode_base64(self.content)
        return self

    def to_raw_statement(self) -> RawStatement:
        content: str | bytes = self.content
        if self.source_format is SourceFormat.PDF:
            content = _decode_base64(self.content)
        return RawStatement(
            source_format=self.source_format, content=content, file_name=self.file_name
        )

    def mappings(self) -> Sequence[ColumnMapping] | None:
        if self.column_mappings is None:
            return None
        return tuple(m.to_mapping() for m in self.column_mappings)


def _decode_base64(payload: str) -> bytes:
    # Accept data URLs as produced by browser FileReader.
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("pdf content must be base64-encoded") from e


__all__ = [
    "CandidateMetadata",
    "CanonicalTransactionCandidate",
    "ColumnMapping",
    "ColumnMappingPayload",
    "ColumnRole",
    "Diagnostic",
    "ImportRequest",
    "ImportResult",
    "ImportSummary",
    "RawStatement",
    "SourceFormat",
]
