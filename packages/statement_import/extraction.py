"""Decode AI extraction replies into candidates.

The model is asked for a single JSON object but replies are treated as free
text: the first well-formed JSON object found is used. A reply without one
yields no candidates and a ``could_not_parse_document`` diagnostic; items
that fail validation are skipped one by one.
"""

from __future__ import annotations

import json
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .classifier import InvoicePaymentClassifier
from .errors import DiagnosticCode, UnparsableDate
from .ingest.candidates import build_candidate
from .ingest.normalizers import normalize_date
from .logging_setup import get_logger
from .models import CandidateMetadata, CanonicalTransactionCandidate, Diagnostic, SourceFormat

_logger = get_logger("statement_import.extraction")


class ExtractedTransaction(BaseModel):
    """One transaction as returned by the extraction model."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    txn_date: date = Field(alias="date")
    description: str = Field(min_length=1)
    amount: Decimal
    type: Literal["INCOME", "EXPENSE"]
    is_invoice_payment: bool = Field(default=False, alias="isInvoicePayment")
    suggested_card_match: str | None = Field(default=None, alias="suggestedCardMatch")

    @field_validator("txn_date", mode="before")
    @classmethod
    def _parse_date(cls, v: Any) -> Any:
        if isinstance(v, str):
            try:
                return normalize_date(v)
            except UnparsableDate as e:
                raise ValueError(str(e)) from e
        return v

    @field_validator("amount")
    @classmethod
    def _round_amount(cls, v: Decimal) -> Decimal:
        try:
            return abs(v).quantize(Decimal("0.01"))
        except InvalidOperation as e:
            raise ValueError("amount cannot be rounded to cents") from e

    @field_validator("description")
    @classmethod
    def _strip_description(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("description is blank")
        return v

    @field_validator("type", mode="before")
    @classmethod
    def _upper_type(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    def signed_amount(self) -> Decimal:
        # Sign comes from ``type`` only; the model's own sign is ignored.
        return -self.amount if self.type == "EXPENSE" else self.amount


def response_text(resp: Any) -> str:
    """Locate the text output of an OpenAI Responses result.

    Prefers ``resp.output_text`` and falls back to the first content item.
    Raises ``ValueError`` when no text can be found.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        try:
            first = resp.output[0] if getattr(resp, "output", None) else None
            content = getattr(first, "content", None)
            if content:
                txt_obj = getattr(content[0], "text", None)
                if isinstance(txt_obj, str):
                    text = txt_obj
                else:
                    maybe_val = getattr(txt_obj, "value", None)
                    if isinstance(maybe_val, str):
                        text = maybe_val
        except (AttributeError, IndexError, TypeError):
            text = None
    if not text or not isinstance(text, str):
        raise ValueError("Unexpected Responses API shape; unable to locate text output")
    return text


def find_json_object(text: str) -> dict[str, Any] | None:
    """Return the first well-formed JSON object embedded in ``text``."""

    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _end = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    return None


def candidates_from_reply(
    text: str,
    *,
    classifier: InvoicePaymentClassifier | None = None,
) -> tuple[list[CanonicalTransactionCandidate], list[Diagnostic]]:
    payload = find_json_object(text)
    items = payload.get("transactions") if payload is not None else None
    if not isinstance(items, list):
        _logger.warning("extraction:no_json reply_chars=%d", len(text))
        return [], [
            Diagnostic(
                DiagnosticCode.COULD_NOT_PARSE_DOCUMENT,
                "Could not parse document: extraction reply carried no transactions payload",
            )
        ]

    candidates: list[CanonicalTransactionCandidate] = []
    diagnostics: list[Diagnostic] = []
    for n, item in enumerate(items, start=1):
        try:
            tx = ExtractedTransaction.model_validate(item)
        except ValidationError as e:
            diagnostics.append(
                Diagnostic(
                    DiagnosticCode.INVALID_EXTRACTED_ITEM,
                    f"Item {n}: skipped invalid extracted transaction ({e.error_count()} errors)",
                    n,
                )
            )
            continue
        amount = tx.signed_amount()
        if amount == 0:
            continue
        candidates.append(
            build_candidate(
                txn_date=tx.txn_date,
                description=tx.description,
                amount=amount,
                raw_row=(json.dumps(item, ensure_ascii=False, default=str),),
                metadata=CandidateMetadata(
                    source_format=SourceFormat.PDF.value, row_number=n, entry_type=tx.type
                ),
                classifier=classifier,
                invoice_hint=tx.is_invoice_payment,
                instrument_hint=tx.suggested_card_match,
            )
        )
    _logger.info(
        "extraction:decoded items=%d candidates=%d skipped=%d",
        len(items),
        len(candidates),
        len(diagnostics),
    )
    return candidates, diagnostics


__all__ = [
    "ExtractedTransaction",
    "candidates_from_reply",
    "find_json_object",
    "response_text",
]
