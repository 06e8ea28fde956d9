"""Assemble :class:`CanonicalTransactionCandidate` records.

Every parse path (mapped columns, free text, AI extraction) funnels through
:func:`build_candidate` so description normalization, fingerprinting and
classification are applied identically.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from ..classifier import InvoicePaymentClassifier, default_classifier
from ..fingerprint import compute_fingerprint
from ..models import CandidateMetadata, CanonicalTransactionCandidate
from .normalizers import clean_optional, normalize_text


def build_candidate(
    *,
    txn_date: date,
    description: str,
    amount: Decimal,
    bank_reference: str | None = None,
    counterparty: str | None = None,
    raw_row: Sequence[str] = (),
    metadata: CandidateMetadata | None = None,
    classifier: InvoicePaymentClassifier | None = None,
    invoice_hint: bool = False,
    instrument_hint: str | None = None,
) -> CanonicalTransactionCandidate:
    """Normalize fields, fingerprint and classify one row.

    ``invoice_hint``/``instrument_hint`` carry an upstream opinion (the AI
    extractor's); the heuristic result is OR-ed with it and the hint wins for
    the suggested instrument when both are present. A hinted instrument is
    dropped when the row is not an invoice payment.
    """

    norm_desc = normalize_text(description)
    cls = (classifier or default_classifier()).classify(norm_desc)
    is_invoice = invoice_hint or cls.is_invoice_payment
    suggestion = clean_optional(instrument_hint) if is_invoice else None
    counterparty_norm = normalize_text(counterparty) if counterparty else ""
    return CanonicalTransactionCandidate(
        date=txn_date,
        description=norm_desc,
        amount=amount,
        fingerprint=compute_fingerprint(txn_date, amount, norm_desc),
        is_invoice_payment=is_invoice,
        suggested_instrument_match=(
            suggestion.lower() if suggestion else cls.suggested_instrument_match
        ),
        bank_reference=clean_optional(bank_reference),
        counterparty=counterparty_norm or None,
        raw_row=tuple(raw_row),
        metadata=metadata if metadata is not None else CandidateMetadata(),
    )


__all__ = ["build_candidate"]
