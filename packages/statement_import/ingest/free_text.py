"""Line-oriented parser for free-form statement text.

Used for ``text`` uploads that come without column mappings and for text
pulled out of PDFs. Each line is tried against a short list of layouts:

1. ``<date> <description> <amount>``
2. ``<description> <date> <amount>``
3. ``<DD/MM> <description> <amount>`` (year taken from "today")
4. ``<description> <amount>`` (date falls back per policy)

Amounts must carry cents so account numbers and page counters are not read
as money. Balance and total lines are skipped.
"""

from __future__ import annotations

import re
from datetime import date

from ..classifier import InvoicePaymentClassifier
from ..config import DateFallback
from ..errors import DiagnosticCode, UnparsableAmount, UnparsableDate
from ..logging_setup import get_logger
from ..models import CandidateMetadata, CanonicalTransactionCandidate, Diagnostic, SourceFormat
from .candidates import build_candidate
from .normalizers import normalize_amount, normalize_date
from .tokenizer import normalize_newlines

_logger = get_logger("statement_import.ingest.free_text")

_FULL_DATE = r"\d{1,2}[/.\-]\d{1,2}[/.\-](?:\d{4}|\d{2})|\d{4}-\d{1,2}-\d{1,2}"
_SHORT_DATE = r"\d{1,2}/\d{1,2}"
_AMOUNT = (
    r"(?P<amount>\(?[-+]?\s?(?:R\$|US\$|\$|€|£)?\s?[-+]?\d[\d.,]*[.,]\d{2}\)?"
    r"(?:\s?-|\s?[DC])?)"
)

_LINE_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("date_desc_amount", re.compile(rf"^(?P<date>{_FULL_DATE})\s+(?P<desc>.+?)\s+{_AMOUNT}$")),
    ("desc_date_amount", re.compile(rf"^(?P<desc>.+?)\s+(?P<date>{_FULL_DATE})\s+{_AMOUNT}$")),
    ("short_date_desc_amount", re.compile(rf"^(?P<date>{_SHORT_DATE})\s+(?P<desc>.+?)\s+{_AMOUNT}$")),
    ("desc_amount", re.compile(rf"^(?P<desc>.*?[^\W\d_].*?)\s+{_AMOUNT}$")),
)

_IGNORE_KEYWORDS: tuple[str, ...] = (
    "SALDO",
    "S A L D O",
    "TOTAL",
    "TRANSPORTADO",
    "A TRANSPORTAR",
    "BLOQUEADO",
    "BALANCE",
    "PÁGINA",
    "PAGINA",
)


def should_ignore_line(line: str) -> bool:
    upper = line.upper()
    return any(k in upper for k in _IGNORE_KEYWORDS)


def _short_date(raw: str, today: date) -> date:
    d = normalize_date(raw, default_year=today.year)
    # A year-less date later than today belongs to last year's statement.
    if d > today:
        d = normalize_date(raw, default_year=today.year - 1)
    return d


def parse_free_text(
    text: str,
    *,
    today: date,
    date_fallback: DateFallback = "today",
    source_format: SourceFormat = SourceFormat.TEXT,
    classifier: InvoicePaymentClassifier | None = None,
) -> tuple[list[CanonicalTransactionCandidate], list[Diagnostic]]:
    """Parse ``text`` line by line; row numbers are 1-based physical lines."""

    candidates: list[CanonicalTransactionCandidate] = []
    diagnostics: list[Diagnostic] = []

    for line_no, raw_line in enumerate(normalize_newlines(text).split("\n"), start=1):
        line = " ".join(raw_line.split())
        if not line or should_ignore_line(line):
            continue

        for layout, pattern in _LINE_PATTERNS:
            m = pattern.match(line)
            if m:
                break
        else:
            continue

        try:
            amount = normalize_amount(m.group("amount"))
        except UnparsableAmount as e:
            diagnostics.append(
                Diagnostic(DiagnosticCode.UNPARSABLE_AMOUNT, f"Line {line_no}: {e}", line_no)
            )
            continue
        description = m.group("desc").strip()
        if amount == 0 or not description:
            continue

        metadata = CandidateMetadata(source_format=source_format.value, row_number=line_no)
        raw_date = m.groupdict().get("date")
        try:
            if raw_date is None:
                raise UnparsableDate("")
            if layout == "short_date_desc_amount":
                txn_date = _short_date(raw_date, today)
            else:
                txn_date = normalize_date(raw_date)
        except UnparsableDate as e:
            if date_fallback == "skip":
                diagnostics.append(
                    Diagnostic(DiagnosticCode.UNPARSABLE_DATE, f"Line {line_no}: {e}", line_no)
                )
                continue
            txn_date = today
            metadata["date_defaulted"] = True
            diagnostics.append(
                Diagnostic(
                    DiagnosticCode.DATE_DEFAULTED,
                    f"Line {line_no}: no usable date; using {today.isoformat()}",
                    line_no,
                )
            )

        candidates.append(
            build_candidate(
                txn_date=txn_date,
                description=description,
                amount=amount,
                raw_row=(raw_line,),
                metadata=metadata,
                classifier=classifier,
            )
        )

    _logger.info(
        "parse_free_text:done candidates=%d diagnostics=%d",
        len(candidates),
        len(diagnostics),
    )
    return candidates, diagnostics


__all__ = ["parse_free_text", "should_ignore_line"]
