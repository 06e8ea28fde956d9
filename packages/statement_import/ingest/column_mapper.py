"""Turn tokenized rows into canonical candidates using declared column roles.

:func:`map_rows` is a pure function of its inputs: the rows, the mappings,
the date policy and the reference "today". Nothing is read from the
environment here; callers resolve the policy from settings.

:func:`infer_column_mappings` proposes mappings from header names (Portuguese
and English exports) and falls back to the shape of sample values.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from ..classifier import InvoicePaymentClassifier
from ..config import DateFallback
from ..errors import DiagnosticCode, MissingRequiredColumns, UnparsableAmount, UnparsableDate
from ..logging_setup import get_logger
from ..models import (
    CandidateMetadata,
    CanonicalTransactionCandidate,
    ColumnMapping,
    ColumnRole,
    Diagnostic,
    SourceFormat,
)
from .candidates import build_candidate
from .normalizers import normalize_amount, normalize_date, parse_amount

_logger = get_logger("statement_import.ingest.column_mapper")


def missing_roles(mappings: Sequence[ColumnMapping]) -> list[str]:
    """Return the roles still needed before rows can be mapped (empty when valid)."""

    roles = {m.role for m in mappings}
    missing: list[str] = []
    if ColumnRole.DATE not in roles:
        missing.append(ColumnRole.DATE.value)
    if ColumnRole.DESCRIPTION not in roles:
        missing.append(ColumnRole.DESCRIPTION.value)
    if ColumnRole.AMOUNT not in roles:
        has_credit = ColumnRole.CREDIT in roles
        has_debit = ColumnRole.DEBIT in roles
        if not (has_credit and has_debit):
            missing.append(ColumnRole.AMOUNT.value)
            if has_credit or has_debit:
                missing.append(
                    ColumnRole.DEBIT.value if has_credit else ColumnRole.CREDIT.value
                )
    return missing


def _first_index_by_role(mappings: Sequence[ColumnMapping]) -> dict[ColumnRole, int]:
    out: dict[ColumnRole, int] = {}
    for m in mappings:
        if m.role is ColumnRole.IGNORE:
            continue
        out.setdefault(m.role, m.column_index)
    return out


def _cell(row: Sequence[str], index: int | None) -> str:
    if index is None or index >= len(row):
        return ""
    return row[index]


def map_rows(
    rows: Sequence[Sequence[str]],
    mappings: Sequence[ColumnMapping],
    *,
    today: date,
    date_fallback: DateFallback = "today",
    source_format: SourceFormat = SourceFormat.CSV,
    classifier: InvoicePaymentClassifier | None = None,
) -> tuple[list[CanonicalTransactionCandidate], list[Diagnostic]]:
    """Map data rows (headers excluded) into candidates plus row diagnostics.

    Raises :class:`MissingRequiredColumns` before touching any row when the
    mappings are incomplete. Row numbers in diagnostics and metadata are
    1-based over the data rows.
    """

    missing = missing_roles(mappings)
    if missing:
        raise MissingRequiredColumns(missing)

    idx = _first_index_by_role(mappings)
    use_amount = ColumnRole.AMOUNT in idx

    candidates: list[CanonicalTransactionCandidate] = []
    diagnostics: list[Diagnostic] = []
    skipped = 0

    for row_number, row in enumerate(rows, start=1):
        description = _cell(row, idx.get(ColumnRole.DESCRIPTION)).strip()

        if use_amount:
            raw_amount = _cell(row, idx[ColumnRole.AMOUNT])
            try:
                amount = normalize_amount(raw_amount) if raw_amount.strip() else Decimal("0")
            except UnparsableAmount as e:
                diagnostics.append(
                    Diagnostic(
                        DiagnosticCode.UNPARSABLE_AMOUNT, f"Row {row_number}: {e}", row_number
                    )
                )
                continue
        else:
            credit = parse_amount(_cell(row, idx[ColumnRole.CREDIT]))
            debit = parse_amount(_cell(row, idx[ColumnRole.DEBIT]))
            amount = credit - abs(debit)

        if amount == 0 or not description:
            skipped += 1
            _logger.debug(
                "map_rows:skip_row row=%d reason=%s",
                row_number,
                "zero_amount" if amount == 0 else "empty_description",
            )
            continue

        metadata = CandidateMetadata(source_format=source_format.value, row_number=row_number)
        raw_date = _cell(row, idx[ColumnRole.DATE])
        try:
            txn_date = normalize_date(raw_date)
        except UnparsableDate as e:
            if date_fallback == "skip":
                diagnostics.append(
                    Diagnostic(
                        DiagnosticCode.UNPARSABLE_DATE, f"Row {row_number}: {e}", row_number
                    )
                )
                continue
            txn_date = today
            metadata["date_defaulted"] = True
            diagnostics.append(
                Diagnostic(
                    DiagnosticCode.DATE_DEFAULTED,
                    f"Row {row_number}: {e}; using {today.isoformat()}",
                    row_number,
                )
            )

        candidates.append(
            build_candidate(
                txn_date=txn_date,
                description=description,
                amount=amount,
                bank_reference=_cell(row, idx.get(ColumnRole.BANK_REFERENCE)),
                counterparty=_cell(row, idx.get(ColumnRole.COUNTERPARTY)),
                raw_row=row,
                metadata=metadata,
                classifier=classifier,
            )
        )

    _logger.info(
        "map_rows:done rows=%d candidates=%d skipped=%d diagnostics=%d",
        len(rows),
        len(candidates),
        skipped,
        len(diagnostics),
    )
    return candidates, diagnostics


# ---- Role inference ------------------------------------------------------------

# Checked in order; credit/debit precede amount so "Valor Crédito" is a credit.
_HEADER_RULES: tuple[tuple[ColumnRole, re.Pattern[str]], ...] = (
    (ColumnRole.DATE, re.compile(r"data|date|\bdt\b|\bdia\b|vencimento")),
    (ColumnRole.CREDIT, re.compile(r"credito|credit|entrada|receita|income")),
    (ColumnRole.DEBIT, re.compile(r"debito|debit|saida|despesa|expense")),
    (ColumnRole.AMOUNT, re.compile(r"valor|amount|value|total|montante")),
    (ColumnRole.DESCRIPTION, re.compile(r"descricao|description|desc|historico|lancamento|memo")),
    (
        ColumnRole.BANK_REFERENCE,
        re.compile(
            r"\bid\b|codigo|code|referencia|reference|\bref\b|documento|\bdoc\b|\bnum\b|numero"
        ),
    ),
    (
        ColumnRole.COUNTERPARTY,
        re.compile(r"beneficiario|contraparte|counterparty|pagador|favorecido|destino|origem"),
    ),
)


def _fold_header(value: str) -> str:
    s = unicodedata.normalize("NFKD", value)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    return " ".join(s.split()).lower()


def _role_from_header(header: str) -> ColumnRole | None:
    h = _fold_header(header)
    for role, pattern in _HEADER_RULES:
        if pattern.search(h):
            return role
    return None


def _looks_like_dates(values: Sequence[str]) -> bool:
    if not values:
        return False
    for v in values:
        try:
            normalize_date(v)
        except UnparsableDate:
            return False
    return True


def _looks_like_amounts(values: Sequence[str]) -> bool:
    if not values:
        return False
    for v in values:
        try:
            normalize_amount(v)
        except UnparsableAmount:
            return False
    return True


def infer_column_mappings(
    headers: Sequence[str],
    sample_rows: Sequence[Sequence[str]] = (),
) -> list[ColumnMapping]:
    """Propose one mapping per column.

    Each role is assigned at most once (first column wins); unrecognized
    columns are mapped to ``ignore``. When a required role is still missing,
    sample values are used: all-date columns become ``date``, all-numeric
    columns become ``amount`` and the remaining column with the longest text
    becomes ``description``.
    """

    roles: list[ColumnRole] = []
    taken: set[ColumnRole] = set()
    for header in headers:
        role = _role_from_header(header)
        if role is None or role in taken:
            roles.append(ColumnRole.IGNORE)
            continue
        roles.append(role)
        taken.add(role)

    samples = [[_cell(r, i).strip() for r in sample_rows] for i in range(len(headers))]
    samples = [[v for v in col if v] for col in samples]

    def _free() -> list[int]:
        return [i for i, r in enumerate(roles) if r is ColumnRole.IGNORE]

    if ColumnRole.DATE not in taken:
        for i in _free():
            if _looks_like_dates(samples[i]):
                roles[i] = ColumnRole.DATE
                taken.add(ColumnRole.DATE)
                break

    if ColumnRole.AMOUNT not in taken and not {ColumnRole.CREDIT, ColumnRole.DEBIT} <= taken:
        for i in _free():
            if _looks_like_amounts(samples[i]) and not _looks_like_dates(samples[i]):
                roles[i] = ColumnRole.AMOUNT
                taken.add(ColumnRole.AMOUNT)
                break

    if ColumnRole.DESCRIPTION not in taken:
        best: tuple[float, int] | None = None
        for i in _free():
            col = samples[i]
            if not col or _looks_like_amounts(col) or _looks_like_dates(col):
                continue
            avg = sum(len(v) for v in col) / len(col)
            if best is None or avg > best[0]:
                best = (avg, i)
        if best is not None:
            roles[best[1]] = ColumnRole.DESCRIPTION

    mappings = [ColumnMapping(column_index=i, role=r) for i, r in enumerate(roles)]
    _logger.debug(
        "infer_column_mappings:done roles=%s",
        ",".join(m.role.value for m in mappings),
    )
    return mappings


__all__ = ["infer_column_mappings", "map_rows", "missing_roles"]
