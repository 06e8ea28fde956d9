"""End-to-end imports against a temporary SQLite database.

The AI extractor is replaced by the OpenAI stub; everything else (tokenizer,
mapper, classifier, dedup, persistence, reconciliation) runs for real.
"""

from __future__ import annotations

import base64
from datetime import date
from decimal import Decimal
from typing import Any

import pytest
from db.client import session_scope

import statement_import.pdf_extract as pdf_extract
from statement_import import (
    ColumnMapping,
    ColumnRole,
    ImportJob,
    ImportRequest,
    RawStatement,
    SourceFormat,
    import_statement,
    import_statements,
    parse_request,
    parse_statement,
    register_account,
)
from statement_import.config import Settings
from statement_import.errors import (
    DiagnosticCode,
    ExtractionServiceError,
    MissingRequiredColumns,
    UnknownAccount,
)
from statement_import.reconciliation import (
    ReconciliationStatus,
    ignore_line,
    list_lines,
    pending_counts,
)
from tests.helpers.db import seed_accounts
from tests.helpers.openai_stub import StatusError, make_openai_stub, reply_with

TODAY = date(2024, 3, 1)

CSV = (
    "Data;Descricao;Valor\n"
    "15/01/2024;PAGAMENTO FATURA NUBANK;-1500,00\n"
    "16/01/2024;SALARIO;3000,00\n"
    "16/01/2024;Uber  Trip;-23,45\n"
    "17/01/2024;PADARIA;-12,00\n"
)
MAPPINGS = (
    ColumnMapping(0, ColumnRole.DATE),
    ColumnMapping(1, ColumnRole.DESCRIPTION),
    ColumnMapping(2, ColumnRole.AMOUNT),
)


def _statement(content: str = CSV, name: str = "jan.csv") -> RawStatement:
    return RawStatement(source_format=SourceFormat.CSV, content=content, file_name=name)


def test_parse_request_with_inferred_columns():
    req = ImportRequest(sourceFormat="csv", content=CSV, fileName="jan.csv")

    result = parse_request(req, today=TODAY)

    assert result.detected_separator == ";"
    assert result.diagnostics == []
    assert [c.amount for c in result.transactions] == [
        Decimal("-1500.00"),
        Decimal("3000.00"),
        Decimal("-23.45"),
        Decimal("-12.00"),
    ]
    assert result.transactions[0].suggested_instrument_match == "nubank"


def test_ambiguous_separator_is_reported():
    # Four semicolons and four commas: semicolon wins the tie.
    text = "Data;Descricao;Valor\n15/01/2024;PADARIA, A, B, C, D;-12.00\n"
    result = parse_statement(_statement(text), today=TODAY)
    assert result.detected_separator == ";"
    assert [d.code for d in result.diagnostics] == [DiagnosticCode.FORMAT_DETECTION_AMBIGUOUS]
    assert [c.description for c in result.transactions] == ["PADARIA, A, B, C, D"]


def test_unmappable_headers_fail_fast():
    with pytest.raises(MissingRequiredColumns):
        parse_statement(_statement("foo;bar\nx;y\n"), today=TODAY)


def test_free_text_upload():
    raw = RawStatement(
        source_format=SourceFormat.TEXT,
        content="15/01/2024 PAGAMENTO FATURA ITAU 820,00 D\nSALDO 10,00\n",
    )
    (c,) = parse_statement(raw, today=TODAY).transactions
    assert c.amount == Decimal("-820.00")
    assert c.suggested_instrument_match == "itau"


def test_importing_the_same_file_twice_adds_nothing(db_url: str):
    seed_accounts(db_url, {"acc-1": "Conta Corrente"})

    first = import_statement(
        _statement(), account_id="acc-1", mappings=MAPPINGS, database_url=db_url
    )
    second = import_statement(
        _statement(name="jan-again.csv"),
        account_id="acc-1",
        mappings=MAPPINGS,
        database_url=db_url,
    )

    assert (first.imported, first.duplicates) == (4, 0)
    assert (second.imported, second.duplicates) == (0, 4)
    assert first.batch_id != second.batch_id

    with session_scope(database_url=db_url) as s:
        lines = list_lines(s, "acc-1")
        counts = pending_counts(s)
    assert [ln.id for ln in lines] == list(first.line_ids)
    assert all(ln.status is ReconciliationStatus.PENDING for ln in lines)
    assert [(c.account_id, c.pending_count) for c in counts] == [("acc-1", 4)]


def test_resolved_lines_still_count_as_seen(db_url: str):
    seed_accounts(db_url, {"acc-1": "Conta Corrente"})
    first = import_statement(
        _statement(), account_id="acc-1", mappings=MAPPINGS, database_url=db_url
    )
    with session_scope(database_url=db_url) as s:
        ignore_line(s, first.line_ids[0])

    grown = CSV + "18/01/2024;FARMACIA;-40,00\n"
    again = import_statement(
        _statement(grown), account_id="acc-1", mappings=MAPPINGS, database_url=db_url
    )
    assert (again.imported, again.duplicates) == (1, 4)


def test_same_rows_in_different_accounts_are_independent(db_url: str):
    seed_accounts(db_url, {"acc-1": "Conta Corrente", "acc-2": "Conta Conjunta"})
    a = import_statement(
        _statement(), account_id="acc-1", mappings=MAPPINGS, database_url=db_url
    )
    b = import_statement(
        _statement(), account_id="acc-2", mappings=MAPPINGS, database_url=db_url
    )
    assert a.imported == b.imported == 4


def test_concurrent_imports_of_one_file_insert_each_row_once(db_url: str):
    seed_accounts(db_url, {"acc-1": "Conta Corrente"})
    jobs = [
        ImportJob(
            statement=_statement(name=f"copy-{n}.csv"), account_id="acc-1", mappings=MAPPINGS
        )
        for n in range(6)
    ]

    outcomes = import_statements(jobs, database_url=db_url, concurrency=6, today=TODAY)

    assert all(o.ok for o in outcomes)
    assert [o.job.statement.file_name for o in outcomes] == [f"copy-{n}.csv" for n in range(6)]
    assert sum(o.summary.imported for o in outcomes) == 4
    assert sum(o.summary.duplicates for o in outcomes) == 4 * 5
    with session_scope(database_url=db_url) as s:
        assert len(list_lines(s, "acc-1")) == 4


def test_one_failing_job_does_not_sink_the_batch(db_url: str):
    register_account("acc-1", "Conta Corrente", database_url=db_url)
    jobs = [
        ImportJob(statement=_statement(), account_id="acc-1", mappings=MAPPINGS),
        ImportJob(statement=_statement(), account_id="nope", mappings=MAPPINGS),
    ]

    ok, failed = import_statements(jobs, database_url=db_url, concurrency=2, today=TODAY)

    assert ok.ok and ok.summary.imported == 4
    assert not failed.ok
    assert isinstance(failed.error, UnknownAccount)
    with session_scope(database_url=db_url) as s:
        assert list_lines(s, "nope") == []


def test_pdf_import_through_stubbed_extractor(db_url: str, monkeypatch: pytest.MonkeyPatch):
    seed_accounts(db_url, {"card-acc": "Conta Nubank"})
    calls: list[dict[str, Any]] = []
    reply = reply_with(
        [
            {
                "date": "2024-01-15",
                "description": "PAGAMENTO FATURA",
                "amount": 1500,
                "type": "EXPENSE",
                "isInvoicePayment": True,
                "suggestedCardMatch": "nubank",
            },
            {
                "date": "2024-01-16",
                "description": "PIX RECEBIDO",
                "amount": 200,
                "type": "INCOME",
                "isInvoicePayment": False,
                "suggestedCardMatch": None,
            },
        ]
    )
    monkeypatch.setattr(pdf_extract, "OpenAI", make_openai_stub([reply, reply], calls))
    req = ImportRequest(
        sourceFormat="pdf",
        content=base64.b64encode(b"%PDF-1.4 statement").decode(),
        fileName="fatura.pdf",
    )

    first = import_statement(
        req.to_raw_statement(), account_id="card-acc", database_url=db_url, settings=Settings()
    )
    second = import_statement(
        req.to_raw_statement(), account_id="card-acc", database_url=db_url, settings=Settings()
    )

    assert (first.imported, second.imported, second.duplicates) == (2, 0, 2)
    assert len(calls) == 2
    with session_scope(database_url=db_url) as s:
        fatura = list_lines(s, "card-acc")[0]
    assert fatura.is_invoice_payment is True
    assert fatura.suggested_instrument_match == "nubank"
    assert fatura.amount == Decimal("-1500.00")


def test_extraction_failure_writes_nothing(db_url: str, monkeypatch: pytest.MonkeyPatch):
    seed_accounts(db_url, {"acc-1": "Conta Corrente"})
    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(pdf_extract, "OpenAI", make_openai_stub([StatusError(401)], calls))
    raw = RawStatement(source_format=SourceFormat.PDF, content=b"%PDF", file_name="x.pdf")

    with pytest.raises(ExtractionServiceError):
        import_statement(raw, account_id="acc-1", database_url=db_url, settings=Settings())

    with session_scope(database_url=db_url) as s:
        assert list_lines(s, "acc-1") == []
        assert pending_counts(s) == []
