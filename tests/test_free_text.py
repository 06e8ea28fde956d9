from __future__ import annotations

from datetime import date
from decimal import Decimal

from statement_import.errors import DiagnosticCode
from statement_import.ingest.free_text import parse_free_text, should_ignore_line

TODAY = date(2024, 3, 1)

STATEMENT = """\
EXTRATO DE CONTA CORRENTE
Conta 12345 agencia 0001
SALDO ANTERIOR 1.000,00
15/01/2024 PAGAMENTO FATURA NUBANK -1.500,00
UBER TRIP 16/01/2024 23,45 D
05/02 PADARIA R$ 12,50
12/12 NETFLIX 39,90-

Página 1 de 3
PIX RECEBIDO 150,00
TOTAL 1.234,56
"""


def test_parses_each_supported_line_layout():
    candidates, diagnostics = parse_free_text(STATEMENT, today=TODAY)

    got = [(c.date, c.description, c.amount) for c in candidates]
    assert got == [
        (date(2024, 1, 15), "PAGAMENTO FATURA NUBANK", Decimal("-1500.00")),
        (date(2024, 1, 16), "UBER TRIP", Decimal("-23.45")),
        (date(2024, 2, 5), "PADARIA", Decimal("12.50")),
        # A year-less date after "today" belongs to the previous year.
        (date(2023, 12, 12), "NETFLIX", Decimal("-39.90")),
        (TODAY, "PIX RECEBIDO", Decimal("150.00")),
    ]
    assert candidates[0].is_invoice_payment is True
    assert candidates[0].suggested_instrument_match == "nubank"
    assert candidates[0].metadata["row_number"] == 4
    assert candidates[0].metadata["source_format"] == "text"
    assert candidates[-1].metadata["date_defaulted"] is True

    assert [(d.code, d.row) for d in diagnostics] == [(DiagnosticCode.DATE_DEFAULTED, 10)]


def test_skip_policy_drops_undated_lines():
    candidates, diagnostics = parse_free_text(
        "PIX RECEBIDO 150,00\n01/02/2024 PIX RECEBIDO 150,00\n",
        today=TODAY,
        date_fallback="skip",
    )
    assert [c.date for c in candidates] == [date(2024, 2, 1)]
    assert [(d.code, d.row) for d in diagnostics] == [(DiagnosticCode.UNPARSABLE_DATE, 1)]


def test_amounts_without_cents_are_not_money():
    candidates, diagnostics = parse_free_text("Cliente desde 2019\nProtocolo 884512\n", today=TODAY)
    assert candidates == []
    assert diagnostics == []


def test_should_ignore_balance_and_page_lines():
    assert should_ignore_line("Saldo do dia 1.000,00")
    assert should_ignore_line("S A L D O")
    assert should_ignore_line("Total da fatura 500,00")
    assert should_ignore_line("pagina 2/4")
    assert not should_ignore_line("15/01/2024 PADARIA 10,00")
