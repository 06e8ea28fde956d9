from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from statement_import.classifier import (
    Instrument,
    InvoicePaymentClassifier,
    RuleTable,
    classify,
    default_classifier,
    load_rule_table,
    resolve_instrument,
)


def test_flags_invoice_payments_and_suggests_issuer():
    descriptions = ["PAGAMENTO FATURA NUBANK", "UBER TRIP", "FATURA CARTAO ITAU"]
    results = [classify(d) for d in descriptions]

    assert [r.is_invoice_payment for r in results] == [True, False, True]
    assert [r.suggested_instrument_match for r in results] == ["nubank", None, "itau"]


@pytest.mark.parametrize(
    ("description", "issuer"),
    [
        ("PGTO FATURA MERCADO PAGO", "mercado pago"),
        ("PAG FAT CARTAO SICREDI", "sicredi"),
        ("Pagamento de fatura Itaú", "itau"),
        ("CARTAO DE CREDITO BANCO DO BRASIL", "bb"),
        ("Credit card payment - Bradesco", "bradesco"),
        ("PAGAMENTO FATURA", None),
    ],
)
def test_issuer_table(description: str, issuer: str | None):
    result = classify(description)
    assert result.is_invoice_payment is True
    assert result.suggested_instrument_match == issuer


def test_issuer_is_only_suggested_for_invoice_payments():
    # Mentions an issuer but is not an invoice payment.
    assert classify("PIX NUBANK JOAO").suggested_instrument_match is None


def test_bundled_rules_load_and_are_versioned():
    table = load_rule_table()
    assert table.version == 1
    keys = [r.key for r in table.issuers]
    assert keys.index("mercado pago") < keys.index("inter")
    assert default_classifier() is default_classifier()


def test_custom_rule_file(tmp_path: Path):
    path = tmp_path / "rules.json"
    path.write_text(
        json.dumps(
            {
                "version": 7,
                "invoice_payment_patterns": ["settle.*card"],
                "issuers": [{"key": " ACME ", "pattern": "acme"}],
            }
        ),
        encoding="utf-8",
    )
    clf = InvoicePaymentClassifier(load_rule_table(path))
    assert clf.version == 7
    got = clf.classify("Settle Acme card")
    assert got.is_invoice_payment is True
    assert got.suggested_instrument_match == "acme"
    assert clf.classify("PAGAMENTO FATURA NUBANK").is_invoice_payment is False


def test_rule_table_rejects_bad_regex():
    with pytest.raises(ValidationError):
        RuleTable.model_validate(
            {"version": 1, "invoice_payment_patterns": ["(unclosed"], "issuers": []}
        )


def test_resolve_instrument_prefers_bank_then_name():
    instruments = [
        Instrument(id="c1", name="Visa Platinum", bank="Itaú Unibanco"),
        Instrument(id="c2", name="Roxinho", bank="Nubank"),
        Instrument(id="c3", name="Cartão Inter Gold"),
    ]
    assert resolve_instrument("itau", instruments).id == "c1"
    assert resolve_instrument("nubank", instruments).id == "c2"
    assert resolve_instrument("inter", instruments).id == "c3"
    assert resolve_instrument("santander", instruments) is None
    assert resolve_instrument(None, instruments) is None
