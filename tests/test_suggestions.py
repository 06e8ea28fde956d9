from __future__ import annotations

from datetime import date
from decimal import Decimal

from statement_import.ingest.candidates import build_candidate
from statement_import.suggestions import (
    LedgerTransaction,
    score_transaction,
    suggest_matches,
    text_similarity,
)

LINE = build_candidate(
    txn_date=date(2024, 1, 16),
    description="Uber Trip",
    amount=Decimal("-23.45"),
    counterparty="Uber do Brasil",
)


def _tx(tx_id: str, day: int, amount: str, description: str, supplier: str | None = None):
    return LedgerTransaction(
        id=tx_id,
        date=date(2024, 1, day),
        amount=Decimal(amount),
        description=description,
        supplier=supplier,
    )


def test_exact_match_scores_highest():
    ledger = [
        _tx("near", 18, "-23.45", "Taxi"),
        _tx("exact", 16, "-23.45", "UBER TRIP"),
        _tx("fuzzy", 17, "-23.60", "uber", supplier="Uber do Brasil"),
    ]

    got = suggest_matches(LINE, ledger)

    assert [s.transaction.id for s in got] == ["exact", "fuzzy", "near"]
    assert got[0].score == 100
    assert got[0].reasons == ("exact amount", "same day", "similar description")
    # 20 (within 1%) + 15 (one day) + 30 (counterparty == supplier)
    assert got[1].score == 65


def test_direction_amount_and_date_gates():
    assert score_transaction(LINE, _tx("in", 16, "23.45", "UBER TRIP")) is None
    assert score_transaction(LINE, _tx("far-amount", 16, "-30.00", "UBER TRIP")) is None
    assert score_transaction(LINE, _tx("far-date", 1, "-23.45", "UBER TRIP")) is None


def test_weak_candidates_are_dropped():
    # 20 (within 1%) + 5 (six days) with unrelated text stays under the threshold.
    assert score_transaction(LINE, _tx("weak", 22, "-23.50", "Padaria")) is None


def test_limit():
    ledger = [_tx(f"t{i}", 16, "-23.45", "UBER TRIP") for i in range(8)]
    got = suggest_matches(LINE, ledger, limit=3)
    assert [s.transaction.id for s in got] == ["t0", "t1", "t2"]


def test_text_similarity_bounds():
    assert text_similarity("UBER", "uber") == 100.0
    assert text_similarity("", "uber") == 0.0
    assert text_similarity(None, "uber") == 0.0
    assert 0.0 < text_similarity("UBER TRIP", "UBER EATS") < 100.0
