from __future__ import annotations

import threading
from datetime import date
from decimal import Decimal

import pytest
from db.client import session_scope
from sqlalchemy.orm import Session

import statement_import.reconciliation as reconciliation
from statement_import.errors import LineNotFound, ReconciliationConflict
from statement_import.ingest.candidates import build_candidate
from statement_import.persistence import insert_pending_lines
from statement_import.reconciliation import (
    Ignored,
    Matched,
    MatchKind,
    Pending,
    ReconciliationStatus,
    accept_instrument_match,
    get_line,
    ignore_line,
    list_lines,
    match_transaction,
    pending_counts,
    reopen_line,
)
from tests.helpers.db import seed_accounts


def _seed_lines(db_url: str, account_id: str, *rows: tuple[int, str, str]) -> list[int]:
    candidates = [
        build_candidate(txn_date=date(2024, 1, day), description=desc, amount=Decimal(amt))
        for day, desc, amt in rows
    ]
    with session_scope(database_url=db_url) as s:
        return insert_pending_lines(s, account_id=account_id, batch_id=None, candidates=candidates)


@pytest.fixture
def lines(db_url: str) -> list[int]:
    seed_accounts(db_url, {"acc-1": "Conta Corrente", "acc-2": "Poupanca"})
    return _seed_lines(
        db_url,
        "acc-1",
        (15, "PAGAMENTO FATURA NUBANK", "-1500.00"),
        (16, "SALARIO", "3000.00"),
        (17, "UBER TRIP", "-23.45"),
    )


def test_new_lines_are_pending(db_url: str, lines: list[int]):
    with session_scope(database_url=db_url) as s:
        line = get_line(s, lines[0])
    assert line.state == Pending()
    assert line.status is ReconciliationStatus.PENDING
    assert line.version == 1
    assert line.amount == Decimal("-1500.00")
    assert line.is_invoice_payment is True
    assert line.suggested_instrument_match == "nubank"


def test_match_transaction_bumps_version(db_url: str, lines: list[int]):
    with session_scope(database_url=db_url) as s:
        line = match_transaction(s, lines[1], transaction_id="tx-42", expected_version=1)
    assert line.state == Matched(target_id="tx-42", kind=MatchKind.TRANSACTION)
    assert line.version == 2


def test_accept_instrument_match_defaults_to_suggestion(db_url: str, lines: list[int]):
    with session_scope(database_url=db_url) as s:
        line = accept_instrument_match(s, lines[0])
    assert line.state == Matched(target_id="nubank", kind=MatchKind.INSTRUMENT)


def test_accept_instrument_match_without_suggestion_needs_an_id(db_url: str, lines: list[int]):
    with session_scope(database_url=db_url) as s:
        with pytest.raises(ValueError):
            accept_instrument_match(s, lines[2])
        line = accept_instrument_match(s, lines[2], instrument_id="card-9")
    assert line.state == Matched(target_id="card-9", kind=MatchKind.INSTRUMENT)


def test_terminal_lines_reject_further_transitions(db_url: str, lines: list[int]):
    with session_scope(database_url=db_url) as s:
        ignore_line(s, lines[2])

    with session_scope(database_url=db_url) as s:
        with pytest.raises(ReconciliationConflict) as exc:
            match_transaction(s, lines[2], transaction_id="tx-1")
        assert exc.value.current_status == "ignored"

    with session_scope(database_url=db_url) as s:
        assert get_line(s, lines[2]).state == Ignored()


def test_accepting_a_terminal_line_without_suggestion_is_a_conflict(
    db_url: str, lines: list[int]
):
    with session_scope(database_url=db_url) as s:
        ignore_line(s, lines[2])

    with session_scope(database_url=db_url) as s:
        with pytest.raises(ReconciliationConflict) as exc:
            accept_instrument_match(s, lines[2])
        assert exc.value.current_status == "ignored"


def test_stale_version_is_a_conflict(db_url: str, lines: list[int]):
    with session_scope(database_url=db_url) as s:
        with pytest.raises(ReconciliationConflict) as exc:
            ignore_line(s, lines[1], expected_version=7)
        assert exc.value.current_status == "pending"
        assert get_line(s, lines[1]).version == 1


def test_unknown_line(db_url: str, lines: list[int]):
    with session_scope(database_url=db_url) as s:
        with pytest.raises(LineNotFound):
            ignore_line(s, 999_999)
        with pytest.raises(LineNotFound):
            get_line(s, 999_999)


def test_racing_transitions_have_exactly_one_winner(db_url: str, lines: list[int]):
    target = lines[1]
    barrier = threading.Barrier(6)
    wins: list[str] = []
    conflicts: list[str] = []
    guard = threading.Lock()

    def _worker(n: int) -> None:
        barrier.wait()
        try:
            with session_scope(database_url=db_url) as s:
                if n % 2:
                    ignore_line(s, target, expected_version=1)
                else:
                    match_transaction(s, target, transaction_id=f"tx-{n}", expected_version=1)
        except ReconciliationConflict as e:
            with guard:
                conflicts.append(e.current_status)
            return
        with guard:
            wins.append(f"worker-{n}")

    threads = [threading.Thread(target=_worker, args=(n,)) for n in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(wins) == 1
    assert len(conflicts) == 5
    with session_scope(database_url=db_url) as s:
        final = get_line(s, target)
    assert final.version == 2
    assert final.status is not ReconciliationStatus.PENDING
    assert set(conflicts) == {final.status.value}


def test_reopen_creates_superseding_pending_line(db_url: str, lines: list[int]):
    with session_scope(database_url=db_url) as s:
        match_transaction(s, lines[1], transaction_id="tx-wrong")

    with session_scope(database_url=db_url) as s:
        fresh = reopen_line(s, lines[1])
    assert fresh.id != lines[1]
    assert fresh.supersedes_id == lines[1]
    assert fresh.state == Pending()
    assert fresh.version == 1

    with session_scope(database_url=db_url) as s:
        old = get_line(s, lines[1])
        assert old.state == Matched(target_id="tx-wrong", kind=MatchKind.TRANSACTION)
        with pytest.raises(ReconciliationConflict) as exc:
            reopen_line(s, lines[1])
        assert exc.value.current_status == "superseded"
        with pytest.raises(ReconciliationConflict):
            reopen_line(s, fresh.id)


def test_reopen_losing_the_insert_race_is_a_conflict(
    db_url: str, lines: list[int], monkeypatch: pytest.MonkeyPatch
):
    with session_scope(database_url=db_url) as s:
        ignore_line(s, lines[2])
    with session_scope(database_url=db_url) as s:
        winner = reopen_line(s, lines[2])

    # Second reopen does not see the winner's copy before inserting its own.
    real_superseded = reconciliation._superseded
    checks: list[int] = []

    def _stale_then_real(session: Session, line_id: int) -> bool:
        checks.append(line_id)
        return False if len(checks) == 1 else real_superseded(session, line_id)

    monkeypatch.setattr(reconciliation, "_superseded", _stale_then_real)
    with session_scope(database_url=db_url) as s:
        with pytest.raises(ReconciliationConflict) as exc:
            reopen_line(s, lines[2])
        assert exc.value.current_status == "superseded"

    with session_scope(database_url=db_url) as s:
        copies = [ln for ln in list_lines(s, "acc-1") if ln.supersedes_id == lines[2]]
    assert [ln.id for ln in copies] == [winner.id]


def test_pending_counts_per_account(db_url: str, lines: list[int]):
    _seed_lines(db_url, "acc-2", (20, "RENDIMENTO", "1.23"))
    with session_scope(database_url=db_url) as s:
        ignore_line(s, lines[2])

    with session_scope(database_url=db_url) as s:
        counts = pending_counts(s)
    assert [(c.account_id, c.account_name, c.pending_count) for c in counts] == [
        ("acc-1", "Conta Corrente", 2),
        ("acc-2", "Poupanca", 1),
    ]

    with session_scope(database_url=db_url) as s:
        ignore_line(s, lines[0])
        ignore_line(s, lines[1])
    with session_scope(database_url=db_url) as s:
        assert [c.account_id for c in pending_counts(s)] == ["acc-2"]


def test_list_lines_filters_by_status(db_url: str, lines: list[int]):
    with session_scope(database_url=db_url) as s:
        ignore_line(s, lines[2])
    with session_scope(database_url=db_url) as s:
        pending = list_lines(s, "acc-1", status=ReconciliationStatus.PENDING)
        everything = list_lines(s, "acc-1")
    assert [ln.id for ln in pending] == lines[:2]
    assert [ln.id for ln in everything] == lines
