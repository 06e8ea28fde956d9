"""Score ledger transactions as match candidates for a statement line.

Pure functions; ledger transactions are supplied by the host as plain data.

Scoring (points are additive, a failed gate drops the candidate):

- direction must agree (both inflow or both outflow);
- amount: exact +40, within 1% +20, otherwise dropped;
- date: same day +30, up to 3 days +15, up to 7 days +5, otherwise dropped;
- text similarity (best of description/counterparty against the ledger
  description/supplier): >= 80 +30, >= 50 +15.

Candidates under 40 points are discarded; the rest are returned best first.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from rapidfuzz.distance import Levenshtein

from .models import CanonicalTransactionCandidate
from .reconciliation import StatementLine

_MIN_SCORE = 40
_AMOUNT_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class LedgerTransaction:
    id: str
    date: date
    amount: Decimal
    description: str
    supplier: str | None = None


@dataclass(frozen=True, slots=True)
class MatchSuggestion:
    transaction: LedgerTransaction
    score: int
    reasons: tuple[str, ...]


def text_similarity(a: str | None, b: str | None) -> float:
    """Levenshtein similarity in ``[0, 100]``, case-insensitive."""

    if not a or not b:
        return 0.0
    return Levenshtein.normalized_similarity(a.lower(), b.lower()) * 100.0


def _amount_points(line_amount: Decimal, tx_amount: Decimal) -> tuple[int, str] | None:
    a, b = abs(line_amount), abs(tx_amount)
    if a == b:
        return 40, "exact amount"
    if a and abs(a - b) / a <= _AMOUNT_TOLERANCE:
        return 20, "amount within 1%"
    return None


def _date_points(line_date: date, tx_date: date) -> tuple[int, str] | None:
    days = abs((line_date - tx_date).days)
    if days == 0:
        return 30, "same day"
    if days <= 3:
        return 15, f"{days} day(s) apart"
    if days <= 7:
        return 5, f"{days} days apart"
    return None


def score_transaction(
    line: StatementLine | CanonicalTransactionCandidate,
    tx: LedgerTransaction,
) -> MatchSuggestion | None:
    if (line.amount > 0) != (tx.amount > 0):
        return None

    amount = _amount_points(line.amount, tx.amount)
    if amount is None:
        return None
    when = _date_points(line.date, tx.date)
    if when is None:
        return None

    score = amount[0] + when[0]
    reasons = [amount[1], when[1]]

    similarity = max(
        text_similarity(line.description, tx.description),
        text_similarity(line.description, tx.supplier),
        text_similarity(line.counterparty, tx.supplier),
        text_similarity(line.counterparty, tx.description),
    )
    if similarity >= 80:
        score += 30
        reasons.append("similar description")
    elif similarity >= 50:
        score += 15
        reasons.append("partly similar description")

    if score < _MIN_SCORE:
        return None
    return MatchSuggestion(transaction=tx, score=score, reasons=tuple(reasons))


def suggest_matches(
    line: StatementLine | CanonicalTransactionCandidate,
    ledger: Iterable[LedgerTransaction],
    *,
    limit: int = 5,
) -> list[MatchSuggestion]:
    """Best ``limit`` ledger matches for ``line``; ties keep ledger order."""

    scored = [s for s in (score_transaction(line, tx) for tx in ledger) if s is not None]
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored[:limit]


__all__ = [
    "LedgerTransaction",
    "MatchSuggestion",
    "score_transaction",
    "suggest_matches",
    "text_similarity",
]
