"""Content fingerprints and dedup against previously imported lines.

The fingerprint deliberately ignores casing, whitespace and punctuation in the
description so the same economic event re-exported by a bank with cosmetic
drift still collides.
"""

from __future__ import annotations

import re
from collections.abc import Collection, Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from .models import CanonicalTransactionCandidate

_DESCRIPTION_KEY_LEN = 30
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def description_key(description: str) -> str:
    return _NON_ALNUM_RE.sub("", description.lower())[:_DESCRIPTION_KEY_LEN]


def compute_fingerprint(txn_date: date, amount: Decimal, description: str) -> str:
    """Return ``"YYYY-MM-DD|<amount 2dp>|<description key>"``."""

    amt = amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{txn_date.isoformat()}|{amt:.2f}|{description_key(description)}"


@dataclass(slots=True)
class DedupResult:
    unique: list[CanonicalTransactionCandidate] = field(default_factory=list)
    duplicates: list[CanonicalTransactionCandidate] = field(default_factory=list)

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicates)


def deduplicate(
    candidates: Iterable[CanonicalTransactionCandidate],
    seen: Collection[str],
) -> DedupResult:
    """Drop candidates whose fingerprint is already in ``seen``.

    Repeats inside ``candidates`` itself are kept: two identical rows in one
    statement are two events. Input order is preserved.
    """

    result = DedupResult()
    for c in candidates:
        if c.fingerprint in seen:
            result.duplicates.append(c)
        else:
            result.unique.append(c)
    return result


__all__ = ["DedupResult", "compute_fingerprint", "deduplicate", "description_key"]
