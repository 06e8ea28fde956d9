"""Split delimited statement text into a header row and data rows.

The separator is detected by counting candidate characters in the first few
non-empty lines; the actual splitting is delegated to :mod:`csv` so quoted
cells (including embedded separators and doubled quotes) behave the way bank
exports expect.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass

from ..logging_setup import get_logger

# Tie-break order: earlier wins when counts are equal.
SEPARATORS: tuple[str, ...] = (";", ",", "\t")
_SAMPLE_LINES = 5

_logger = get_logger("statement_import.ingest.tokenizer")


@dataclass(frozen=True, slots=True)
class TokenizedTable:
    headers: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]
    separator: str
    # True when the top separator count was shared by another candidate.
    ambiguous: bool = False


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def detect_separator(text: str) -> tuple[str, bool]:
    """Return ``(separator, ambiguous)`` for ``text``.

    Counts ``;``, ``,`` and tab over the first five non-empty lines. The
    highest count wins; ties resolve ``;`` > ``,`` > tab and are reported as
    ambiguous. Text without any candidate falls back to ``;`` (not ambiguous,
    it is a single-column table).
    """

    sample = [ln for ln in normalize_newlines(text).split("\n") if ln.strip()][:_SAMPLE_LINES]
    counts = {sep: sum(ln.count(sep) for ln in sample) for sep in SEPARATORS}
    best = max(counts.values())
    if best == 0:
        return SEPARATORS[0], False
    winners = [sep for sep in SEPARATORS if counts[sep] == best]
    return winners[0], len(winners) > 1


def split_rows(text: str, separator: str) -> list[tuple[str, ...]]:
    """Split ``text`` into trimmed cell tuples, dropping rows with no content."""

    reader = csv.reader(io.StringIO(normalize_newlines(text)), delimiter=separator, quotechar='"')
    rows: list[tuple[str, ...]] = []
    for raw in reader:
        cells = tuple(cell.strip() for cell in raw)
        if not any(cells):
            continue
        rows.append(cells)
    return rows


def tokenize(text: str, *, separator: str | None = None) -> TokenizedTable:
    """Tokenize delimited ``text``; the first surviving row becomes the headers."""

    ambiguous = False
    if separator is None:
        separator, ambiguous = detect_separator(text)
    rows = split_rows(text, separator)
    if ambiguous:
        _logger.warning("tokenize:separator_ambiguous chosen=%r", separator)
    if not rows:
        return TokenizedTable(headers=(), rows=(), separator=separator, ambiguous=ambiguous)
    _logger.debug("tokenize:done separator=%r rows=%d", separator, len(rows) - 1)
    return TokenizedTable(
        headers=rows[0], rows=tuple(rows[1:]), separator=separator, ambiguous=ambiguous
    )


__all__ = ["SEPARATORS", "TokenizedTable", "detect_separator", "split_rows", "tokenize"]
