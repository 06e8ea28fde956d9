"""Field normalizers: dates, signed amounts and descriptive text.

Dates
-----
Day-first is tried before year-first: ``DD/MM/YYYY``, ``DD-MM-YY``,
``DD.MM.YYYY`` and then ``YYYY-MM-DD`` (an ISO time suffix is ignored).
Two-digit years below 50 land in the 2000s, the rest in the 1900s.

Amounts
-------
Currency glyphs and whitespace are removed first. A value is negative when
it has a leading or trailing ``-``, is wrapped in parentheses, or carries a
debit marker (``D`` / ``deb`` in any case). Separators are then resolved:

- both ``,`` and ``.`` present: the right-most one is the decimal separator;
- only ``,``: decimal when it appears once with exactly two digits after it,
  thousands otherwise;
- several ``.`` and no ``,``: thousands.

The strict forms raise :class:`UnparsableDate` / :class:`UnparsableAmount`;
:func:`parse_amount` is the lenient form used for credit/debit cells and
returns zero for blanks or junk.
"""

from __future__ import annotations

import re
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ..errors import UnparsableAmount, UnparsableDate

_CENT = Decimal("0.01")

_DMY_RE = re.compile(r"^(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{4}|\d{2})$")
_YMD_RE = re.compile(r"^(\d{4})[/.\-](\d{1,2})[/.\-](\d{1,2})(?:[T ].*)?$")
_DM_RE = re.compile(r"^(\d{1,2})[/.\-](\d{1,2})$")

_CURRENCY_RE = re.compile(r"(R\$|US\$|\$|€|£|¥)")
_DEBIT_MARKER_RE = re.compile(r"deb|d", re.IGNORECASE)
_KEEP_RE = re.compile(r"[^0-9.,]")


def _expand_year(raw: str) -> int:
    year = int(raw)
    if len(raw) == 2:
        year += 2000 if year < 50 else 1900
    return year


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def normalize_date(raw: str | None, *, default_year: int | None = None) -> date:
    """Parse a statement date cell into a calendar date.

    ``default_year`` enables the year-less ``DD/MM`` form used by some
    free-text and PDF statements.
    """

    s = (raw or "").strip()
    if not s:
        raise UnparsableDate(raw or "")

    m = _DMY_RE.match(s)
    if m:
        d = _safe_date(_expand_year(m.group(3)), int(m.group(2)), int(m.group(1)))
        if d is not None:
            return d

    m = _YMD_RE.match(s)
    if m:
        d = _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if d is not None:
            return d

    if default_year is not None:
        m = _DM_RE.match(s)
        if m:
            d = _safe_date(default_year, int(m.group(2)), int(m.group(1)))
            if d is not None:
                return d

    raise UnparsableDate(s)


def _is_negative(s: str) -> bool:
    if s.startswith("-") or s.endswith("-"):
        return True
    if s.startswith("(") and s.endswith(")"):
        return True
    return bool(_DEBIT_MARKER_RE.search(s))


def _resolve_separators(digits: str) -> str:
    has_comma = "," in digits
    has_dot = "." in digits
    if has_comma and has_dot:
        if digits.rfind(",") > digits.rfind("."):
            return digits.replace(".", "").replace(",", ".")
        return digits.replace(",", "")
    if has_comma:
        head, _, tail = digits.rpartition(",")
        if digits.count(",") == 1 and len(tail) == 2:
            return f"{head}.{tail}"
        return digits.replace(",", "")
    if digits.count(".") > 1:
        return digits.replace(".", "")
    return digits


def normalize_amount(raw: str | None) -> Decimal:
    """Parse a signed amount cell into a ``Decimal`` rounded to cents."""

    s = _CURRENCY_RE.sub("", raw or "")
    s = re.sub(r"\s+", "", s)
    if not s:
        raise UnparsableAmount(raw or "")

    negative = _is_negative(s)
    digits = _KEEP_RE.sub("", s)
    if not any(ch.isdigit() for ch in digits):
        raise UnparsableAmount(raw or "")

    try:
        value = Decimal(_resolve_separators(digits)).quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        # Also raised when the value has too many digits to carry cents.
        raise UnparsableAmount(raw or "") from e
    return -value if negative else value


def parse_amount(raw: str | None) -> Decimal:
    """Lenient :func:`normalize_amount`: blanks and junk become zero."""

    try:
        return normalize_amount(raw)
    except UnparsableAmount:
        return Decimal("0.00")


def normalize_text(raw: str | None) -> str:
    """Trim, collapse internal whitespace and upper-case."""

    if raw is None:
        return ""
    return " ".join(raw.split()).upper()


def clean_optional(raw: str | None) -> str | None:
    if raw is None:
        return None
    s = raw.strip()
    return s or None


__all__ = [
    "clean_optional",
    "normalize_amount",
    "normalize_date",
    "normalize_text",
    "parse_amount",
]
