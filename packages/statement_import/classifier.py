"""Heuristic credit-card invoice payment classifier.

Rules live in a versioned JSON table shipped with the package
(``rules/classifier_rules.v1.json``) so they can be reviewed and extended
without touching code. The classification is advisory: it flags a row and
suggests an issuer key, it never decides anything on its own.
"""

from __future__ import annotations

import json
import re
import unicodedata
from collections.abc import Sequence
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .logging_setup import get_logger

_DEFAULT_RULES = "classifier_rules.v1.json"

_logger = get_logger("statement_import.classifier")


def _check_regex(pattern: str) -> None:
    try:
        re.compile(pattern)
    except re.error as e:
        raise ValueError(f"invalid pattern {pattern!r}: {e}") from e


class IssuerRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str = Field(min_length=1)
    pattern: str = Field(min_length=1)

    @field_validator("key")
    @classmethod
    def _lower_key(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("pattern")
    @classmethod
    def _compiles(cls, v: str) -> str:
        _check_regex(v)
        return v


class RuleTable(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: int = Field(ge=1)
    invoice_payment_patterns: tuple[str, ...]
    issuers: tuple[IssuerRule, ...]

    @field_validator("invoice_payment_patterns")
    @classmethod
    def _patterns_compile(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for p in v:
            _check_regex(p)
        return v


@dataclass(frozen=True, slots=True)
class Classification:
    is_invoice_payment: bool
    suggested_instrument_match: str | None = None


class InvoicePaymentClassifier:
    """Compiled form of a :class:`RuleTable`."""

    def __init__(self, table: RuleTable) -> None:
        self.version = table.version
        self._invoice = tuple(re.compile(p, re.IGNORECASE) for p in table.invoice_payment_patterns)
        self._issuers = tuple(
            (rule.key, re.compile(rule.pattern, re.IGNORECASE)) for rule in table.issuers
        )

    def is_invoice_payment(self, description: str) -> bool:
        return any(p.search(description) for p in self._invoice)

    def match_issuer(self, description: str) -> str | None:
        for key, pattern in self._issuers:
            if pattern.search(description):
                return key
        return None

    def classify(self, description: str) -> Classification:
        if not self.is_invoice_payment(description):
            return Classification(is_invoice_payment=False)
        return Classification(
            is_invoice_payment=True, suggested_instrument_match=self.match_issuer(description)
        )


def load_rule_table(path: Path | None = None) -> RuleTable:
    if path is None:
        raw = resources.files("statement_import.rules").joinpath(_DEFAULT_RULES).read_text(
            encoding="utf-8"
        )
    else:
        raw = path.read_text(encoding="utf-8")
    return RuleTable.model_validate(json.loads(raw))


@lru_cache(maxsize=1)
def default_classifier() -> InvoicePaymentClassifier:
    table = load_rule_table()
    _logger.debug(
        "classifier:rules_loaded version=%d invoice_patterns=%d issuers=%d",
        table.version,
        len(table.invoice_payment_patterns),
        len(table.issuers),
    )
    return InvoicePaymentClassifier(table)


def classify(description: str) -> Classification:
    return default_classifier().classify(description)


# ---- Instrument resolution -----------------------------------------------------


@dataclass(frozen=True, slots=True)
class Instrument:
    """A user-owned financial instrument (credit card) consumed as plain data."""

    id: str
    name: str
    bank: str | None = None


def _fold(value: str) -> str:
    s = unicodedata.normalize("NFKD", value)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    return " ".join(s.split()).casefold()


def resolve_instrument(
    suggestion: str | None, instruments: Sequence[Instrument]
) -> Instrument | None:
    """Pick the first instrument whose bank or name mentions the issuer key.

    Bank matches win over name matches. Returns ``None`` when there is no
    suggestion or nothing matches.
    """

    if not suggestion:
        return None
    key = re.compile(rf"\b{re.escape(_fold(suggestion))}\b")
    for inst in instruments:
        if inst.bank and key.search(_fold(inst.bank)):
            return inst
    for inst in instruments:
        if key.search(_fold(inst.name)):
            return inst
    return None


__all__ = [
    "Classification",
    "Instrument",
    "InvoicePaymentClassifier",
    "RuleTable",
    "classify",
    "default_classifier",
    "load_rule_table",
    "resolve_instrument",
]
