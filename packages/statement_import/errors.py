"""Exception types and diagnostic codes for ``statement_import``.

Every error raised on purpose by the package derives from
:class:`StatementImportError` so hosts can catch the whole family at once.
Row-level problems (bad dates, bad amounts, unparseable AI output) are usually
converted into :class:`~statement_import.models.Diagnostic` entries instead of
escaping; the exception classes still exist so strict callers can opt in.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum


class DiagnosticCode(StrEnum):
    FORMAT_DETECTION_AMBIGUOUS = "format_detection_ambiguous"
    UNPARSABLE_DATE = "unparsable_date"
    UNPARSABLE_AMOUNT = "unparsable_amount"
    DATE_DEFAULTED = "date_defaulted"
    COULD_NOT_PARSE_DOCUMENT = "could_not_parse_document"
    INVALID_EXTRACTED_ITEM = "invalid_extracted_item"


class StatementImportError(Exception):
    """Base class for all package errors."""


class MissingRequiredColumns(StatementImportError):
    """The column mappings do not cover the roles needed to build a transaction."""

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing: tuple[str, ...] = tuple(missing)
        super().__init__("Missing required column roles: " + ", ".join(self.missing))


class UnparsableDate(StatementImportError, ValueError):
    def __init__(self, raw: str) -> None:
        self.raw = raw
        super().__init__(f"Unparsable date: {raw!r}")


class UnparsableAmount(StatementImportError, ValueError):
    def __init__(self, raw: str) -> None:
        self.raw = raw
        super().__init__(f"Unparsable amount: {raw!r}")


class ExtractionServiceError(StatementImportError):
    """The document extraction service failed or could not be reached.

    ``retryable`` tells the caller whether submitting the same document again
    later has a reasonable chance of succeeding (rate limits, 5xx, timeouts).
    """

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        self.retryable = retryable
        super().__init__(message)


class ExtractionCancelled(StatementImportError):
    """The caller cancelled an in-flight extraction."""


class UnknownAccount(StatementImportError, LookupError):
    def __init__(self, account_id: str) -> None:
        self.account_id = account_id
        super().__init__(f"Unknown account: {account_id!r}")


class LineNotFound(StatementImportError, LookupError):
    def __init__(self, line_id: int) -> None:
        self.line_id = line_id
        super().__init__(f"Statement line not found: {line_id}")


class ReconciliationConflict(StatementImportError):
    """A transition lost against a concurrent or earlier terminal transition."""

    def __init__(self, line_id: int, current_status: str) -> None:
        self.line_id = line_id
        self.current_status = current_status
        super().__init__(
            f"Statement line {line_id} is already {current_status}; transition rejected"
        )


__all__ = [
    "DiagnosticCode",
    "ExtractionCancelled",
    "ExtractionServiceError",
    "LineNotFound",
    "MissingRequiredColumns",
    "ReconciliationConflict",
    "StatementImportError",
    "UnknownAccount",
    "UnparsableAmount",
    "UnparsableDate",
]
