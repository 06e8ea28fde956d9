"""statement_import: bank/card statement import, dedup and reconciliation.

Public API is re-exported from :mod:`statement_import.api`; data models live
in :mod:`statement_import.models` and the state machine in
:mod:`statement_import.reconciliation`.
"""

from __future__ import annotations

from .api import (
    ImportJob,
    ImportJobOutcome,
    import_statement,
    import_statements,
    parse_request,
    parse_statement,
    register_account,
)
from .models import (
    CanonicalTransactionCandidate,
    ColumnMapping,
    ColumnRole,
    ImportRequest,
    ImportResult,
    ImportSummary,
    RawStatement,
    SourceFormat,
)

__all__ = [
    "CanonicalTransactionCandidate",
    "ColumnMapping",
    "ColumnRole",
    "ImportJob",
    "ImportJobOutcome",
    "ImportRequest",
    "ImportResult",
    "ImportSummary",
    "RawStatement",
    "SourceFormat",
    "import_statement",
    "import_statements",
    "parse_request",
    "parse_statement",
    "register_account",
]
