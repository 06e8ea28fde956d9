"""Public entry points of ``statement_import``.

- :func:`parse_statement` / :func:`parse_request`: raw statement to candidates,
  no persistence.
- :func:`import_statement`: parse, dedup against the account's history and
  record pending reconciliation lines in one transaction.
- :func:`import_statements`: several independent imports on a bounded pool.
- :func:`register_account`: mirror an externally owned wallet.

Parsing (including any AI call) always happens before the database
transaction is opened, so a slow extraction never holds the account lock.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any

from db.client import session_scope

from .config import Settings, load_settings
from .errors import DiagnosticCode
from .fingerprint import deduplicate
from .ingest.column_mapper import infer_column_mappings, map_rows
from .ingest.free_text import parse_free_text
from .ingest.tokenizer import tokenize
from .logging_setup import get_logger
from .models import (
    ColumnMapping,
    Diagnostic,
    ImportRequest,
    ImportResult,
    ImportSummary,
    RawStatement,
    SourceFormat,
)
from .pdf_extract import DocumentExtractor, build_extractor
from .persistence import (
    create_import_batch,
    fetch_account_fingerprints,
    insert_pending_lines,
    lock_account,
    upsert_account,
)
from .pmap import p_map

_INFERENCE_SAMPLE_ROWS = 20

_logger = get_logger("statement_import.api")


def parse_statement(
    statement: RawStatement,
    mappings: Sequence[ColumnMapping] | None = None,
    *,
    extractor: DocumentExtractor | None = None,
    settings: Settings | None = None,
    today: date | None = None,
    cancel: threading.Event | None = None,
) -> ImportResult:
    """Parse one statement into candidates plus diagnostics.

    - ``pdf`` goes to ``extractor`` (built from settings when omitted).
    - ``text`` without mappings goes through the free-text line parser.
    - Everything else is tokenized; when ``mappings`` is ``None`` the column
      roles are inferred from the header row and a sample of rows.

    Raises :class:`MissingRequiredColumns` when the (given or inferred)
    mappings cannot produce transactions, and lets
    :class:`ExtractionServiceError` / :class:`ExtractionCancelled` escape
    from the extractor.
    """

    settings = settings or load_settings()
    today = today or date.today()

    if statement.source_format is SourceFormat.PDF:
        extractor = extractor or build_extractor(settings)
        outcome = extractor.extract(
            statement.document_bytes(), file_name=statement.file_name, cancel=cancel
        )
        return ImportResult(transactions=outcome.candidates, diagnostics=outcome.diagnostics)

    text = statement.text()
    if statement.source_format is SourceFormat.TEXT and mappings is None:
        text_candidates, text_diagnostics = parse_free_text(
            text, today=today, date_fallback=settings.date_fallback
        )
        return ImportResult(transactions=text_candidates, diagnostics=text_diagnostics)

    table = tokenize(text)
    diagnostics: list[Diagnostic] = []
    if table.ambiguous:
        diagnostics.append(
            Diagnostic(
                DiagnosticCode.FORMAT_DETECTION_AMBIGUOUS,
                f"Separator detection was ambiguous; using {table.separator!r}",
            )
        )
    if mappings is None:
        mappings = infer_column_mappings(table.headers, table.rows[:_INFERENCE_SAMPLE_ROWS])
        _logger.info(
            "parse_statement:inferred_mappings file_name=%s roles=%s",
            statement.file_name,
            ",".join(f"{m.column_index}:{m.role.value}" for m in mappings),
        )

    candidates, row_diagnostics = map_rows(
        table.rows,
        mappings,
        today=today,
        date_fallback=settings.date_fallback,
        source_format=statement.source_format,
    )
    return ImportResult(
        transactions=candidates,
        diagnostics=diagnostics + row_diagnostics,
        detected_separator=table.separator,
    )


def parse_request(request: ImportRequest, **kwargs: Any) -> ImportResult:
    """Parse a validated wire request (see :class:`ImportRequest`)."""

    return parse_statement(request.to_raw_statement(), request.mappings(), **kwargs)


def import_statement(
    statement: RawStatement,
    *,
    account_id: str,
    mappings: Sequence[ColumnMapping] | None = None,
    database_url: str | None = None,
    extractor: DocumentExtractor | None = None,
    settings: Settings | None = None,
    today: date | None = None,
    cancel: threading.Event | None = None,
) -> ImportSummary:
    """Parse ``statement`` and record new lines as pending for ``account_id``.

    Inside one transaction: take the account import lock, read every
    fingerprint recorded for the account, drop candidates already seen and
    insert the rest with an import batch row. Importing the same file twice
    therefore adds nothing the second time, even when both imports race.
    """

    settings = settings or load_settings()
    result = parse_statement(
        statement,
        mappings,
        extractor=extractor,
        settings=settings,
        today=today,
        cancel=cancel,
    )

    with session_scope(database_url=database_url or settings.database_url) as session:
        lock_account(session, account_id)
        seen = fetch_account_fingerprints(session, account_id)
        dedup = deduplicate(result.transactions, seen)
        batch = create_import_batch(
            session,
            account_id=account_id,
            source_format=statement.source_format,
            file_name=statement.file_name,
            imported_count=len(dedup.unique),
            duplicate_count=dedup.duplicate_count,
        )
        line_ids = insert_pending_lines(
            session, account_id=account_id, batch_id=batch.id, candidates=dedup.unique
        )
        batch_id = batch.id

    _logger.info(
        "import_statement:done account_id=%s batch_id=%s imported=%d duplicates=%d "
        "diagnostics=%d",
        account_id,
        batch_id,
        len(line_ids),
        dedup.duplicate_count,
        len(result.diagnostics),
    )
    return ImportSummary(
        account_id=account_id,
        batch_id=batch_id,
        imported=len(line_ids),
        duplicates=dedup.duplicate_count,
        line_ids=tuple(line_ids),
        diagnostics=tuple(result.diagnostics),
    )


@dataclass(frozen=True, slots=True)
class ImportJob:
    statement: RawStatement
    account_id: str
    mappings: Sequence[ColumnMapping] | None = None


@dataclass(frozen=True, slots=True)
class ImportJobOutcome:
    job: ImportJob
    summary: ImportSummary | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def import_statements(
    jobs: Sequence[ImportJob],
    *,
    database_url: str | None = None,
    extractor: DocumentExtractor | None = None,
    settings: Settings | None = None,
    concurrency: int | None = None,
    today: date | None = None,
) -> list[ImportJobOutcome]:
    """Run independent imports concurrently; one failure never sinks the rest.

    Outcomes are returned in job order. Concurrency defaults to
    ``SI_IMPORT_MAX_WORKERS`` and never exceeds the number of jobs.
    """

    if not jobs:
        return []
    settings = settings or load_settings()
    workers = max(1, min(concurrency or settings.import_max_workers, len(jobs)))

    def _run(job: ImportJob) -> ImportJobOutcome:
        try:
            summary = import_statement(
                job.statement,
                account_id=job.account_id,
                mappings=job.mappings,
                database_url=database_url,
                extractor=extractor,
                settings=settings,
                today=today,
            )
        except Exception as e:  # noqa: BLE001 - isolate per-job failures
            _logger.error(
                "import_statements:job_failed account_id=%s file_name=%s error=%s",
                job.account_id,
                job.statement.file_name,
                e.__class__.__name__,
            )
            return ImportJobOutcome(job=job, error=e)
        return ImportJobOutcome(job=job, summary=summary)

    _logger.info("import_statements:start jobs=%d workers=%d", len(jobs), workers)
    return p_map(jobs, _run, concurrency=workers)


def register_account(
    account_id: str,
    name: str,
    *,
    database_url: str | None = None,
) -> None:
    with session_scope(database_url=database_url) as session:
        upsert_account(session, account_id=account_id, name=name)
    _logger.info("register_account:done account_id=%s", account_id)


__all__ = [
    "ImportJob",
    "ImportJobOutcome",
    "import_statement",
    "import_statements",
    "parse_request",
    "parse_statement",
    "register_account",
]
