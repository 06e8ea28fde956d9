"""Document extractors for PDF statements.

Public API:
    - :class:`DocumentExtractor` (protocol)
    - :class:`OpenAIStatementExtractor` (default, AI-backed)
    - :class:`PdfTextExtractor` (local text layer + free-text parser)
    - :func:`build_extractor`

The AI call is a black box with a fixed contract: one document in, one reply
out. It runs on a worker thread so the caller can enforce a deadline and
cancel through a ``threading.Event``. HTTP 429/5xx, connection errors and
timeouts are retried with a short jittered backoff before surfacing as
:class:`ExtractionServiceError`. No client is created at import time.
"""

from __future__ import annotations

import io
import random
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Protocol

import pdfplumber
from openai import APIConnectionError, OpenAI

from . import prompting
from .classifier import InvoicePaymentClassifier
from .config import DateFallback, Settings
from .errors import (
    DiagnosticCode,
    ExtractionCancelled,
    ExtractionServiceError,
)
from .extraction import candidates_from_reply, response_text
from .ingest.free_text import parse_free_text
from .logging_setup import get_logger
from .models import CanonicalTransactionCandidate, Diagnostic, SourceFormat

# ---- Tunables (private) ------------------------------------------------------

_MAX_ATTEMPTS: int = 3
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20
_POLL_INTERVAL_SEC: float = 0.1
_MODEL: str = "gpt-5"
_TIMEOUT_SEC: float = 60.0

_logger = get_logger("statement_import.pdf_extract")


@dataclass(slots=True)
class ExtractionOutcome:
    candidates: list[CanonicalTransactionCandidate] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)


class DocumentExtractor(Protocol):
    def extract(
        self,
        document: bytes,
        *,
        file_name: str | None = None,
        cancel: threading.Event | None = None,
    ) -> ExtractionOutcome: ...


# ---- Internal helpers --------------------------------------------------------


class _DeadlineExceeded(TimeoutError):
    pass


def _create_client(timeout_sec: float) -> OpenAI:
    # Retries are handled here, not by the SDK.
    return OpenAI(timeout=timeout_sec, max_retries=0)


def _is_retryable(exc: BaseException) -> bool:
    """True for HTTP 429/5xx, connection failures and timeouts."""

    sc = getattr(exc, "status_code", None)
    if isinstance(sc, int) and (sc == 429 or 500 <= sc < 600):
        return True
    return isinstance(exc, (APIConnectionError, TimeoutError))


def _sleep_backoff(attempt_no: int, cancel: threading.Event | None = None) -> None:
    if attempt_no - 1 < len(_BACKOFF_SCHEDULE_SEC):
        base = _BACKOFF_SCHEDULE_SEC[attempt_no - 1]
    else:
        base = _BACKOFF_SCHEDULE_SEC[-1]
    jitter = base * _JITTER_PCT
    delay = max(0.0, base + random.uniform(-jitter, jitter))
    if cancel is None:
        time.sleep(delay)
    elif cancel.wait(delay):
        raise ExtractionCancelled("extraction cancelled during backoff")


def _call_with_deadline(
    fn: Callable[[], Any],
    *,
    timeout_sec: float,
    cancel: threading.Event | None,
) -> Any:
    """Run ``fn`` on a worker thread, honoring a deadline and a cancel event.

    The worker thread is abandoned (not joined) on cancel or timeout; the SDK
    timeout bounds how long it can linger.
    """

    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="statement-extract")
    try:
        future = pool.submit(fn)
        deadline = time.monotonic() + timeout_sec
        while True:
            if cancel is not None and cancel.is_set():
                future.cancel()
                raise ExtractionCancelled("extraction cancelled by caller")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                future.cancel()
                raise _DeadlineExceeded(f"extraction exceeded {timeout_sec:.1f}s")
            try:
                return future.result(timeout=min(_POLL_INTERVAL_SEC, remaining))
            except FutureTimeout:
                continue
    finally:
        pool.shutdown(wait=False, cancel_futures=True)


# ---- Extractors --------------------------------------------------------------


class OpenAIStatementExtractor:
    """Extract transactions by sending the document to the OpenAI Responses API."""

    def __init__(
        self,
        *,
        model: str = _MODEL,
        timeout_sec: float = _TIMEOUT_SEC,
        classifier: InvoicePaymentClassifier | None = None,
    ) -> None:
        self.model = model
        self.timeout_sec = timeout_sec
        self._classifier = classifier

    def extract(
        self,
        document: bytes,
        *,
        file_name: str | None = None,
        cancel: threading.Event | None = None,
    ) -> ExtractionOutcome:
        instructions = prompting.build_system_instructions()
        payload = prompting.build_input(document, file_name=file_name)
        text_cfg = prompting.build_text_config()

        _logger.info(
            "extract_document:llm file_name=%s bytes=%d model=%s",
            file_name,
            len(document),
            self.model,
        )
        client = _create_client(self.timeout_sec)
        attempt = 1
        while True:
            if cancel is not None and cancel.is_set():
                raise ExtractionCancelled("extraction cancelled by caller")
            t0 = time.perf_counter()
            try:
                resp = _call_with_deadline(
                    lambda: client.responses.create(
                        model=self.model,
                        instructions=instructions,
                        input=payload,
                        text=text_cfg,
                    ),
                    timeout_sec=self.timeout_sec,
                    cancel=cancel,
                )
            except ExtractionCancelled:
                _logger.info(
                    "extract_document:cancelled file_name=%s attempt=%d", file_name, attempt
                )
                raise
            except Exception as e:  # noqa: BLE001
                dt_ms = (time.perf_counter() - t0) * 1000.0
                retryable = _is_retryable(e)
                if attempt >= _MAX_ATTEMPTS or not retryable:
                    _logger.error(
                        "extract_document:failed_terminal file_name=%s latency_ms=%.2f error=%s "
                        "attempt=%d",
                        file_name,
                        dt_ms,
                        e.__class__.__name__,
                        attempt,
                    )
                    raise ExtractionServiceError(
                        f"document extraction failed after {attempt} attempt(s): {e}",
                        retryable=retryable,
                    ) from e
                _logger.warning(
                    "extract_document:retry file_name=%s latency_ms=%.2f error=%s attempt=%d",
                    file_name,
                    dt_ms,
                    e.__class__.__name__,
                    attempt,
                )
                _sleep_backoff(attempt, cancel)
                attempt += 1
                continue

            try:
                text = response_text(resp)
            except ValueError:
                text = ""
            candidates, diagnostics = candidates_from_reply(text, classifier=self._classifier)
            _logger.info(
                "extract_document:done file_name=%s candidates=%d latency_ms=%.2f",
                file_name,
                len(candidates),
                (time.perf_counter() - t0) * 1000.0,
            )
            return ExtractionOutcome(candidates=candidates, diagnostics=diagnostics)


class PdfTextExtractor:
    """Read the PDF text layer with pdfplumber and parse it as free text.

    Works offline and costs nothing, but only for PDFs with a text layer and a
    simple one-transaction-per-line layout.
    """

    def __init__(
        self,
        *,
        date_fallback: DateFallback = "today",
        today: date | None = None,
        classifier: InvoicePaymentClassifier | None = None,
    ) -> None:
        self.date_fallback: DateFallback = date_fallback
        self._today = today
        self._classifier = classifier

    def extract(
        self,
        document: bytes,
        *,
        file_name: str | None = None,
        cancel: threading.Event | None = None,
    ) -> ExtractionOutcome:
        pages: list[str] = []
        try:
            with pdfplumber.open(io.BytesIO(document)) as pdf:
                for page in pdf.pages:
                    if cancel is not None and cancel.is_set():
                        raise ExtractionCancelled("extraction cancelled by caller")
                    pages.append(page.extract_text() or "")
        except ExtractionCancelled:
            raise
        except Exception as e:  # noqa: BLE001 - pdfminer raises a variety of types
            raise ExtractionServiceError(f"could not read PDF {file_name!r}: {e}") from e

        candidates, diagnostics = parse_free_text(
            "\n".join(pages),
            today=self._today or date.today(),
            date_fallback=self.date_fallback,
            source_format=SourceFormat.PDF,
            classifier=self._classifier,
        )
        if not candidates and not diagnostics:
            diagnostics.append(
                Diagnostic(
                    DiagnosticCode.COULD_NOT_PARSE_DOCUMENT,
                    f"Could not parse document: no transactions found in {len(pages)} page(s)",
                )
            )
        _logger.info(
            "extract_document:text_done file_name=%s pages=%d candidates=%d",
            file_name,
            len(pages),
            len(candidates),
        )
        return ExtractionOutcome(candidates=candidates, diagnostics=diagnostics)


def build_extractor(settings: Settings) -> DocumentExtractor:
    if settings.pdf_extractor == "text":
        return PdfTextExtractor(date_fallback=settings.date_fallback)
    return OpenAIStatementExtractor(
        model=settings.extraction_model, timeout_sec=settings.extraction_timeout_sec
    )


__all__ = [
    "DocumentExtractor",
    "ExtractionOutcome",
    "OpenAIStatementExtractor",
    "PdfTextExtractor",
    "build_extractor",
]
