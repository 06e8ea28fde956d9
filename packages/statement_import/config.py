"""Environment-driven settings.

Values are read once per :func:`load_settings` call; nothing is read at import
time. Malformed values fall back to defaults rather than failing the import.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal, TypeAlias

DateFallback: TypeAlias = Literal["today", "skip"]
PdfExtractorKind: TypeAlias = Literal["openai", "text"]

_DEFAULT_MODEL = "gpt-5"
_DEFAULT_TIMEOUT_SEC = 60.0
_DEFAULT_MAX_WORKERS = 4
_MAX_WORKERS_CAP = 32


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str | None = None
    extraction_model: str = _DEFAULT_MODEL
    extraction_timeout_sec: float = _DEFAULT_TIMEOUT_SEC
    import_max_workers: int = _DEFAULT_MAX_WORKERS
    date_fallback: DateFallback = "today"
    pdf_extractor: PdfExtractorKind = "openai"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    try:
        value = float(raw) if raw else default
    except ValueError:
        return default
    return value if value > 0 else default


def _env_workers() -> int:
    raw = os.getenv("SI_IMPORT_MAX_WORKERS")
    try:
        value = int(raw) if raw else None
    except ValueError:
        value = None
    if value is None or value < 1:
        return _DEFAULT_MAX_WORKERS
    return min(value, _MAX_WORKERS_CAP)


def load_settings() -> Settings:
    fallback = (os.getenv("SI_DATE_FALLBACK") or "today").strip().lower()
    extractor = (os.getenv("SI_PDF_EXTRACTOR") or "openai").strip().lower()
    return Settings(
        database_url=os.getenv("DATABASE_URL") or None,
        extraction_model=(os.getenv("SI_EXTRACTION_MODEL") or _DEFAULT_MODEL).strip(),
        extraction_timeout_sec=_env_float("SI_EXTRACTION_TIMEOUT_SEC", _DEFAULT_TIMEOUT_SEC),
        import_max_workers=_env_workers(),
        date_fallback="skip" if fallback == "skip" else "today",
        pdf_extractor="text" if extractor == "text" else "openai",
    )


__all__ = ["DateFallback", "PdfExtractorKind", "Settings", "load_settings"]
