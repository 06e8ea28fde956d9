"""Pytest configuration for test isolation.

Settings are read from the environment on every call, so a developer's shell
(or a local ``.env``) could leak ``SI_*`` or ``DATABASE_URL`` values into
tests. The autouse fixture clears them, and each test that needs a database
gets its own SQLite file under ``tmp_path``.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from db.client import dispose_engines

from tests.helpers.db import bootstrap_sqlite_db

_ENV_VARS = (
    "DATABASE_URL",
    "SI_DATE_FALLBACK",
    "SI_EXTRACTION_MODEL",
    "SI_EXTRACTION_TIMEOUT_SEC",
    "SI_IMPORT_MAX_WORKERS",
    "SI_PDF_EXTRACTOR",
    "STATEMENT_IMPORT_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # The OpenAI client is always stubbed; a dummy key keeps SDK construction happy.
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")


@pytest.fixture
def db_url(tmp_path: Path) -> Iterator[str]:
    url = bootstrap_sqlite_db(tmp_path / "recon.sqlite3")
    yield url
    dispose_engines()
