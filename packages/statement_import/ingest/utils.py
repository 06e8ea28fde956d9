"""Helpers for reading statement files from disk."""

from __future__ import annotations

from pathlib import Path

from ..models import RawStatement, SourceFormat

_EXTENSION_FORMATS: dict[str, SourceFormat] = {
    ".csv": SourceFormat.CSV,
    ".tsv": SourceFormat.DELIMITED,
    ".txt": SourceFormat.TEXT,
    ".pdf": SourceFormat.PDF,
}


def guess_source_format(path: Path) -> SourceFormat:
    try:
        return _EXTENSION_FORMATS[path.suffix.lower()]
    except KeyError:
        raise ValueError(
            f"Cannot infer statement format from extension {path.suffix!r}; "
            "pass the format explicitly"
        ) from None


def load_statement(path: Path, source_format: SourceFormat | None = None) -> RawStatement:
    """Read ``path`` into a :class:`RawStatement`.

    Text sources are decoded as UTF-8 (BOM tolerated) with a Latin-1 fallback,
    which covers the exports of most Brazilian banks.
    """

    fmt = source_format or guess_source_format(path)
    data = path.read_bytes()
    if fmt is SourceFormat.PDF:
        return RawStatement(source_format=fmt, content=data, file_name=path.name)
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = data.decode("latin-1")
    return RawStatement(source_format=fmt, content=text, file_name=path.name)


__all__ = ["guess_source_format", "load_statement"]
