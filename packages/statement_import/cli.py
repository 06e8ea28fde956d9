"""CLI for the ``statement_import`` package.

Command handlers (``cmd_*``) return process exit codes and print results to
stdout, errors to stderr. The Typer app wraps them. Environment variables
(``DATABASE_URL``, ``OPENAI_API_KEY``, ``SI_*``) are loaded from a local
``.env`` with ``python-dotenv`` in the root callback. Business logic lives in
``statement_import.api`` and ``statement_import.reconciliation``.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv

from .errors import StatementImportError
from .logging_setup import configure_logging
from .models import ColumnMapping, ColumnRole, RawStatement, SourceFormat

# ---- Small module-level helpers ----------------------------------------------


def parse_mapping_spec(spec: str) -> list[ColumnMapping]:
    """Parse ``"0:date,1:description,2:amount"`` into column mappings."""

    out: list[ColumnMapping] = []
    for part in spec.split(","):
        part = part.strip()
        if not part:
            continue
        idx_s, sep, role_s = part.partition(":")
        if not sep:
            raise ValueError(f"bad mapping {part!r}; expected INDEX:ROLE")
        try:
            out.append(ColumnMapping(column_index=int(idx_s), role=ColumnRole(role_s.strip())))
        except ValueError as e:
            raise ValueError(f"bad mapping {part!r}: {e}") from e
    return out


def _load(path: Path, fmt: str | None) -> RawStatement:
    from .ingest.utils import load_statement

    return load_statement(path, SourceFormat(fmt) if fmt else None)


# ---- Command handlers ----------------------------------------------------------


def cmd_parse(path: Path, *, fmt: str | None = None, mapping: str | None = None) -> int:
    """Parse a statement file and print the candidates as JSON."""

    from .api import parse_statement

    try:
        mappings = parse_mapping_spec(mapping) if mapping else None
        statement = _load(path, fmt)
    except FileNotFoundError:
        print(f"Error: File not found: {path}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        result = parse_statement(statement, mappings)
    except StatementImportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result.to_wire(), ensure_ascii=False, indent=2))
    return 0


def cmd_import(
    paths: Sequence[Path],
    *,
    account_id: str,
    fmt: str | None = None,
    mapping: str | None = None,
    database_url: str | None = None,
) -> int:
    """Import one or more statement files into an account's reconciliation queue."""

    from .api import ImportJob, import_statements

    try:
        mappings = parse_mapping_spec(mapping) if mapping else None
        jobs = [
            ImportJob(statement=_load(p, fmt), account_id=account_id, mappings=mappings)
            for p in paths
        ]
    except FileNotFoundError as e:
        print(f"Error: File not found: {e.filename}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    exit_code = 0
    for outcome in import_statements(jobs, database_url=database_url):
        name = outcome.job.statement.file_name
        if outcome.summary is None:
            print(f"Error: {name}: {outcome.error}", file=sys.stderr)
            exit_code = 1
            continue
        s = outcome.summary
        print(f"{name}: imported={s.imported} duplicates={s.duplicates} batch={s.batch_id}")
        for msg in s.errors:
            print(f"  warning: {msg}", file=sys.stderr)
    return exit_code


def cmd_add_account(account_id: str, name: str, *, database_url: str | None = None) -> int:
    from .api import register_account

    register_account(account_id, name, database_url=database_url)
    print(f"account {account_id} saved")
    return 0


def cmd_pending(*, database_url: str | None = None) -> int:
    from db.client import session_scope

    from .reconciliation import pending_counts

    with session_scope(database_url=database_url) as session:
        rows = pending_counts(session)
    if not rows:
        print("No pending statement lines.")
        return 0
    for r in rows:
        print(f"{r.account_id}\t{r.account_name}\t{r.pending_count}")
    return 0


def cmd_lines(
    account_id: str, *, status: str | None = None, database_url: str | None = None
) -> int:
    from db.client import session_scope

    from .reconciliation import ReconciliationStatus, list_lines

    try:
        wanted = ReconciliationStatus(status) if status else None
    except ValueError:
        print(f"Error: unknown status {status!r}", file=sys.stderr)
        return 1
    with session_scope(database_url=database_url) as session:
        lines = list_lines(session, account_id, status=wanted)
    for ln in lines:
        flag = f" invoice:{ln.suggested_instrument_match or '?'}" if ln.is_invoice_payment else ""
        print(
            f"{ln.id}\t{ln.date.isoformat()}\t{ln.amount:.2f}\t{ln.status.value}"
            f"\tv{ln.version}\t{ln.description}{flag}"
        )
    return 0


def cmd_transition(
    action: str,
    line_id: int,
    *,
    target: str | None = None,
    expected_version: int | None = None,
    database_url: str | None = None,
) -> int:
    """Apply ``match`` / ``accept`` / ``ignore`` / ``reopen`` to one line."""

    from db.client import session_scope

    from . import reconciliation as recon

    try:
        with session_scope(database_url=database_url) as session:
            if action == "match":
                line = recon.match_transaction(
                    session,
                    line_id,
                    transaction_id=target or "",
                    expected_version=expected_version,
                )
            elif action == "accept":
                line = recon.accept_instrument_match(
                    session, line_id, instrument_id=target, expected_version=expected_version
                )
            elif action == "ignore":
                line = recon.ignore_line(session, line_id, expected_version=expected_version)
            elif action == "reopen":
                line = recon.reopen_line(session, line_id)
            else:
                raise ValueError(f"unknown action {action!r}")
    except (StatementImportError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(f"line {line.id}: {line.status.value} (version {line.version})")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank/card statements (CSV, text, PDF), deduplicate them and work "
        "the per-account reconciliation queue. Loads .env before running."
    ),
)

_FORMAT_HELP = "Statement format (csv, delimited, text, pdf); inferred from extension."
_MAPPING_HELP = "Column roles as INDEX:ROLE pairs, e.g. '0:date,1:description,2:amount'."
_DB_HELP = "Override DATABASE_URL (falls back to env var)."


@app.command("parse")
def parse_cmd(
    path: Annotated[Path, typer.Argument(help="Statement file to parse.")],
    fmt: Annotated[str | None, typer.Option("--format", help=_FORMAT_HELP)] = None,
    mapping: Annotated[str | None, typer.Option("--map", help=_MAPPING_HELP)] = None,
) -> None:
    """Parse a statement and print canonical candidates as JSON (no DB writes)."""

    raise typer.Exit(cmd_parse(path, fmt=fmt, mapping=mapping))


@app.command("import")
def import_cmd(
    paths: Annotated[list[Path], typer.Argument(help="Statement files to import.")],
    account: Annotated[str, typer.Option("--account", help="Target account id.")],
    fmt: Annotated[str | None, typer.Option("--format", help=_FORMAT_HELP)] = None,
    mapping: Annotated[str | None, typer.Option("--map", help=_MAPPING_HELP)] = None,
    database_url: Annotated[str | None, typer.Option(help=_DB_HELP)] = None,
) -> None:
    """Import statements into the reconciliation queue, skipping known lines."""

    raise typer.Exit(
        cmd_import(paths, account_id=account, fmt=fmt, mapping=mapping, database_url=database_url)
    )


@app.command("add-account")
def add_account_cmd(
    account_id: Annotated[str, typer.Argument(help="Wallet/account id.")],
    name: Annotated[str, typer.Argument(help="Display name.")],
    database_url: Annotated[str | None, typer.Option(help=_DB_HELP)] = None,
) -> None:
    """Create or rename the local mirror of a wallet/account."""

    raise typer.Exit(cmd_add_account(account_id, name, database_url=database_url))


@app.command("pending")
def pending_cmd(
    database_url: Annotated[str | None, typer.Option(help=_DB_HELP)] = None,
) -> None:
    """Show pending line counts per account."""

    raise typer.Exit(cmd_pending(database_url=database_url))


@app.command("lines")
def lines_cmd(
    account: Annotated[str, typer.Argument(help="Account id.")],
    status: Annotated[
        str | None, typer.Option(help="Filter by status (pending, matched, ignored).")
    ] = None,
    database_url: Annotated[str | None, typer.Option(help=_DB_HELP)] = None,
) -> None:
    """List statement lines for an account."""

    raise typer.Exit(cmd_lines(account, status=status, database_url=database_url))


_VERSION_HELP = "Reject the change unless the line is still at this version."


@app.command("match")
def match_cmd(
    line_id: Annotated[int, typer.Argument(help="Statement line id.")],
    transaction_id: Annotated[str, typer.Argument(help="Ledger transaction id.")],
    expected_version: Annotated[int | None, typer.Option(help=_VERSION_HELP)] = None,
    database_url: Annotated[str | None, typer.Option(help=_DB_HELP)] = None,
) -> None:
    """Match a pending line to a ledger transaction."""

    raise typer.Exit(
        cmd_transition(
            "match",
            line_id,
            target=transaction_id,
            expected_version=expected_version,
            database_url=database_url,
        )
    )


@app.command("accept-suggestion")
def accept_cmd(
    line_id: Annotated[int, typer.Argument(help="Statement line id.")],
    instrument: Annotated[
        str | None, typer.Option(help="Instrument id; defaults to the suggested issuer.")
    ] = None,
    expected_version: Annotated[int | None, typer.Option(help=_VERSION_HELP)] = None,
    database_url: Annotated[str | None, typer.Option(help=_DB_HELP)] = None,
) -> None:
    """Accept the suggested credit card for an invoice payment line."""

    raise typer.Exit(
        cmd_transition(
            "accept",
            line_id,
            target=instrument,
            expected_version=expected_version,
            database_url=database_url,
        )
    )


@app.command("ignore")
def ignore_cmd(
    line_id: Annotated[int, typer.Argument(help="Statement line id.")],
    expected_version: Annotated[int | None, typer.Option(help=_VERSION_HELP)] = None,
    database_url: Annotated[str | None, typer.Option(help=_DB_HELP)] = None,
) -> None:
    """Mark a pending line as ignored."""

    raise typer.Exit(
        cmd_transition(
            "ignore", line_id, expected_version=expected_version, database_url=database_url
        )
    )


@app.command("reopen")
def reopen_cmd(
    line_id: Annotated[int, typer.Argument(help="Matched or ignored line id.")],
    database_url: Annotated[str | None, typer.Option(help=_DB_HELP)] = None,
) -> None:
    """Supersede a matched/ignored line with a new pending copy."""

    raise typer.Exit(cmd_transition("reopen", line_id, database_url=database_url))


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
