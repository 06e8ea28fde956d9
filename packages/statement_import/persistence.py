"""Persistence integration for statement_import.

Functions here read and write the reconciliation tables owned by ``libs/db``.
They take an open ``Session`` and never commit; transaction boundaries belong
to the caller (``db.client.session_scope``).
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from db.models.reconciliation import ReconAccount, ReconImportBatch, ReconStatementLine

from .errors import UnknownAccount
from .models import CanonicalTransactionCandidate, SourceFormat


def upsert_account(session: Session, *, account_id: str, name: str) -> ReconAccount:
    """Create the account mirror, or rename it when it already exists."""

    account = session.get(ReconAccount, account_id)
    if account is None:
        account = ReconAccount(id=account_id, name=name, import_seq=0)
        session.add(account)
    else:
        account.name = name
    session.flush()
    return account


def lock_account(session: Session, account_id: str) -> int:
    """Take the per-account import lock and return the new import sequence.

    The guarded UPDATE holds a row lock on Postgres (and the database write
    lock on SQLite) until the surrounding transaction ends, so concurrent
    imports for the same account run one after the other.
    """

    result = session.execute(
        update(ReconAccount)
        .where(ReconAccount.id == account_id)
        .values(import_seq=ReconAccount.import_seq + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise UnknownAccount(account_id)
    seq = session.execute(
        select(ReconAccount.import_seq).where(ReconAccount.id == account_id)
    ).scalar_one()
    return int(seq)


def fetch_account_fingerprints(session: Session, account_id: str) -> set[str]:
    """Every fingerprint ever recorded for the account, whatever its status."""

    rows = session.execute(
        select(ReconStatementLine.fingerprint).where(ReconStatementLine.account_id == account_id)
    )
    return {fp for (fp,) in rows}


def create_import_batch(
    session: Session,
    *,
    account_id: str,
    source_format: SourceFormat,
    file_name: str | None,
    imported_count: int,
    duplicate_count: int,
) -> ReconImportBatch:
    batch = ReconImportBatch(
        id=uuid.uuid4().hex,
        account_id=account_id,
        source_format=source_format.value,
        file_name=file_name,
        imported_count=imported_count,
        duplicate_count=duplicate_count,
    )
    session.add(batch)
    session.flush()
    return batch


def _raw_record(candidate: CanonicalTransactionCandidate) -> dict[str, object]:
    return {"row": list(candidate.raw_row), "metadata": dict(candidate.metadata)}


def insert_pending_lines(
    session: Session,
    *,
    account_id: str,
    batch_id: str | None,
    candidates: Iterable[CanonicalTransactionCandidate],
) -> list[int]:
    """Insert one pending line per candidate and return the new ids in order."""

    lines: list[ReconStatementLine] = []
    for c in candidates:
        line = ReconStatementLine(
            account_id=account_id,
            import_batch_id=batch_id,
            fingerprint=c.fingerprint,
            transaction_date=c.date,
            description=c.description,
            amount=c.amount,
            bank_reference=c.bank_reference,
            counterparty=c.counterparty,
            is_invoice_payment=c.is_invoice_payment,
            suggested_instrument_match=c.suggested_instrument_match,
            raw_record=_raw_record(c),
            status="pending",
            version=1,
        )
        session.add(line)
        lines.append(line)
    session.flush()
    return [line.id for line in lines]


__all__ = [
    "create_import_batch",
    "fetch_account_fingerprints",
    "insert_pending_lines",
    "lock_account",
    "upsert_account",
]
