"""Reconciliation state machine for imported statement lines.

Public API:
    - :func:`match_transaction`, :func:`accept_instrument_match`,
      :func:`ignore_line` (transitions out of ``pending``)
    - :func:`reopen_line` (correction by superseding a terminal line)
    - :func:`pending_counts`, :func:`list_lines`, :func:`get_line` (reads)

Every transition is a single guarded UPDATE (``WHERE status = 'pending'`` and,
when the caller passes one, ``AND version = :expected``). The loser of a race
sees zero affected rows, re-reads the line and gets
:class:`ReconciliationConflict` carrying the state that won. Functions take an
open ``Session`` and leave commit/rollback to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Any, TypeAlias

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.models.reconciliation import ReconAccount, ReconStatementLine

from .errors import LineNotFound, ReconciliationConflict
from .logging_setup import get_logger

_logger = get_logger("statement_import.reconciliation")


class ReconciliationStatus(StrEnum):
    PENDING = "pending"
    MATCHED = "matched"
    IGNORED = "ignored"


class MatchKind(StrEnum):
    TRANSACTION = "transaction"
    INSTRUMENT = "instrument"


@dataclass(frozen=True, slots=True)
class Pending:
    pass


@dataclass(frozen=True, slots=True)
class Matched:
    target_id: str
    kind: MatchKind


@dataclass(frozen=True, slots=True)
class Ignored:
    pass


LineState: TypeAlias = Pending | Matched | Ignored


@dataclass(frozen=True, slots=True)
class StatementLine:
    """Read model of a persisted statement line."""

    id: int
    account_id: str
    date: date
    description: str
    amount: Decimal
    fingerprint: str
    state: LineState
    version: int
    bank_reference: str | None = None
    counterparty: str | None = None
    is_invoice_payment: bool = False
    suggested_instrument_match: str | None = None
    import_batch_id: str | None = None
    supersedes_id: int | None = None

    @property
    def status(self) -> ReconciliationStatus:
        if isinstance(self.state, Matched):
            return ReconciliationStatus.MATCHED
        if isinstance(self.state, Ignored):
            return ReconciliationStatus.IGNORED
        return ReconciliationStatus.PENDING


@dataclass(frozen=True, slots=True)
class PendingSummary:
    account_id: str
    account_name: str
    pending_count: int


def _state_of(row: ReconStatementLine) -> LineState:
    if row.status == ReconciliationStatus.MATCHED:
        return Matched(target_id=str(row.matched_target_id), kind=MatchKind(row.match_kind))
    if row.status == ReconciliationStatus.IGNORED:
        return Ignored()
    return Pending()


def _to_line(row: ReconStatementLine) -> StatementLine:
    return StatementLine(
        id=row.id,
        account_id=row.account_id,
        date=row.transaction_date,
        description=row.description,
        amount=Decimal(row.amount),
        fingerprint=row.fingerprint,
        state=_state_of(row),
        version=row.version,
        bank_reference=row.bank_reference,
        counterparty=row.counterparty,
        is_invoice_payment=bool(row.is_invoice_payment),
        suggested_instrument_match=row.suggested_instrument_match,
        import_batch_id=row.import_batch_id,
        supersedes_id=row.supersedes_id,
    )


def _load(session: Session, line_id: int) -> ReconStatementLine:
    row = session.get(ReconStatementLine, line_id, populate_existing=True)
    if row is None:
        raise LineNotFound(line_id)
    return row


def get_line(session: Session, line_id: int) -> StatementLine:
    return _to_line(_load(session, line_id))


def _transition(
    session: Session,
    line_id: int,
    *,
    values: dict[str, Any],
    expected_version: int | None,
) -> StatementLine:
    stmt = update(ReconStatementLine).where(
        ReconStatementLine.id == line_id,
        ReconStatementLine.status == ReconciliationStatus.PENDING.value,
    )
    if expected_version is not None:
        stmt = stmt.where(ReconStatementLine.version == expected_version)
    result = session.execute(
        stmt.values(
            **values,
            version=ReconStatementLine.version + 1,
            resolved_at=func.now(),
            updated_at=func.now(),
        ).execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        current = session.execute(
            select(ReconStatementLine.status, ReconStatementLine.version).where(
                ReconStatementLine.id == line_id
            )
        ).one_or_none()
        if current is None:
            raise LineNotFound(line_id)
        _logger.info(
            "reconcile:conflict line_id=%d status=%s version=%d expected_version=%s",
            line_id,
            current.status,
            current.version,
            expected_version,
        )
        raise ReconciliationConflict(line_id, current.status)

    line = _to_line(_load(session, line_id))
    _logger.info(
        "reconcile:transition line_id=%d status=%s version=%d",
        line_id,
        line.status.value,
        line.version,
    )
    return line


def match_transaction(
    session: Session,
    line_id: int,
    *,
    transaction_id: str,
    expected_version: int | None = None,
) -> StatementLine:
    """Link a pending line to an existing ledger transaction."""

    if not transaction_id:
        raise ValueError("transaction_id must be non-empty")
    return _transition(
        session,
        line_id,
        values={
            "status": ReconciliationStatus.MATCHED.value,
            "match_kind": MatchKind.TRANSACTION.value,
            "matched_target_id": transaction_id,
        },
        expected_version=expected_version,
    )


def accept_instrument_match(
    session: Session,
    line_id: int,
    *,
    instrument_id: str | None = None,
    expected_version: int | None = None,
) -> StatementLine:
    """Confirm an invoice-payment line against a credit card instrument.

    Without ``instrument_id`` the line's own suggested issuer key is used.
    """

    row = _load(session, line_id)
    if row.status != ReconciliationStatus.PENDING:
        raise ReconciliationConflict(line_id, row.status)
    target = instrument_id or row.suggested_instrument_match
    if not target:
        raise ValueError(f"line {line_id} has no suggested instrument; pass instrument_id")
    return _transition(
        session,
        line_id,
        values={
            "status": ReconciliationStatus.MATCHED.value,
            "match_kind": MatchKind.INSTRUMENT.value,
            "matched_target_id": target,
        },
        expected_version=expected_version,
    )


def ignore_line(
    session: Session,
    line_id: int,
    *,
    expected_version: int | None = None,
) -> StatementLine:
    return _transition(
        session,
        line_id,
        values={"status": ReconciliationStatus.IGNORED.value},
        expected_version=expected_version,
    )


def reopen_line(session: Session, line_id: int) -> StatementLine:
    """Supersede a matched/ignored line with a fresh pending copy.

    The terminal line is left untouched. Reopening a pending line, or one that
    was already superseded, is a conflict.
    """

    row = _load(session, line_id)
    if row.status == ReconciliationStatus.PENDING:
        raise ReconciliationConflict(line_id, row.status)
    if _superseded(session, line_id):
        raise ReconciliationConflict(line_id, "superseded")

    copy = ReconStatementLine(
        account_id=row.account_id,
        import_batch_id=row.import_batch_id,
        fingerprint=row.fingerprint,
        transaction_date=row.transaction_date,
        description=row.description,
        amount=row.amount,
        bank_reference=row.bank_reference,
        counterparty=row.counterparty,
        is_invoice_payment=row.is_invoice_payment,
        suggested_instrument_match=row.suggested_instrument_match,
        raw_record=dict(row.raw_record or {}),
        status=ReconciliationStatus.PENDING.value,
        version=1,
        supersedes_id=row.id,
    )
    try:
        with session.begin_nested():
            session.add(copy)
            session.flush()
    except IntegrityError:
        # A concurrent reopen inserted its copy first.
        if not _superseded(session, line_id):
            raise
        _logger.info("reconcile:conflict line_id=%d state=superseded", line_id)
        raise ReconciliationConflict(line_id, "superseded") from None
    _logger.info("reconcile:reopen line_id=%d new_line_id=%d", line_id, copy.id)
    return _to_line(_load(session, copy.id))


def _superseded(session: Session, line_id: int) -> bool:
    found = session.execute(
        select(ReconStatementLine.id).where(ReconStatementLine.supersedes_id == line_id)
    ).first()
    return found is not None


def list_lines(
    session: Session,
    account_id: str,
    *,
    status: ReconciliationStatus | None = None,
) -> list[StatementLine]:
    stmt = select(ReconStatementLine).where(ReconStatementLine.account_id == account_id)
    if status is not None:
        stmt = stmt.where(ReconStatementLine.status == status.value)
    stmt = stmt.order_by(ReconStatementLine.transaction_date, ReconStatementLine.id)
    return [_to_line(row) for row in session.scalars(stmt)]


def pending_counts(session: Session) -> list[PendingSummary]:
    """Per-account pending totals for accounts with at least one pending line."""

    stmt = (
        select(ReconAccount.id, ReconAccount.name, func.count(ReconStatementLine.id))
        .join(ReconStatementLine, ReconStatementLine.account_id == ReconAccount.id)
        .where(ReconStatementLine.status == ReconciliationStatus.PENDING.value)
        .group_by(ReconAccount.id, ReconAccount.name)
        .order_by(ReconAccount.name, ReconAccount.id)
    )
    return [
        PendingSummary(account_id=aid, account_name=name, pending_count=int(n))
        for aid, name, n in session.execute(stmt)
    ]


__all__ = [
    "Ignored",
    "LineState",
    "MatchKind",
    "Matched",
    "Pending",
    "PendingSummary",
    "ReconciliationStatus",
    "StatementLine",
    "accept_instrument_match",
    "get_line",
    "ignore_line",
    "list_lines",
    "match_transaction",
    "pending_counts",
    "reopen_line",
]
