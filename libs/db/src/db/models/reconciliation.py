from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY (rowid) columns.
_BigIntId = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------
# Reference: recon_accounts
# ---------------------------


class ReconAccount(Base):
    """Mirror of an externally owned wallet/account.

    ``import_seq`` is bumped by every import for the account; the guarded
    UPDATE doubles as the per-account write lock that serializes imports.
    """

    __tablename__ = "recon_accounts"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    import_seq: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Core: recon_import_batches
# ---------------------------


class ReconImportBatch(Base):
    __tablename__ = "recon_import_batches"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    account_id: Mapped[str] = mapped_column(
        String, ForeignKey("recon_accounts.id"), nullable=False, index=True
    )
    source_format: Mapped[str] = mapped_column(String, nullable=False)
    file_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    imported_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    duplicate_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Core: recon_statement_lines
# ---------------------------


class ReconStatementLine(Base):
    """A statement line awaiting or past reconciliation.

    Lines are never deleted. Once ``status`` leaves ``pending`` the row is
    frozen; corrections create a new pending line pointing back through
    ``supersedes_id``. ``version`` is the optimistic concurrency token.
    """

    __tablename__ = "recon_statement_lines"

    id: Mapped[int] = mapped_column(_BigIntId, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(
        String, ForeignKey("recon_accounts.id"), nullable=False
    )
    import_batch_id: Mapped[str | None] = mapped_column(
        String(32), ForeignKey("recon_import_batches.id"), nullable=True
    )
    fingerprint: Mapped[str] = mapped_column(Text, nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    bank_reference: Mapped[str | None] = mapped_column(Text, nullable=True)
    counterparty: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_invoice_payment: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    suggested_instrument_match: Mapped[str | None] = mapped_column(String, nullable=True)
    raw_record: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'pending'")
    )
    match_kind: Mapped[str | None] = mapped_column(String, nullable=True)
    matched_target_id: Mapped[str | None] = mapped_column(String, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("1"))
    supersedes_id: Mapped[int | None] = mapped_column(
        _BigIntId, ForeignKey("recon_statement_lines.id"), nullable=True
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','matched','ignored')",
            name="ck_recon_lines_status",
        ),
        CheckConstraint(
            "match_kind IS NULL OR match_kind IN ('transaction','instrument')",
            name="ck_recon_lines_match_kind",
        ),
        CheckConstraint(
            "(status = 'matched') = (matched_target_id IS NOT NULL)",
            name="ck_recon_lines_matched_target",
        ),
        Index("ix_recon_lines_account_fingerprint", "account_id", "fingerprint"),
        Index("ix_recon_lines_account_status", "account_id", "status"),
        Index("ux_recon_lines_supersedes_id", "supersedes_id", unique=True),
    )
