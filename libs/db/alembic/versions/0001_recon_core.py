"""Reconciliation core tables: accounts, import batches, statement lines.

Revision ID: 0001_recon_core
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_recon_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_BigIntId = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "recon_accounts",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("import_seq", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "recon_import_batches",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column(
            "account_id", sa.String(), sa.ForeignKey("recon_accounts.id"), nullable=False
        ),
        sa.Column("source_format", sa.String(), nullable=False),
        sa.Column("file_name", sa.Text(), nullable=True),
        sa.Column("imported_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("duplicate_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_recon_import_batches_account_id", "recon_import_batches", ["account_id"]
    )

    op.create_table(
        "recon_statement_lines",
        sa.Column("id", _BigIntId, primary_key=True, autoincrement=True),
        sa.Column(
            "account_id", sa.String(), sa.ForeignKey("recon_accounts.id"), nullable=False
        ),
        sa.Column(
            "import_batch_id",
            sa.String(32),
            sa.ForeignKey("recon_import_batches.id"),
            nullable=True,
        ),
        sa.Column("fingerprint", sa.Text(), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("bank_reference", sa.Text(), nullable=True),
        sa.Column("counterparty", sa.Text(), nullable=True),
        sa.Column(
            "is_invoice_payment", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        sa.Column("suggested_instrument_match", sa.String(), nullable=True),
        sa.Column("raw_record", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("match_kind", sa.String(), nullable=True),
        sa.Column("matched_target_id", sa.String(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column(
            "supersedes_id",
            _BigIntId,
            sa.ForeignKey("recon_statement_lines.id"),
            nullable=True,
        ),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "status IN ('pending','matched','ignored')", name="ck_recon_lines_status"
        ),
        sa.CheckConstraint(
            "match_kind IS NULL OR match_kind IN ('transaction','instrument')",
            name="ck_recon_lines_match_kind",
        ),
        sa.CheckConstraint(
            "(status = 'matched') = (matched_target_id IS NOT NULL)",
            name="ck_recon_lines_matched_target",
        ),
    )
    op.create_index(
        "ix_recon_lines_account_fingerprint",
        "recon_statement_lines",
        ["account_id", "fingerprint"],
    )
    op.create_index(
        "ix_recon_lines_account_status",
        "recon_statement_lines",
        ["account_id", "status"],
    )
    op.create_index(
        "ux_recon_lines_supersedes_id",
        "recon_statement_lines",
        ["supersedes_id"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_index("ux_recon_lines_supersedes_id", table_name="recon_statement_lines")
    op.drop_index("ix_recon_lines_account_status", table_name="recon_statement_lines")
    op.drop_index("ix_recon_lines_account_fingerprint", table_name="recon_statement_lines")
    op.drop_table("recon_statement_lines")
    op.drop_index("ix_recon_import_batches_account_id", table_name="recon_import_batches")
    op.drop_table("recon_import_batches")
    op.drop_table("recon_accounts")
