"""Shared SQLAlchemy models registry for the workspace database.

Currently holds the statement reconciliation models used by
``statement_import``.
"""

from .reconciliation import Base, ReconAccount, ReconImportBatch, ReconStatementLine

__all__ = [
    "Base",
    "ReconAccount",
    "ReconImportBatch",
    "ReconStatementLine",
]
