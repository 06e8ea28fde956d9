"""db: shared database library (SQLAlchemy/Alembic).

Public exports
--------------
- ``Base`` and ``metadata`` for Alembic targeting
- ORM models in ``db.models.reconciliation`` (re-exported for convenience)
- Engine/session helpers in ``db.client``
"""

from __future__ import annotations

from .models.reconciliation import Base, ReconAccount, ReconImportBatch, ReconStatementLine

# Re-export SQLAlchemy metadata for Alembic's env.py
metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "ReconAccount",
    "ReconImportBatch",
    "ReconStatementLine",
]
