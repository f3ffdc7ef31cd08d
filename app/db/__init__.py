"""Database bootstrap utilities for the survey flow service.

Exposes engine construction and the SQL migrations runner that
applies files from the top-level migrations/ directory. Repositories in
`app/logic/` use the engine directly; no ORM models leak into the engine.
"""

from app.db.base import get_engine, reset_engine
from app.db.migrations_runner import apply_migrations

__all__ = [
    "get_engine",
    "reset_engine",
    "apply_migrations",
]
