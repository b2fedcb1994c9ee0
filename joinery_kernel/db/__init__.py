"""Database layer - engine, base classes and session scope."""

from joinery_kernel.db.base import Base, TrackedBase, new_id
from joinery_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "new_id",
    "create_tables",
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
]
