"""Database layer: declarative base, engine and session management."""

from ledger_kernel.db.base import Base, TrackedBase, UUIDString
from ledger_kernel.db.engine import (
    create_engine_from_url,
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "create_engine_from_url",
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "Base",
    "TrackedBase",
    "UUIDString",
]
