"""Database layer - engine, base classes, triggers and error classification."""

from inventory_kernel.db.base import UUID, Base, UTCDateTime, UUIDString
from inventory_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from inventory_kernel.db.errors import (
    is_timeout_error,
    is_transient_error,
    is_unique_violation,
)

__all__ = [
    "Base",
    "UTCDateTime",
    "UUID",
    "UUIDString",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "is_timeout_error",
    "is_transient_error",
    "is_unique_violation",
    "reset_engine",
    "session_scope",
]
