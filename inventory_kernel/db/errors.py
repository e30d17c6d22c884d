"""
Module: inventory_kernel.db.errors
Responsibility: Classifies DBAPI failures so the coordinator can decide
    between retrying an attempt and failing the request.
Architecture position: Kernel > DB.  Depends on sqlalchemy.exc only; the
    driver error is inspected through ``exc.orig`` so no driver is imported.

Classification:
    transient   -- PostgreSQL serialization failure (40001), deadlock
                   (40P01); SQLite "database is locked" / "busy".
    timeout     -- PostgreSQL query_canceled (57014), raised when
                   statement_timeout fires.
    unique      -- unique constraint violation (23505 / SQLite UNIQUE).
"""

from sqlalchemy.exc import DBAPIError, IntegrityError

TRANSIENT_PGCODES = frozenset({"40001", "40P01"})
TIMEOUT_PGCODES = frozenset({"57014"})
UNIQUE_VIOLATION_PGCODE = "23505"

_SQLITE_TRANSIENT_MESSAGES = (
    "database is locked",
    "database table is locked",
    "database is busy",
)


def _pgcode(exc: BaseException) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None)


def is_transient_error(exc: BaseException) -> bool:
    """True when retrying the whole transaction may succeed."""
    if not isinstance(exc, DBAPIError):
        return False
    if _pgcode(exc) in TRANSIENT_PGCODES:
        return True
    message = str(exc.orig).lower()
    return any(m in message for m in _SQLITE_TRANSIENT_MESSAGES)


def is_timeout_error(exc: BaseException) -> bool:
    """True when the database cancelled a statement on its timeout."""
    return isinstance(exc, DBAPIError) and _pgcode(exc) in TIMEOUT_PGCODES


def is_unique_violation(exc: BaseException) -> bool:
    if not isinstance(exc, IntegrityError):
        return False
    if _pgcode(exc) == UNIQUE_VIOLATION_PGCODE:
        return True
    return "unique constraint failed" in str(exc.orig).lower()
