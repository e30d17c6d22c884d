"""
Module: inventory_kernel.db.triggers
Responsibility: Installing, removing and verifying the database-level
    append-only triggers.  This is the database complement to the ORM
    listeners in db/immutability.py: it also catches raw SQL, bulk
    statements and direct psql / sqlite3 access.
Architecture position: Kernel > DB.  MUST NOT import from models/,
    services/, selectors/ or domain/.

Triggers (same names on both backends):
    trg_movements_no_update, trg_movements_no_delete
    trg_idempotency_no_update, trg_idempotency_no_delete
    trg_balances_no_delete

Failure modes:
    - PostgreSQL RAISE EXCEPTION / SQLite RAISE(ABORT) on any violation,
      surfaced by SQLAlchemy as a DBAPIError whose message starts with
      IMMUTABILITY_VIOLATION.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

# (trigger name, table, operation)
TRIGGER_SPECS = (
    ("trg_movements_no_update", "movements", "UPDATE"),
    ("trg_movements_no_delete", "movements", "DELETE"),
    ("trg_idempotency_no_update", "movement_idempotency_keys", "UPDATE"),
    ("trg_idempotency_no_delete", "movement_idempotency_keys", "DELETE"),
    ("trg_balances_no_delete", "balances", "DELETE"),
)

ALL_TRIGGER_NAMES = [name for name, _, _ in TRIGGER_SPECS]

_PG_FUNCTION = "inventory_reject_mutation"


# =============================================================================
# Statement builders
# =============================================================================


def _postgres_install_statements() -> list[str]:
    statements = [
        f"""
        CREATE OR REPLACE FUNCTION {_PG_FUNCTION}() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'IMMUTABILITY_VIOLATION: % on % is not allowed',
                TG_OP, TG_TABLE_NAME;
        END;
        $$ LANGUAGE plpgsql
        """
    ]
    for name, table, operation in TRIGGER_SPECS:
        statements.append(f"DROP TRIGGER IF EXISTS {name} ON {table}")
        statements.append(
            f"CREATE TRIGGER {name} BEFORE {operation} ON {table} "
            f"FOR EACH ROW EXECUTE FUNCTION {_PG_FUNCTION}()"
        )
    return statements


def _postgres_drop_statements() -> list[str]:
    statements = [
        f"DROP TRIGGER IF EXISTS {name} ON {table}" for name, table, _ in TRIGGER_SPECS
    ]
    statements.append(f"DROP FUNCTION IF EXISTS {_PG_FUNCTION}()")
    return statements


def _sqlite_install_statements() -> list[str]:
    return [
        f"CREATE TRIGGER IF NOT EXISTS {name} BEFORE {operation} ON {table} "
        f"BEGIN SELECT RAISE(ABORT, 'IMMUTABILITY_VIOLATION: {operation} on {table} is not allowed'); END"
        for name, table, operation in TRIGGER_SPECS
    ]


def _sqlite_drop_statements() -> list[str]:
    return [f"DROP TRIGGER IF EXISTS {name}" for name in ALL_TRIGGER_NAMES]


def _statements_for(engine: Engine, install: bool) -> list[str]:
    dialect = engine.dialect.name
    if dialect == "postgresql":
        return _postgres_install_statements() if install else _postgres_drop_statements()
    if dialect == "sqlite":
        return _sqlite_install_statements() if install else _sqlite_drop_statements()
    raise NotImplementedError(f"No immutability triggers for dialect {dialect!r}")


# =============================================================================
# Public API
# =============================================================================


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level append-only triggers.

    Preconditions: Tables must exist (call after create_all()).
    Postconditions: All triggers in ALL_TRIGGER_NAMES are installed.
        Safe to call repeatedly.
    """
    with engine.connect() as conn:
        for statement in _statements_for(engine, install=True):
            conn.execute(text(statement))
        conn.commit()


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove database-level append-only triggers.

    WARNING: Only for tests and schema teardown.
    """
    with engine.connect() as conn:
        for statement in _statements_for(engine, install=False):
            conn.execute(text(statement))
        conn.commit()


def get_installed_triggers(engine: Engine) -> list[str]:
    """List the ledger triggers currently present in the database."""
    if engine.dialect.name == "postgresql":
        query = "SELECT tgname FROM pg_trigger WHERE NOT tgisinternal ORDER BY tgname"
    else:
        query = "SELECT name FROM sqlite_master WHERE type = 'trigger' ORDER BY name"

    expected = set(ALL_TRIGGER_NAMES)
    with engine.connect() as conn:
        return [row[0] for row in conn.execute(text(query)) if row[0] in expected]


def get_missing_triggers(engine: Engine) -> list[str]:
    installed = set(get_installed_triggers(engine))
    return sorted(set(ALL_TRIGGER_NAMES) - installed)


def triggers_installed(engine: Engine) -> bool:
    """True iff every trigger in ALL_TRIGGER_NAMES is installed."""
    return not get_missing_triggers(engine)
