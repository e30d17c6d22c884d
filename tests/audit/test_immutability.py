"""
Append-only enforcement.

Movements and idempotency records are never modified or deleted, and
balances are never deleted.  Enforced twice: ORM listeners reject the
mutation at flush, and database triggers reject it even when the ORM is
bypassed with raw SQL.
"""

import pytest
from sqlalchemy import delete, select, text, update
from sqlalchemy.exc import DBAPIError

from inventory_kernel.db.engine import get_engine
from inventory_kernel.db.immutability import (
    immutability_listeners_registered,
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from inventory_kernel.db.triggers import (
    ALL_TRIGGER_NAMES,
    get_installed_triggers,
    get_missing_triggers,
    install_immutability_triggers,
    triggers_installed,
    uninstall_immutability_triggers,
)
from inventory_kernel.exceptions import ImmutabilityError, ImmutabilityViolationError
from inventory_kernel.models.balance import Balance
from inventory_kernel.models.idempotency import IdempotencyRecord
from inventory_kernel.models.movement import Movement


@pytest.fixture
def committed(coordinator):
    """One movement with an idempotency record, and its balance row."""
    return coordinator.receive("ZR001", 5, idempotency_key="order-1", note="original")


class TestOrmListeners:

    def test_listeners_are_registered(self, db_engine):
        assert immutability_listeners_registered()

    def test_movement_update_is_blocked(self, committed, session, captured_logs):
        movement = session.get(Movement, committed.id)
        movement.quantity = 500

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        exc = exc_info.value
        assert isinstance(exc, ImmutabilityError)
        assert exc.code == "IMMUTABILITY_VIOLATION"
        assert exc.entity_type == "Movement"
        assert exc.entity_id == str(committed.id)
        [record] = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert record["operation"] == "UPDATE"

    def test_movement_delete_is_blocked(self, committed, session):
        session.delete(session.get(Movement, committed.id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_idempotency_record_update_is_blocked(self, committed, session):
        record = session.execute(select(IdempotencyRecord)).scalar_one()
        record.payload_hash = "0" * 64
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "IdempotencyRecord"

    def test_idempotency_record_delete_is_blocked(self, committed, session):
        session.delete(session.execute(select(IdempotencyRecord)).scalar_one())
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_balance_attribute_update_is_blocked(self, committed, session):
        balance = session.execute(select(Balance)).scalar_one()
        balance.quantity = 1000
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "Balance"

    def test_balance_delete_is_blocked(self, committed, session):
        session.delete(session.execute(select(Balance)).scalar_one())
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_nothing_changed(self, committed, session, ledger_selector):
        movement = session.get(Movement, committed.id)
        movement.note = "tampered"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

        assert ledger_selector.get_movement(committed.id).note == "original"
        assert ledger_selector.reconcile() == []

    def test_register_is_idempotent(self, db_engine):
        register_immutability_listeners()
        register_immutability_listeners()
        assert immutability_listeners_registered()


class TestDatabaseTriggers:
    """Triggers hold with the ORM listeners out of the way."""

    @pytest.fixture
    def without_listeners(self, db_engine):
        unregister_immutability_listeners()
        yield
        register_immutability_listeners()

    def _execute(self, statement, params=None):
        with get_engine().begin() as conn:
            conn.execute(text(statement), params or {})

    def test_all_triggers_installed(self, db_engine):
        assert triggers_installed(db_engine)
        assert sorted(get_installed_triggers(db_engine)) == sorted(ALL_TRIGGER_NAMES)

    @pytest.mark.parametrize(
        "statement",
        [
            "UPDATE movements SET quantity = 500",
            "DELETE FROM movements",
            "UPDATE movement_idempotency_keys SET payload_hash = 'x'",
            "DELETE FROM movement_idempotency_keys",
            "DELETE FROM balances",
        ],
    )
    def test_raw_sql_is_blocked(self, committed, without_listeners, ledger_selector, statement):
        with pytest.raises(DBAPIError, match="IMMUTABILITY_VIOLATION"):
            self._execute(statement)
        assert ledger_selector.list_movements().total == 1
        assert ledger_selector.reconcile() == []

    def test_bulk_orm_statements_are_blocked(self, committed, without_listeners, session):
        with pytest.raises(DBAPIError, match="IMMUTABILITY_VIOLATION"):
            session.execute(update(Movement).values(note="bulk"))
        session.rollback()
        with pytest.raises(DBAPIError, match="IMMUTABILITY_VIOLATION"):
            session.execute(delete(Balance))
        session.rollback()

    def test_orm_update_hits_trigger_without_listener(self, committed, without_listeners, session):
        movement = session.get(Movement, committed.id)
        movement.quantity = 1
        with pytest.raises(DBAPIError, match="IMMUTABILITY_VIOLATION"):
            session.flush()

    def test_balance_updates_are_allowed_at_database_level(self, committed, db_engine):
        # The version-conditioned write is an UPDATE; only DELETE is trapped
        self._execute("UPDATE balances SET updated_at = updated_at")

    def test_uninstall_and_reinstall(self, committed, db_engine):
        uninstall_immutability_triggers(db_engine)
        assert get_missing_triggers(db_engine) == sorted(ALL_TRIGGER_NAMES)
        install_immutability_triggers(db_engine)
        install_immutability_triggers(db_engine)
        assert triggers_installed(db_engine)
