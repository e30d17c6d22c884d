"""
ORM-level append-only enforcement (layer 1 of 2).

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here reject:

    Entity             | UPDATE                          | DELETE
    -------------------|---------------------------------|-------
    Movement           | always                          | always
    IdempotencyRecord  | always                          | always
    Balance            | always (through the ORM)        | always

Balances do change, but only through BalanceStore.conditional_write, which
issues a Core ``UPDATE ... WHERE version = ?`` and so never reaches these
listeners.  Any ORM attribute assignment on a loaded Balance followed by a
flush is a bypass of the version check and is refused.

Layer 2 is db/triggers.py, which enforces the same rules inside the
database for raw SQL.

Usage:

    from inventory_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup, idempotent

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_movement_update(mapper, connection, target):
    """Movements are never modified after insert."""
    _block("Movement", target, "UPDATE", "Movements are append-only and cannot be modified")


def _check_movement_delete(mapper, connection, target):
    _block("Movement", target, "DELETE", "Movements are append-only and cannot be deleted")


def _check_idempotency_update(mapper, connection, target):
    _block(
        "IdempotencyRecord", target, "UPDATE",
        "Idempotency records are append-only and cannot be modified",
    )


def _check_idempotency_delete(mapper, connection, target):
    _block(
        "IdempotencyRecord", target, "DELETE",
        "Idempotency records are append-only and cannot be deleted",
    )


def _check_balance_update(mapper, connection, target):
    """Balances change only through a version-conditioned write."""
    _block(
        "Balance", target, "UPDATE",
        "Balances may only change through BalanceStore.conditional_write",
    )


def _check_balance_delete(mapper, connection, target):
    _block("Balance", target, "DELETE", "Balances are never deleted, even at zero quantity")


def _listeners():
    from inventory_kernel.models.balance import Balance
    from inventory_kernel.models.idempotency import IdempotencyRecord
    from inventory_kernel.models.movement import Movement

    return (
        (Movement, "before_update", _check_movement_update),
        (Movement, "before_delete", _check_movement_delete),
        (IdempotencyRecord, "before_update", _check_idempotency_update),
        (IdempotencyRecord, "before_delete", _check_idempotency_delete),
        (Balance, "before_update", _check_balance_update),
        (Balance, "before_delete", _check_balance_delete),
    )


def register_immutability_listeners():
    """
    Register all append-only enforcement listeners.

    Call after models are importable and before any database operations.
    Calling twice is harmless.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove append-only enforcement listeners.

    WARNING: Only use this in tests that must bypass the ORM layer to prove
    the database triggers hold on their own.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)


def immutability_listeners_registered() -> bool:
    return all(
        event.contains(target, event_name, listener_fn)
        for target, event_name, listener_fn in _listeners()
    )
