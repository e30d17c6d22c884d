"""Write-side services: balance and ledger stores, movement coordinator."""

from inventory_kernel.services.balance_store import BalanceStore
from inventory_kernel.services.ledger_store import LedgerStore
from inventory_kernel.services.movement_coordinator import (
    LOCK_MODE_OPTIMISTIC,
    LOCK_MODE_PESSIMISTIC,
    LOCK_MODES,
    MovementCoordinator,
    RetryPolicy,
)

__all__ = [
    "BalanceStore",
    "LOCK_MODES",
    "LOCK_MODE_OPTIMISTIC",
    "LOCK_MODE_PESSIMISTIC",
    "LedgerStore",
    "MovementCoordinator",
    "RetryPolicy",
]
