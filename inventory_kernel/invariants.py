"""
Kernel Invariants Contract.

These invariants are structural law. They are enforced by the movement
coordinator, database constraints and immutability triggers. No setting in
inventory_config may switch them off; configuration only tunes how hard the
coordinator retries and which lock mode it uses.
"""

from enum import Enum, unique


@unique
class LedgerInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    NON_NEGATIVE_BALANCE = "non_negative_balance"
    """Every balance quantity is >= 0. Enforced by the issue() transition
    before any write and by a CHECK constraint on balances.quantity."""

    LEDGER_AGREEMENT = "ledger_agreement"
    """Balance quantity equals sum(IN) - sum(OUT) of the key's movements.
    Enforced by writing both rows in one transaction; verified by
    LedgerSelector.reconcile()."""

    APPEND_ONLY = "append_only"
    """Movements are never updated or deleted. Enforced by ORM listeners
    (inventory_kernel.db.immutability) and database triggers."""

    VERSION_MONOTONICITY = "version_monotonicity"
    """Each committed mutation of a balance increments its version by one,
    and no two commits share a version. Enforced by the version
    compare-and-swap in BalanceStore.conditional_write."""

    IDEMPOTENCY = "idempotency"
    """A movement submitted with an idempotency key is applied at most once.
    Enforced by the unique constraint on movement_idempotency_keys."""


ALL_LEDGER_INVARIANTS: frozenset[LedgerInvariant] = frozenset(LedgerInvariant)

# The kernel package may not import from these packages.
# Enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "inventory_config",
    "scripts",
)
