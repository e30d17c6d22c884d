"""
Balance transitions -- the only two ways a balance may change.

Responsibility:
    Turns a (BalanceState, quantity) pair into a BalanceTransition for a
    receipt or an issue.  The transition is the single argument that
    BalanceStore.conditional_write accepts, so no caller can set quantity or
    version field by field.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Non-negative balance: ``issue`` refuses to go below zero.
    - Version monotonicity: ``after.version == before.version + 1``.

Failure modes:
    - InsufficientStockError from ``issue`` when quantity > available.
    - InvalidQuantityError from ``receive`` when the balance would exceed
      MAX_QUANTITY.
    - ValueError for non-positive quantities (the pre-flight guard rejects
      those earlier; this is a second line).
"""

from __future__ import annotations

from dataclasses import dataclass

from inventory_kernel.domain.validation import INVALID_QUANTITY, FieldError
from inventory_kernel.domain.values import (
    MAX_QUANTITY,
    BalanceKey,
    BalanceState,
    MovementDirection,
)
from inventory_kernel.exceptions import InsufficientStockError, InvalidQuantityError


@dataclass(frozen=True, slots=True)
class BalanceTransition:
    """A single committed step of a balance: before -> after."""

    direction: MovementDirection
    quantity: int
    before: BalanceState
    after: BalanceState

    @property
    def expected_version(self) -> int:
        return self.before.version

    @property
    def creates_row(self) -> bool:
        return self.before.is_new


def _require_positive(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValueError(f"Transition quantity must be a positive integer, got {quantity!r}")


def receive(state: BalanceState, quantity: int) -> BalanceTransition:
    """Apply an IN movement, refusing to overflow the stored balance."""
    _require_positive(quantity)
    if state.quantity + quantity > MAX_QUANTITY:
        raise InvalidQuantityError(
            [
                FieldError(
                    INVALID_QUANTITY,
                    f"balance would exceed {MAX_QUANTITY}",
                    "quantity",
                    {"on_hand": state.quantity, "requested": quantity, "max": MAX_QUANTITY},
                )
            ]
        )
    return BalanceTransition(
        direction=MovementDirection.IN,
        quantity=quantity,
        before=state,
        after=BalanceState(state.quantity + quantity, state.version + 1),
    )


def issue(key: BalanceKey, state: BalanceState, quantity: int) -> BalanceTransition:
    """Apply an OUT movement, refusing to oversell."""
    _require_positive(quantity)
    if state.quantity < quantity:
        raise InsufficientStockError(
            product_code=key.product_code,
            lot_number=key.lot_number,
            expiration_date=key.expiration_date,
            available=state.quantity,
            requested=quantity,
        )
    return BalanceTransition(
        direction=MovementDirection.OUT,
        quantity=quantity,
        before=state,
        after=BalanceState(state.quantity - quantity, state.version + 1),
    )


def plan_transition(
    key: BalanceKey,
    state: BalanceState,
    direction: MovementDirection,
    quantity: int,
) -> BalanceTransition:
    """Dispatch to ``receive`` or ``issue`` by direction."""
    if direction is MovementDirection.IN:
        return receive(state, quantity)
    return issue(key, state, quantity)
