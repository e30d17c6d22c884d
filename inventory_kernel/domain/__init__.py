"""Pure domain layer: value objects, validation, balance transitions, clock."""

from inventory_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from inventory_kernel.domain.product_directory import (
    ProductDirectory,
    StaticProductDirectory,
)
from inventory_kernel.domain.transitions import (
    BalanceTransition,
    issue,
    plan_transition,
    receive,
)
from inventory_kernel.domain.values import (
    BalanceKey,
    BalanceState,
    MovementDirection,
    MovementRequest,
)

__all__ = [
    "BalanceKey",
    "BalanceState",
    "BalanceTransition",
    "Clock",
    "DeterministicClock",
    "MovementDirection",
    "MovementRequest",
    "ProductDirectory",
    "StaticProductDirectory",
    "SystemClock",
    "issue",
    "plan_transition",
    "receive",
]
