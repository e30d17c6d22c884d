"""ORM models for the stock ledger."""

from inventory_kernel.models.balance import Balance
from inventory_kernel.models.idempotency import IdempotencyRecord
from inventory_kernel.models.movement import Movement

__all__ = [
    "Balance",
    "IdempotencyRecord",
    "Movement",
]
