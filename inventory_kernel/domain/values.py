"""
Values -- Immutable domain value objects for the stock ledger.

Responsibility:
    Provides the value types every other layer speaks in: the movement
    direction, the composite balance key, a validated movement request, and
    the (quantity, version) state of a balance.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by models, services and selectors.

Invariants enforced:
    - BalanceKey equality is exact on all three components; an absent lot or
      expiration date never equals a present one.
    - BalanceState quantity and version are never negative.

Failure modes:
    - ValueError on construction of a BalanceState with negative fields or a
      BalanceKey with an empty product code.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any

from inventory_kernel.utils.hashing import balance_key_digest, hash_payload


class MovementDirection(str, Enum):
    """Which way stock moves.

    Contract: IN adds to the balance, OUT subtracts from it.
    Guarantees: Movement quantities are always positive; the direction
    carries the sign.
    """

    IN = "IN"
    OUT = "OUT"

    @property
    def sign(self) -> int:
        return 1 if self is MovementDirection.IN else -1


@dataclass(frozen=True, slots=True)
class BalanceKey:
    """
    Composite identity of a balance: (product, lot, expiration).

    Contract:
        Two keys are equal only when all three components match exactly.
        ``None`` means the component is absent.

    Guarantees:
        - Immutable and hashable.
        - ``digest`` is deterministic and distinguishes absent from present
          components.
    """

    product_code: str
    lot_number: str | None = None
    expiration_date: date | None = None

    def __post_init__(self) -> None:
        if not self.product_code:
            raise ValueError("BalanceKey requires a product code")

    @property
    def digest(self) -> str:
        return balance_key_digest(
            self.product_code, self.lot_number, self.expiration_date
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "product_code": self.product_code,
            "lot_number": self.lot_number,
            "expiration_date": (
                self.expiration_date.isoformat() if self.expiration_date else None
            ),
        }

    def __str__(self) -> str:
        lot = self.lot_number if self.lot_number is not None else "-"
        exp = self.expiration_date.isoformat() if self.expiration_date else "-"
        return f"{self.product_code}/{lot}/{exp}"


@dataclass(frozen=True)
class MovementRequest:
    """
    A movement request that has passed the pre-flight guard.

    Only ``require_valid_movement`` should build these from raw input;
    every field is already normalized (parsed date, enum direction).
    """

    key: BalanceKey
    direction: MovementDirection
    quantity: int
    note: str | None = None
    idempotency_key: str | None = None
    actor_id: str | None = None

    @property
    def product_code(self) -> str:
        return self.key.product_code

    @property
    def signed_quantity(self) -> int:
        return self.direction.sign * self.quantity

    def request_hash(self) -> str:
        """Hash of the fields that define what the movement does.

        Note and actor are excluded: a retry that rewords the note is still
        the same stock change.
        """
        return hash_payload(
            {
                "key": self.key.as_dict(),
                "direction": self.direction,
                "quantity": self.quantity,
            }
        )


# Quantities, balances and versions are stored as BIGINT
MAX_QUANTITY = 2**63 - 1


@dataclass(frozen=True, slots=True)
class BalanceState:
    """Quantity and version of a balance as read inside a transaction."""

    quantity: int
    version: int

    def __post_init__(self) -> None:
        if self.quantity < 0:
            raise ValueError(f"Balance quantity cannot be negative: {self.quantity}")
        if self.version < 0:
            raise ValueError(f"Balance version cannot be negative: {self.version}")

    @classmethod
    def empty(cls) -> BalanceState:
        """State of a key that has never been written."""
        return cls(quantity=0, version=0)

    @property
    def is_new(self) -> bool:
        return self.version == 0
