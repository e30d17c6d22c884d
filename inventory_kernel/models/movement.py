"""
Module: inventory_kernel.models.movement
Responsibility: ORM persistence for the append-only stock ledger.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (ORM listener + DB trigger).
    - quantity > 0 and balance_after >= 0 (CHECK constraints).
    - balance_version numbers the movements of one key 1..n in commit order.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - IntegrityError if a CHECK constraint is violated.
"""

from datetime import date, datetime

from sqlalchemy import BigInteger, CheckConstraint, Date, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UTCDateTime
from inventory_kernel.domain.values import BalanceKey, MovementDirection


class Movement(Base):
    """
    One committed receipt or issue of stock.

    Contract:
        Created exactly once by the MovementCoordinator, in the same
        transaction as the balance write it records.

    Guarantees:
        - ``balance_after`` and ``balance_version`` are the balance state
          this movement produced.
        - ``key_digest`` equals ``BalanceKey(...).digest`` of the key columns.
    """

    __tablename__ = "movements"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_movements_quantity_positive"),
        CheckConstraint("balance_after >= 0", name="ck_movements_balance_after_non_negative"),
        CheckConstraint("direction IN ('IN', 'OUT')", name="ck_movements_direction"),
        Index("idx_movement_key", "product_code", "lot_number", "expiration_date"),
        Index("idx_movement_digest_version", "key_digest", "balance_version"),
        Index("idx_movement_created", "created_at"),
    )

    product_code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    lot_number: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    expiration_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    key_digest: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    # IN / OUT
    direction: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    balance_after: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    balance_version: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    note: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Caller identity, informational only
    created_by: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<Movement {self.direction} {self.quantity} of "
            f"{self.product_code} v{self.balance_version}>"
        )

    @property
    def key(self) -> BalanceKey:
        return BalanceKey(self.product_code, self.lot_number, self.expiration_date)

    @property
    def movement_direction(self) -> MovementDirection:
        return MovementDirection(self.direction)

    @property
    def signed_quantity(self) -> int:
        return self.movement_direction.sign * self.quantity
