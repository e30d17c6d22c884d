"""
Module: inventory_kernel.models.balance
Responsibility: ORM persistence for the materialized, versioned balance of
    each (product, lot, expiration) key.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - quantity >= 0 and version >= 0 (CHECK constraints).
    - One row per key: unique key_digest, which treats an absent lot or
      expiration date as a value rather than as NULL.
    - Rows are never deleted (ORM listener + DB trigger) and never modified
      through ORM attribute changes; BalanceStore writes them with a
      version-conditioned UPDATE.
"""

from datetime import date, datetime

from sqlalchemy import BigInteger, CheckConstraint, Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UTCDateTime
from inventory_kernel.domain.values import BalanceKey, BalanceState


class Balance(Base):
    """
    Current stock for one balance key.

    Guarantees:
        - ``quantity`` equals sum(IN) - sum(OUT) over the key's movements.
        - ``version`` equals the number of committed movements for the key.
    """

    __tablename__ = "balances"

    __table_args__ = (
        UniqueConstraint("key_digest", name="uq_balances_key_digest"),
        UniqueConstraint(
            "product_code", "lot_number", "expiration_date",
            name="uq_balances_key",
        ),
        CheckConstraint("quantity >= 0", name="ck_balances_quantity_non_negative"),
        CheckConstraint("version >= 0", name="ck_balances_version_non_negative"),
        Index("idx_balance_product", "product_code"),
        Index("idx_balance_expiration", "expiration_date"),
        Index("idx_balance_updated", "updated_at"),
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

    quantity: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    version: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Balance {self.product_code}/{self.lot_number}/{self.expiration_date} qty={self.quantity} v{self.version}>"

    @property
    def key(self) -> BalanceKey:
        return BalanceKey(self.product_code, self.lot_number, self.expiration_date)

    @property
    def state(self) -> BalanceState:
        return BalanceState(self.quantity, self.version)
