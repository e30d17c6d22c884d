"""
Module: inventory_kernel.models.idempotency
Responsibility: Maps a client-supplied idempotency key to the movement it
    produced and the hash of the request that produced it.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - idempotency_key is unique; the row is written in the movement's own
      transaction, so at most one movement exists per key.
    - Append-only (ORM listener + DB trigger).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UTCDateTime, UUIDString


class IdempotencyRecord(Base):
    """One idempotency key and the movement it is bound to."""

    __tablename__ = "movement_idempotency_keys"

    idempotency_key: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        unique=True,
    )

    movement_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("movements.id"),
        nullable=False,
    )

    # Hash of the request fields that define the stock change
    payload_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<IdempotencyRecord {self.idempotency_key} -> {self.movement_id}>"
