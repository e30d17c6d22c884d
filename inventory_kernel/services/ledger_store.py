"""
LedgerStore -- append-only writes to the movement ledger.

Responsibility:
    Inserts the Movement that records a balance transition and, when the
    caller supplied one, the idempotency record binding a client key to
    that movement.

Architecture position:
    Kernel > Services -- imperative shell.  Called only by the
    MovementCoordinator, inside its transaction.

Invariants enforced:
    - Append-only: this class has no update or delete path.
    - The movement carries the balance state it produced
      (``balance_after``, ``balance_version``).

Failure modes:
    - IntegrityError on flush of an idempotency record whose key was
      committed by a concurrent request.  The coordinator treats this as a
      lost race and resolves the key to the winner's movement.
"""

from datetime import datetime

from sqlalchemy import select

from inventory_kernel.domain.transitions import BalanceTransition
from inventory_kernel.domain.values import MovementRequest
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.idempotency import IdempotencyRecord
from inventory_kernel.models.movement import Movement
from inventory_kernel.services.base import BaseService

logger = get_logger("services.ledger_store")


class LedgerStore(BaseService[Movement]):
    """Writes movements and idempotency records; flushes, never commits."""

    def append(
        self,
        request: MovementRequest,
        transition: BalanceTransition,
        now: datetime,
    ) -> Movement:
        key = request.key
        movement = Movement(
            product_code=key.product_code,
            lot_number=key.lot_number,
            expiration_date=key.expiration_date,
            key_digest=key.digest,
            direction=request.direction.value,
            quantity=request.quantity,
            balance_after=transition.after.quantity,
            balance_version=transition.after.version,
            note=request.note,
            created_by=request.actor_id,
            created_at=now,
        )
        self.session.add(movement)
        self.session.flush()
        logger.debug(
            "movement_appended",
            extra={
                "movement_id": str(movement.id),
                "balance_key": str(key),
                "balance_version": movement.balance_version,
            },
        )
        return movement

    def record_idempotency_key(
        self,
        movement: Movement,
        request: MovementRequest,
        now: datetime,
    ) -> IdempotencyRecord:
        """Bind ``request.idempotency_key`` to ``movement`` in this transaction."""
        if request.idempotency_key is None:
            raise ValueError("request has no idempotency key")
        record = IdempotencyRecord(
            idempotency_key=request.idempotency_key,
            movement_id=movement.id,
            payload_hash=request.request_hash(),
            created_at=now,
        )
        self.session.add(record)
        self.session.flush()
        return record

    def find_by_idempotency_key(
        self, idempotency_key: str
    ) -> tuple[IdempotencyRecord, Movement] | None:
        row = self.session.execute(
            select(IdempotencyRecord, Movement)
            .join(Movement, Movement.id == IdempotencyRecord.movement_id)
            .where(IdempotencyRecord.idempotency_key == idempotency_key)
        ).one_or_none()
        if row is None:
            return None
        return row[0], row[1]
