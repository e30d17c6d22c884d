"""
BalanceStore -- versioned reads and compare-and-swap writes of balances.

Responsibility:
    Reads the (quantity, version) state of a balance key and writes a new
    state only if the version it was computed from is still current.

Architecture position:
    Kernel > Services -- imperative shell.  Called only by the
    MovementCoordinator, inside its transaction.

Invariants enforced:
    - Version monotonicity: every successful write moves the version from
      ``transition.before.version`` to ``transition.after.version``
      (= before + 1) and nothing else can match the WHERE clause.
    - One row per key: the first write is an INSERT at version 1 guarded
      by the unique key digest; a concurrent first write loses on the
      constraint.

Failure modes:
    - ``conditional_write`` returns False when another transaction won the
      race.  The caller must roll back and re-read.
    - Any other DBAPIError propagates to the caller unchanged.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from inventory_kernel.db.errors import is_unique_violation
from inventory_kernel.domain.transitions import BalanceTransition
from inventory_kernel.domain.values import BalanceKey, BalanceState
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.balance import Balance
from inventory_kernel.services.base import BaseService

logger = get_logger("services.balance_store")


class BalanceStore(BaseService[Balance]):
    """
    Balance persistence with optimistic concurrency.

    Contract:
        ``read`` returns None for a key that has never been written.
        ``conditional_write`` accepts only a BalanceTransition, so quantity
        and version always change together.

    Non-goals:
        - Does NOT commit; the write shares the caller's transaction with
          the ledger insert.
        - Does NOT retry; retry policy belongs to the coordinator.
    """

    def read(self, key: BalanceKey, for_update: bool = False) -> BalanceState | None:
        """Read the current state of ``key``.

        With ``for_update`` the row is locked until the transaction ends
        (PostgreSQL ``SELECT ... FOR UPDATE``; SQLite serializes writers on
        the database lock and ignores the clause).
        """
        stmt = select(Balance.quantity, Balance.version).where(
            Balance.key_digest == key.digest
        )
        if for_update:
            stmt = stmt.with_for_update()
        row = self.session.execute(stmt).one_or_none()
        if row is None:
            return None
        return BalanceState(quantity=row.quantity, version=row.version)

    def conditional_write(
        self,
        key: BalanceKey,
        transition: BalanceTransition,
        now: datetime,
    ) -> bool:
        """Persist ``transition.after`` if ``key`` is still at ``transition.before``.

        Returns:
            True if exactly one row was written, False on a lost race.
        """
        if transition.creates_row:
            return self._insert_first(key, transition, now)

        result = self.session.execute(
            update(Balance)
            .where(
                Balance.key_digest == key.digest,
                Balance.version == transition.expected_version,
            )
            .values(
                quantity=transition.after.quantity,
                version=transition.after.version,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(
                "balance_write_conflict",
                extra={
                    "balance_key": str(key),
                    "expected_version": transition.expected_version,
                },
            )
            return False
        return True

    def _insert_first(
        self,
        key: BalanceKey,
        transition: BalanceTransition,
        now: datetime,
    ) -> bool:
        try:
            self.session.execute(
                insert(Balance).values(
                    id=uuid4(),
                    product_code=key.product_code,
                    lot_number=key.lot_number,
                    expiration_date=key.expiration_date,
                    key_digest=key.digest,
                    quantity=transition.after.quantity,
                    version=transition.after.version,
                    created_at=now,
                    updated_at=now,
                )
            )
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            logger.info(
                "balance_write_conflict",
                extra={"balance_key": str(key), "expected_version": 0},
            )
            return False
        logger.debug("balance_created", extra={"balance_key": str(key)})
        return True
