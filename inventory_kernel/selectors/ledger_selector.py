"""
Module: inventory_kernel.selectors.ledger_selector
Responsibility: Read-only queries over the movement ledger, including the
    aggregation oracle that recomputes balances from movements and the
    reconciliation check against the materialized balances.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ and selectors/base.py.

Invariants checked (not enforced) here:
    - Ledger agreement: materialized quantity == sum(IN) - sum(OUT).
    - Version monotonicity: materialized version == number of movements,
      and the movements of a key carry balance_version 1..n.

Failure modes:
    - MovementNotFoundError from get_movement.
    - InventoryValidationError for bad paging or filter values.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from inventory_kernel.domain.validation import (
    ValidationResult,
    parse_date,
    parse_direction,
    raise_for_result,
    validate_lot_number,
    validate_page,
    validate_product_code,
)
from inventory_kernel.domain.values import BalanceKey, MovementDirection
from inventory_kernel.exceptions import MovementNotFoundError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.balance import Balance
from inventory_kernel.models.movement import Movement
from inventory_kernel.selectors.balance_selector import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from inventory_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.ledger")


@dataclass(frozen=True)
class MovementRecord:
    """Read-only snapshot of one movement."""

    id: UUID
    product_code: str
    lot_number: str | None
    expiration_date: date | None
    direction: MovementDirection
    quantity: int
    balance_after: int
    balance_version: int
    note: str | None
    created_by: str | None
    created_at: datetime

    @classmethod
    def from_model(cls, movement: Movement) -> MovementRecord:
        return cls(
            id=movement.id,
            product_code=movement.product_code,
            lot_number=movement.lot_number,
            expiration_date=movement.expiration_date,
            direction=MovementDirection(movement.direction),
            quantity=movement.quantity,
            balance_after=movement.balance_after,
            balance_version=movement.balance_version,
            note=movement.note,
            created_by=movement.created_by,
            created_at=movement.created_at,
        )

    @property
    def key(self) -> BalanceKey:
        return BalanceKey(self.product_code, self.lot_number, self.expiration_date)

    @property
    def signed_quantity(self) -> int:
        return self.direction.sign * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            **self.key.as_dict(),
            "direction": self.direction.value,
            "quantity": self.quantity,
            "balance_after": self.balance_after,
            "balance_version": self.balance_version,
            "note": self.note,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class MovementPage:
    items: tuple[MovementRecord, ...]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "total_pages": self.total_pages,
        }


@dataclass(frozen=True)
class BalanceDiscrepancy:
    """A key whose materialized balance disagrees with its ledger."""

    key: BalanceKey
    materialized_quantity: int
    computed_quantity: int
    materialized_version: int
    movement_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.key.as_dict(),
            "materialized_quantity": self.materialized_quantity,
            "computed_quantity": self.computed_quantity,
            "materialized_version": self.materialized_version,
            "movement_count": self.movement_count,
        }


def _signed_quantity():
    return case(
        (Movement.direction == MovementDirection.IN.value, Movement.quantity),
        else_=-Movement.quantity,
    )


class LedgerSelector(BaseSelector[Movement]):
    """
    Selector over the ``movements`` table.

    Contract:
        ``computed_balance`` and ``reconcile`` derive balances from the ledger
        alone; they are the verification oracle for the materialized
        balances, which remain the system of record.
    """

    def __init__(
        self,
        session: Session,
        default_limit: int = DEFAULT_PAGE_LIMIT,
        max_limit: int = MAX_PAGE_LIMIT,
    ):
        super().__init__(session)
        self.default_limit = default_limit
        self.max_limit = max_limit

    def get_movement(self, movement_id: UUID | str) -> MovementRecord:
        if not isinstance(movement_id, UUID):
            try:
                movement_id = UUID(str(movement_id))
            except ValueError:
                raise MovementNotFoundError(str(movement_id)) from None
        movement = self.session.get(Movement, movement_id)
        if movement is None:
            raise MovementNotFoundError(str(movement_id))
        return MovementRecord.from_model(movement)

    def list_movements(
        self,
        product_code: str | None = None,
        lot_number: str | None = None,
        expiration_date: date | str | None = None,
        direction: MovementDirection | str | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> MovementPage:
        """Movement history, newest first."""
        limit = self.default_limit if limit is None else limit
        parsed_date, errors = parse_date(expiration_date, "expiration_date")
        errors = [*errors, *validate_page(page, limit, self.max_limit)]
        if product_code is not None:
            errors.extend(validate_product_code(product_code))
        errors.extend(validate_lot_number(lot_number))
        parsed_direction = None
        if direction is not None:
            parsed_direction, direction_errors = parse_direction(direction)
            errors.extend(direction_errors)
        raise_for_result(ValidationResult.from_errors(errors))

        conditions = []
        if product_code is not None:
            conditions.append(Movement.product_code == product_code)
        if lot_number is not None:
            conditions.append(Movement.lot_number == lot_number)
        if parsed_date is not None:
            conditions.append(Movement.expiration_date == parsed_date)
        if parsed_direction is not None:
            conditions.append(Movement.direction == parsed_direction.value)

        total = self.session.execute(
            select(func.count()).select_from(Movement).where(*conditions)
        ).scalar_one()
        stmt = (
            select(Movement)
            .where(*conditions)
            .order_by(Movement.created_at.desc(), Movement.balance_version.desc(), Movement.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = tuple(
            MovementRecord.from_model(m) for m in self.session.execute(stmt).scalars()
        )
        return MovementPage(items=items, total=total, page=page, limit=limit)

    def movements_for_key(self, key: BalanceKey) -> list[MovementRecord]:
        """Every movement of ``key`` in commit order (balance_version 1..n)."""
        stmt = (
            select(Movement)
            .where(Movement.key_digest == key.digest)
            .order_by(Movement.balance_version, Movement.id)
        )
        return [MovementRecord.from_model(m) for m in self.session.execute(stmt).scalars()]

    def computed_balance(self, key: BalanceKey) -> int:
        """sum(IN) - sum(OUT) over the ledger for ``key``."""
        total = self.session.execute(
            select(func.coalesce(func.sum(_signed_quantity()), 0)).where(
                Movement.key_digest == key.digest
            )
        ).scalar_one()
        return int(total)

    def reconcile(self) -> list[BalanceDiscrepancy]:
        """Every key whose materialized balance disagrees with the ledger.

        An empty list means quantity and version agree for every key.
        """
        ledger_rows = self.session.execute(
            select(
                Movement.key_digest,
                Movement.product_code,
                Movement.lot_number,
                Movement.expiration_date,
                func.sum(_signed_quantity()).label("computed"),
                func.count(Movement.id).label("movement_count"),
            ).group_by(
                Movement.key_digest,
                Movement.product_code,
                Movement.lot_number,
                Movement.expiration_date,
            )
        ).all()
        ledger = {row.key_digest: row for row in ledger_rows}

        balances = {
            row.key_digest: row
            for row in self.session.execute(
                select(
                    Balance.key_digest,
                    Balance.product_code,
                    Balance.lot_number,
                    Balance.expiration_date,
                    Balance.quantity,
                    Balance.version,
                )
            ).all()
        }

        discrepancies: list[BalanceDiscrepancy] = []
        for digest in sorted(set(ledger) | set(balances)):
            source = balances.get(digest) or ledger[digest]
            balance = balances.get(digest)
            aggregate = ledger.get(digest)
            materialized_quantity = balance.quantity if balance else 0
            materialized_version = balance.version if balance else 0
            computed = int(aggregate.computed) if aggregate else 0
            count = int(aggregate.movement_count) if aggregate else 0
            if materialized_quantity != computed or materialized_version != count:
                discrepancies.append(
                    BalanceDiscrepancy(
                        key=BalanceKey(source.product_code, source.lot_number, source.expiration_date),
                        materialized_quantity=materialized_quantity,
                        computed_quantity=computed,
                        materialized_version=materialized_version,
                        movement_count=count,
                    )
                )

        if discrepancies:
            logger.error(
                "ledger_discrepancies_found",
                extra={"count": len(discrepancies), "keys": [str(d.key) for d in discrepancies]},
            )
        else:
            logger.info("ledger_reconciled", extra={"keys_checked": len(set(ledger) | set(balances))})
        return discrepancies
