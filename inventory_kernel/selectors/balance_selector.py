"""
Module: inventory_kernel.selectors.balance_selector
Responsibility: Read-only queries over the materialized balances: paginated
    listing, per-product breakdown, single-key lookup and the expiry-window
    scan.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ and selectors/base.py.

Invariants enforced:
    - No write locks; read-committed visibility is sufficient because every
      balance row is internally consistent at commit.
    - Deterministic ordering: every listing breaks ties on ``id``.

Failure modes:
    - InventoryValidationError / InvalidDateError for bad page, limit,
      order key, sort order, window or date range.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.validation import (
    ValidationResult,
    parse_date,
    raise_for_result,
    validate_choice,
    validate_date_range,
    validate_lot_number,
    validate_page,
    validate_product_code,
    validate_window_days,
)
from inventory_kernel.domain.values import BalanceKey
from inventory_kernel.models.balance import Balance
from inventory_kernel.selectors.base import BaseSelector

DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100
DEFAULT_EXPIRING_WINDOW_DAYS = 30

ORDER_COLUMNS = {
    "updated_at": Balance.updated_at,
    "created_at": Balance.created_at,
    "product_code": Balance.product_code,
    "quantity": Balance.quantity,
    "expiration_date": Balance.expiration_date,
}
ORDER_KEYS = tuple(ORDER_COLUMNS)
SORT_ORDERS = ("ASC", "DESC")

_SECONDS_PER_DAY = 86400


def days_until_expiration(expiration_date: date, now: datetime) -> int:
    """Whole days from ``now`` until the start (00:00 UTC) of the expiry date.

    Rounded up, never below zero: a lot that expires later today reports 0.
    """
    expires_at = datetime.combine(expiration_date, time.min, tzinfo=timezone.utc)
    seconds = (expires_at - now).total_seconds()
    return max(0, math.ceil(seconds / _SECONDS_PER_DAY))


@dataclass(frozen=True)
class BalanceView:
    """Read-only snapshot of one balance row."""

    id: UUID
    product_code: str
    lot_number: str | None
    expiration_date: date | None
    quantity: int
    version: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, balance: Balance) -> BalanceView:
        return cls(
            id=balance.id,
            product_code=balance.product_code,
            lot_number=balance.lot_number,
            expiration_date=balance.expiration_date,
            quantity=balance.quantity,
            version=balance.version,
            created_at=balance.created_at,
            updated_at=balance.updated_at,
        )

    @property
    def key(self) -> BalanceKey:
        return BalanceKey(self.product_code, self.lot_number, self.expiration_date)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            **self.key.as_dict(),
            "quantity": self.quantity,
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class BalanceFilter:
    """
    Filters for ``list_balances``.

    With ``partial_match`` the product code and lot number match as
    substrings; otherwise they must match exactly.
    """

    product_code: str | None = None
    lot_number: str | None = None
    expiration_from: date | str | None = None
    expiration_to: date | str | None = None
    partial_match: bool = False


@dataclass(frozen=True)
class BalancePage:
    items: tuple[BalanceView, ...]
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
class ProductBalances:
    """All balance rows of one product, earliest expiry first."""

    product_code: str
    balances: tuple[BalanceView, ...]

    @property
    def total_quantity(self) -> int:
        return sum(b.quantity for b in self.balances)

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_code": self.product_code,
            "total_quantity": self.total_quantity,
            "balances": [b.to_dict() for b in self.balances],
        }


@dataclass(frozen=True)
class ExpiringBalance:
    balance: BalanceView
    days_until_expiration: int

    def to_dict(self) -> dict[str, Any]:
        return {**self.balance.to_dict(), "days_until_expiration": self.days_until_expiration}


class BalanceSelector(BaseSelector[Balance]):
    """
    Selector over the ``balances`` table.

    Contract:
        All methods are read-only and return DTOs.  Time-dependent queries
        use the injected Clock.

    Non-goals:
        - Does NOT consult the product directory; an unknown product simply
          has no balances.
        - Does NOT aggregate the ledger; see LedgerSelector for that.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        default_limit: int = DEFAULT_PAGE_LIMIT,
        max_limit: int = MAX_PAGE_LIMIT,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self.default_limit = default_limit
        self.max_limit = max_limit

    # -------------------------------------------------------------------------
    # Single key
    # -------------------------------------------------------------------------

    def get_balance(
        self,
        product_code: str,
        lot_number: str | None = None,
        expiration_date: date | str | None = None,
    ) -> BalanceView | None:
        key = self._key(product_code, lot_number, expiration_date)
        balance = self.session.execute(
            select(Balance).where(Balance.key_digest == key.digest)
        ).scalar_one_or_none()
        return BalanceView.from_model(balance) if balance is not None else None

    def available_quantity(
        self,
        product_code: str,
        lot_number: str | None = None,
        expiration_date: date | str | None = None,
    ) -> int:
        """Current quantity for the key; 0 if it has never been written."""
        view = self.get_balance(product_code, lot_number, expiration_date)
        return view.quantity if view is not None else 0

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    def list_balances(
        self,
        filter: BalanceFilter | None = None,
        page: int = 1,
        limit: int | None = None,
        order_by: str = "updated_at",
        sort_order: str = "DESC",
    ) -> BalancePage:
        """One page of balances, most recently updated first by default."""
        filter = filter or BalanceFilter()
        limit = self.default_limit if limit is None else limit
        sort_order = sort_order.upper() if isinstance(sort_order, str) else sort_order

        date_from, from_errors = parse_date(filter.expiration_from, "expiration_from")
        date_to, to_errors = parse_date(filter.expiration_to, "expiration_to")
        errors = [
            *validate_page(page, limit, self.max_limit),
            *validate_choice(order_by, ORDER_KEYS, "order_by"),
            *validate_choice(sort_order, SORT_ORDERS, "sort_order"),
            *from_errors,
            *to_errors,
        ]
        if not errors:
            errors.extend(validate_date_range(date_from, date_to))
        raise_for_result(ValidationResult.from_errors(errors))

        conditions = []
        if filter.product_code:
            if filter.partial_match:
                conditions.append(Balance.product_code.contains(filter.product_code, autoescape=True))
            else:
                conditions.append(Balance.product_code == filter.product_code)
        if filter.lot_number:
            if filter.partial_match:
                conditions.append(Balance.lot_number.contains(filter.lot_number, autoescape=True))
            else:
                conditions.append(Balance.lot_number == filter.lot_number)
        if date_from is not None:
            conditions.append(Balance.expiration_date >= date_from)
        if date_to is not None:
            conditions.append(Balance.expiration_date <= date_to)

        total = self.session.execute(
            select(func.count()).select_from(Balance).where(*conditions)
        ).scalar_one()

        column = ORDER_COLUMNS[order_by]
        ordered = column.desc() if sort_order == "DESC" else column.asc()
        stmt = (
            select(Balance)
            .where(*conditions)
            # Absent expiration dates sort last in either direction
            .order_by(column.is_(None), ordered, Balance.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = tuple(
            BalanceView.from_model(b) for b in self.session.execute(stmt).scalars()
        )
        return BalancePage(items=items, total=total, page=page, limit=limit)

    def balances_for_product(
        self,
        product_code: str,
        include_empty: bool = True,
    ) -> ProductBalances:
        """Every balance row of ``product_code`` by expiry, undated rows last."""
        raise_for_result(ValidationResult.from_errors(validate_product_code(product_code)))

        stmt = select(Balance).where(Balance.product_code == product_code)
        if not include_empty:
            stmt = stmt.where(Balance.quantity > 0)
        stmt = stmt.order_by(
            Balance.expiration_date.is_(None),
            Balance.expiration_date,
            Balance.lot_number.is_(None),
            Balance.lot_number,
            Balance.id,
        )
        balances = tuple(
            BalanceView.from_model(b) for b in self.session.execute(stmt).scalars()
        )
        return ProductBalances(product_code=product_code, balances=balances)

    def expiring_soon(self, window_days: int = DEFAULT_EXPIRING_WINDOW_DAYS) -> list[ExpiringBalance]:
        """
        Non-empty balances expiring between today and today + window_days.

        A balance expiring today is included, with days_until_expiration == 0.
        window_days is capped at MAX_WINDOW_DAYS by the query guard.
        """
        raise_for_result(ValidationResult.from_errors(validate_window_days(window_days)))

        now = self._clock.now()
        today = now.date()
        horizon = today + timedelta(days=min(window_days, (date.max - today).days))

        stmt = (
            select(Balance)
            .where(
                Balance.expiration_date.is_not(None),
                Balance.expiration_date >= today,
                Balance.expiration_date <= horizon,
                Balance.quantity > 0,
            )
            .order_by(Balance.expiration_date, Balance.product_code, Balance.id)
        )
        return [
            ExpiringBalance(
                balance=BalanceView.from_model(b),
                days_until_expiration=days_until_expiration(b.expiration_date, now),
            )
            for b in self.session.execute(stmt).scalars()
        ]

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _key(
        product_code: str,
        lot_number: str | None,
        expiration_date: date | str | None,
    ) -> BalanceKey:
        parsed, date_errors = parse_date(expiration_date, "expiration_date")
        errors = [
            *validate_product_code(product_code),
            *validate_lot_number(lot_number),
            *date_errors,
        ]
        raise_for_result(ValidationResult.from_errors(errors))
        return BalanceKey(product_code, lot_number, parsed)
