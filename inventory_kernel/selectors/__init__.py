"""Read-only query layer over balances and the movement ledger."""

from inventory_kernel.selectors.balance_selector import (
    BalanceFilter,
    BalancePage,
    BalanceSelector,
    BalanceView,
    ExpiringBalance,
    ProductBalances,
    days_until_expiration,
)
from inventory_kernel.selectors.ledger_selector import (
    BalanceDiscrepancy,
    LedgerSelector,
    MovementPage,
    MovementRecord,
)

__all__ = [
    "BalanceDiscrepancy",
    "BalanceFilter",
    "BalancePage",
    "BalanceSelector",
    "BalanceView",
    "ExpiringBalance",
    "LedgerSelector",
    "MovementPage",
    "MovementRecord",
    "ProductBalances",
    "days_until_expiration",
]
