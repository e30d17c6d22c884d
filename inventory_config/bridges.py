"""
Config -> Kernel Bridges.

Functions that convert LedgerSettings into kernel objects.  They live in
inventory_config (the producer) because the kernel must NEVER import
inventory_config.

Usage:
    from inventory_config import get_settings
    from inventory_config.bridges import init_engine_from_settings, build_coordinator

    settings = get_settings()
    init_engine_from_settings(settings)
    coordinator = build_coordinator(settings)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from inventory_config.schema import LedgerSettings
from inventory_kernel.db.engine import get_session_factory, init_engine_from_url
from inventory_kernel.db.immutability import register_immutability_listeners
from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.product_directory import ProductDirectory, StaticProductDirectory
from inventory_kernel.logging_config import configure_logging
from inventory_kernel.selectors.balance_selector import BalanceSelector
from inventory_kernel.selectors.ledger_selector import LedgerSelector
from inventory_kernel.services.movement_coordinator import MovementCoordinator, RetryPolicy


def retry_policy_from_settings(settings: LedgerSettings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.max_attempts,
        backoff_seconds=settings.backoff_seconds,
        max_backoff_seconds=settings.max_backoff_seconds,
        transaction_timeout_seconds=settings.transaction_timeout_seconds,
        lock_mode=settings.lock_mode,
    )


def init_engine_from_settings(settings: LedgerSettings) -> Engine:
    """Configure logging, initialize the kernel engine, register listeners."""
    configure_logging(level=settings.log_level)
    engine = init_engine_from_url(
        settings.database_url,
        echo=settings.echo,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout,
        # A writer never waits on the SQLite lock longer than one transaction may run
        sqlite_busy_timeout=settings.transaction_timeout_seconds,
    )
    register_immutability_listeners()
    return engine


def build_product_directory(settings: LedgerSettings) -> StaticProductDirectory:
    return StaticProductDirectory(settings.product_codes)


def build_coordinator(
    settings: LedgerSettings,
    product_directory: ProductDirectory | None = None,
    clock: Clock | None = None,
) -> MovementCoordinator:
    """Coordinator over the initialized engine's session factory."""
    return MovementCoordinator(
        session_factory=get_session_factory(),
        product_directory=product_directory or build_product_directory(settings),
        clock=clock,
        retry_policy=retry_policy_from_settings(settings),
    )


def build_balance_selector(
    session: Session,
    settings: LedgerSettings,
    clock: Clock | None = None,
) -> BalanceSelector:
    return BalanceSelector(
        session,
        clock=clock,
        default_limit=settings.default_page_limit,
        max_limit=settings.max_page_limit,
    )


def build_ledger_selector(session: Session, settings: LedgerSettings) -> LedgerSelector:
    return LedgerSelector(
        session,
        default_limit=settings.default_page_limit,
        max_limit=settings.max_page_limit,
    )
