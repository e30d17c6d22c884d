"""
LedgerSettings schema.

The typed, frozen form of the ledger configuration.  YAML documents and
environment overrides are parsed into this by the loader; bridges turn it
into kernel inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field

LOCK_MODES = ("optimistic", "pessimistic")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class LedgerSettings:
    """Runtime settings for the inventory ledger."""

    database_url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30

    # Write path
    lock_mode: str = "optimistic"
    max_attempts: int = 5
    backoff_seconds: float = 0.02
    max_backoff_seconds: float = 0.5
    transaction_timeout_seconds: float = 10.0

    # Query layer
    default_page_limit: int = 10
    max_page_limit: int = 100
    expiring_window_days: int = 30

    log_level: str = "INFO"

    # Known product codes for the static product directory
    product_codes: tuple[str, ...] = field(default_factory=tuple)
