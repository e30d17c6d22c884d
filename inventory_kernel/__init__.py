"""
Inventory Kernel

An append-only stock ledger with a materialized, versioned balance per
(product, lot, expiration) key:
- Receipts and issues recorded as immutable movements
- Balances that never go negative
- Per-key linearization in the database (version compare-and-swap)
- Bounded retries and transaction timeouts
- Read-only query layer with expiry-window scans
"""

__version__ = "0.1.0"
