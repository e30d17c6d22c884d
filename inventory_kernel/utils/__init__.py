"""Utility modules for the inventory kernel."""

from inventory_kernel.utils.hashing import (
    balance_key_digest,
    canonicalize_json,
    hash_payload,
)

__all__ = [
    "balance_key_digest",
    "canonicalize_json",
    "hash_payload",
]
