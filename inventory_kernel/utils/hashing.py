"""
Deterministic hashing utilities.

All hashing in the inventory kernel must be deterministic and reproducible:
balance key digests are the unique identity of balance rows, and request
hashes decide whether an idempotent replay matches the original movement.
"""

import hashlib
import json
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """Render enums, dates and UUIDs; anything else is a TypeError."""
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def canonicalize_json(data: dict | list | Any) -> str:
    """Sorted keys, no whitespace: equal data always yields the same string."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict) -> str:
    """Hex SHA-256 of the canonical JSON form of ``payload``."""
    return _sha256(canonicalize_json(payload))


def balance_key_digest(
    product_code: str,
    lot_number: str | None,
    expiration_date: date | None,
) -> str:
    """
    Compute the digest that identifies a balance row.

    The components are hashed as a JSON array so an absent component
    (``null``) never collides with any present value, including the empty
    string. SQL unique indexes treat NULLs as distinct, so this digest is
    what actually keeps one row per key.
    """
    return _sha256(canonicalize_json([product_code, lot_number, expiration_date]))
