"""
Configuration Loader (``inventory_config.loader``).

Responsibility
--------------
Loads YAML documents, merges them over the packaged defaults, applies
``INVENTORY_*`` environment overrides and parses the result into a frozen
``LedgerSettings``.  Runtime callers go through
``inventory_config.get_settings()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Out-of-range or mistyped values  -> ``ValueError`` naming the key.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from inventory_config.schema import LOCK_MODES, LOG_LEVELS, LedgerSettings

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

# environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "INVENTORY_DATABASE_URL": ("database", "url"),
    "INVENTORY_LOCK_MODE": ("movements", "lock_mode"),
    "INVENTORY_MAX_ATTEMPTS": ("movements", "max_attempts"),
    "INVENTORY_TRANSACTION_TIMEOUT": ("movements", "transaction_timeout_seconds"),
    "INVENTORY_LOG_LEVEL": ("logging", "level"),
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML value must be a mapping")
    return data


def merge_documents(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_documents(merged[key], value)
        else:
            merged[key] = value
    return merged


def apply_env_overrides(data: Mapping[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Overlay the recognised INVENTORY_* variables onto ``data``.

    Values stay strings here; ``parse_settings`` does the type conversion.
    """
    result = merge_documents(data, {})
    for var, (section, key) in ENV_OVERRIDES.items():
        if var in environ:
            section_data = dict(result.get(section) or {})
            section_data[key] = environ[var]
            result[section] = section_data
    return result


def _int(section: Mapping[str, Any], key: str, default: int, minimum: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool):
        raise ValueError(f"{key}: expected an integer, got {value!r}")
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key}: expected an integer, got {value!r}") from None
    if parsed < minimum:
        raise ValueError(f"{key}: must be >= {minimum}, got {parsed}")
    return parsed


def _float(section: Mapping[str, Any], key: str, default: float, minimum: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool):
        raise ValueError(f"{key}: expected a number, got {value!r}")
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key}: expected a number, got {value!r}") from None
    if parsed < minimum:
        raise ValueError(f"{key}: must be >= {minimum}, got {parsed}")
    return parsed


def _bool(section: Mapping[str, Any], key: str, default: bool) -> bool:
    value = section.get(key, default)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false", "1", "0", "yes", "no"):
        return value.lower() in ("true", "1", "yes")
    raise ValueError(f"{key}: expected a boolean, got {value!r}")


def parse_settings(data: Mapping[str, Any]) -> LedgerSettings:
    """
    Parse a merged configuration document into ``LedgerSettings``.

    Raises:
        ValueError: on a missing database URL or any invalid value.
    """
    database = data.get("database") or {}
    movements = data.get("movements") or {}
    queries = data.get("queries") or {}
    logging_section = data.get("logging") or {}

    url = database.get("url")
    if not url or not isinstance(url, str):
        raise ValueError("database.url is required")

    lock_mode = str(movements.get("lock_mode", "optimistic")).lower()
    if lock_mode not in LOCK_MODES:
        raise ValueError(f"lock_mode: must be one of {LOCK_MODES}, got {lock_mode!r}")

    log_level = str(logging_section.get("level", "INFO")).upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(f"logging.level: must be one of {LOG_LEVELS}, got {log_level!r}")

    max_page_limit = _int(queries, "max_page_limit", 100, 1)
    default_page_limit = _int(queries, "default_page_limit", 10, 1)
    if default_page_limit > max_page_limit:
        raise ValueError(
            f"default_page_limit ({default_page_limit}) exceeds max_page_limit ({max_page_limit})"
        )

    products = data.get("products") or []
    if not isinstance(products, list) or not all(isinstance(p, str) for p in products):
        raise ValueError("products: expected a list of product codes")

    transaction_timeout = _float(movements, "transaction_timeout_seconds", 10.0, 0.0)
    if transaction_timeout == 0:
        raise ValueError("transaction_timeout_seconds: must be > 0")

    return LedgerSettings(
        database_url=url,
        echo=_bool(database, "echo", False),
        pool_size=_int(database, "pool_size", 20, 1),
        max_overflow=_int(database, "max_overflow", 10, 0),
        pool_timeout=_int(database, "pool_timeout", 30, 1),
        lock_mode=lock_mode,
        max_attempts=_int(movements, "max_attempts", 5, 1),
        backoff_seconds=_float(movements, "backoff_seconds", 0.02, 0.0),
        max_backoff_seconds=_float(movements, "max_backoff_seconds", 0.5, 0.0),
        transaction_timeout_seconds=transaction_timeout,
        default_page_limit=default_page_limit,
        max_page_limit=max_page_limit,
        expiring_window_days=_int(queries, "expiring_window_days", 30, 0),
        log_level=log_level,
        product_codes=tuple(products),
    )


def compute_checksum(data: Mapping[str, Any]) -> str:
    """Deterministic SHA-256 of a configuration document, for log traces."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
