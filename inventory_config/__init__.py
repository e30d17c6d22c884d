"""
inventory_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_settings()``: packaged defaults, then an optional YAML file, then
    ``INVENTORY_*`` environment variables.

Architecture position:
    Configuration -- sits above ``inventory_kernel``.  The kernel MUST NEVER
    import from ``inventory_config``; ``inventory_config.bridges`` translates
    settings into kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- the given config file does not exist.
    - ``ValueError`` -- a setting is missing or out of range.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from inventory_config.loader import (
    DEFAULTS_PATH,
    apply_env_overrides,
    compute_checksum,
    load_yaml_file,
    merge_documents,
    parse_settings,
)
from inventory_config.schema import LedgerSettings

_logger = logging.getLogger("inventory_kernel.config")

__all__ = ["LedgerSettings", "get_settings"]


def get_settings(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Optional YAML file merged over the packaged defaults.
        environ: Environment mapping; defaults to ``os.environ``.

    Returns:
        Frozen ``LedgerSettings``.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    if config_path is not None:
        data = merge_documents(data, load_yaml_file(Path(config_path)))
    data = apply_env_overrides(data, os.environ if environ is None else environ)

    settings = parse_settings(data)
    _logger.info(
        "inventory_config_loaded",
        extra={
            "config_path": str(config_path) if config_path is not None else None,
            "checksum": compute_checksum(data),
            "lock_mode": settings.lock_mode,
            "max_attempts": settings.max_attempts,
            "product_count": len(settings.product_codes),
        },
    )
    return settings
