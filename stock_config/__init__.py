"""
stock_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the only way to obtain settings at runtime through
    ``get_active_config()``.  Services and the CLI receive a frozen
    ``LedgerSettings``; they never read YAML themselves.

Architecture position:
    Configuration -- sits above ``stock_kernel`` and below
    ``stock_services``.  The kernel MUST NEVER import from
    ``stock_config``.

Failure modes:
    - ``FileNotFoundError`` -- override file does not exist.
    - ``ConfigurationError`` -- unknown keys or invalid values.

Every successful ``get_active_config()`` call emits a
``STOCK_CONFIG_TRACE`` log entry with the source, checksum and the
settings that shape query results.
"""

from __future__ import annotations

import logging
from pathlib import Path

from stock_config.loader import load_settings
from stock_config.schema import LedgerSettings

_logger = logging.getLogger("stock_kernel.config")


def get_active_config(path: Path | str | None = None) -> LedgerSettings:
    """The ONLY public configuration entrypoint.

    Args:
        path: Optional YAML override merged over the packaged defaults.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ConfigurationError: If the merged settings are invalid.
    """
    settings, checksum = load_settings(Path(path) if path is not None else None)

    _logger.info(
        "STOCK_CONFIG_TRACE",
        extra={
            "trace_type": "STOCK_CONFIG_TRACE",
            "config_source": str(path) if path is not None else "defaults",
            "checksum": checksum,
            "central_warehouse_id": settings.central_warehouse_id,
            "usage_window_months": settings.usage_window_months,
            "query_workers": settings.query_workers,
        },
    )
    return settings


__all__ = ["LedgerSettings", "get_active_config"]
