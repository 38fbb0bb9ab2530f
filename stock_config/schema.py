"""
Configuration schema (``stock_config.schema``).

Frozen settings object returned by ``get_active_config()``.  Field names
match the YAML keys one to one.
"""

from __future__ import annotations

from dataclasses import dataclass, fields


@dataclass(frozen=True)
class LedgerSettings:
    """Runtime settings for the ledger, engines and CLI."""

    database_url: str
    central_warehouse_id: str
    usage_window_months: int = 6
    top_n: int = 5
    expiry_horizon_days: int = 365
    expiry_critical_days: int = 7
    expiry_warning_days: int = 30
    reorder_cover_months: int = 3
    reorder_min_monthly_usage: float = 0.1
    query_batch_size: int = 500
    query_workers: int = 1
    log_level: str = "INFO"

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls))
