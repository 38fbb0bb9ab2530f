"""
Module: stock_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines:
    inventory projection, usage aggregation, expiry scheduling, reorder
    status and report row building.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import stock_kernel.domain, stock_kernel.exceptions and
    stock_kernel.logging_config.  MUST NOT import stock_services.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      ``today`` and cutoffs are explicit parameters.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from stock_engines import InventoryProjector, UsageAggregator, ExpiryScheduler
"""

from stock_engines.expiry import (
    ExpiryLevel,
    ExpiryScheduler,
    ExpirySummary,
    ScheduledLot,
    classify_days,
)
from stock_engines.projection import (
    InventoryProjector,
    MultiLocationProjection,
    ProjectionResult,
)
from stock_engines.reorder import ReorderAdvisor, ReorderLevel, ReorderLine
from stock_engines.reporting import (
    BALANCE_COLUMNS,
    USAGE_COLUMNS,
    BalanceRow,
    UsageRow,
    balance_rows,
    expiry_rows,
    usage_rows,
)
from stock_engines.tracer import traced_engine
from stock_engines.usage import (
    MovementTrend,
    UsageAggregator,
    UsageBucket,
    UsageJournalEntry,
    UsageReport,
    UsageTotal,
    UsageWindow,
)

__all__ = [
    "BALANCE_COLUMNS",
    "USAGE_COLUMNS",
    "BalanceRow",
    "ExpiryLevel",
    "ExpiryScheduler",
    "ExpirySummary",
    "InventoryProjector",
    "MovementTrend",
    "MultiLocationProjection",
    "ProjectionResult",
    "ReorderAdvisor",
    "ReorderLevel",
    "ReorderLine",
    "ScheduledLot",
    "UsageAggregator",
    "UsageBucket",
    "UsageJournalEntry",
    "UsageReport",
    "UsageRow",
    "UsageTotal",
    "UsageWindow",
    "balance_rows",
    "classify_days",
    "expiry_rows",
    "traced_engine",
    "usage_rows",
]
