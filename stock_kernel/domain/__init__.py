"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except the injectable Clock itself)
- I/O

All domain objects are immutable and deterministic.
"""

from stock_kernel.domain.cancellation import CancellationToken
from stock_kernel.domain.catalog import (
    InMemoryLocationDirectory,
    InMemoryProductCatalog,
    LocationDirectory,
    LocationRef,
    ProductCatalog,
    ProductInfo,
)
from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.dtos import (
    AppendResult,
    AppendStatus,
    ConsistencyWarning,
    ExchangeReceipt,
    ExchangeRequest,
    LotBalance,
    MovementDraft,
    MovementFilter,
    StockMovementEvent,
    ValidationError,
    ValidationResult,
)
from stock_kernel.domain.values import (
    DateBasis,
    ExchangeLeg,
    LocationKind,
    LotBalanceKey,
    LotKey,
    MovementReason,
    UsageGroupBy,
    WarningKind,
)

__all__ = [
    "AppendResult",
    "AppendStatus",
    "CancellationToken",
    "Clock",
    "ConsistencyWarning",
    "DateBasis",
    "DeterministicClock",
    "ExchangeLeg",
    "ExchangeReceipt",
    "ExchangeRequest",
    "InMemoryLocationDirectory",
    "InMemoryProductCatalog",
    "LocationDirectory",
    "LocationKind",
    "LocationRef",
    "LotBalance",
    "LotBalanceKey",
    "LotKey",
    "MovementDraft",
    "MovementFilter",
    "MovementReason",
    "ProductCatalog",
    "ProductInfo",
    "StockMovementEvent",
    "SystemClock",
    "UsageGroupBy",
    "ValidationError",
    "ValidationResult",
    "WarningKind",
]
