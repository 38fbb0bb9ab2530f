"""
Module: stock_engines.expiry
Responsibility:
    Rank positive lot balances from per-location projections by remaining
    shelf life (FEFO), and summarize the result into urgency levels.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    ``today`` and location metadata are passed in; the scheduler never
    reads a clock or a catalog.

Invariants enforced:
    - days_until_expiry = (expiry_date - today).days.
    - Expired lots (days <= 0) are dropped unless include_expired is set.
    - Balances without an expiry date are never scheduled.
    - Order: days ascending, then non-central-warehouse locations before
      the central warehouse, then location display name, then product and
      lot.

Failure modes:
    - ValueError for negative within_days / limit or critical_days greater
      than warning_days.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from enum import Enum

from stock_kernel.domain.catalog import LocationRef
from stock_kernel.domain.dtos import LotBalance
from stock_kernel.logging_config import get_logger
from stock_engines.projection import MultiLocationProjection, ProjectionResult
from stock_engines.tracer import traced_engine

logger = get_logger("engines.expiry")


class ExpiryLevel(str, Enum):
    EXPIRED = "expired"
    CRITICAL = "critical"
    WARNING = "warning"
    NORMAL = "normal"


def classify_days(days: int, critical_days: int, warning_days: int) -> ExpiryLevel:
    if days <= 0:
        return ExpiryLevel.EXPIRED
    if days <= critical_days:
        return ExpiryLevel.CRITICAL
    if days <= warning_days:
        return ExpiryLevel.WARNING
    return ExpiryLevel.NORMAL


@dataclass(frozen=True)
class ScheduledLot:
    """A positive lot balance with its remaining shelf life."""

    balance: LotBalance
    location: LocationRef
    days_until_expiry: int

    @property
    def expiry_date(self) -> date:
        return self.balance.expiry_date

    @property
    def is_expired(self) -> bool:
        return self.days_until_expiry <= 0

    def sort_key(self) -> tuple:
        return (
            self.days_until_expiry,
            self.location.is_central_warehouse,
            self.location.display_name,
            self.balance.product_ref,
            self.balance.lot_number,
            self.location.location_id,
        )


@dataclass(frozen=True)
class ExpirySummary:
    """Counts of scheduled lots per urgency level."""

    expired: int
    critical: int
    warning: int
    normal: int
    total_quantity: int
    location_count: int
    product_count: int

    @property
    def lot_count(self) -> int:
        return self.expired + self.critical + self.warning + self.normal


class ExpiryScheduler:
    """Stateless FEFO ranking over projection results."""

    @traced_engine(
        "expiry",
        "1.0",
        fingerprint_fields=("today", "include_expired", "within_days", "limit"),
        summarize=lambda r: {"lot_count": len(r)},
    )
    def schedule(
        self,
        projections: MultiLocationProjection | Iterable[ProjectionResult],
        locations: Mapping[str, LocationRef],
        *,
        today: date,
        include_expired: bool = False,
        within_days: int | None = None,
        limit: int | None = None,
    ) -> tuple[ScheduledLot, ...]:
        """
        Union the positive balances of ``projections`` and rank them.

        Args:
            projections: Per-location projection results.
            locations: Location metadata by id; ids missing here are treated
                as ``LocationRef.unknown`` (kind other).
            today: Reference date.
            include_expired: Keep lots with days_until_expiry <= 0.
            within_days: Keep only lots expiring within this many days.
            limit: Return at most this many lots.
        """
        if within_days is not None and within_days < 0:
            raise ValueError("within_days cannot be negative")
        if limit is not None and limit < 0:
            raise ValueError("limit cannot be negative")

        results = (
            projections.results
            if isinstance(projections, MultiLocationProjection)
            else tuple(projections)
        )

        scheduled: list[ScheduledLot] = []
        skipped_undated = 0
        for result in results:
            location = locations.get(result.location) or LocationRef.unknown(
                result.location
            )
            for balance in result.balances:
                if balance.expiry_date is None:
                    skipped_undated += 1
                    continue
                days = (balance.expiry_date - today).days
                if days <= 0 and not include_expired:
                    continue
                if within_days is not None and days > within_days:
                    continue
                scheduled.append(
                    ScheduledLot(
                        balance=balance,
                        location=location,
                        days_until_expiry=days,
                    )
                )

        scheduled.sort(key=ScheduledLot.sort_key)
        if limit is not None:
            scheduled = scheduled[:limit]

        logger.debug(
            "expiry_scheduled",
            extra={
                "lot_count": len(scheduled),
                "skipped_undated": skipped_undated,
                "today": today,
            },
        )
        return tuple(scheduled)

    def summarize(
        self,
        scheduled: Iterable[ScheduledLot],
        *,
        critical_days: int,
        warning_days: int,
    ) -> ExpirySummary:
        if critical_days > warning_days:
            raise ValueError("critical_days cannot exceed warning_days")

        counts = dict.fromkeys(ExpiryLevel, 0)
        total_quantity = 0
        location_ids: set[str] = set()
        products: set[str] = set()
        for lot in scheduled:
            counts[classify_days(lot.days_until_expiry, critical_days, warning_days)] += 1
            total_quantity += lot.balance.quantity
            location_ids.add(lot.location.location_id)
            products.add(lot.balance.product_ref)

        return ExpirySummary(
            expired=counts[ExpiryLevel.EXPIRED],
            critical=counts[ExpiryLevel.CRITICAL],
            warning=counts[ExpiryLevel.WARNING],
            normal=counts[ExpiryLevel.NORMAL],
            total_quantity=total_quantity,
            location_count=len(location_ids),
            product_count=len(products),
        )
