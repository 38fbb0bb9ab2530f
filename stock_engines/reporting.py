"""
Module: stock_engines.reporting
Responsibility:
    Flatten projection, expiry and usage results into tabular rows with
    stable column names for presentation layers (tables, CSV, spreadsheet
    export).

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Column names are fixed by BALANCE_COLUMNS and USAGE_COLUMNS.
    - Row order is the order of the producing engine; consumers do not sort.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any

from stock_kernel.domain.catalog import LocationRef, ProductInfo
from stock_engines.expiry import ScheduledLot
from stock_engines.projection import MultiLocationProjection, ProjectionResult
from stock_engines.usage import GroupKey, UsageBucket, UsageReport

BALANCE_COLUMNS: tuple[str, ...] = (
    "location",
    "display_code",
    "lot",
    "expiry",
    "quantity",
    "days_until_expiry",
)

USAGE_COLUMNS: tuple[str, ...] = ("group_key", "period", "total")


@dataclass(frozen=True)
class BalanceRow:
    location: str
    display_code: str
    lot: str
    expiry: date | None
    quantity: int
    days_until_expiry: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in BALANCE_COLUMNS}


@dataclass(frozen=True)
class UsageRow:
    group_key: str
    period: str
    total: int

    def as_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in USAGE_COLUMNS}


def _display_code(products: Mapping[str, ProductInfo], product_ref: str) -> str:
    info = products.get(product_ref)
    return info.display_code if info is not None else product_ref


def _location_name(locations: Mapping[str, LocationRef], location_id: str) -> str:
    ref = locations.get(location_id)
    return ref.display_name if ref is not None else location_id


def render_group_key(group_key: GroupKey) -> str:
    if group_key is None:
        return "*"
    if isinstance(group_key, tuple):
        return " / ".join(part if part is not None else "-" for part in group_key)
    return group_key


def balance_rows(
    projections: MultiLocationProjection | Iterable[ProjectionResult],
    products: Mapping[str, ProductInfo],
    locations: Mapping[str, LocationRef],
    *,
    today: date | None = None,
) -> tuple[BalanceRow, ...]:
    """One row per positive balance, locations in projection order."""
    results = (
        projections.results
        if isinstance(projections, MultiLocationProjection)
        else tuple(projections)
    )
    rows: list[BalanceRow] = []
    for result in results:
        name = _location_name(locations, result.location)
        for b in result.balances:
            days = None
            if today is not None and b.expiry_date is not None:
                days = (b.expiry_date - today).days
            rows.append(
                BalanceRow(
                    location=name,
                    display_code=_display_code(products, b.product_ref),
                    lot=b.lot_number,
                    expiry=b.expiry_date,
                    quantity=b.quantity,
                    days_until_expiry=days,
                )
            )
    return tuple(rows)


def expiry_rows(
    scheduled: Iterable[ScheduledLot],
    products: Mapping[str, ProductInfo],
) -> tuple[BalanceRow, ...]:
    """Balance rows in FEFO order, days_until_expiry always set."""
    return tuple(
        BalanceRow(
            location=lot.location.display_name,
            display_code=_display_code(products, lot.balance.product_ref),
            lot=lot.balance.lot_number,
            expiry=lot.expiry_date,
            quantity=lot.balance.quantity,
            days_until_expiry=lot.days_until_expiry,
        )
        for lot in scheduled
    )


def usage_rows(
    usage: UsageReport | Iterable[UsageBucket],
    products: Mapping[str, ProductInfo] | None = None,
) -> tuple[UsageRow, ...]:
    """
    Rows for a ranked report (period = ``start/end`` ISO interval, end
    exclusive) or for monthly buckets (period = ``YYYY-MM``).

    When ``products`` is given, product refs in product and
    product-location group keys are shown by display code; leave it out for
    location groupings.
    """
    products = products or {}

    def label(key: GroupKey) -> str:
        if isinstance(key, tuple):
            key = (_display_code(products, key[0]), key[1])
        elif isinstance(key, str) and key in products:
            key = _display_code(products, key)
        return render_group_key(key)

    if isinstance(usage, UsageReport):
        period = f"{usage.window.start.isoformat()}/{usage.window.end.isoformat()}"
        return tuple(UsageRow(label(t.group_key), period, t.total) for t in usage.ranked)

    return tuple(
        UsageRow(label(b.group_key), b.period.strftime("%Y-%m"), b.total)
        for b in usage
    )
