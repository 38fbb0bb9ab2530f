"""
Module: stock_engines.usage
Responsibility:
    Consumption statistics from ``usage`` movements: ranked totals over a
    trailing window, zero-filled monthly buckets, monthly movement trends,
    and the day-by-location usage journal used for month-end closing.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import stock_kernel.domain and stock_kernel.logging_config.

Invariants enforced:
    - Only events with reason ``usage`` count as consumption.
    - Windows are half-open ``[start, end)`` over the basis date chosen by
      the caller; there is no default basis.
    - Ranking ties keep first-seen order; N is always a caller parameter.
    - Every calendar month intersecting a window gets a bucket, zero when
      nothing matched.

Failure modes:
    - DateBasisRequiredError when no basis is given.
    - ValueError for an inverted window or a negative N.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta

from stock_kernel.domain.dtos import StockMovementEvent
from stock_kernel.domain.values import (
    INBOUND_REASONS,
    OUTBOUND_REASONS,
    DateBasis,
    MovementReason,
    UsageGroupBy,
)
from stock_kernel.exceptions import DateBasisRequiredError
from stock_kernel.logging_config import get_logger
from stock_engines.tracer import traced_engine

logger = get_logger("engines.usage")

GroupKey = str | tuple[str, str | None] | None


def month_start(day: date) -> date:
    return day.replace(day=1)


def add_months(day: date, months: int) -> date:
    """Shift ``day`` by whole months, clamping to the target month's last day."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last))


@dataclass(frozen=True)
class UsageWindow:
    """Half-open date range ``[start, end)``."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Window end {self.end} is before start {self.start}")

    @classmethod
    def trailing_months(cls, today: date, months: int) -> UsageWindow:
        """``today`` minus ``months`` calendar months, through ``today`` inclusive."""
        if months < 0:
            raise ValueError("months cannot be negative")
        return cls(start=add_months(today, -months), end=today + timedelta(days=1))

    @classmethod
    def trailing(cls, today: date, delta: timedelta) -> UsageWindow:
        """``today - delta`` through ``today`` inclusive."""
        return cls(start=today - delta, end=today + timedelta(days=1))

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end

    def months(self) -> tuple[date, ...]:
        """First day of every calendar month intersecting the window."""
        if self.end <= self.start:
            return ()
        last = month_start(self.end - timedelta(days=1))
        current = month_start(self.start)
        result: list[date] = []
        while current <= last:
            result.append(current)
            current = add_months(current, 1)
        return tuple(result)


@dataclass(frozen=True)
class UsageTotal:
    """Total consumption of one group."""

    group_key: GroupKey
    total: int
    event_count: int


@dataclass(frozen=True)
class UsageReport:
    """
    Ranked usage totals.

    Guarantees:
        - ``ranked`` is sorted by total descending; equal totals keep the
          order in which their group was first seen.
    """

    window: UsageWindow
    group_by: UsageGroupBy
    basis: DateBasis
    ranked: tuple[UsageTotal, ...]

    @property
    def total(self) -> int:
        return sum(t.total for t in self.ranked)

    def top(self, n: int) -> tuple[UsageTotal, ...]:
        if n < 0:
            raise ValueError("n cannot be negative")
        return self.ranked[:n]

    def rank_of(self, n: int | None = None) -> dict[GroupKey, int]:
        """1-based rank per group key, limited to the top ``n`` when given."""
        ranked = self.ranked if n is None else self.top(n)
        return {t.group_key: i for i, t in enumerate(ranked, start=1)}

    def total_for(self, group_key: GroupKey) -> int:
        for t in self.ranked:
            if t.group_key == group_key:
                return t.total
        return 0


@dataclass(frozen=True)
class UsageBucket:
    """Usage of one group in one calendar month (``period`` is the 1st)."""

    period: date
    group_key: GroupKey
    total: int


@dataclass(frozen=True)
class MovementTrend:
    """Monthly inbound / outbound / usage quantities."""

    period: date
    inbound: int
    outbound: int
    usage: int


@dataclass(frozen=True)
class UsageJournalEntry:
    """Usage at one location on one day, with the contributing events."""

    day: date
    location: str | None
    total: int
    events: tuple[StockMovementEvent, ...]


def _group_key(event: StockMovementEvent, group_by: UsageGroupBy) -> GroupKey:
    if group_by == UsageGroupBy.PRODUCT:
        return event.product_ref
    if group_by == UsageGroupBy.LOCATION:
        return event.source_location
    return (event.product_ref, event.source_location)


def _require_basis(basis: DateBasis | None, operation: str) -> DateBasis:
    if basis is None:
        raise DateBasisRequiredError(operation)
    return DateBasis(basis)


class UsageAggregator:
    """Stateless consumption statistics over movement events."""

    def _usage_in_window(
        self,
        events: Iterable[StockMovementEvent],
        window: UsageWindow,
        basis: DateBasis,
    ) -> Iterable[StockMovementEvent]:
        for event in events:
            if event.reason != MovementReason.USAGE:
                continue
            if window.contains(event.date_for(basis)):
                yield event

    @traced_engine(
        "usage",
        "1.0",
        fingerprint_fields=("window", "group_by", "basis"),
        summarize=lambda r: {"group_count": len(r.ranked), "usage_total": r.total},
    )
    def aggregate_usage(
        self,
        events: Iterable[StockMovementEvent],
        window: UsageWindow,
        group_by: UsageGroupBy = UsageGroupBy.PRODUCT,
        *,
        basis: DateBasis | None = None,
    ) -> UsageReport:
        """Sum usage per group inside ``window`` and rank the totals."""
        basis = _require_basis(basis, "UsageAggregator.aggregate_usage")
        group_by = UsageGroupBy(group_by)

        totals: dict[GroupKey, int] = {}
        counts: dict[GroupKey, int] = {}
        for event in self._usage_in_window(events, window, basis):
            key = _group_key(event, group_by)
            totals[key] = totals.get(key, 0) + event.quantity
            counts[key] = counts.get(key, 0) + 1

        # sorted() is stable, so dict insertion order breaks ties
        ranked = tuple(
            UsageTotal(group_key=k, total=v, event_count=counts[k])
            for k, v in sorted(totals.items(), key=lambda kv: -kv[1])
        )
        logger.debug(
            "usage_aggregated",
            extra={
                "group_by": group_by.value,
                "group_count": len(ranked),
                "window_start": window.start,
                "window_end": window.end,
            },
        )
        return UsageReport(window=window, group_by=group_by, basis=basis, ranked=ranked)

    @traced_engine(
        "usage_buckets",
        "1.0",
        fingerprint_fields=("window", "basis", "group_by"),
        summarize=lambda r: {"bucket_count": len(r)},
    )
    def monthly_buckets(
        self,
        events: Iterable[StockMovementEvent],
        window: UsageWindow,
        *,
        basis: DateBasis | None = None,
        group_by: UsageGroupBy | None = None,
    ) -> tuple[UsageBucket, ...]:
        """
        Monthly usage per group, zero-filled.

        With ``group_by`` None there is a single series keyed None that
        always covers every month of the window.  Grouped series appear in
        first-seen order, months ascending within each group.
        """
        basis = _require_basis(basis, "UsageAggregator.monthly_buckets")
        months = window.months()

        sums: dict[GroupKey, dict[date, int]] = {}
        if group_by is None:
            sums[None] = {}
        for event in self._usage_in_window(events, window, basis):
            key = None if group_by is None else _group_key(event, UsageGroupBy(group_by))
            period = month_start(event.date_for(basis))
            series = sums.setdefault(key, {})
            series[period] = series.get(period, 0) + event.quantity

        return tuple(
            UsageBucket(period=m, group_key=key, total=series.get(m, 0))
            for key, series in sums.items()
            for m in months
        )

    def movement_trends(
        self,
        events: Iterable[StockMovementEvent],
        window: UsageWindow,
        *,
        basis: DateBasis | None = None,
    ) -> tuple[MovementTrend, ...]:
        """Inbound (purchase, exchange-in), outbound (sale) and usage per month."""
        basis = _require_basis(basis, "UsageAggregator.movement_trends")
        months = window.months()
        inbound = dict.fromkeys(months, 0)
        outbound = dict.fromkeys(months, 0)
        usage = dict.fromkeys(months, 0)

        for event in events:
            day = event.date_for(basis)
            if not window.contains(day):
                continue
            period = month_start(day)
            if event.reason in INBOUND_REASONS:
                inbound[period] += event.quantity
            elif event.reason in OUTBOUND_REASONS:
                outbound[period] += event.quantity
            elif event.reason == MovementReason.USAGE:
                usage[period] += event.quantity

        return tuple(
            MovementTrend(
                period=m,
                inbound=inbound[m],
                outbound=outbound[m],
                usage=usage[m],
            )
            for m in months
        )

    def usage_journal(
        self,
        events: Iterable[StockMovementEvent],
        window: UsageWindow,
        *,
        basis: DateBasis | None = None,
    ) -> tuple[UsageJournalEntry, ...]:
        """Usage grouped by (day, consuming location), day then location order."""
        basis = _require_basis(basis, "UsageAggregator.usage_journal")
        grouped: dict[tuple[date, str | None], list[StockMovementEvent]] = {}
        for event in self._usage_in_window(events, window, basis):
            key = (event.date_for(basis), event.source_location)
            grouped.setdefault(key, []).append(event)

        entries = [
            UsageJournalEntry(
                day=day,
                location=location,
                total=sum(e.quantity for e in group),
                events=tuple(group),
            )
            for (day, location), group in grouped.items()
        ]
        entries.sort(key=lambda e: (e.day, e.location or ""))
        return tuple(entries)
