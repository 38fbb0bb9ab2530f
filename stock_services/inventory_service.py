"""
InventoryService -- read-side orchestration over the ledger and engines.

Responsibility:
    Answers stock, expiry and usage questions by streaming filtered ledger
    queries into the pure engines, and flattens the answers into report
    rows.  Holds no state between calls.

Architecture position:
    Services -- the only layer that combines the ledger (I/O), the clock and
    the engines.  ``today`` is read from the injected clock here and passed
    to the engines explicitly.

Invariants enforced:
    - Every date-bounded question takes an explicit DateBasis.
    - Reorder status compares stock at one location (the central warehouse
      by default) with usage across every location.
    - Multi-location projections are independent per-location projections;
      with ``query_workers > 1`` they run on a thread pool, each worker on
      its own ledger session.

Failure modes:
    - DateBasisRequiredError when a cutoff or window comes without a basis.
    - QueryCancelledError when the caller cancels a running query.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta

from stock_config.schema import LedgerSettings
from stock_engines.expiry import ExpiryScheduler, ExpirySummary, ScheduledLot
from stock_engines.projection import (
    InventoryProjector,
    MultiLocationProjection,
    ProjectionResult,
)
from stock_engines.reorder import ReorderAdvisor, ReorderLine
from stock_engines.reporting import (
    BalanceRow,
    UsageRow,
    balance_rows,
    expiry_rows,
    usage_rows,
)
from stock_engines.usage import (
    MovementTrend,
    UsageAggregator,
    UsageBucket,
    UsageJournalEntry,
    UsageReport,
    UsageTotal,
    UsageWindow,
)
from stock_kernel.domain.cancellation import CancellationToken
from stock_kernel.domain.catalog import (
    LocationDirectory,
    LocationRef,
    ProductCatalog,
    ProductInfo,
)
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import ConsistencyWarning, MovementFilter
from stock_kernel.domain.values import DateBasis, LotKey, MovementReason, UsageGroupBy
from stock_kernel.exceptions import DateBasisRequiredError, ProductNotFoundError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.services.ledger_service import MovementLedger

logger = get_logger("services.inventory")


class InventoryService:
    """Stock, expiry and usage queries over one ledger."""

    def __init__(
        self,
        ledger: MovementLedger,
        locations: LocationDirectory,
        catalog: ProductCatalog | None = None,
        clock: Clock | None = None,
        *,
        query_workers: int = 1,
        usage_window_months: int = 6,
        top_n: int = 5,
        expiry_horizon_days: int | None = 365,
        expiry_critical_days: int = 7,
        expiry_warning_days: int = 30,
        central_warehouse_id: str | None = None,
        reorder_cover_months: int = 3,
        reorder_min_monthly_usage: float = 0.1,
    ):
        if query_workers < 1:
            raise ValueError("query_workers must be >= 1")
        self._ledger = ledger
        self._locations = locations
        self._catalog = catalog
        self._clock = clock or SystemClock()
        self._query_workers = query_workers
        self._usage_window_months = usage_window_months
        self._top_n = top_n
        self._expiry_horizon_days = expiry_horizon_days
        self._expiry_critical_days = expiry_critical_days
        self._expiry_warning_days = expiry_warning_days
        self._central_warehouse_id = central_warehouse_id
        self._reorder_cover_months = reorder_cover_months
        self._reorder_min_monthly_usage = reorder_min_monthly_usage
        self._projector = InventoryProjector()
        self._aggregator = UsageAggregator()
        self._scheduler = ExpiryScheduler()
        self._advisor = ReorderAdvisor()

    @classmethod
    def from_settings(
        cls,
        settings: LedgerSettings,
        ledger: MovementLedger,
        locations: LocationDirectory,
        catalog: ProductCatalog | None = None,
        clock: Clock | None = None,
    ) -> InventoryService:
        return cls(
            ledger,
            locations,
            catalog,
            clock,
            query_workers=settings.query_workers,
            usage_window_months=settings.usage_window_months,
            top_n=settings.top_n,
            expiry_horizon_days=settings.expiry_horizon_days,
            expiry_critical_days=settings.expiry_critical_days,
            expiry_warning_days=settings.expiry_warning_days,
            central_warehouse_id=settings.central_warehouse_id,
            reorder_cover_months=settings.reorder_cover_months,
            reorder_min_monthly_usage=settings.reorder_min_monthly_usage,
        )

    # ------------------------------------------------------------------
    # Locations and products
    # ------------------------------------------------------------------

    def location_map(self) -> dict[str, LocationRef]:
        return {loc.location_id: loc for loc in self._locations.all()}

    def _all_location_ids(self) -> tuple[str, ...]:
        return tuple(loc.location_id for loc in self._locations.all())

    def _product_map(self, product_refs: Iterable[str]) -> dict[str, ProductInfo]:
        products: dict[str, ProductInfo] = {}
        if self._catalog is None:
            return products
        for ref in product_refs:
            if ref in products:
                continue
            try:
                products[ref] = self._catalog.describe(ref)
            except ProductNotFoundError:
                logger.warning("report_product_not_in_catalog", extra={"product_ref": ref})
        return products

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def project(
        self,
        location: str,
        *,
        as_of: date | None = None,
        basis: DateBasis | None = None,
        cancel: CancellationToken | None = None,
    ) -> ProjectionResult:
        """Balances of one location, current or as of a date."""
        if as_of is not None and basis is None:
            raise DateBasisRequiredError("InventoryService.project")
        movement_filter = MovementFilter(
            locations=frozenset({location}),
            as_of=as_of,
            basis=basis if as_of is not None else None,
        )
        with LogContext.bind(location_id=location):
            return self._projector.project(
                self._ledger.query(movement_filter, cancel=cancel),
                location,
                as_of=as_of,
                basis=basis if as_of is not None else None,
            )

    def project_across_locations(
        self,
        locations: Sequence[str] | None = None,
        *,
        as_of: date | None = None,
        basis: DateBasis | None = None,
        cancel: CancellationToken | None = None,
    ) -> MultiLocationProjection:
        """
        Independent per-location projections (every registered location
        when ``locations`` is None), in the order given.
        """
        ids: list[str] = []
        for location in locations if locations is not None else self._all_location_ids():
            if location not in ids:
                ids.append(location)

        def run(location: str) -> ProjectionResult:
            return self.project(location, as_of=as_of, basis=basis, cancel=cancel)

        if self._query_workers > 1 and len(ids) > 1:
            with ThreadPoolExecutor(
                max_workers=min(self._query_workers, len(ids)),
                thread_name_prefix="stock-projection",
            ) as pool:
                results = tuple(pool.map(run, ids))
        else:
            results = tuple(run(location) for location in ids)

        logger.info(
            "locations_projected",
            extra={
                "location_count": len(results),
                "workers": self._query_workers,
                "warning_count": sum(len(r.warnings) for r in results),
            },
        )
        return MultiLocationProjection(results=results)

    def balance_rows(
        self,
        locations: Sequence[str] | None = None,
        *,
        as_of: date | None = None,
        basis: DateBasis | None = None,
    ) -> tuple[BalanceRow, ...]:
        multi = self.project_across_locations(locations, as_of=as_of, basis=basis)
        products = self._product_map(b.product_ref for b in multi.balances)
        return balance_rows(
            multi,
            products,
            self.location_map(),
            today=as_of or self._clock.today(),
        )

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def expiry_schedule(
        self,
        locations: Sequence[str] | None = None,
        *,
        include_expired: bool = False,
        within_days: int | None = None,
        limit: int | None = None,
        cancel: CancellationToken | None = None,
    ) -> tuple[ScheduledLot, ...]:
        """
        Current positive lots ranked by days until expiry.

        ``within_days`` defaults to the configured expiry horizon.
        """
        multi = self.project_across_locations(locations, cancel=cancel)
        return self._scheduler.schedule(
            multi,
            self.location_map(),
            today=self._clock.today(),
            include_expired=include_expired,
            within_days=within_days if within_days is not None else self._expiry_horizon_days,
            limit=limit,
        )

    def expiry_summary(self, scheduled: Iterable[ScheduledLot]) -> ExpirySummary:
        return self._scheduler.summarize(
            scheduled,
            critical_days=self._expiry_critical_days,
            warning_days=self._expiry_warning_days,
        )

    def expiry_rows(self, scheduled: Sequence[ScheduledLot]) -> tuple[BalanceRow, ...]:
        products = self._product_map(lot.balance.product_ref for lot in scheduled)
        return expiry_rows(scheduled, products)

    # ------------------------------------------------------------------
    # Usage
    # ------------------------------------------------------------------

    def usage_window(self, months: int | None = None) -> UsageWindow:
        return UsageWindow.trailing_months(
            self._clock.today(),
            months if months is not None else self._usage_window_months,
        )

    def _usage_filter(self, window: UsageWindow, basis: DateBasis) -> MovementFilter:
        return MovementFilter(
            reasons=frozenset({MovementReason.USAGE}),
            date_from=window.start,
            date_to=window.end,
            basis=basis,
        )

    def usage_report(
        self,
        group_by: UsageGroupBy = UsageGroupBy.PRODUCT,
        *,
        basis: DateBasis | None = None,
        window: UsageWindow | None = None,
        cancel: CancellationToken | None = None,
    ) -> UsageReport:
        """Ranked usage over ``window`` (default: the trailing usage window)."""
        if basis is None:
            raise DateBasisRequiredError("InventoryService.usage_report")
        window = window or self.usage_window()
        return self._aggregator.aggregate_usage(
            self._ledger.query(self._usage_filter(window, basis), cancel=cancel),
            window,
            group_by,
            basis=basis,
        )

    def top_usage(
        self,
        n: int | None = None,
        group_by: UsageGroupBy = UsageGroupBy.PRODUCT,
        *,
        basis: DateBasis | None = None,
    ) -> tuple[UsageTotal, ...]:
        report = self.usage_report(group_by, basis=basis)
        return report.top(n if n is not None else self._top_n)

    def monthly_usage(
        self,
        *,
        basis: DateBasis | None = None,
        group_by: UsageGroupBy | None = None,
        window: UsageWindow | None = None,
    ) -> tuple[UsageBucket, ...]:
        if basis is None:
            raise DateBasisRequiredError("InventoryService.monthly_usage")
        window = window or self.usage_window()
        return self._aggregator.monthly_buckets(
            self._ledger.query(self._usage_filter(window, basis)),
            window,
            basis=basis,
            group_by=group_by,
        )

    def movement_trends(
        self,
        *,
        basis: DateBasis | None = None,
        window: UsageWindow | None = None,
    ) -> tuple[MovementTrend, ...]:
        if basis is None:
            raise DateBasisRequiredError("InventoryService.movement_trends")
        window = window or self.usage_window()
        movement_filter = MovementFilter(
            date_from=window.start,
            date_to=window.end,
            basis=basis,
        )
        return self._aggregator.movement_trends(
            self._ledger.query(movement_filter),
            window,
            basis=basis,
        )

    def usage_journal(
        self,
        *,
        basis: DateBasis | None = None,
        window: UsageWindow | None = None,
    ) -> tuple[UsageJournalEntry, ...]:
        """Usage by day and location; defaults to the current calendar month."""
        if basis is None:
            raise DateBasisRequiredError("InventoryService.usage_journal")
        if window is None:
            today = self._clock.today()
            window = UsageWindow(start=today.replace(day=1), end=today + timedelta(days=1))
        return self._aggregator.usage_journal(
            self._ledger.query(self._usage_filter(window, basis)),
            window,
            basis=basis,
        )

    def usage_rows(self, usage: UsageReport | Iterable[UsageBucket]) -> tuple[UsageRow, ...]:
        if isinstance(usage, UsageReport):
            if usage.group_by == UsageGroupBy.LOCATION:
                return usage_rows(usage)
            refs = [
                t.group_key if isinstance(t.group_key, str) else t.group_key[0]
                for t in usage.ranked
            ]
            return usage_rows(usage, self._product_map(refs))
        buckets = tuple(usage)
        refs = [
            b.group_key if isinstance(b.group_key, str) else b.group_key[0]
            for b in buckets
            if b.group_key is not None
        ]
        return usage_rows(buckets, self._product_map(refs))

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    def consistency_warnings(
        self,
        locations: Sequence[str] | None = None,
    ) -> tuple[ConsistencyWarning, ...]:
        """Negative balances across ``locations`` plus incomplete exchanges."""
        multi = self.project_across_locations(locations)
        return multi.warnings + self._ledger.exchange_warnings()

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def _order_location(self, location: str | None) -> str:
        location = location or self._central_warehouse_id
        if not location:
            raise ValueError("no location given and no central warehouse configured")
        return location

    def available_stock(self, location: str | None = None) -> dict[LotKey, int]:
        """Signed balance per lot at ``location`` (default: central warehouse)."""
        result = self.project(self._order_location(location))
        return {b.key.lot_key: b.quantity for b in result.all_balances()}

    def reorder_status(
        self,
        location: str | None = None,
        *,
        basis: DateBasis | None = None,
        months: int | None = None,
    ) -> tuple[ReorderLine, ...]:
        """
        Stock at ``location`` (default: central warehouse) against usage
        across all locations over the trailing usage window.

        Every catalog product is reported, so products with no stock at all
        appear as stock-outs.
        """
        if basis is None:
            raise DateBasisRequiredError("InventoryService.reorder_status")
        location = self._order_location(location)
        usage_months = months if months is not None else self._usage_window_months
        window = self.usage_window(usage_months)

        stock: dict[str, int] = {}
        if self._catalog is not None:
            stock = {p.product_ref: 0 for p in self._catalog.all()}
        stock.update(self.project(location).totals_by_product())

        report = self.usage_report(UsageGroupBy.PRODUCT, basis=basis, window=window)
        usage = {t.group_key: t.total for t in report.ranked}

        with LogContext.bind(location_id=location):
            return self._advisor.assess(
                stock,
                usage,
                usage_months=usage_months,
                cover_months=self._reorder_cover_months,
                min_monthly_usage=self._reorder_min_monthly_usage,
            )
