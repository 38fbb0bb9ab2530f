"""
Module: stock_engines.projection
Responsibility:
    Replay movement events into lot-level balances for one location, or for
    several locations as independent per-location projections.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import stock_kernel.domain and stock_kernel.logging_config.

Invariants enforced:
    - Purity: every call folds the given events into a fresh table; no
      accumulator survives the call.  Replaying the same events yields the
      same result.
    - Cutoff: with ``as_of`` set, events whose basis date is after ``as_of``
      never affect the result.  A cutoff requires an explicit DateBasis.
    - Negative balances are reported as ConsistencyWarning, never clamped.
    - For one location, balance(key) == sum(qty where dest == location)
      - sum(qty where source == location).

Failure modes:
    - DateBasisRequiredError when ``as_of`` is given without ``basis``.

Usage:
    projector = InventoryProjector()
    result = projector.project(events, "WAREHOUSE", as_of=date(2025, 1, 31),
                               basis=DateBasis.EFFECTIVE)
    for balance in result.balances:
        print(balance.product_ref, balance.lot_number, balance.quantity)
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date

from stock_kernel.domain.dtos import ConsistencyWarning, LotBalance, StockMovementEvent
from stock_kernel.domain.values import DateBasis, LotBalanceKey, LotKey, WarningKind
from stock_kernel.exceptions import DateBasisRequiredError
from stock_kernel.logging_config import get_logger
from stock_engines.tracer import traced_engine

logger = get_logger("engines.projection")


def _fefo_key(balance: LotBalance) -> tuple:
    return (
        balance.expiry_date is None,
        balance.expiry_date or date.min,
        balance.lot_number,
    )


@dataclass(frozen=True)
class ProjectionResult:
    """
    Balances of one location at a cutoff.

    Guarantees:
        - ``balances`` holds positive balances only, sorted by product,
          lot, then expiry.
        - ``all_balances()`` holds every derived balance, zero and negative
          included, for auditing.
        - ``warnings`` has one NEGATIVE_BALANCE entry per negative balance.
    """

    location: str
    as_of: date | None
    basis: DateBasis | None
    balances: tuple[LotBalance, ...]
    derived: tuple[LotBalance, ...]
    warnings: tuple[ConsistencyWarning, ...]
    event_count: int

    def all_balances(self) -> tuple[LotBalance, ...]:
        return self.derived

    def balance(
        self,
        product_ref: str,
        lot_number: str,
        expiry_date: date | None,
    ) -> int:
        """Signed derived quantity for a lot here (0 when never touched)."""
        key = LotBalanceKey(product_ref, lot_number, expiry_date, self.location)
        for b in self.derived:
            if b.key == key:
                return b.quantity
        return 0

    def totals_by_product(self) -> dict[str, int]:
        """Available quantity per product across its positive lots."""
        totals: dict[str, int] = {}
        for b in self.balances:
            totals[b.product_ref] = totals.get(b.product_ref, 0) + b.quantity
        return totals

    def lots_for_product(self, product_ref: str) -> tuple[LotBalance, ...]:
        """Positive lots of a product, first-expiring first (undated last)."""
        lots = [b for b in self.balances if b.product_ref == product_ref]
        return tuple(sorted(lots, key=_fefo_key))

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


@dataclass(frozen=True)
class MultiLocationProjection:
    """
    Independent per-location projections over the same event snapshot.

    Merging is the caller's step: ``merged_totals()`` sums the signed
    derived balances of every projected location per lot.
    """

    results: tuple[ProjectionResult, ...]

    def for_location(self, location: str) -> ProjectionResult:
        for result in self.results:
            if result.location == location:
                return result
        raise KeyError(location)

    @property
    def locations(self) -> tuple[str, ...]:
        return tuple(r.location for r in self.results)

    @property
    def balances(self) -> tuple[LotBalance, ...]:
        return tuple(b for r in self.results for b in r.balances)

    @property
    def warnings(self) -> tuple[ConsistencyWarning, ...]:
        return tuple(w for r in self.results for w in r.warnings)

    def merged_totals(self) -> dict[LotKey, int]:
        totals: dict[LotKey, int] = {}
        for result in self.results:
            for b in result.derived:
                lot = b.key.lot_key
                totals[lot] = totals.get(lot, 0) + b.quantity
        return totals


class InventoryProjector:
    """
    Stateless replay of movement events into lot balances.

    The projector never queries the ledger; services pass it the events
    (typically a filtered, streaming ledger query).
    """

    @traced_engine(
        "projection",
        "1.0",
        fingerprint_fields=("location", "as_of", "basis"),
        summarize=lambda r: {
            "balance_count": len(r.balances),
            "warning_count": len(r.warnings),
        },
    )
    def project(
        self,
        events: Iterable[StockMovementEvent],
        location: str,
        *,
        as_of: date | None = None,
        basis: DateBasis | None = None,
    ) -> ProjectionResult:
        """
        Replay ``events`` for ``location`` up to ``as_of`` (inclusive).

        Events not touching ``location`` are ignored, so callers may pass an
        unfiltered stream.
        """
        if as_of is not None and basis is None:
            raise DateBasisRequiredError("InventoryProjector.project")

        table: dict[LotBalanceKey, int] = {}
        warnings: list[ConsistencyWarning] = []
        event_count = 0

        for event in events:
            if not event.touches(location):
                continue
            if as_of is not None and event.date_for(basis) > as_of:
                continue
            event_count += 1
            key = LotBalanceKey(
                event.product_ref, event.lot_number, event.expiry_date, location
            )
            delta = 0
            if event.dest_location == location:
                delta += event.quantity
            if event.source_location == location:
                delta -= event.quantity
                if event.dest_location == location:
                    warnings.append(
                        ConsistencyWarning(
                            kind=WarningKind.SELF_TRANSFER,
                            message=(
                                f"Movement seq {event.seq} moves stock from "
                                f"{location} to itself"
                            ),
                            key=key,
                            quantity=event.quantity,
                            event_id=event.event_id,
                        )
                    )
            table[key] = table.get(key, 0) + delta

        derived = tuple(
            LotBalance(key=k, quantity=q)
            for k, q in sorted(table.items(), key=lambda kv: kv[0].sort_key())
        )
        positive = tuple(b for b in derived if b.quantity > 0)
        for b in derived:
            if b.quantity < 0:
                warnings.append(
                    ConsistencyWarning(
                        kind=WarningKind.NEGATIVE_BALANCE,
                        message=(
                            f"{b.product_ref} lot {b.lot_number!r} at {location} "
                            f"is {b.quantity}"
                        ),
                        key=b.key,
                        quantity=b.quantity,
                    )
                )

        if warnings:
            logger.warning(
                "projection_consistency_warnings",
                extra={
                    "location": location,
                    "warning_count": len(warnings),
                    "warning_kinds": sorted({w.kind.value for w in warnings}),
                },
            )
        logger.debug(
            "projection_completed",
            extra={
                "location": location,
                "event_count": event_count,
                "balance_count": len(positive),
            },
        )

        return ProjectionResult(
            location=location,
            as_of=as_of,
            basis=basis,
            balances=positive,
            derived=derived,
            warnings=tuple(warnings),
            event_count=event_count,
        )

    def project_across_locations(
        self,
        events: Iterable[StockMovementEvent],
        locations: Sequence[str],
        *,
        as_of: date | None = None,
        basis: DateBasis | None = None,
    ) -> MultiLocationProjection:
        """One independent ``project`` per location over the same snapshot."""
        snapshot = tuple(events)
        seen: list[str] = []
        for location in locations:
            if location not in seen:
                seen.append(location)
        return MultiLocationProjection(
            results=tuple(
                self.project(snapshot, location, as_of=as_of, basis=basis)
                for location in seen
            )
        )
