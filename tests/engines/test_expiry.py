"""
Tests for the FEFO expiry scheduler.

Covers:
- days_until_expiry arithmetic and the expired cut
- Tie-break on equal expiry: non-warehouse first, then display name
- within_days / limit filters and their validation
- Unregistered locations and undated lots
- Urgency summary
"""

from datetime import date

import pytest

from stock_engines.expiry import ExpiryLevel, ExpiryScheduler, classify_days
from stock_engines.projection import InventoryProjector
from stock_kernel.domain.catalog import LocationRef
from stock_kernel.domain.values import LocationKind, MovementReason

TODAY = date(2024, 5, 15)

LOCATIONS = {
    "WAREHOUSE": LocationRef("WAREHOUSE", "Central Warehouse", LocationKind.CENTRAL_WAREHOUSE),
    "HOSPITAL-X": LocationRef("HOSPITAL-X", "Hospital X", LocationKind.HOSPITAL),
    "HOSPITAL-Y": LocationRef("HOSPITAL-Y", "Alpha Clinic", LocationKind.HOSPITAL),
}


@pytest.fixture
def scheduler():
    return ExpiryScheduler()


@pytest.fixture
def project():
    """Project events into the given locations."""

    def _project(events, locations):
        return InventoryProjector().project_across_locations(events, locations)

    return _project


class TestSchedule:
    def test_sorted_by_days_until_expiry(self, scheduler, project, make_event):
        events = [
            make_event(quantity=1, dest="HOSPITAL-X", lot_number="LATE", expiry=date(2024, 9, 1)),
            make_event(quantity=1, dest="HOSPITAL-X", lot_number="SOON", expiry=date(2024, 5, 20)),
        ]

        scheduled = scheduler.schedule(project(events, ["HOSPITAL-X"]), LOCATIONS, today=TODAY)

        assert [s.balance.lot_number for s in scheduled] == ["SOON", "LATE"]
        assert scheduled[0].days_until_expiry == 5

    def test_same_expiry_hospital_before_warehouse(self, scheduler, project, make_event):
        expiry = date(2024, 6, 30)
        events = [
            make_event(quantity=5, dest="WAREHOUSE", expiry=expiry),
            make_event(quantity=2, dest="HOSPITAL-X", expiry=expiry),
        ]

        scheduled = scheduler.schedule(
            project(events, ["WAREHOUSE", "HOSPITAL-X"]), LOCATIONS, today=TODAY
        )

        assert [s.location.location_id for s in scheduled] == ["HOSPITAL-X", "WAREHOUSE"]

    def test_same_expiry_hospitals_by_display_name(self, scheduler, project, make_event):
        expiry = date(2024, 6, 30)
        events = [
            make_event(quantity=1, dest="HOSPITAL-X", expiry=expiry),
            make_event(quantity=1, dest="HOSPITAL-Y", expiry=expiry),
        ]

        scheduled = scheduler.schedule(
            project(events, ["HOSPITAL-X", "HOSPITAL-Y"]), LOCATIONS, today=TODAY
        )

        # "Alpha Clinic" sorts before "Hospital X"
        assert [s.location.location_id for s in scheduled] == ["HOSPITAL-Y", "HOSPITAL-X"]

    def test_expired_lots_dropped_by_default(self, scheduler, project, make_event):
        events = [
            make_event(quantity=1, dest="HOSPITAL-X", lot_number="TODAY", expiry=TODAY),
            make_event(quantity=1, dest="HOSPITAL-X", lot_number="PAST", expiry=date(2024, 1, 1)),
            make_event(quantity=1, dest="HOSPITAL-X", lot_number="TOMORROW", expiry=date(2024, 5, 16)),
        ]
        projections = project(events, ["HOSPITAL-X"])

        default = scheduler.schedule(projections, LOCATIONS, today=TODAY)
        everything = scheduler.schedule(projections, LOCATIONS, today=TODAY, include_expired=True)

        assert [s.balance.lot_number for s in default] == ["TOMORROW"]
        assert [s.balance.lot_number for s in everything] == ["PAST", "TODAY", "TOMORROW"]
        assert everything[0].is_expired

    def test_negative_and_undated_balances_never_scheduled(self, scheduler, project, make_event):
        events = [
            make_event(quantity=3, source="HOSPITAL-X", dest="HOSPITAL-Y", expiry=date(2024, 7, 1)),
            make_event(quantity=3, dest="HOSPITAL-X", lot_number="UNDATED", expiry=None),
        ]

        scheduled = scheduler.schedule(project(events, ["HOSPITAL-X"]), LOCATIONS, today=TODAY)

        assert scheduled == ()

    def test_within_days_and_limit(self, scheduler, project, make_event):
        events = [
            make_event(quantity=1, dest="HOSPITAL-X", lot_number=f"L{d}", expiry=date(2024, 5, 15 + d))
            for d in (1, 3, 10, 14)
        ]
        projections = project(events, ["HOSPITAL-X"])

        within = scheduler.schedule(projections, LOCATIONS, today=TODAY, within_days=10)
        limited = scheduler.schedule(projections, LOCATIONS, today=TODAY, limit=2)

        assert [s.days_until_expiry for s in within] == [1, 3, 10]
        assert [s.days_until_expiry for s in limited] == [1, 3]

    @pytest.mark.parametrize("kwargs", [{"within_days": -1}, {"limit": -1}])
    def test_negative_filters_rejected(self, scheduler, kwargs):
        with pytest.raises(ValueError):
            scheduler.schedule([], LOCATIONS, today=TODAY, **kwargs)

    def test_unregistered_location_uses_id_as_name(self, scheduler, project, make_event):
        events = [make_event(quantity=1, dest="DEPOT-9", expiry=date(2024, 6, 1))]

        scheduled = scheduler.schedule(project(events, ["DEPOT-9"]), LOCATIONS, today=TODAY)

        assert scheduled[0].location.display_name == "DEPOT-9"
        assert scheduled[0].location.kind == LocationKind.OTHER


class TestSummary:
    def test_classify_days(self):
        assert classify_days(0, 7, 30) == ExpiryLevel.EXPIRED
        assert classify_days(7, 7, 30) == ExpiryLevel.CRITICAL
        assert classify_days(30, 7, 30) == ExpiryLevel.WARNING
        assert classify_days(31, 7, 30) == ExpiryLevel.NORMAL

    def test_summarize(self, scheduler, project, make_event):
        events = [
            make_event(quantity=2, dest="HOSPITAL-X", lot_number="A", expiry=date(2024, 5, 1)),
            make_event(quantity=3, dest="HOSPITAL-X", lot_number="B", expiry=date(2024, 5, 20)),
            make_event(quantity=4, dest="WAREHOUSE", lot_number="C", expiry=date(2024, 6, 10)),
            make_event(quantity=5, dest="WAREHOUSE", product_ref="PRODUCT-B", expiry=date(2025, 1, 1)),
            make_event(quantity=1, source="WAREHOUSE", dest="HOSPITAL-X",
                       reason=MovementReason.SALE, product_ref="PRODUCT-B", expiry=date(2025, 1, 1)),
        ]
        scheduled = scheduler.schedule(
            project(events, ["HOSPITAL-X", "WAREHOUSE"]),
            LOCATIONS,
            today=TODAY,
            include_expired=True,
        )

        summary = scheduler.summarize(scheduled, critical_days=7, warning_days=30)

        assert (summary.expired, summary.critical, summary.warning, summary.normal) == (1, 1, 1, 2)
        assert summary.lot_count == 5
        assert summary.total_quantity == 2 + 3 + 4 + 4 + 1
        assert summary.location_count == 2
        assert summary.product_count == 2

    def test_critical_must_not_exceed_warning(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.summarize([], critical_days=31, warning_days=30)
