"""
Tests for the usage aggregator.

Covers:
- Only ``usage`` movements count, inside a half-open window
- Ranking by total with first-seen tie-break and caller-chosen N
- Product, location and product-location grouping
- Zero-filled monthly buckets
- Monthly movement trends and the day-by-location usage journal
- Window arithmetic (trailing months with end-of-month clamping)
"""

from datetime import date, timedelta

import pytest

from stock_engines.usage import UsageAggregator, UsageWindow, add_months
from stock_kernel.domain.values import DateBasis, MovementReason, UsageGroupBy
from stock_kernel.exceptions import DateBasisRequiredError

USAGE = MovementReason.USAGE
WINDOW = UsageWindow(start=date(2024, 1, 1), end=date(2024, 4, 1))


@pytest.fixture
def aggregator():
    return UsageAggregator()


@pytest.fixture
def use(make_event):
    """Usage event consumed at ``location`` on ``day``."""

    def _use(day, quantity=1, product="PRODUCT-A", location="HOSPITAL-X"):
        return make_event(
            product_ref=product,
            quantity=quantity,
            reason=USAGE,
            source=location,
            effective=day,
        )

    return _use


class TestUsageWindow:
    def test_trailing_months_includes_today(self):
        window = UsageWindow.trailing_months(date(2024, 5, 15), 6)
        assert window.start == date(2023, 11, 15)
        assert window.end == date(2024, 5, 16)
        assert window.contains(date(2024, 5, 15))
        assert not window.contains(date(2024, 5, 16))

    def test_trailing_months_clamps_month_end(self):
        window = UsageWindow.trailing_months(date(2024, 8, 31), 6)
        assert window.start == date(2024, 2, 29)

    def test_trailing_delta(self):
        window = UsageWindow.trailing(date(2024, 3, 10), timedelta(days=7))
        assert (window.start, window.end) == (date(2024, 3, 3), date(2024, 3, 11))

    def test_inverted_window_rejected(self):
        with pytest.raises(ValueError):
            UsageWindow(start=date(2024, 2, 1), end=date(2024, 1, 1))

    def test_months_cover_partial_months(self):
        window = UsageWindow(start=date(2023, 11, 15), end=date(2024, 2, 2))
        assert window.months() == (
            date(2023, 11, 1),
            date(2023, 12, 1),
            date(2024, 1, 1),
            date(2024, 2, 1),
        )

    def test_empty_window_has_no_months(self):
        assert UsageWindow(start=date(2024, 1, 1), end=date(2024, 1, 1)).months() == ()

    def test_add_months_across_years(self):
        assert add_months(date(2024, 1, 31), -2) == date(2023, 11, 30)
        assert add_months(date(2023, 12, 15), 1) == date(2024, 1, 15)


class TestAggregateUsage:
    def test_requires_basis(self, aggregator):
        with pytest.raises(DateBasisRequiredError):
            aggregator.aggregate_usage([], WINDOW)

    def test_only_usage_inside_window_counts(self, aggregator, use, make_event):
        events = [
            use(date(2024, 1, 5), 3),
            use(date(2024, 3, 31), 2),
            use(date(2024, 4, 1), 100),  # window end is exclusive
            use(date(2023, 12, 31), 100),
            make_event(quantity=100, source="WAREHOUSE", dest="HOSPITAL-X",
                       reason=MovementReason.SALE, effective=date(2024, 2, 1)),
        ]

        report = aggregator.aggregate_usage(events, WINDOW, basis=DateBasis.EFFECTIVE)

        assert report.total == 5
        assert report.total_for("PRODUCT-A") == 5
        assert report.ranked[0].event_count == 2

    def test_ranking_ties_keep_first_seen_order(self, aggregator, use):
        events = [
            use(date(2024, 1, 2), 4, product="P-C"),
            use(date(2024, 1, 3), 4, product="P-A"),
            use(date(2024, 1, 4), 9, product="P-B"),
            use(date(2024, 1, 5), 4, product="P-D"),
        ]

        report = aggregator.aggregate_usage(events, WINDOW, basis=DateBasis.EFFECTIVE)

        assert [t.group_key for t in report.ranked] == ["P-B", "P-C", "P-A", "P-D"]
        assert [t.group_key for t in report.top(2)] == ["P-B", "P-C"]
        assert report.rank_of(3) == {"P-B": 1, "P-C": 2, "P-A": 3}

    def test_top_rejects_negative_n(self, aggregator):
        report = aggregator.aggregate_usage([], WINDOW, basis=DateBasis.EFFECTIVE)
        assert report.top(0) == ()
        with pytest.raises(ValueError):
            report.top(-1)

    def test_group_by_location(self, aggregator, use):
        events = [
            use(date(2024, 1, 2), 1, location="HOSPITAL-X"),
            use(date(2024, 1, 3), 5, location="HOSPITAL-Y"),
            use(date(2024, 1, 4), 2, location="HOSPITAL-X"),
        ]

        report = aggregator.aggregate_usage(
            events, WINDOW, UsageGroupBy.LOCATION, basis=DateBasis.EFFECTIVE
        )

        assert [(t.group_key, t.total) for t in report.ranked] == [
            ("HOSPITAL-Y", 5),
            ("HOSPITAL-X", 3),
        ]

    def test_group_by_product_location(self, aggregator, use):
        events = [
            use(date(2024, 1, 2), 1, product="P-A", location="HOSPITAL-X"),
            use(date(2024, 1, 3), 1, product="P-A", location="HOSPITAL-Y"),
            use(date(2024, 1, 4), 1, product="P-A", location="HOSPITAL-X"),
        ]

        report = aggregator.aggregate_usage(
            events, WINDOW, "product_location", basis=DateBasis.EFFECTIVE
        )

        assert report.total_for(("P-A", "HOSPITAL-X")) == 2
        assert report.total_for(("P-A", "HOSPITAL-Y")) == 1
        assert report.total_for(("P-A", "ELSEWHERE")) == 0


class TestMonthlyBuckets:
    def test_month_without_usage_gets_explicit_zero(self, aggregator, use):
        events = [use(date(2024, 1, 10), 3), use(date(2024, 3, 2), 4)]

        buckets = aggregator.monthly_buckets(events, WINDOW, basis=DateBasis.EFFECTIVE)

        assert [(b.period, b.group_key, b.total) for b in buckets] == [
            (date(2024, 1, 1), None, 3),
            (date(2024, 2, 1), None, 0),
            (date(2024, 3, 1), None, 4),
        ]

    def test_no_events_still_yields_every_month(self, aggregator):
        buckets = aggregator.monthly_buckets([], WINDOW, basis=DateBasis.RECORDED)
        assert [b.total for b in buckets] == [0, 0, 0]

    def test_grouped_series_are_zero_filled(self, aggregator, use):
        events = [
            use(date(2024, 2, 10), 1, product="P-B"),
            use(date(2024, 1, 10), 2, product="P-A"),
        ]

        buckets = aggregator.monthly_buckets(
            events, WINDOW, basis=DateBasis.EFFECTIVE, group_by=UsageGroupBy.PRODUCT
        )

        assert [(b.group_key, b.period.month, b.total) for b in buckets] == [
            ("P-B", 1, 0),
            ("P-B", 2, 1),
            ("P-B", 3, 0),
            ("P-A", 1, 2),
            ("P-A", 2, 0),
            ("P-A", 3, 0),
        ]

    def test_requires_basis(self, aggregator):
        with pytest.raises(DateBasisRequiredError):
            aggregator.monthly_buckets([], WINDOW)


class TestTrendsAndJournal:
    def test_movement_trends(self, aggregator, use, make_event):
        events = [
            make_event(quantity=10, source="CLIENT-MEDCO", dest="WAREHOUSE",
                       effective=date(2024, 1, 3)),
            make_event(quantity=2, source="HOSPITAL-X", dest="WAREHOUSE",
                       reason=MovementReason.EXCHANGE_IN, effective=date(2024, 1, 4)),
            make_event(quantity=4, source="WAREHOUSE", dest="HOSPITAL-X",
                       reason=MovementReason.SALE, effective=date(2024, 2, 4)),
            make_event(quantity=1, source="WAREHOUSE", dest="HOSPITAL-Y",
                       reason=MovementReason.TRANSFER, effective=date(2024, 2, 5)),
            use(date(2024, 3, 9), 3),
        ]

        trends = aggregator.movement_trends(events, WINDOW, basis=DateBasis.EFFECTIVE)

        assert [(t.inbound, t.outbound, t.usage) for t in trends] == [
            (12, 0, 0),
            (0, 4, 0),
            (0, 0, 3),
        ]

    def test_usage_journal_groups_by_day_and_location(self, aggregator, use):
        events = [
            use(date(2024, 1, 2), 1, location="HOSPITAL-Y"),
            use(date(2024, 1, 2), 2, location="HOSPITAL-X"),
            use(date(2024, 1, 2), 3, location="HOSPITAL-X", product="PRODUCT-B"),
            use(date(2024, 1, 1), 4, location="HOSPITAL-Y"),
        ]

        journal = aggregator.usage_journal(events, WINDOW, basis=DateBasis.EFFECTIVE)

        assert [(e.day.day, e.location, e.total, len(e.events)) for e in journal] == [
            (1, "HOSPITAL-Y", 4, 1),
            (2, "HOSPITAL-X", 5, 2),
            (2, "HOSPITAL-Y", 1, 1),
        ]


class TestUsageTrace:
    """The window is part of the traced input."""

    @staticmethod
    def _fingerprints(captured_logs, engine_name):
        return [
            r["input_fingerprint"]
            for r in captured_logs()
            if r["message"] == "STOCK_ENGINE_TRACE" and r["engine_name"] == engine_name
        ]

    def test_aggregate_usage_fingerprints_the_window(self, aggregator, captured_logs):
        later = UsageWindow(start=date(2024, 4, 1), end=date(2024, 7, 1))

        aggregator.aggregate_usage([], WINDOW, basis=DateBasis.EFFECTIVE)
        aggregator.aggregate_usage([], later, basis=DateBasis.EFFECTIVE)
        aggregator.aggregate_usage([], WINDOW, basis=DateBasis.EFFECTIVE)

        first, second, third = self._fingerprints(captured_logs, "usage")
        assert first != second
        assert first == third

    def test_monthly_buckets_fingerprints_the_window(self, aggregator, captured_logs):
        later = UsageWindow(start=date(2024, 4, 1), end=date(2024, 7, 1))

        aggregator.monthly_buckets([], WINDOW, basis=DateBasis.RECORDED)
        aggregator.monthly_buckets([], later, basis=DateBasis.RECORDED)

        first, second = self._fingerprints(captured_logs, "usage_buckets")
        assert first != second
