"""
Tests for the reorder advisor.

Covers:
- Stock-outs first, then quantity ascending, supply order on ties
- Low stock below three months of average usage
- Slow movers (under 0.1 a month) never flagged as low
- Products known only from usage are reported
- Argument checks and the engine trace
"""

import pytest

from stock_engines.reorder import ReorderAdvisor, ReorderLevel

STOCK_OUT = ReorderLevel.STOCK_OUT
LOW = ReorderLevel.LOW_STOCK
OK = ReorderLevel.OK


@pytest.fixture
def advisor():
    return ReorderAdvisor()


def _levels(lines):
    return [(line.product_ref, line.quantity, line.level) for line in lines]


class TestClassification:
    def test_ordering(self, advisor):
        lines = advisor.assess(
            {"A": 40, "B": 0, "C": 5, "D": 0},
            {"A": 6, "C": 60},
            usage_months=6,
        )
        assert _levels(lines) == [
            ("B", 0, STOCK_OUT),
            ("D", 0, STOCK_OUT),
            ("C", 5, LOW),
            ("A", 40, OK),
        ]

    def test_low_stock_threshold(self, advisor):
        # 60 over six months is 10 a month; three months of cover is 30
        lines = advisor.assess({"AT": 30, "UNDER": 29}, {"AT": 60, "UNDER": 60}, usage_months=6)
        assert {line.product_ref: line.level for line in lines} == {"AT": OK, "UNDER": LOW}
        assert lines[0].monthly_average == 10.0

    def test_cover_months_is_configurable(self, advisor):
        lines = advisor.assess({"A": 30}, {"A": 60}, usage_months=6, cover_months=4)
        assert lines[0].level == LOW

    def test_slow_mover_is_never_low(self, advisor):
        # nothing used, then one used in a year: neither reaches 0.1 a month
        (line,) = advisor.assess({"A": 1}, {"A": 0}, usage_months=6)
        assert line.level == OK
        (line,) = advisor.assess({"A": 1}, {"A": 1}, usage_months=12, cover_months=24)
        assert line.monthly_average == 0.08
        assert line.level == OK

    def test_min_monthly_usage_is_configurable(self, advisor):
        (line,) = advisor.assess(
            {"A": 1}, {"A": 1}, usage_months=12, cover_months=24, min_monthly_usage=0.05
        )
        assert line.level == LOW

    def test_negative_quantity_is_a_stock_out(self, advisor):
        (line,) = advisor.assess({"A": -3}, {}, usage_months=6)
        assert line.level == STOCK_OUT
        assert line.needs_reorder

    def test_usage_only_product_is_reported(self, advisor):
        lines = advisor.assess({"A": 10}, {"A": 1, "GONE": 4}, usage_months=6)
        assert _levels(lines) == [("GONE", 0, STOCK_OUT), ("A", 10, OK)]
        assert lines[0].window_usage == 4

    def test_empty(self, advisor):
        assert advisor.assess({}, {}, usage_months=6) == ()


class TestArguments:
    @pytest.mark.parametrize(
        "kwargs",
        [{"usage_months": 0}, {"usage_months": 6, "cover_months": -1}],
    )
    def test_rejected(self, advisor, kwargs):
        with pytest.raises(ValueError):
            advisor.assess({"A": 1}, {}, **kwargs)


class TestTrace:
    def test_summary_counts(self, advisor, captured_logs):
        advisor.assess({"A": 0, "B": 1}, {"B": 60}, usage_months=6)

        (trace,) = [r for r in captured_logs() if r["message"] == "STOCK_ENGINE_TRACE"]
        assert trace["engine_name"] == "reorder"
        assert (trace["product_count"], trace["stock_out_count"], trace["low_stock_count"]) == (2, 1, 1)
