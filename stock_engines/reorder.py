"""
Module: stock_engines.reorder
Responsibility:
    Reorder status per product: compare the stock held at one location with
    the recent usage rate and flag products that are out of stock or will
    run short within the cover period.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Stock totals and windowed usage totals are passed in already computed.

Invariants enforced:
    - monthly_average = window_usage / usage_months.
    - STOCK_OUT when quantity <= 0.
    - LOW_STOCK when quantity is below cover_months of monthly average and
      the monthly average is at least min_monthly_usage; slow movers never
      trigger a low-stock flag.
    - Order: stock-outs first, then quantity ascending; ties keep the order
      products were supplied in.

Failure modes:
    - ValueError for usage_months < 1 or cover_months < 0.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from stock_kernel.logging_config import get_logger
from stock_engines.tracer import traced_engine

logger = get_logger("engines.reorder")


class ReorderLevel(str, Enum):
    STOCK_OUT = "stock_out"
    LOW_STOCK = "low_stock"
    OK = "ok"


@dataclass(frozen=True)
class ReorderLine:
    """Stock against recent usage for one product."""

    product_ref: str
    quantity: int
    window_usage: int
    monthly_average: float
    level: ReorderLevel

    @property
    def needs_reorder(self) -> bool:
        return self.level != ReorderLevel.OK


def _summary(lines: tuple[ReorderLine, ...]) -> dict[str, int]:
    return {
        "product_count": len(lines),
        "stock_out_count": sum(1 for line in lines if line.level == ReorderLevel.STOCK_OUT),
        "low_stock_count": sum(1 for line in lines if line.level == ReorderLevel.LOW_STOCK),
    }


class ReorderAdvisor:
    """Stateless reorder classification."""

    @traced_engine(
        "reorder",
        "1.0",
        fingerprint_fields=("usage_months", "cover_months", "min_monthly_usage"),
        summarize=_summary,
    )
    def assess(
        self,
        stock: Mapping[str, int],
        usage: Mapping[str, int],
        *,
        usage_months: int,
        cover_months: int = 3,
        min_monthly_usage: float = 0.1,
    ) -> tuple[ReorderLine, ...]:
        """
        Classify every product in ``stock`` or ``usage``.

        Args:
            stock: Quantity on hand per product; products with no stock
                should be present with 0 so they are reported.
            usage: Usage per product over the trailing ``usage_months``.
            usage_months: Length of the usage window in months.
            cover_months: Months of average usage the stock should cover.
            min_monthly_usage: Average below which a product is never
                flagged as low.
        """
        if usage_months < 1:
            raise ValueError("usage_months must be >= 1")
        if cover_months < 0:
            raise ValueError("cover_months cannot be negative")

        products = list(stock)
        products.extend(ref for ref in usage if ref not in stock)

        lines: list[ReorderLine] = []
        for ref in products:
            quantity = stock.get(ref, 0)
            used = usage.get(ref, 0)
            average = used / usage_months
            if quantity <= 0:
                level = ReorderLevel.STOCK_OUT
            elif (
                used > 0
                and average >= min_monthly_usage
                # quantity < average * cover_months, kept in integers
                and quantity * usage_months < used * cover_months
            ):
                level = ReorderLevel.LOW_STOCK
            else:
                level = ReorderLevel.OK
            lines.append(
                ReorderLine(
                    product_ref=ref,
                    quantity=quantity,
                    window_usage=used,
                    monthly_average=round(average, 2),
                    level=level,
                )
            )

        # sorted() is stable, so supply order breaks ties
        ranked = tuple(
            sorted(lines, key=lambda line: (line.level != ReorderLevel.STOCK_OUT, line.quantity))
        )
        logger.debug(
            "reorder_assessed",
            extra={"product_count": len(ranked), "usage_months": usage_months},
        )
        return ranked
