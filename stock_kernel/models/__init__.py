"""ORM models for the stock kernel."""

from stock_kernel.models.catalog import Location, Product
from stock_kernel.models.movement import StockMovement
from stock_kernel.models.sequence import SequenceCounter

__all__ = [
    "Location",
    "Product",
    "SequenceCounter",
    "StockMovement",
]
