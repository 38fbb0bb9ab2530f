"""Read-only query selectors."""

from stock_kernel.selectors.base import BaseSelector
from stock_kernel.selectors.catalog_selector import SqlLocationDirectory, SqlProductCatalog
from stock_kernel.selectors.movement_selector import MovementSelector, apply_filter

__all__ = [
    "BaseSelector",
    "MovementSelector",
    "SqlLocationDirectory",
    "SqlProductCatalog",
    "apply_filter",
]
