"""
stock_services -- Package init and public API.

Responsibility:
    Read-side orchestration that composes the pure engines (stock_engines/)
    with the movement ledger, the catalog and the clock.  This is the only
    layer above the kernel that holds ledger sessions or reads the time.

Architecture position:
    Services -- orchestration over engines + kernel.

        stock_services/ -> stock_engines/  (allowed)
        stock_services/ -> stock_kernel/   (allowed)
        stock_engines/  -> stock_services/ (forbidden)
        stock_kernel/   -> stock_services/ (forbidden)
"""

from stock_kernel.logging_config import get_logger

logger = get_logger("services")

from stock_services.inventory_service import InventoryService  # noqa: E402

__all__ = ["InventoryService"]
