"""
ORM-level immutability enforcement for the movement ledger.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
Listeners registered here intercept those events for stock movements and
raise ImmutabilityViolationError, aborting the flush:

    session.flush()
         |
         v
    [before_update event] --> _check_movement_update() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_movement_delete() --> ImmutabilityViolationError

Corrections are new movements (an ADJUSTMENT, or a reversing TRANSFER), never
edits.  Raw SQL and bulk ``update()`` statements bypass ORM events; the ledger
service never issues them.

Usage:

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # create_tables() calls this

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(target, operation: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "StockMovement",
            "entity_id": str(target.id),
            "seq": target.seq,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type="StockMovement",
        entity_id=str(target.id),
        reason=f"Stock movements are append-only; {operation} is not allowed",
    )


def _check_movement_update(mapper, connection, target):
    """Prevent any update to an appended movement."""
    _block(target, "UPDATE")


def _check_movement_delete(mapper, connection, target):
    """Prevent deletion of an appended movement."""
    _block(target, "DELETE")


def register_immutability_listeners() -> None:
    """Register the movement listeners. Safe to call more than once."""
    from stock_kernel.models.movement import StockMovement

    for name, fn in (
        ("before_update", _check_movement_update),
        ("before_delete", _check_movement_delete),
    ):
        if not event.contains(StockMovement, name, fn):
            event.listen(StockMovement, name, fn)


def unregister_immutability_listeners() -> None:
    """
    Remove the movement listeners.

    WARNING: Only use this in tests that need to bypass the guard.
    """
    from stock_kernel.models.movement import StockMovement

    for name, fn in (
        ("before_update", _check_movement_update),
        ("before_delete", _check_movement_delete),
    ):
        if event.contains(StockMovement, name, fn):
            event.remove(StockMovement, name, fn)
