"""
Module: stock_kernel.selectors.movement_selector
Responsibility: Read-only ledger queries.  Translates a MovementFilter into
    SQL and streams matching movements in ledger order.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Results are ordered by seq (append order).
    - Date bounds apply to business_date under DateBasis.EFFECTIVE and to the
      UTC date of recorded_at under DateBasis.RECORDED; the SQL predicates
      agree with MovementFilter.matches().
    - Streaming: rows are fetched in batches of ``batch_size`` and a
      CancellationToken is checked between rows.

Failure modes:
    - QueryCancelledError when the token is cancelled mid-stream.
"""

from collections.abc import Iterator
from datetime import date, datetime, time, timedelta, timezone
from uuid import UUID

from sqlalchemy import Select, func, or_, select

from stock_kernel.domain.cancellation import CancellationToken
from stock_kernel.domain.dtos import MovementFilter, StockMovementEvent
from stock_kernel.domain.values import DateBasis
from stock_kernel.logging_config import get_logger
from stock_kernel.models.movement import StockMovement
from stock_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.movement")

DEFAULT_BATCH_SIZE = 500


def _utc_midnight(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def apply_filter(stmt: Select, movement_filter: MovementFilter) -> Select:
    """Add the WHERE clauses described by ``movement_filter`` to ``stmt``."""
    f = movement_filter
    if f.locations is not None:
        locations = sorted(f.locations)
        stmt = stmt.where(
            or_(
                StockMovement.source_location.in_(locations),
                StockMovement.dest_location.in_(locations),
            )
        )
    if f.products is not None:
        stmt = stmt.where(StockMovement.product_ref.in_(sorted(f.products)))
    if f.reasons is not None:
        stmt = stmt.where(StockMovement.reason.in_(sorted(r.value for r in f.reasons)))

    if f.has_date_bounds:
        if f.basis == DateBasis.RECORDED:
            col = StockMovement.recorded_at
            if f.date_from is not None:
                stmt = stmt.where(col >= _utc_midnight(f.date_from))
            if f.date_to is not None:
                stmt = stmt.where(col < _utc_midnight(f.date_to))
            if f.as_of is not None:
                stmt = stmt.where(col < _utc_midnight(f.as_of + timedelta(days=1)))
        else:
            col = StockMovement.business_date
            if f.date_from is not None:
                stmt = stmt.where(col >= f.date_from)
            if f.date_to is not None:
                stmt = stmt.where(col < f.date_to)
            if f.as_of is not None:
                stmt = stmt.where(col <= f.as_of)
    return stmt


class MovementSelector(BaseSelector[StockMovement]):
    """Query the movement ledger."""

    def stream(
        self,
        movement_filter: MovementFilter | None = None,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        cancel: CancellationToken | None = None,
    ) -> Iterator[StockMovementEvent]:
        """
        Yield matching movements ordered by seq.

        The session must stay open until the iterator is exhausted or closed.
        """
        stmt = select(StockMovement).order_by(StockMovement.seq)
        if movement_filter is not None:
            stmt = apply_filter(stmt, movement_filter)

        rows_read = 0
        result = self.session.execute(stmt.execution_options(yield_per=batch_size))
        try:
            for row in result.scalars():
                if cancel is not None:
                    cancel.raise_if_cancelled(rows_read)
                rows_read += 1
                yield row.to_dto()
        finally:
            result.close()
            logger.debug("movement_stream_closed", extra={"rows_read": rows_read})

    def get(self, event_id: UUID) -> StockMovementEvent | None:
        row = self.session.get(StockMovement, event_id)
        return row.to_dto() if row is not None else None

    def by_idempotency_key(self, idempotency_key: str) -> StockMovementEvent | None:
        row = self.session.execute(
            select(StockMovement).where(
                StockMovement.idempotency_key == idempotency_key
            )
        ).scalar_one_or_none()
        return row.to_dto() if row is not None else None

    def count(self, movement_filter: MovementFilter | None = None) -> int:
        stmt = select(func.count(StockMovement.id))
        if movement_filter is not None:
            stmt = apply_filter(stmt, movement_filter)
        return self.session.execute(stmt).scalar_one()

    def exchange_legs(self) -> list[StockMovementEvent]:
        """Every movement that belongs to an exchange, in ledger order."""
        rows = self.session.execute(
            select(StockMovement)
            .where(StockMovement.exchange_id.is_not(None))
            .order_by(StockMovement.seq)
        ).scalars()
        return [row.to_dto() for row in rows]
