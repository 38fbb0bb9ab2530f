"""
SequenceService -- ledger order for stock movements.

Every appended movement gets ``seq`` from a named row in
``sequence_counters``.  The row is read ``FOR UPDATE`` inside the append
transaction, so two writers in different processes queue on it and can
never draw the same number; a rolled-back append gives its number back.
``MAX(seq) + 1`` is never used: it races.

Called only by MovementLedger, inside its own session; this service never
commits.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.logging_config import get_logger
from stock_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """Allocate from named, row-locked counters."""

    STOCK_MOVEMENT = "stock_movement"

    def __init__(self, session: Session):
        self._session = session

    def _counter(self, name: str, *, lock: bool) -> SequenceCounter | None:
        stmt = select(SequenceCounter).where(SequenceCounter.name == name)
        if lock:
            # populate_existing: re-read the locked row, not the identity map
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def next_value(self, name: str) -> int:
        """Lock, increment and return the counter; the first value is 1."""
        counter = self._counter(name, lock=True) or self._first_use(name)
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, name: str) -> int | None:
        """Last value handed out, or None before the first allocation."""
        counter = self._counter(name, lock=False)
        return None if counter is None else counter.current_value

    def _first_use(self, name: str) -> SequenceCounter:
        """
        Insert the counter at zero.

        On PostgreSQL two first appends can both miss the row; the loser's
        insert fails on the unique name inside a savepoint and it locks the
        winner's row instead.  SQLite holds a database-wide write lock, so
        no savepoint is needed there.
        """
        if self._session.get_bind().dialect.name == "sqlite":
            counter = SequenceCounter(name=name, current_value=0)
            self._session.add(counter)
            self._session.flush()
            return counter

        savepoint = self._session.begin_nested()
        try:
            counter = SequenceCounter(name=name, current_value=0)
            self._session.add(counter)
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_created_concurrently", extra={"sequence_name": name})
            self._session.expire_all()
            counter = self._counter(name, lock=True)
            if counter is None:
                raise
            return counter
        savepoint.commit()
        return counter
