"""
MovementLedger -- the append-only stock movement log.

Responsibility:
    Sole writer of stock movements.  Validates drafts at the boundary,
    resolves idempotent re-submissions via payload hash comparison,
    allocates ledger order from the locked sequence counter, stamps
    ``recorded_at`` from the injected clock and persists the event.  Also
    the canonical read path: filtered, streaming, cancellable queries.

Architecture position:
    Kernel > Services -- imperative shell over models/ and selectors/.
    Engines never see this class; services hand them the events it yields.

Invariants enforced:
    - Append-only: there is no update or delete operation; ORM listeners
      reject both at flush time.
    - Atomic append: validation, idempotency check, sequence allocation and
      insert run under one process-wide lock inside one transaction.
    - Idempotency: the same key with the same payload returns DUPLICATE and
      the stored event; the same key with a different payload raises
      IdempotencyConflictError.
    - Exchanges are two separate idempotent appends (``<key>:out`` then
      ``<key>:in``); a missing inbound leg is reported lazily by
      exchange_warnings(), never repaired.

Failure modes:
    - MovementValidationError: structural validation failed; nothing written.
    - IdempotencyConflictError: key reused with a different payload.
    - ExchangeRequestError: exchange legs carry the wrong reasons.
    - MovementNotFoundError: get() on an unknown event id.
    - QueryCancelledError: a streaming query was cancelled.
    Appends are not retried automatically.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Iterator
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from stock_kernel.db.engine import session_scope
from stock_kernel.domain.cancellation import CancellationToken
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    AppendResult,
    AppendStatus,
    ConsistencyWarning,
    ExchangeReceipt,
    ExchangeRequest,
    MovementDraft,
    MovementFilter,
    StockMovementEvent,
)
from stock_kernel.domain.movement_validator import validate_movement
from stock_kernel.domain.values import ExchangeLeg, MovementReason, WarningKind
from stock_kernel.exceptions import (
    ExchangeRequestError,
    IdempotencyConflictError,
    MovementNotFoundError,
    MovementValidationError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.movement import StockMovement
from stock_kernel.selectors.movement_selector import DEFAULT_BATCH_SIZE, MovementSelector
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.utils.hashing import hash_payload

logger = get_logger("services.ledger")

# Serializes appends within the process.  Across processes the locked
# sequence counter row (PostgreSQL) or the SQLite write lock takes over.
_APPEND_LOCK = threading.Lock()


class MovementLedger:
    """
    Append and query stock movements.

    Every call takes its own session from ``session_factory``, so one ledger
    instance can be shared between threads.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._batch_size = batch_size

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(
        self,
        draft: MovementDraft,
        *,
        idempotency_key: str | None = None,
    ) -> AppendResult:
        """
        Append one movement.

        Preconditions:
            ``draft`` passes validate_movement().
        Postconditions:
            ACCEPTED: a new event with the next seq is committed.
            DUPLICATE: nothing is written; the stored event is returned.

        Raises:
            MovementValidationError: draft rejected; nothing written.
            IdempotencyConflictError: key already used for another payload.
        """
        self._validate(draft)
        return self._append(draft, idempotency_key)

    def append_exchange(self, request: ExchangeRequest) -> ExchangeReceipt:
        """
        Record an exchange as two idempotent appends.

        Both legs are validated before either is written.  Re-submitting the
        same request after a failure between the two appends writes only the
        missing leg.
        """
        self._validate_exchange(request)
        self._validate(request.outbound)
        if request.inbound is not None:
            self._validate(request.inbound)

        with LogContext.bind(correlation_id=str(request.exchange_id)):
            outbound = self._append(
                request.outbound,
                request.outbound_key,
                exchange_id=request.exchange_id,
                exchange_leg=ExchangeLeg.OUTBOUND,
                expects_companion=request.inbound is not None,
            )
            inbound = None
            if request.inbound is not None:
                inbound = self._append(
                    request.inbound,
                    request.inbound_key,
                    exchange_id=request.exchange_id,
                    exchange_leg=ExchangeLeg.INBOUND,
                )

            logger.info(
                "exchange_recorded",
                extra={
                    "exchange_id": str(request.exchange_id),
                    "outbound_status": outbound.status.value,
                    "inbound_status": inbound.status.value if inbound else None,
                },
            )
        return ExchangeReceipt(
            exchange_id=request.exchange_id,
            outbound=outbound,
            inbound=inbound,
        )

    def _validate(self, draft: MovementDraft) -> None:
        validation = validate_movement(draft)
        if not validation:
            logger.warning(
                "movement_rejected",
                extra={
                    "product_ref": draft.product_ref,
                    "error_count": len(validation.errors),
                    "error_codes": [e.code for e in validation.errors],
                },
            )
            raise MovementValidationError(validation.errors)

    @staticmethod
    def _validate_exchange(request: ExchangeRequest) -> None:
        if MovementReason.parse(request.outbound.reason) != MovementReason.EXCHANGE_OUT:
            raise ExchangeRequestError(
                str(request.exchange_id),
                f"outbound leg must have reason exchange-out, got {request.outbound.reason!r}",
            )
        if (
            request.inbound is not None
            and MovementReason.parse(request.inbound.reason) != MovementReason.EXCHANGE_IN
        ):
            raise ExchangeRequestError(
                str(request.exchange_id),
                f"inbound leg must have reason exchange-in, got {request.inbound.reason!r}",
            )

    def _append(
        self,
        draft: MovementDraft,
        idempotency_key: str | None,
        *,
        exchange_id: UUID | None = None,
        exchange_leg: ExchangeLeg | None = None,
        expects_companion: bool = False,
    ) -> AppendResult:
        payload: dict[str, Any] = draft.to_payload()
        if exchange_id is not None:
            payload["exchange_id"] = exchange_id
            payload["exchange_leg"] = exchange_leg
        payload_hash = hash_payload(payload)

        try:
            with _APPEND_LOCK, session_scope(self._session_factory) as session:
                if idempotency_key is not None:
                    existing = self._existing(
                        MovementSelector(session), idempotency_key, payload_hash
                    )
                    if existing is not None:
                        return existing

                recorded_at = self._clock.now_utc()
                seq = SequenceService(session).next_value(SequenceService.STOCK_MOVEMENT)
                row = StockMovement(
                    seq=seq,
                    recorded_at=recorded_at,
                    effective_date=draft.effective_date,
                    business_date=draft.effective_date or recorded_at.date(),
                    product_ref=draft.product_ref,
                    lot_number=draft.lot_number,
                    expiry_date=draft.expiry_date,
                    quantity=draft.quantity,
                    source_location=draft.source_location,
                    dest_location=draft.dest_location,
                    reason=MovementReason.parse(draft.reason).value,
                    notes=draft.notes,
                    idempotency_key=idempotency_key,
                    payload_hash=payload_hash,
                    exchange_id=exchange_id,
                    exchange_leg=exchange_leg.value if exchange_leg else None,
                    expects_companion=expects_companion,
                )
                session.add(row)
                session.flush()
                event = row.to_dto()
        except IntegrityError:
            # Another process committed the same idempotency key first
            if idempotency_key is None:
                raise
            logger.warning(
                "concurrent_movement_insert_conflict",
                extra={"idempotency_key": idempotency_key},
            )
            with session_scope(self._session_factory) as session:
                existing = self._existing(
                    MovementSelector(session), idempotency_key, payload_hash
                )
            if existing is None:
                raise
            return existing

        logger.info(
            "movement_appended",
            extra={
                "event_id": str(event.event_id),
                "seq": event.seq,
                "reason": event.reason.value,
                "product_ref": event.product_ref,
                "quantity": event.quantity,
                "source_location": event.source_location,
                "dest_location": event.dest_location,
            },
        )
        return AppendResult(status=AppendStatus.ACCEPTED, event=event)

    @staticmethod
    def _existing(
        selector: MovementSelector,
        idempotency_key: str,
        payload_hash: str,
    ) -> AppendResult | None:
        existing = selector.by_idempotency_key(idempotency_key)
        if existing is None:
            return None
        if existing.payload_hash != payload_hash:
            logger.warning(
                "movement_rejected_hash_mismatch",
                extra={"idempotency_key": idempotency_key},
            )
            raise IdempotencyConflictError(
                idempotency_key, existing.payload_hash, payload_hash
            )
        logger.info(
            "movement_duplicate",
            extra={"idempotency_key": idempotency_key, "seq": existing.seq},
        )
        return AppendResult(status=AppendStatus.DUPLICATE, event=existing)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query(
        self,
        movement_filter: MovementFilter | None = None,
        *,
        cancel: CancellationToken | None = None,
    ) -> Iterator[StockMovementEvent]:
        """
        Stream matching events in ledger (seq) order.

        The underlying session stays open until the iterator is exhausted,
        closed, or raises QueryCancelledError.
        """
        session = self._session_factory()
        try:
            yield from MovementSelector(session).stream(
                movement_filter,
                batch_size=self._batch_size,
                cancel=cancel,
            )
        finally:
            session.close()

    def get(self, event_id: UUID) -> StockMovementEvent:
        with self._session_factory() as session:
            event = MovementSelector(session).get(event_id)
        if event is None:
            raise MovementNotFoundError(str(event_id))
        return event

    def count(self, movement_filter: MovementFilter | None = None) -> int:
        with self._session_factory() as session:
            return MovementSelector(session).count(movement_filter)

    def exchange_warnings(self) -> tuple[ConsistencyWarning, ...]:
        """Outbound exchange legs whose expected inbound leg was never appended."""
        with self._session_factory() as session:
            legs = MovementSelector(session).exchange_legs()

        by_exchange: dict[UUID, list[StockMovementEvent]] = defaultdict(list)
        for leg in legs:
            by_exchange[leg.exchange_id].append(leg)

        warnings: list[ConsistencyWarning] = []
        for exchange_id, events in by_exchange.items():
            has_inbound = any(e.exchange_leg == ExchangeLeg.INBOUND for e in events)
            for event in events:
                if (
                    event.exchange_leg == ExchangeLeg.OUTBOUND
                    and event.expects_companion
                    and not has_inbound
                ):
                    warnings.append(
                        ConsistencyWarning(
                            kind=WarningKind.MISSING_EXCHANGE_COMPANION,
                            message=(
                                f"Exchange {exchange_id} has an outbound leg "
                                f"(seq {event.seq}) but no inbound leg"
                            ),
                            event_id=event.event_id,
                            exchange_id=exchange_id,
                            quantity=event.quantity,
                        )
                    )
        if warnings:
            logger.warning(
                "exchange_companion_missing",
                extra={"count": len(warnings)},
            )
        return tuple(warnings)
