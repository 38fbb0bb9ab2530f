"""
Module: stock_kernel.models.movement
Responsibility: ORM persistence for the append-only stock movement ledger.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Rows are append-only; no UPDATE or DELETE (ORM listeners in
      db/immutability.py).
    - seq is unique and allocated from the locked counter row.
    - idempotency_key is unique when present.
    - business_date = effective_date, or the UTC date of recorded_at.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - IntegrityError on duplicate seq or idempotency_key (the ledger service
      checks idempotency first and maps the duplicate to a DUPLICATE result).
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Boolean, Date, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString
from stock_kernel.domain.dtos import StockMovementEvent
from stock_kernel.domain.values import ExchangeLeg, MovementReason


class StockMovement(Base):
    """
    One immutable movement of a lot between two locations.

    Contract:
        A null endpoint is the external boundary (supplier, patient,
        disposal).  Balances are never stored; they are replayed from
        these rows.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        Index("idx_movement_product", "product_ref", "lot_number"),
        Index("idx_movement_source", "source_location"),
        Index("idx_movement_dest", "dest_location"),
        Index("idx_movement_business_date", "business_date"),
        Index("idx_movement_recorded_at", "recorded_at"),
        Index("idx_movement_reason", "reason"),
        Index("idx_movement_exchange", "exchange_id"),
    )

    # Ledger order
    seq: Mapped[int] = mapped_column(nullable=False, unique=True)

    recorded_at: Mapped[datetime] = mapped_column(nullable=False)
    effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    business_date: Mapped[date] = mapped_column(Date, nullable=False)

    product_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    lot_number: Mapped[str] = mapped_column(String(100), nullable=False)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    source_location: Mapped[str | None] = mapped_column(String(100), nullable=True)
    dest_location: Mapped[str | None] = mapped_column(String(100), nullable=True)

    reason: Mapped[str] = mapped_column(String(20), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    idempotency_key: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        unique=True,
    )
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Exchange workflow
    exchange_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    exchange_leg: Mapped[str | None] = mapped_column(String(10), nullable=True)
    expects_companion: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    def to_dto(self) -> StockMovementEvent:
        return StockMovementEvent(
            event_id=self.id,
            seq=self.seq,
            recorded_at=self.recorded_at,
            business_date=self.business_date,
            product_ref=self.product_ref,
            lot_number=self.lot_number,
            quantity=self.quantity,
            reason=MovementReason(self.reason),
            source_location=self.source_location,
            dest_location=self.dest_location,
            expiry_date=self.expiry_date,
            effective_date=self.effective_date,
            notes=self.notes,
            idempotency_key=self.idempotency_key,
            payload_hash=self.payload_hash,
            exchange_id=self.exchange_id,
            exchange_leg=ExchangeLeg(self.exchange_leg) if self.exchange_leg else None,
            expects_companion=self.expects_companion,
        )

    def __repr__(self) -> str:
        return (
            f"<StockMovement seq={self.seq} {self.reason} {self.product_ref}/"
            f"{self.lot_number} x{self.quantity} "
            f"{self.source_location}->{self.dest_location}>"
        )
