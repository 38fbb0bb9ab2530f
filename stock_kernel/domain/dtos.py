"""
Data Transfer Objects for the stock kernel.

Responsibility:
    Immutable value objects exchanged between the ledger, the pure engines
    and the services.  No ORM objects cross this boundary.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Every DTO is a frozen dataclass.
    - ``StockMovementEvent.business_date`` is the effective date, or the
      UTC date of ``recorded_at`` when no effective date was supplied.
    - A ``MovementFilter`` carrying any date bound also carries a
      ``DateBasis`` (DateBasisRequiredError otherwise).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from stock_kernel.domain.values import (
    DateBasis,
    ExchangeLeg,
    LotBalanceKey,
    MovementReason,
    WarningKind,
)
from stock_kernel.exceptions import DateBasisRequiredError


# =============================================================================
# Validation
# =============================================================================


@dataclass(frozen=True)
class ValidationError:
    """
    A single validation error.

    Contract:
        Carries a machine-readable code, human-readable message, optional field
        path, and optional details dict.

    Non-goals:
        - Does NOT raise exceptions -- it IS the error representation.
    """

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class ValidationResult:
    """
    Result of validation.

    Guarantees:
        - errors is always a tuple (never None)
        - bool(result) == result.is_valid for convenience
    """

    is_valid: bool
    errors: tuple[ValidationError, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls) -> ValidationResult:
        """Create a successful validation result."""
        return cls(is_valid=True, errors=())

    @classmethod
    def failure(cls, *errors: ValidationError) -> ValidationResult:
        """Create a failed validation result."""
        return cls(is_valid=False, errors=tuple(errors))

    def __bool__(self) -> bool:
        return self.is_valid


# =============================================================================
# Movements
# =============================================================================


@dataclass(frozen=True)
class MovementDraft:
    """
    Caller-supplied movement, before the ledger assigns identity and time.

    ``reason`` may arrive as a raw string from a form or a scan batch; the
    validator rejects values outside ``MovementReason``.
    """

    product_ref: str
    lot_number: str
    quantity: int
    reason: MovementReason | str
    source_location: str | None = None
    dest_location: str | None = None
    expiry_date: date | None = None
    effective_date: date | None = None
    notes: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Canonical payload used for idempotency hashing."""
        reason = self.reason.value if isinstance(self.reason, Enum) else self.reason
        return {
            "product_ref": self.product_ref,
            "lot_number": self.lot_number,
            "quantity": self.quantity,
            "reason": reason,
            "source_location": self.source_location,
            "dest_location": self.dest_location,
            "expiry_date": self.expiry_date,
            "effective_date": self.effective_date,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class StockMovementEvent:
    """
    An appended, immutable stock movement.

    Guarantees:
        - quantity > 0.
        - At most one of source_location / dest_location is None, and they
          never name the same location.
        - recorded_at is timezone-aware UTC.
    """

    event_id: UUID
    seq: int
    recorded_at: datetime
    business_date: date
    product_ref: str
    lot_number: str
    quantity: int
    reason: MovementReason
    source_location: str | None = None
    dest_location: str | None = None
    expiry_date: date | None = None
    effective_date: date | None = None
    notes: str | None = None
    idempotency_key: str | None = None
    payload_hash: str | None = None
    exchange_id: UUID | None = None
    exchange_leg: ExchangeLeg | None = None
    expects_companion: bool = False

    def date_for(self, basis: DateBasis) -> date:
        """The date this event is placed on under ``basis``."""
        if basis == DateBasis.RECORDED:
            return self.recorded_at.date()
        return self.business_date

    def touches(self, location: str) -> bool:
        return self.source_location == location or self.dest_location == location

    @property
    def balance_key_fields(self) -> tuple[str, str, date | None]:
        return (self.product_ref, self.lot_number, self.expiry_date)


class AppendStatus(str, Enum):
    """Outcome of an append."""

    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"  # Idempotent success


@dataclass(frozen=True)
class AppendResult:
    """Result of an append operation."""

    status: AppendStatus
    event: StockMovementEvent

    @property
    def event_id(self) -> UUID:
        return self.event.event_id

    @property
    def is_duplicate(self) -> bool:
        return self.status == AppendStatus.DUPLICATE


# =============================================================================
# Exchanges
# =============================================================================


@dataclass(frozen=True)
class ExchangeRequest:
    """
    An exchange as one value: an outbound leg and an optional inbound leg.

    The ledger writes the legs as two separate appends.  Each leg gets its
    own idempotency key derived from ``idempotency_key`` so re-submitting
    the whole request after a crash completes the missing leg only.
    """

    exchange_id: UUID
    outbound: MovementDraft
    inbound: MovementDraft | None = None
    idempotency_key: str | None = None

    @property
    def base_key(self) -> str:
        return self.idempotency_key or f"exchange:{self.exchange_id}"

    @property
    def outbound_key(self) -> str:
        return f"{self.base_key}:out"

    @property
    def inbound_key(self) -> str:
        return f"{self.base_key}:in"


@dataclass(frozen=True)
class ExchangeReceipt:
    """What the ledger did with an ExchangeRequest."""

    exchange_id: UUID
    outbound: AppendResult
    inbound: AppendResult | None = None

    @property
    def is_complete(self) -> bool:
        """True when every expected leg is in the ledger."""
        return self.inbound is not None or not self.outbound.event.expects_companion


# =============================================================================
# Queries
# =============================================================================


def _frozen(values: Iterable[Any] | None) -> frozenset | None:
    if values is None:
        return None
    if isinstance(values, (str, bytes)):
        return frozenset({values})
    return frozenset(values)


@dataclass(frozen=True)
class MovementFilter:
    """
    Ledger query filter.

    Locations match on source OR destination.  ``date_from``/``date_to``
    form a half-open ``[from, to)`` range and ``as_of`` is an inclusive
    cutoff; all three apply to the date selected by ``basis``.
    """

    locations: frozenset[str] | None = None
    products: frozenset[str] | None = None
    reasons: frozenset[MovementReason] | None = None
    date_from: date | None = None
    date_to: date | None = None
    as_of: date | None = None
    basis: DateBasis | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "locations", _frozen(self.locations))
        object.__setattr__(self, "products", _frozen(self.products))
        reasons = _frozen(self.reasons)
        if reasons is not None:
            reasons = frozenset(MovementReason(r) for r in reasons)
        object.__setattr__(self, "reasons", reasons)
        if self.has_date_bounds and self.basis is None:
            raise DateBasisRequiredError("MovementFilter")

    @property
    def has_date_bounds(self) -> bool:
        return (
            self.date_from is not None
            or self.date_to is not None
            or self.as_of is not None
        )

    def matches(self, event: StockMovementEvent) -> bool:
        """In-memory equivalent of the SQL filter."""
        if self.locations is not None and not (
            event.source_location in self.locations
            or event.dest_location in self.locations
        ):
            return False
        if self.products is not None and event.product_ref not in self.products:
            return False
        if self.reasons is not None and event.reason not in self.reasons:
            return False
        if self.has_date_bounds:
            day = event.date_for(self.basis)
            if self.date_from is not None and day < self.date_from:
                return False
            if self.date_to is not None and day >= self.date_to:
                return False
            if self.as_of is not None and day > self.as_of:
                return False
        return True


# =============================================================================
# Balances and warnings
# =============================================================================


@dataclass(frozen=True)
class LotBalance:
    """Signed quantity of one lot at one location."""

    key: LotBalanceKey
    quantity: int

    @property
    def product_ref(self) -> str:
        return self.key.product_ref

    @property
    def lot_number(self) -> str:
        return self.key.lot_number

    @property
    def expiry_date(self) -> date | None:
        return self.key.expiry_date

    @property
    def location(self) -> str:
        return self.key.location


@dataclass(frozen=True)
class ConsistencyWarning:
    """
    A problem found in derived data, returned with query results.

    Never raised and never auto-corrected: clamping a negative balance to
    zero would hide real shrinkage.
    """

    kind: WarningKind
    message: str
    key: LotBalanceKey | None = None
    quantity: int | None = None
    event_id: UUID | None = None
    exchange_id: UUID | None = None
