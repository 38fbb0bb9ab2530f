"""
Value types shared by the ledger, the engines and the services.

Responsibility:
    Enumerations for movement reasons, location kinds and date bases, plus
    the composite keys used to group balances.  Balances are keyed by typed
    tuples, never by formatted strings, so two spellings of the same expiry
    date cannot create two different lots.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import NamedTuple


class MovementReason(str, Enum):
    """Why stock moved."""

    PURCHASE = "purchase"
    SALE = "sale"
    USAGE = "usage"
    EXCHANGE_OUT = "exchange-out"
    EXCHANGE_IN = "exchange-in"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"

    @classmethod
    def parse(cls, value: MovementReason | str) -> MovementReason | None:
        """Return the enum member for ``value`` or None when unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


# Reason groups used by movement trend statistics
INBOUND_REASONS: frozenset[MovementReason] = frozenset(
    {MovementReason.PURCHASE, MovementReason.EXCHANGE_IN}
)
OUTBOUND_REASONS: frozenset[MovementReason] = frozenset({MovementReason.SALE})


class LocationKind(str, Enum):
    """Explicit classification of a stock location."""

    CENTRAL_WAREHOUSE = "central_warehouse"
    HOSPITAL = "hospital"
    SUPPLIER = "supplier"
    OTHER = "other"


class DateBasis(str, Enum):
    """
    Which date a cutoff or range applies to.

    EFFECTIVE: the caller-supplied business date, falling back to the
        recorded-at date when the event carries none.
    RECORDED: the UTC date of the system timestamp taken at append time.
    """

    EFFECTIVE = "effective"
    RECORDED = "recorded"


class UsageGroupBy(str, Enum):
    """Grouping dimension for usage aggregation."""

    PRODUCT = "product"
    LOCATION = "location"
    PRODUCT_LOCATION = "product_location"


class ExchangeLeg(str, Enum):
    """Which half of an exchange a movement records."""

    OUTBOUND = "outbound"
    INBOUND = "inbound"


class WarningKind(str, Enum):
    """Kinds of ConsistencyWarning raised lazily at query time."""

    NEGATIVE_BALANCE = "negative_balance"
    MISSING_EXCHANGE_COMPANION = "missing_exchange_companion"
    SELF_TRANSFER = "self_transfer"


class LotKey(NamedTuple):
    """A lot of a product, independent of where it is stored."""

    product_ref: str
    lot_number: str
    expiry_date: date | None


class LotBalanceKey(NamedTuple):
    """A lot of a product at one location."""

    product_ref: str
    lot_number: str
    expiry_date: date | None
    location: str

    @property
    def lot_key(self) -> LotKey:
        return LotKey(self.product_ref, self.lot_number, self.expiry_date)

    def sort_key(self) -> tuple:
        """Ordering by product, lot, then expiry (undated lots last)."""
        return (
            self.product_ref,
            self.lot_number,
            self.expiry_date is None,
            self.expiry_date or date.min,
            self.location,
        )
