"""
stock_ingestion.domain.types -- Pure frozen dataclasses for scan ingestion.

ZERO I/O. Imports only from stock_kernel.domain, stock_kernel.exceptions and
stock_kernel.utils.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum

from stock_kernel.domain.catalog import ProductInfo
from stock_kernel.domain.dtos import AppendResult, MovementDraft
from stock_kernel.domain.values import MovementReason
from stock_kernel.exceptions import StockKernelError
from stock_kernel.utils.hashing import fingerprint


# =============================================================================
# Barcode decoding
# =============================================================================


@dataclass(frozen=True)
class DecodedBarcode:
    """One successfully decoded AI 01 / 17 / 10 line."""

    unit_code: str
    expiry_date: date
    lot_number: str
    raw: str
    expiry_raw: str  # YYMMDD as scanned


@dataclass(frozen=True)
class BarcodeLineResult:
    """Outcome of decoding one line of a batch; exactly one of decoded/error is set."""

    line_number: int  # 1-indexed position in the input
    raw: str
    decoded: DecodedBarcode | None = None
    error: StockKernelError | None = None

    @property
    def ok(self) -> bool:
        return self.decoded is not None

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error is not None else None


# =============================================================================
# Scan batches
# =============================================================================


class ScanLineStatus(str, Enum):
    """Per-line outcome of preparing a scan batch."""

    READY = "ready"  # Decoded and resolved; part of a movement
    DECODE_ERROR = "decode_error"  # Malformed barcode line
    NEEDS_REGISTRATION = "needs_registration"  # Unit code not in catalog
    INVALID = "invalid"  # Resolved, but its movement fails ledger validation


@dataclass(frozen=True)
class ScanLine:
    """A decoded (or rejected) scan line with its catalog resolution."""

    line_number: int
    raw: str
    status: ScanLineStatus
    decoded: DecodedBarcode | None = None
    product: ProductInfo | None = None
    error: StockKernelError | None = None
    # Lot balance at the source when the batch was prepared with stock levels
    available: int | None = None

    @property
    def out_of_stock(self) -> bool:
        """Advisory only: the movement is still appended."""
        return self.available is not None and self.available <= 0

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error is not None else None

    @property
    def message(self) -> str | None:
        return str(self.error) if self.error is not None else None


@dataclass(frozen=True)
class PreparedMovement:
    """Identical scans of one lot folded into a single movement draft."""

    draft: MovementDraft
    line_numbers: tuple[int, ...]

    def idempotency_key(self, batch_key: str) -> str:
        """
        ``<batch_key>:<fingerprint>`` over (product, lot, expiry).

        The fingerprint is fixed-length hex, so colons inside a product ref
        or lot number cannot make two lots share a key.
        """
        d = self.draft
        lot = fingerprint([d.product_ref, d.lot_number, d.expiry_date], length=32)
        return f"{batch_key}:{lot}"


@dataclass(frozen=True)
class ScanBatch:
    """
    A prepared scan batch.

    Decode and catalog errors stay on their lines next to the successes so
    the operator can review them; nothing is dropped.
    """

    lines: tuple[ScanLine, ...]
    movements: tuple[PreparedMovement, ...]
    reason: MovementReason
    dest_location: str | None
    source_location: str | None = None
    effective_date: date | None = None

    @property
    def ready_lines(self) -> tuple[ScanLine, ...]:
        return tuple(line for line in self.lines if line.status == ScanLineStatus.READY)

    @property
    def decode_errors(self) -> tuple[ScanLine, ...]:
        return tuple(
            line for line in self.lines if line.status == ScanLineStatus.DECODE_ERROR
        )

    @property
    def needs_registration(self) -> tuple[ScanLine, ...]:
        return tuple(
            line
            for line in self.lines
            if line.status == ScanLineStatus.NEEDS_REGISTRATION
        )

    @property
    def invalid(self) -> tuple[ScanLine, ...]:
        return tuple(line for line in self.lines if line.status == ScanLineStatus.INVALID)

    @property
    def out_of_stock(self) -> tuple[ScanLine, ...]:
        return tuple(line for line in self.lines if line.out_of_stock)

    @property
    def is_clean(self) -> bool:
        return all(line.status == ScanLineStatus.READY for line in self.lines)

    @property
    def total_quantity(self) -> int:
        return sum(m.draft.quantity for m in self.movements)


@dataclass(frozen=True)
class ScanCommitResult:
    """Append results of a committed scan batch, in movement order."""

    batch_key: str
    results: tuple[AppendResult, ...]

    @property
    def accepted(self) -> int:
        return sum(1 for r in self.results if not r.is_duplicate)

    @property
    def duplicates(self) -> int:
        return sum(1 for r in self.results if r.is_duplicate)
