"""Pure ingestion types."""

from stock_ingestion.domain.types import (
    BarcodeLineResult,
    DecodedBarcode,
    PreparedMovement,
    ScanBatch,
    ScanCommitResult,
    ScanLine,
    ScanLineStatus,
)

__all__ = [
    "BarcodeLineResult",
    "DecodedBarcode",
    "PreparedMovement",
    "ScanBatch",
    "ScanCommitResult",
    "ScanLine",
    "ScanLineStatus",
]
