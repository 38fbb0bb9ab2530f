"""
stock_ingestion -- Barcode decoding and scan-batch ingestion.

Decodes GS1-128 scan lines, resolves them through the product catalog and
appends the resulting movements to the ledger.

Architecture:
    stock_ingestion/ is a top-level package.  Nothing in stock_kernel/ or
    stock_engines/ imports from ingestion.
"""

from stock_ingestion.barcode import BarcodeDecoder, parse_expiry
from stock_ingestion.domain.types import (
    BarcodeLineResult,
    DecodedBarcode,
    ScanBatch,
    ScanLineStatus,
)
from stock_ingestion.services.scan_import_service import ScanImportService

__all__ = [
    "BarcodeDecoder",
    "BarcodeLineResult",
    "DecodedBarcode",
    "ScanBatch",
    "ScanImportService",
    "ScanLineStatus",
    "parse_expiry",
]
