"""Ingestion services."""

from stock_ingestion.services.scan_import_service import ScanImportService

__all__ = ["ScanImportService"]
