"""Kernel services -- the imperative shell around the ledger tables."""

from stock_kernel.services.ledger_service import MovementLedger
from stock_kernel.services.sequence_service import SequenceService

__all__ = [
    "MovementLedger",
    "SequenceService",
]
