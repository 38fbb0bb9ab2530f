"""
Stock Kernel

An event-sourced, append-only stock ledger with:
- Immutable movement events
- Idempotent appends
- Replay-derived lot balances (no stored stock levels)
- Explicit exchange legs with lazy companion checks
"""

__version__ = "0.1.0"
