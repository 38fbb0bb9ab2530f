"""Cooperative cancellation for long-running ledger reads."""

import threading

from stock_kernel.exceptions import QueryCancelledError


class CancellationToken:
    """
    Signal shared between a query caller and the streaming reader.

    The reader checks the token between rows; cancelling never interrupts
    a database round-trip already in flight.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, rows_read: int = 0) -> None:
        if self._event.is_set():
            raise QueryCancelledError(rows_read)
