"""Cooperative cancellation for chip read operations."""

from __future__ import annotations

import threading

from ..exceptions import ReadCancelledError


class CancellationToken:
    """Set from any thread; checked before every chip exchange."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "Read cancelled by user") -> None:
        self.reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ReadCancelledError(self.reason or "Read cancelled")
