"""Hardware abstraction layer for contactless card readers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum

from ..rfid.apdu_commands import APDUCommand, APDUResponse

logger = logging.getLogger(__name__)


class ReaderStatus(Enum):
    """Reader connection status."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    INVALIDATED = "invalidated"


class CardTransport(ABC):
    """Byte-in/byte-out channel to a chip plus its connection lifecycle.

    Implementations raise :class:`~passport_bac.exceptions.TransportError`
    subclasses for anything that prevents a response from arriving.
    """

    status: ReaderStatus = ReaderStatus.DISCONNECTED

    @abstractmethod
    def connect(self) -> None:
        """Wait for a chip and open the channel."""

    @abstractmethod
    def send_command(self, apdu: bytes, expected_response_length: int) -> APDUResponse:
        """Send one command APDU and return the response data and status word."""

    @abstractmethod
    def invalidate(self, error_message: str | None = None) -> None:
        """Close the channel. ``error_message`` is shown to the user when given."""

    def is_connected(self) -> bool:
        return self.status is ReaderStatus.CONNECTED

    def transmit(self, command: APDUCommand) -> APDUResponse:
        """Send an unprotected command APDU."""
        return self.send_command(command.to_bytes(), command.expected_length)


__all__ = ["CardTransport", "ReaderStatus"]
