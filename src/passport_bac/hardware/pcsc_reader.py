"""PC/SC (Personal Computer/Smart Card) Reader Implementation.

Provides a card transport over PC/SC compatible contactless readers.
Requires the pyscard library (``pip install passport-bac-reader[pcsc]``).
"""

from __future__ import annotations

import logging

from ..exceptions import CardTimeoutError, ConnectionLostError, TransportError
from ..rfid.apdu_commands import APDUCommand, APDUResponse
from . import CardTransport, ReaderStatus

logger = logging.getLogger(__name__)

# Bound on chained GET RESPONSE calls for one command
MAX_RESPONSE_CHAIN = 8


def list_readers() -> list[str]:
    """Names of the PC/SC readers attached to this machine."""
    try:
        from smartcard.System import readers
    except ImportError as e:
        msg = f"PC/SC library not available: {e}"
        raise ImportError(msg) from e

    try:
        return [str(reader) for reader in readers()]
    except Exception as exc:
        msg = f"PC/SC service unavailable: {exc}"
        raise TransportError(msg) from exc


class PCSCTransport(CardTransport):
    """PC/SC compatible smart card reader."""

    def __init__(self, reader_name: str | None = None, timeout: int = 10) -> None:
        self.timeout = timeout
        self.card_service = None
        self.status = ReaderStatus.DISCONNECTED

        try:
            # Import PC/SC dependencies
            from smartcard.CardRequest import CardRequest
            from smartcard.Exceptions import (
                CardConnectionException,
                CardRequestTimeoutException,
                NoCardException,
            )
            from smartcard.System import readers
        except ImportError as e:
            msg = f"PC/SC library not available: {e}"
            logger.exception(msg)
            raise ImportError(msg) from e

        self.CardRequest = CardRequest
        self.CardRequestTimeoutException = CardRequestTimeoutException
        self.connection_errors = (CardConnectionException, NoCardException)

        try:
            available_readers = readers()
        except Exception as exc:
            msg = f"PC/SC service unavailable: {exc}"
            raise TransportError(msg) from exc

        if not available_readers:
            msg = "No PC/SC readers found"
            raise TransportError(msg, error_code="NO_READER")

        if reader_name is None:
            self.reader = available_readers[0]
        else:
            matches = [reader for reader in available_readers if str(reader) == reader_name]
            if not matches:
                msg = f"Reader '{reader_name}' not found"
                raise TransportError(msg, error_code="NO_READER")
            self.reader = matches[0]
        self.name = str(self.reader)

    def connect(self) -> None:
        """Wait for a card on the reader and connect to it."""
        card_request = self.CardRequest(readers=[self.reader], timeout=self.timeout)
        try:
            self.card_service = card_request.waitforcard()
            self.card_service.connection.connect()
        except self.CardRequestTimeoutException as exc:
            msg = f"No card presented to {self.name} within {self.timeout}s"
            raise CardTimeoutError(msg) from exc
        except self.connection_errors as exc:
            msg = f"Failed to connect to card on {self.name}: {exc}"
            raise ConnectionLostError(msg) from exc

        self.status = ReaderStatus.CONNECTED
        logger.info("Connected to card on reader: %s", self.name)

    def send_command(self, apdu: bytes, expected_response_length: int) -> APDUResponse:
        """Send APDU command to the card, following 61xx and 6Cxx as needed."""
        if not self.is_connected():
            msg = "Reader not connected to card"
            raise ConnectionLostError(msg)

        response = self._transmit(apdu)

        if response.sw1 == 0x6C and len(apdu) == 5:
            # Wrong Le; the chip tells us the right one
            response = self._transmit(apdu[:4] + bytes([response.sw2]))

        data = response.data
        for _ in range(MAX_RESPONSE_CHAIN):
            if response.sw1 != 0x61:
                break
            response = self._transmit(APDUCommand.get_response(response.sw2 or 256).to_bytes())
            data += response.data

        if len(data) > expected_response_length:
            logger.debug(
                "Chip returned %d bytes, more than the %d expected",
                len(data),
                expected_response_length,
            )
        return APDUResponse(data=data, sw1=response.sw1, sw2=response.sw2)

    def _transmit(self, apdu: bytes) -> APDUResponse:
        try:
            # Convert bytes to list of integers (pyscard format)
            data, sw1, sw2 = self.card_service.connection.transmit(list(apdu))
        except self.connection_errors as exc:
            self.status = ReaderStatus.INVALIDATED
            msg = f"Lost connection to card: {exc}"
            raise ConnectionLostError(msg) from exc

        response = APDUResponse(data=bytes(data), sw1=sw1, sw2=sw2)
        logger.debug("APDU sent: %s, response: %s", apdu.hex(), response.to_bytes().hex())
        return response

    def invalidate(self, error_message: str | None = None) -> None:
        """Disconnect from the card."""
        if error_message:
            logger.warning("Invalidating reader session: %s", error_message)
        if self.card_service is not None:
            try:
                self.card_service.connection.disconnect()
            except self.connection_errors:
                logger.debug("Card already gone while disconnecting from %s", self.name)
            self.card_service = None
        self.status = ReaderStatus.INVALIDATED
        logger.info("Disconnected from reader: %s", self.name)

