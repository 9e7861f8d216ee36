"""Read orchestration from identity input to a parsed document record.

This module owns the lifecycle of one chip read: it validates the caller's
input, derives the document access keys, opens the transport, selects the
eMRTD application, runs BAC and then reads EF.COM and EF.DG1 through secure
messaging. The session keys live only for the duration of one
``read_document`` call and are destroyed however it ends.
"""

from __future__ import annotations

import logging
import secrets
import threading
from collections.abc import Callable

from ..config import ReaderSettings, get_settings
from ..exceptions import (
    FileNotFoundOnChipError,
    PassportBACError,
    ReadCancelledError,
    ReaderBusyError,
)
from ..hardware import CardTransport
from ..models.passport import DocumentRecord, IdentityInput
from ..rfid.apdu_commands import PassportAPDU
from ..rfid.bac_handshake import BACHandshake
from ..rfid.bac_keys import derive_document_access_keys
from ..rfid.elementary_files import ElementaryFileParser
from ..rfid.file_reader import ElementaryFileReader
from ..rfid.secure_messaging import BACSession, SecureMessaging
from ..utils.cancellation import CancellationToken


class PassportChipSession:
    """Single-flight reader for one transport."""

    def __init__(
        self,
        transport: CardTransport,
        settings: ReaderSettings | None = None,
        random_bytes: Callable[[int], bytes] | None = None,
        progress: Callable[[str], None] | None = None,
    ) -> None:
        self._transport = transport
        self.settings = settings or get_settings()
        self._random_bytes = random_bytes or secrets.token_bytes
        self._progress = progress
        self._lock = threading.Lock()
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def read_document(
        self,
        document_number: str,
        date_of_birth: str,
        date_of_expiry: str,
        cancel_token: CancellationToken | None = None,
    ) -> DocumentRecord:
        """
        Authenticate with the chip and return the parsed DG1.

        Args:
            document_number: Document number as printed, up to 9 characters
            date_of_birth: YYMMDD
            date_of_expiry: YYMMDD
            cancel_token: Optional token; cancelling aborts at the next exchange

        Raises:
            ValidationError: before any chip access when the input is malformed
            ReaderBusyError: when another read is running on this session
            PassportBACError: any other typed failure from the read
        """
        identity = IdentityInput.from_strings(document_number, date_of_birth, date_of_expiry)

        if not self._lock.acquire(blocking=False):
            msg = "A read operation is already in progress"
            raise ReaderBusyError(msg)
        try:
            return self._read(identity, cancel_token or CancellationToken())
        finally:
            self._lock.release()

    def _read(self, identity: IdentityInput, cancel_token: CancellationToken) -> DocumentRecord:
        keys = derive_document_access_keys(identity)
        session: BACSession | None = None
        error_message: str | None = None

        try:
            self._report("Waiting for passport")
            cancel_token.raise_if_cancelled()
            self._transport.connect()

            self._report("Selecting passport application")
            self._select_application(cancel_token)

            self._report("Authenticating (BAC)")
            handshake = BACHandshake(
                self._transport,
                keys,
                random_bytes=self._random_bytes,
                cancel_token=cancel_token,
            )
            session = handshake.run()

            secure_messaging = SecureMessaging(
                session,
                plain_select_file_id=self.settings.plain_select_file_id,
                expected_response_length=self.settings.expected_response_length,
            )
            reader = ElementaryFileReader(
                self._transport,
                secure_messaging,
                settings=self.settings,
                cancel_token=cancel_token,
                progress=self._progress,
            )

            if self.settings.read_com:
                self._check_com(reader)

            self._report("Reading DG1")
            dg1 = reader.read_file(PassportAPDU.EF_DG1)
            record = ElementaryFileParser.parse_dg1(dg1)
            self._report("Passport read complete")
            return record
        except ReadCancelledError as exc:
            error_message = exc.message
            self._logger.info("Passport read cancelled")
            raise
        except PassportBACError as exc:
            error_message = exc.message
            self._logger.warning("Passport read failed [%s]: %s", exc.error_code, exc.message)
            raise
        finally:
            if session is not None:
                session.destroy()
            self._transport.invalidate(error_message)

    def _select_application(self, cancel_token: CancellationToken) -> None:
        cancel_token.raise_if_cancelled()
        response = self._transport.transmit(PassportAPDU.select_passport_application())
        if not response.is_success:
            # Some chips answer BAC without an explicit application select
            self._logger.warning(
                "Selecting the eMRTD application returned %s", response.status_description
            )

    def _check_com(self, reader: ElementaryFileReader) -> None:
        self._report("Reading EF.COM")
        try:
            com = reader.read_file(PassportAPDU.EF_COM)
        except FileNotFoundOnChipError:
            self._logger.warning("EF.COM not present on chip; continuing with DG1")
            return
        if not ElementaryFileParser.com_lists_dg1(com):
            self._logger.warning("EF.COM does not list DG1; attempting to read it anyway")

    def _report(self, message: str) -> None:
        self._logger.info(message)
        if self._progress is not None:
            self._progress(message)

