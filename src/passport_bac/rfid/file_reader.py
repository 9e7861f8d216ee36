"""Chunked elementary file retrieval over secure messaging."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt

from ..config import ReaderSettings, get_settings
from ..exceptions import (
    FileAccessError,
    FileNotFoundOnChipError,
    IncorrectParametersError,
    SecureMessagingError,
    SecureMessagingFormatError,
    SecurityStatusNotSatisfiedError,
    UnexpectedStatusError,
    WrongLengthError,
)
from ..hardware import CardTransport
from ..utils.cancellation import CancellationToken
from ..utils.tlv import read_length
from .apdu_commands import APDUCommand, PassportAPDU, StatusWord, describe_status
from .secure_messaging import ProtectedResponse, SecureMessaging

logger = logging.getLogger(__name__)

# LDS templates whose length prefix sizes the file (60 = EF.COM, 61 = EF.DG1)
LENGTH_PREFIX_TAGS = (0x60, 0x61)

STATUS_ERRORS: dict[int, type[FileAccessError]] = {
    StatusWord.SECURITY_STATUS_NOT_SATISFIED: SecurityStatusNotSatisfiedError,
    StatusWord.FILE_NOT_FOUND: FileNotFoundOnChipError,
    StatusWord.WRONG_LENGTH: WrongLengthError,
    StatusWord.SM_DATA_OBJECTS_MISSING: SecureMessagingFormatError,
    StatusWord.SM_DATA_OBJECTS_INCORRECT: SecureMessagingFormatError,
    StatusWord.INCORRECT_P1_P2: IncorrectParametersError,
    StatusWord.WRONG_PARAMETERS: IncorrectParametersError,
}


def status_error(sw: int, file_id: int, operation: str) -> FileAccessError:
    """Map a failing status word to its named error."""
    error_class = STATUS_ERRORS.get(sw, UnexpectedStatusError)
    msg = f"{operation} {PassportAPDU.file_name(file_id)} failed: {describe_status(sw)} ({sw:04X})"
    return error_class(msg, status_word=sw, file_id=file_id)


class FileReadState(str, Enum):
    """File reader progress."""

    SELECT = "select"
    PROBE_LENGTH = "probe_length"
    READ_CHUNKS = "read_chunks"
    COMPLETE = "complete"
    ERROR = "error"


class DataGroupBuffer:
    """Append-only accumulator for one file."""

    def __init__(self, file_id: int) -> None:
        self.file_id = file_id
        self._data = bytearray()
        self.chunk_count = 0
        self.finalized = False

    def __len__(self) -> int:
        return len(self._data)

    def append(self, chunk: bytes) -> None:
        if self.finalized:
            msg = "Cannot append to a finalized buffer"
            raise ValueError(msg)
        self._data.extend(chunk)
        self.chunk_count += 1

    def finalize(self) -> bytes:
        self.finalized = True
        return bytes(self._data)

    def discard(self) -> None:
        self._data.clear()
        self.chunk_count = 0
        self.finalized = True


class ElementaryFileReader:
    """Drives SELECT, a length probe and chunked READ BINARY for one file at a time."""

    def __init__(
        self,
        transport: CardTransport,
        secure_messaging: SecureMessaging,
        settings: ReaderSettings | None = None,
        cancel_token: CancellationToken | None = None,
        progress: Callable[[str], None] | None = None,
    ) -> None:
        self._transport = transport
        self._secure_messaging = secure_messaging
        self.settings = settings or get_settings()
        self._cancel_token = cancel_token
        self._progress = progress
        self.state = FileReadState.SELECT
        self._retrying = Retrying(
            retry=retry_if_exception_type(SecureMessagingError),
            stop=stop_after_attempt(self.settings.sm_retry_attempts + 1),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def read_file(self, file_id: int) -> bytes:
        """
        Read a whole elementary file.

        Returns:
            The file content. A read cut short after at least one chunk is
            returned as is.

        Raises:
            FileAccessError: when SELECT fails or no chunk could be read
            SecureMessagingError: when an exchange fails twice in a row
        """
        name = PassportAPDU.file_name(file_id)
        buffer = DataGroupBuffer(file_id)
        self.state = FileReadState.SELECT

        try:
            self._select(file_id)
            self._transition(FileReadState.PROBE_LENGTH, file_id)
            total = self._probe_length(file_id)
            self._transition(FileReadState.READ_CHUNKS, file_id)
            self._read_chunks(file_id, buffer, total)
        except Exception:
            self._transition(FileReadState.ERROR, file_id)
            buffer.discard()
            raise

        self._transition(FileReadState.COMPLETE, file_id)
        data = buffer.finalize()
        logger.info("Read %s: %d bytes in %d chunks", name, len(data), buffer.chunk_count)
        return data

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------
    def _select(self, file_id: int) -> None:
        self._report(f"Selecting {PassportAPDU.file_name(file_id)}")
        response = self._exchange(APDUCommand.select_file(file_id))
        if not response.is_success:
            raise status_error(response.sw, file_id, "SELECT")

    def _probe_length(self, file_id: int) -> int:
        settings = self.settings
        response = self._exchange(APDUCommand.read_binary(0, settings.header_probe_length))

        content_length = settings.default_file_length
        if not response.is_success:
            logger.warning(
                "Length probe of %s returned %04X, assuming %d bytes",
                PassportAPDU.file_name(file_id),
                response.sw,
                content_length,
                extra={"file_id": f"{file_id:04X}", "status_word": f"{response.sw:04X}"},
            )
        elif response.data and response.data[0] in LENGTH_PREFIX_TAGS:
            try:
                content_length, _ = read_length(response.data, 1)
            except ValueError:
                logger.warning("Unreadable length prefix in %s", response.data.hex().upper())
        else:
            logger.debug("No LDS template tag in probe, assuming %d bytes", content_length)

        total = min(content_length + settings.file_length_margin, settings.max_file_length)
        logger.debug("Estimated %s length: %d", PassportAPDU.file_name(file_id), total)
        return total

    def _read_chunks(self, file_id: int, buffer: DataGroupBuffer, total: int) -> None:
        chunk_size = self.settings.chunk_size
        offset = 0

        while offset < total:
            length = min(chunk_size, total - offset)
            self._report(f"Reading {PassportAPDU.file_name(file_id)} at offset {offset}")
            response = self._exchange(APDUCommand.read_binary(offset, length))

            if response.sw == StatusWord.WRONG_PARAMETERS:
                logger.debug("End of file reached at offset %d", offset)
                break
            if response.sw == StatusWord.END_OF_FILE_WARNING:
                if response.data:
                    buffer.append(response.data)
                break
            if not response.is_success:
                if buffer.chunk_count:
                    logger.warning(
                        "READ BINARY at offset %d returned %04X; keeping %d bytes read so far",
                        offset,
                        response.sw,
                        len(buffer),
                        extra={"file_id": f"{file_id:04X}", "status_word": f"{response.sw:04X}"},
                    )
                    break
                raise status_error(response.sw, file_id, "READ BINARY")
            if not response.data:
                break

            buffer.append(response.data)
            offset += len(response.data)
            if len(response.data) < length:
                break

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _exchange(self, command: APDUCommand) -> ProtectedResponse:
        return self._retrying(self._exchange_once, command)

    def _exchange_once(self, command: APDUCommand) -> ProtectedResponse:
        if self._cancel_token is not None:
            self._cancel_token.raise_if_cancelled()
        protected = self._secure_messaging.protect(command)
        response = self._transport.send_command(
            protected.to_bytes(), protected.expected_response_length
        )
        unprotected = self._secure_messaging.unprotect(response)
        if unprotected.is_success and not unprotected.mac_verified:
            msg = f"{command.ins:02X} command answered 9000 without a response MAC"
            raise SecureMessagingError(msg)
        return unprotected

    def _transition(self, state: FileReadState, file_id: int) -> None:
        logger.debug(
            "%s: %s -> %s",
            PassportAPDU.file_name(file_id),
            self.state.value,
            state.value,
            extra={"file_id": f"{file_id:04X}", "state": state.value},
        )
        self.state = state

    def _report(self, message: str) -> None:
        if self._progress is not None:
            self._progress(message)
