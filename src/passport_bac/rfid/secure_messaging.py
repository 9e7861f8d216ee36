"""Secure messaging primitives for ICAO Doc 9303 communication."""

from __future__ import annotations

import hmac
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from ..crypto.des import decrypt_cbc, encrypt_cbc, pad, retail_mac, unpad
from ..exceptions import SecureMessagingError
from ..utils.tlv import encode_tlv, parse_tlvs
from .apdu_commands import APDUCommand, APDUInstruction, APDUResponse

logger = logging.getLogger(__name__)

SSC_MAX = 0xFFFFFFFFFFFFFFFF
SM_CLASS_BITS = 0x0C

TAG_CRYPTOGRAM = 0x87
TAG_LE = 0x97
TAG_STATUS = 0x99
TAG_MAC = 0x8E
PADDING_INDICATOR = 0x01


class BACSession:
    """Session keys and send sequence counter negotiated by a BAC handshake.

    The session belongs to exactly one read operation. ``destroy`` wipes the
    keys; a destroyed session refuses to produce further counter values.
    """

    def __init__(self, session_enc_key: bytes, session_mac_key: bytes, ssc: int) -> None:
        if not 0 <= ssc <= SSC_MAX:
            msg = "Send sequence counter must fit in 64 bits"
            raise ValueError(msg)
        self._enc_key = bytearray(session_enc_key)
        self._mac_key = bytearray(session_mac_key)
        self._ssc = ssc
        self._active = True

    def __repr__(self) -> str:
        return f"BACSession(ssc={self._ssc:016X}, active={self._active})"

    @property
    def session_enc_key(self) -> bytes:
        self._ensure_active()
        return bytes(self._enc_key)

    @property
    def session_mac_key(self) -> bytes:
        self._ensure_active()
        return bytes(self._mac_key)

    @property
    def ssc(self) -> int:
        return self._ssc

    @property
    def ssc_bytes(self) -> bytes:
        return self._ssc.to_bytes(8, "big")

    @property
    def is_active(self) -> bool:
        return self._active

    def increment(self) -> bytes:
        """Advance the counter and return its new 8-byte big-endian value."""
        self._ensure_active()
        if self._ssc >= SSC_MAX:
            msg = "Send sequence counter exhausted; a new BAC session is required"
            raise SecureMessagingError(msg)
        self._ssc += 1
        return self.ssc_bytes

    def destroy(self) -> None:
        """Zero the key material and deactivate the session."""
        for buffer in (self._enc_key, self._mac_key):
            for idx in range(len(buffer)):
                buffer[idx] = 0
        self._active = False

    def _ensure_active(self) -> None:
        if not self._active:
            msg = "BAC session has been destroyed"
            raise SecureMessagingError(msg)


@dataclass(frozen=True)
class ProtectedCommand:
    """One command APDU wrapped for secure messaging."""

    header: bytes
    do87: bytes
    do97: bytes
    do8e: bytes
    ssc: int
    expected_response_length: int = 256

    @property
    def data(self) -> bytes:
        return self.do87 + self.do97 + self.do8e

    def to_bytes(self) -> bytes:
        # Le is left out; the transport is told how many bytes to expect.
        data = self.data
        return self.header + bytes([len(data)]) + data


@dataclass(frozen=True)
class ProtectedResponse:
    """Plaintext recovered from one protected response."""

    data: bytes
    sw1: int
    sw2: int
    mac_verified: bool
    ssc: int

    @property
    def sw(self) -> int:
        return (self.sw1 << 8) | self.sw2

    @property
    def is_success(self) -> bool:
        return self.sw == 0x9000


class SecureMessaging:
    """Wraps commands and unwraps responses under an established BAC session."""

    def __init__(
        self,
        session: BACSession,
        plain_select_file_id: bool = True,
        expected_response_length: int = 256,
    ) -> None:
        self.session = session
        self.plain_select_file_id = plain_select_file_id
        self.expected_response_length = expected_response_length
        self._guard = threading.Lock()

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        if not self._guard.acquire(blocking=False):
            msg = "Secure messaging codec re-entered while an exchange is in progress"
            raise SecureMessagingError(msg)
        try:
            yield
        finally:
            self._guard.release()

    # ------------------------------------------------------------------
    # Command protection
    # ------------------------------------------------------------------
    def protect(self, command: APDUCommand) -> ProtectedCommand:
        """Protect a plain command APDU with the session keys."""
        with self._exclusive():
            ssc_bytes = self.session.increment()
            header = bytes([command.cla | SM_CLASS_BITS, command.ins, command.p1, command.p2])

            do87 = b""
            if command.data:
                if self._sends_plain_file_id(command):
                    do87 = encode_tlv(TAG_CRYPTOGRAM, bytes([PADDING_INDICATOR]) + command.data)
                else:
                    encrypted = encrypt_cbc(self.session.session_enc_key, pad(command.data))
                    do87 = encode_tlv(TAG_CRYPTOGRAM, bytes([PADDING_INDICATOR]) + encrypted)

            do97 = b""
            if command.le is not None:
                do97 = bytes([TAG_LE, 0x01, command.le & 0xFF])

            mac = retail_mac(
                self.session.session_mac_key,
                self.command_mac_input(ssc_bytes, header, do87, do97),
            )
            protected = ProtectedCommand(
                header=header,
                do87=do87,
                do97=do97,
                do8e=bytes([TAG_MAC, 0x08]) + mac,
                ssc=self.session.ssc,
                expected_response_length=self.expected_response_length,
            )

        logger.debug(
            "Protected %02X command, SSC %016X: %s",
            command.ins,
            protected.ssc,
            protected.to_bytes().hex().upper(),
            extra={"ssc": f"{protected.ssc:016X}"},
        )
        return protected

    @staticmethod
    def command_mac_input(ssc_bytes: bytes, header: bytes, do87: bytes, do97: bytes) -> bytes:
        """SSC || protected header || length of the data objects || DO'87' || DO'97'."""
        objects = do87 + do97
        if len(objects) > 0xFF:
            msg = "Protected data objects exceed a short APDU"
            raise ValueError(msg)
        return ssc_bytes + header + bytes([len(objects)]) + objects

    def _sends_plain_file_id(self, command: APDUCommand) -> bool:
        return (
            self.plain_select_file_id
            and command.ins == APDUInstruction.SELECT.value
            and command.p1 == 0x02
        )

    # ------------------------------------------------------------------
    # Response unwrapping
    # ------------------------------------------------------------------
    def unprotect(self, response: APDUResponse) -> ProtectedResponse:
        """
        Verify and decrypt a protected response.

        Chips answer some errors in the clear, so a response without data is
        returned unchanged with ``mac_verified`` False. Any response data must
        come in secure messaging objects with a valid DO'8E'.

        Raises:
            SecureMessagingError: on a missing or wrong MAC, unprotected
                success data, or malformed data objects
        """
        with self._exclusive():
            ssc_bytes = self.session.increment()
            ssc = self.session.ssc
            raw = response.data

            if not raw or raw[0] not in (TAG_CRYPTOGRAM, TAG_STATUS, TAG_MAC):
                if raw:
                    msg = (
                        f"Unprotected response data with status {response.sw:04X} "
                        f"at SSC {ssc:016X}"
                    )
                    raise SecureMessagingError(msg)
                logger.debug(
                    "Response without secure messaging objects, SW %04X",
                    response.sw,
                    extra={"status_word": f"{response.sw:04X}", "ssc": f"{ssc:016X}"},
                )
                return ProtectedResponse(raw, response.sw1, response.sw2, False, ssc)

            try:
                elements = parse_tlvs(raw)
            except ValueError as exc:
                msg = f"Malformed secure messaging response: {exc}"
                raise SecureMessagingError(msg) from exc

            do87 = do99 = b""
            cryptogram = b""
            status = bytes([response.sw1, response.sw2])
            mac = None

            for element in elements:
                if element.tag == TAG_CRYPTOGRAM:
                    if not element.value or element.value[0] != PADDING_INDICATOR:
                        msg = "Unsupported DO'87' padding indicator"
                        raise SecureMessagingError(msg)
                    do87 = element.encoded
                    cryptogram = element.value[1:]
                elif element.tag == TAG_STATUS:
                    if len(element.value) != 2:
                        msg = "Invalid DO'99' length"
                        raise SecureMessagingError(msg)
                    do99 = element.encoded
                    status = element.value
                elif element.tag == TAG_MAC:
                    if len(element.value) != 8:
                        msg = "Invalid DO'8E' length"
                        raise SecureMessagingError(msg)
                    mac = element.value

            if mac is None:
                msg = f"Protected response carries no DO'8E' at SSC {ssc:016X}"
                raise SecureMessagingError(msg)
            expected = retail_mac(self.session.session_mac_key, ssc_bytes + do87 + do99)
            if not hmac.compare_digest(mac, expected):
                msg = f"Secure messaging response MAC verification failed at SSC {ssc:016X}"
                raise SecureMessagingError(msg)

            plaintext = b""
            if cryptogram:
                try:
                    plaintext = unpad(decrypt_cbc(self.session.session_enc_key, cryptogram))
                except ValueError as exc:
                    msg = f"Cannot decrypt DO'87': {exc}"
                    raise SecureMessagingError(msg) from exc

        return ProtectedResponse(plaintext, status[0], status[1], True, ssc)
