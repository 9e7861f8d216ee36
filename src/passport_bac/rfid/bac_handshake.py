"""BAC mutual authentication as an explicit state machine (ICAO Doc 9303 Part 11, 4.3)."""

from __future__ import annotations

import hmac
import logging
import secrets
from collections.abc import Callable
from enum import Enum

from ..crypto.des import decrypt_cbc, encrypt_cbc, retail_mac
from ..exceptions import AuthenticationError, ChallengeMismatch, MacVerificationFailed
from ..hardware import CardTransport
from ..utils.cancellation import CancellationToken
from .apdu_commands import APDUCommand, APDUResponse
from .bac_keys import DocumentAccessKeys, derive_session_keys
from .secure_messaging import BACSession

logger = logging.getLogger(__name__)

CHALLENGE_LENGTH = 8
KEY_HALF_LENGTH = 16
AUTHENTICATION_RESPONSE_LENGTH = 40


class BACState(str, Enum):
    """Handshake progress."""

    IDLE = "idle"
    CHALLENGE_REQUESTED = "challenge_requested"
    CHALLENGE_RECEIVED = "challenge_received"
    AUTHENTICATE_SENT = "authenticate_sent"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class BACHandshake:
    """Runs GET CHALLENGE and MUTUAL AUTHENTICATE against one chip.

    A handshake object is single use. ``run`` either returns a fresh
    :class:`BACSession` (state ``AUTHENTICATED``) or raises, leaving the state
    at ``FAILED`` and the offending status word in ``status_word``.
    """

    def __init__(
        self,
        transport: CardTransport,
        keys: DocumentAccessKeys,
        random_bytes: Callable[[int], bytes] = secrets.token_bytes,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self._transport = transport
        self._keys = keys
        self._random_bytes = random_bytes
        self._cancel_token = cancel_token
        self.state = BACState.IDLE
        self.status_word: int | None = None
        self._rnd_ic: bytes | None = None
        self._rnd_ifd: bytes | None = None
        self._k_ifd: bytes | None = None

    def run(self) -> BACSession:
        """Authenticate and return the negotiated session."""
        if self.state is not BACState.IDLE:
            msg = f"Handshake already used (state {self.state.value})"
            raise AuthenticationError(msg)

        try:
            self._request_challenge()
            payload = self._build_authentication()
            response = self._send_authentication(payload)
            session = self._complete(response)
        except Exception:
            self._transition(BACState.FAILED)
            raise
        finally:
            self._k_ifd = None

        self._transition(BACState.AUTHENTICATED)
        logger.info("BAC mutual authentication succeeded")
        return session

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def _request_challenge(self) -> None:
        self._transition(BACState.CHALLENGE_REQUESTED)
        response = self._exchange(APDUCommand.get_challenge(CHALLENGE_LENGTH), "GET CHALLENGE")
        if len(response.data) != CHALLENGE_LENGTH:
            msg = f"Unexpected BAC challenge length {len(response.data)}"
            raise AuthenticationError(msg, status_word=response.sw)

        self._rnd_ic = response.data
        self._transition(BACState.CHALLENGE_RECEIVED)
        logger.debug("RND.IC: %s", self._rnd_ic.hex().upper())

    def _build_authentication(self) -> bytes:
        self._rnd_ifd = self._random_bytes(CHALLENGE_LENGTH)
        self._k_ifd = self._random_bytes(KEY_HALF_LENGTH)
        if len(self._rnd_ifd) != CHALLENGE_LENGTH or len(self._k_ifd) != KEY_HALF_LENGTH:
            msg = "Random source returned the wrong number of bytes"
            raise ValueError(msg)

        s = self._rnd_ifd + self._rnd_ic + self._k_ifd
        e_ifd = encrypt_cbc(self._keys.encryption_key, s)
        m_ifd = retail_mac(self._keys.mac_key, e_ifd)
        return e_ifd + m_ifd

    def _send_authentication(self, payload: bytes) -> bytes:
        self._transition(BACState.AUTHENTICATE_SENT)
        response = self._exchange(APDUCommand.mutual_authenticate(payload), "MUTUAL AUTHENTICATE")
        if len(response.data) != AUTHENTICATION_RESPONSE_LENGTH:
            msg = f"Invalid MUTUAL AUTHENTICATE response length {len(response.data)}"
            raise AuthenticationError(msg, status_word=response.sw)
        return response.data

    def _complete(self, response: bytes) -> BACSession:
        e_ic, m_ic = response[:32], response[32:]

        expected_mac = retail_mac(self._keys.mac_key, e_ic)
        if not hmac.compare_digest(m_ic, expected_mac):
            msg = "BAC response MAC verification failed"
            raise MacVerificationFailed(msg, status_word=self.status_word)

        r = decrypt_cbc(self._keys.encryption_key, e_ic)
        rnd_ic, rnd_ifd, k_icc = r[0:8], r[8:16], r[16:32]

        if not hmac.compare_digest(rnd_ic, self._rnd_ic):
            msg = "BAC RND.IC mismatch"
            raise ChallengeMismatch(msg, status_word=self.status_word)
        if not hmac.compare_digest(rnd_ifd, self._rnd_ifd):
            msg = "BAC RND.IFD mismatch"
            raise ChallengeMismatch(msg, status_word=self.status_word)

        ks_enc, ks_mac = derive_session_keys(self._k_ifd, k_icc)
        ssc = int.from_bytes(self._rnd_ic[-4:] + self._rnd_ifd[-4:], "big")
        logger.debug("Initial SSC: %016X", ssc)
        return BACSession(ks_enc, ks_mac, ssc)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _exchange(self, command: APDUCommand, label: str) -> APDUResponse:
        if self._cancel_token is not None:
            self._cancel_token.raise_if_cancelled()
        response = self._transport.transmit(command)
        self.status_word = response.sw
        if not response.is_success:
            msg = f"{label} failed: {response.status_description}"
            raise AuthenticationError(msg, status_word=response.sw)
        return response

    def _transition(self, state: BACState) -> None:
        logger.debug("BAC %s -> %s", self.state.value, state.value, extra={"state": state.value})
        self.state = state
