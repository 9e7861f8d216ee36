"""
Custom exceptions for the passport BAC reader.

Every failure surfaced to callers is one of these classes so that a caller can
render a specific message (re-authenticate, retry, present a new document)
instead of a generic failure.
"""

from __future__ import annotations


class PassportBACError(Exception):
    """Base exception class for the passport BAC reader."""

    default_error_code = "PASSPORT_BAC_ERROR"

    def __init__(self, message: str, error_code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code


class FormatError(PassportBACError):
    """Raised when the MRZ formatter is handed data it cannot encode."""

    default_error_code = "MRZ_FORMAT_ERROR"


class ValidationError(PassportBACError):
    """Raised when identity input is malformed. Never reaches the chip."""

    default_error_code = "INVALID_INPUT"

    def __init__(self, errors: list[str], message: str | None = None) -> None:
        self.errors = list(errors)
        super().__init__(message or "; ".join(self.errors) or "Invalid input")


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------
class TransportError(PassportBACError):
    """Raised when the card transport fails. Retryable with a new handshake."""

    default_error_code = "TRANSPORT_ERROR"
    retryable = True


class ConnectionLostError(TransportError):
    """Raised when the chip left the field or the reader went away."""

    default_error_code = "CONNECTION_LOST"


class CardTimeoutError(TransportError):
    """Raised when no card answered in time."""

    default_error_code = "CARD_TIMEOUT"


class ReaderBusyError(TransportError):
    """Raised when a read operation is already running on the reader."""

    default_error_code = "READER_BUSY"


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------
class AuthenticationError(PassportBACError):
    """Raised when the BAC handshake fails. Terminal for the session."""

    default_error_code = "BAC_FAILED"

    def __init__(
        self,
        message: str,
        status_word: int | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message, error_code)
        self.status_word = status_word


class MacVerificationFailed(AuthenticationError):
    """Raised when the chip's MUTUAL AUTHENTICATE cryptogram has a bad MAC."""

    default_error_code = "BAC_MAC_MISMATCH"


class ChallengeMismatch(AuthenticationError):
    """Raised when the chip echoes back the wrong RND.IC or RND.IFD."""

    default_error_code = "BAC_CHALLENGE_MISMATCH"


# ---------------------------------------------------------------------------
# Secure messaging
# ---------------------------------------------------------------------------
class SecureMessagingError(PassportBACError):
    """Raised when a protected response cannot be verified or decoded."""

    default_error_code = "SECURE_MESSAGING_ERROR"


# ---------------------------------------------------------------------------
# File access
# ---------------------------------------------------------------------------
class FileAccessError(PassportBACError):
    """Raised when the chip refuses a SELECT or READ BINARY."""

    default_error_code = "FILE_ACCESS_ERROR"
    retryable = False
    requires_reauthentication = False

    def __init__(
        self,
        message: str,
        status_word: int | None = None,
        file_id: int | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message, error_code)
        self.status_word = status_word
        self.file_id = file_id


class SecurityStatusNotSatisfiedError(FileAccessError):
    """Raised on 6982. The caller must run BAC again."""

    default_error_code = "SECURITY_STATUS_NOT_SATISFIED"
    requires_reauthentication = True


class FileNotFoundOnChipError(FileAccessError):
    """Raised on 6A82."""

    default_error_code = "FILE_NOT_FOUND"


class WrongLengthError(FileAccessError):
    """Raised on 6700."""

    default_error_code = "WRONG_LENGTH"


class SecureMessagingFormatError(FileAccessError):
    """Raised on 6987/6988: the chip rejected our secure messaging objects."""

    default_error_code = "SM_DATA_OBJECTS_INCORRECT"
    requires_reauthentication = True


class IncorrectParametersError(FileAccessError):
    """Raised on 6A86 and 6B00 outside a chunked read."""

    default_error_code = "INCORRECT_PARAMETERS"


class UnexpectedStatusError(FileAccessError):
    """Raised for any status word without a dedicated class."""

    default_error_code = "UNEXPECTED_STATUS"
    retryable = True


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------
class ParseError(PassportBACError):
    """Raised when DG1 content cannot be turned into a document record."""

    default_error_code = "PARSE_ERROR"


class InvalidMRZFormat(ParseError):
    """Raised when no 88-character MRZ run is present in the buffer."""

    default_error_code = "INVALID_MRZ_FORMAT"


class MRZLengthError(ParseError):
    """Raised when the MRZ object is present but is not 88 characters long."""

    default_error_code = "MRZ_LENGTH_ERROR"


class ReadCancelledError(PassportBACError):
    """Raised when the caller cancelled the read operation."""

    default_error_code = "READ_CANCELLED"
