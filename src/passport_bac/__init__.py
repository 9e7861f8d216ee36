"""
Passport BAC reader - ICAO Doc 9303 Basic Access Control and secure messaging.

Derives the document access keys from the data page, authenticates with the
chip, reads EF.COM and EF.DG1 over secure messaging and parses the MRZ.
"""

__version__ = "0.1.0"

from .exceptions import (
    AuthenticationError,
    FileAccessError,
    FormatError,
    ParseError,
    PassportBACError,
    ReadCancelledError,
    SecureMessagingError,
    TransportError,
    ValidationError,
)
from .models.passport import DocumentRecord, IdentityInput, MRZRecord
from .security.passport_chip_session import PassportChipSession
from .utils.cancellation import CancellationToken

__all__ = [
    "AuthenticationError",
    "CancellationToken",
    "DocumentRecord",
    "FileAccessError",
    "FormatError",
    "IdentityInput",
    "MRZRecord",
    "ParseError",
    "PassportBACError",
    "PassportChipSession",
    "ReadCancelledError",
    "SecureMessagingError",
    "TransportError",
    "ValidationError",
]
