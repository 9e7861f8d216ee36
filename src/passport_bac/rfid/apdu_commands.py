"""APDU (Application Protocol Data Unit) Command Processing.

Implements the ISO 7816-4 short APDUs needed to authenticate with and read
from an electronic passport.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional

logger = logging.getLogger(__name__)


class APDUInstruction(Enum):
    """APDU instruction codes used by BAC and file access."""
    SELECT = 0xA4  # Select file or application
    READ_BINARY = 0xB0  # Read binary data
    GET_CHALLENGE = 0x84  # Get challenge for authentication
    EXTERNAL_AUTHENTICATE = 0x82  # External / mutual authentication
    GET_RESPONSE = 0xC0  # Fetch pending response bytes (T=0)


class StatusWord(IntEnum):
    """Status words the reader reacts to."""
    SUCCESS = 0x9000
    END_OF_FILE_WARNING = 0x6282
    WRONG_LENGTH = 0x6700
    SECURITY_STATUS_NOT_SATISFIED = 0x6982
    SM_DATA_OBJECTS_MISSING = 0x6987
    SM_DATA_OBJECTS_INCORRECT = 0x6988
    FILE_NOT_FOUND = 0x6A82
    INCORRECT_P1_P2 = 0x6A86
    WRONG_PARAMETERS = 0x6B00


STATUS_DESCRIPTIONS = {
    0x9000: "Success",
    0x6100: "Response bytes available",
    0x6281: "Part of returned data corrupted",
    0x6282: "End of file reached",
    0x6300: "Authentication failed",
    0x6700: "Wrong length",
    0x6882: "Secure messaging not supported",
    0x6982: "Security status not satisfied",
    0x6983: "Authentication method blocked",
    0x6985: "Conditions of use not satisfied",
    0x6986: "Command not allowed",
    0x6987: "Expected secure messaging data objects missing",
    0x6988: "Secure messaging data objects incorrect",
    0x6A80: "Incorrect parameters in data field",
    0x6A82: "File not found",
    0x6A86: "Incorrect parameters P1-P2",
    0x6B00: "Wrong parameters (offset outside EF)",
    0x6C00: "Wrong Le field",
    0x6D00: "Instruction code not supported",
    0x6E00: "Class not supported",
    0x6F00: "No precise diagnosis",
}


def describe_status(sw: int) -> str:
    """Get human-readable status description."""
    if sw in STATUS_DESCRIPTIONS:
        return STATUS_DESCRIPTIONS[sw]

    masked_sw = sw & 0xFF00
    if masked_sw in STATUS_DESCRIPTIONS:
        return f"{STATUS_DESCRIPTIONS[masked_sw]} (0x{sw:04X})"

    return f"Unknown status: 0x{sw:04X}"


@dataclass(frozen=True)
class APDUCommand:
    """APDU Command structure following ISO 7816-4 (short form)."""
    cla: int  # Class byte
    ins: int  # Instruction byte
    p1: int   # Parameter 1
    p2: int   # Parameter 2
    data: Optional[bytes] = None  # Command data
    le: Optional[int] = None      # Expected response length, 256 encodes as 00

    def __post_init__(self):
        """Validate APDU command parameters."""
        for name in ("cla", "ins", "p1", "p2"):
            value = getattr(self, name)
            if not (0 <= value <= 0xFF):
                raise ValueError(f"Invalid {name.upper()}: {value}")
        if self.data is not None and not (1 <= len(self.data) <= 255):
            raise ValueError(f"Short APDU data must be 1-255 bytes, got {len(self.data)}")
        if self.le is not None and not (1 <= self.le <= 256):
            raise ValueError(f"Short APDU Le must be 1-256, got {self.le}")

    @property
    def header(self) -> bytes:
        return struct.pack('BBBB', self.cla, self.ins, self.p1, self.p2)

    @property
    def expected_length(self) -> int:
        return self.le or 0

    def to_bytes(self) -> bytes:
        """Convert APDU command to byte array."""
        command = self.header

        if self.data is not None:
            # Case 3 or 4: Command with data
            command += struct.pack('B', len(self.data)) + self.data

        if self.le is not None:
            # Case 2 or 4: Command expecting response
            command += struct.pack('B', self.le & 0xFF)

        return command

    @classmethod
    def select_file(cls, file_id: int, select_type: int = 0x02) -> APDUCommand:
        """Create SELECT FILE command for an elementary file identifier."""
        return cls(
            cla=0x00,
            ins=APDUInstruction.SELECT.value,
            p1=select_type,
            p2=0x0C,
            data=struct.pack('>H', file_id),
        )

    @classmethod
    def select_application(cls, aid: bytes) -> APDUCommand:
        """Create SELECT by DF name (application identifier)."""
        return cls(cla=0x00, ins=APDUInstruction.SELECT.value, p1=0x04, p2=0x0C, data=aid)

    @classmethod
    def read_binary(cls, offset: int, length: int) -> APDUCommand:
        """Create READ BINARY command."""
        if not (0 <= offset <= 0x7FFF):
            raise ValueError(f"READ BINARY offset out of range: {offset}")
        p1 = (offset >> 8) & 0x7F
        p2 = offset & 0xFF
        return cls(cla=0x00, ins=APDUInstruction.READ_BINARY.value, p1=p1, p2=p2, le=length)

    @classmethod
    def get_challenge(cls, length: int = 8) -> APDUCommand:
        """Create GET CHALLENGE command for authentication."""
        return cls(cla=0x00, ins=APDUInstruction.GET_CHALLENGE.value, p1=0x00, p2=0x00, le=length)

    @classmethod
    def mutual_authenticate(cls, payload: bytes, le: int = 256) -> APDUCommand:
        """Create MUTUAL AUTHENTICATE (EXTERNAL AUTHENTICATE) carrying EIFD || MIFD."""
        return cls(
            cla=0x00,
            ins=APDUInstruction.EXTERNAL_AUTHENTICATE.value,
            p1=0x00,
            p2=0x00,
            data=payload,
            le=le,
        )

    @classmethod
    def get_response(cls, length: int) -> APDUCommand:
        return cls(cla=0x00, ins=APDUInstruction.GET_RESPONSE.value, p1=0x00, p2=0x00, le=length)

    @classmethod
    def from_bytes(cls, apdu: bytes) -> APDUCommand:
        """Parse a short command APDU."""
        if len(apdu) < 4:
            raise ValueError("APDU must contain at least CLA INS P1 P2")

        cla, ins, p1, p2 = apdu[:4]
        body = apdu[4:]
        if not body:
            return cls(cla, ins, p1, p2)
        if len(body) == 1:
            return cls(cla, ins, p1, p2, le=body[0] or 256)

        lc = body[0]
        data = body[1 : 1 + lc]
        if len(data) != lc:
            raise ValueError("APDU data shorter than Lc")
        rest = body[1 + lc :]
        if len(rest) > 1:
            raise ValueError("Trailing bytes after Le")
        le = (rest[0] or 256) if rest else None
        return cls(cla, ins, p1, p2, data=data, le=le)


@dataclass(frozen=True)
class APDUResponse:
    """APDU Response structure."""
    data: bytes
    sw1: int  # Status word 1
    sw2: int  # Status word 2

    @property
    def sw(self) -> int:
        """Combined status word."""
        return (self.sw1 << 8) | self.sw2

    @property
    def is_success(self) -> bool:
        """Check if response indicates success."""
        return self.sw == StatusWord.SUCCESS

    @property
    def status_description(self) -> str:
        return describe_status(self.sw)

    def to_bytes(self) -> bytes:
        return self.data + bytes([self.sw1, self.sw2])


class PassportAPDU:
    """Identifiers for the eMRTD application and its files."""

    # Passport application AID
    PASSPORT_AID = bytes.fromhex('A0000002471001')

    # Elementary File identifiers
    EF_COM = 0x011E  # Common Data Elements
    EF_DG1 = 0x0101  # Data Group 1 (MRZ)

    FILE_NAMES = {
        EF_COM: "EF.COM",
        EF_DG1: "EF.DG1",
    }

    @classmethod
    def select_passport_application(cls) -> APDUCommand:
        """Select passport application."""
        return APDUCommand.select_application(cls.PASSPORT_AID)

    @classmethod
    def file_name(cls, file_id: int) -> str:
        return cls.FILE_NAMES.get(file_id, f"EF {file_id:04X}")
