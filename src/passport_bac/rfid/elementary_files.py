"""Elementary File (EF) parsing for EF.COM and EF.DG1 (ICAO Doc 9303 Part 10)."""

from __future__ import annotations

import logging
import re

from ..exceptions import InvalidMRZFormat, MRZLengthError
from ..models.passport import DocumentRecord
from ..utils.mrz_utils import MRZParser
from ..utils.tlv import find_tlv, parse_tlvs, read_length, read_tag

logger = logging.getLogger(__name__)

TD3_MRZ_LENGTH = 88
TAG_MRZ = 0x5F1F
TAG_TAG_LIST = 0x5C
TAG_DG1 = 0x61
TAG_COM = 0x60

_MRZ_CHARS = frozenset(b"ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789<")
_MRZ_VALUE = re.compile(rb"^[A-Z0-9<]+$")


class ElementaryFileParser:
    """Turns raw file content read from the chip into typed values."""

    @staticmethod
    def find_mrz(data: bytes) -> str:
        """
        Locate the TD3 MRZ inside DG1 content.

        The ``5F1F`` data object is preferred; failing that the buffer is
        scanned for the first 88-byte run of MRZ characters.

        Raises:
            MRZLengthError: if the MRZ object holds something other than 88 characters
            InvalidMRZFormat: if no MRZ is present
        """
        value = find_tlv(data, TAG_MRZ)
        if value is not None and _MRZ_VALUE.match(value):
            if len(value) != TD3_MRZ_LENGTH:
                msg = f"MRZ object holds {len(value)} characters, expected {TD3_MRZ_LENGTH}"
                raise MRZLengthError(msg)
            return value.decode("ascii")

        run_start = 0
        for idx, byte in enumerate(data):
            if byte not in _MRZ_CHARS:
                run_start = idx + 1
            elif idx - run_start + 1 == TD3_MRZ_LENGTH:
                return data[run_start : idx + 1].decode("ascii")

        msg = f"No {TD3_MRZ_LENGTH}-character MRZ found in {len(data)} bytes of DG1"
        raise InvalidMRZFormat(msg)

    @classmethod
    def parse_dg1(cls, data: bytes) -> DocumentRecord:
        """Parse EF.DG1 into a document record."""
        mrz = cls.find_mrz(data)
        record = MRZParser.parse_td3_mrz(mrz)
        logger.info("Parsed DG1 for document ending %s", record.document_number[-2:])
        return record

    @staticmethod
    def com_lists_dg1(data: bytes) -> bool:
        """
        Advisory check that EF.COM announces DG1.

        Reads the ``5C`` tag list inside the ``60`` template and falls back
        to a byte scan for the DG1 tag when the structure does not parse.
        """
        try:
            tag, tag_len = read_tag(data, 0)
            length, length_len = read_length(data, tag_len)
            if tag != TAG_COM:
                raise ValueError(f"Unexpected EF.COM tag 0x{tag:02X}")
            start = tag_len + length_len
            for element in parse_tlvs(data[start : start + length]):
                if element.tag == TAG_TAG_LIST:
                    return TAG_DG1 in element.value
        except ValueError as exc:
            logger.debug("EF.COM did not parse (%s), scanning bytes", exc)
        return TAG_DG1 in data[2:]
