"""
Machine Readable Zone (MRZ) parsing and generation utilities.

Implements TD3 MRZ processing according to ICAO Doc 9303 Part 3 and Part 4.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from datetime import date
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import FormatError, ParseError
from ..models.passport import DocumentRecord, Gender, MRZRecord, PassportInfo

logger = logging.getLogger(__name__)

FILLER = "<"
NAME_FIELD_LENGTH = 39
DOCUMENT_NUMBER_LENGTH = 9
COUNTRY_CODE_LENGTH = 3
DATE_LENGTH = 6
PERSONAL_NUMBER_LENGTH = 14


class MRZParser:
    """Parser for Machine Readable Zone (MRZ) data according to ICAO Doc 9303."""

    WEIGHTS = (7, 3, 1)

    @staticmethod
    def calculate_check_digit(input_string: str) -> str:
        """
        Calculate the check digit as per ICAO Doc 9303 specifications.

        Args:
            input_string: String to calculate check digit for

        Returns:
            Single character check digit

        Raises:
            FormatError: If the string holds a character outside A-Z, 0-9 and '<'
        """
        total = 0

        for i, char in enumerate(input_string):
            if char == FILLER:
                value = 0
            elif "0" <= char <= "9":
                value = ord(char) - ord("0")
            elif "A" <= char <= "Z":
                # A = 10, B = 11, ..., Z = 35
                value = ord(char) - ord("A") + 10
            else:
                msg = f"Character {char!r} is not valid in an MRZ"
                raise FormatError(msg)

            total += value * MRZParser.WEIGHTS[i % 3]

        return str(total % 10)

    @staticmethod
    def validate_check_digit(input_string: str, check_digit: str) -> bool:
        """
        Validate a check digit against an input string.

        Args:
            input_string: String to validate check digit for
            check_digit: The check digit to validate

        Returns:
            True if valid, False otherwise
        """
        try:
            calculated = MRZParser.calculate_check_digit(input_string)
        except FormatError:
            return False
        # A filler in place of the digit is only legal for an empty field
        if check_digit == FILLER:
            return calculated == "0" and not input_string.strip(FILLER)
        return calculated == check_digit

    @staticmethod
    def clean_name(name: str) -> str:
        """
        Transliterate a name to the MRZ alphabet.

        Diacritics are folded to plain letters, apostrophes are dropped and any
        other run of non-letters becomes a single '<'.
        """
        folded = unicodedata.normalize("NFKD", name)
        ascii_only = "".join(char for char in folded if not unicodedata.combining(char))
        upper = ascii_only.upper().replace("'", "").replace("’", "")
        return re.sub(r"[^A-Z]+", FILLER, upper).strip(FILLER)

    @classmethod
    def _normalize_whitespace(cls, value: str) -> str:
        parts = [segment for segment in value.replace(FILLER, " ").split() if segment]
        return " ".join(parts)

    @staticmethod
    def parse_date(value: str, is_expiry: bool = False, today: date | None = None) -> Optional[date]:
        """
        Turn a YYMMDD field into a date, or None when it is not a calendar date.

        Birth dates are placed in the past century when the year would
        otherwise lie in the future; expiry years below 70 are 20YY.
        """
        if len(value) != DATE_LENGTH or not value.isdigit():
            return None

        yy, month, day = int(value[0:2]), int(value[2:4]), int(value[4:6])
        if is_expiry:
            year = 2000 + yy if yy < 70 else 1900 + yy
        else:
            current = (today or date.today()).year % 100
            year = 1900 + yy if yy > current else 2000 + yy

        try:
            return date(year, month, day)
        except ValueError:
            return None

    @classmethod
    def verify_check_digits(cls, line2: str) -> dict[str, bool]:
        """Report which of the five TD3 line 2 check digits hold."""
        composite = line2[0:10] + line2[13:20] + line2[21:43]
        return {
            "document_number": cls.validate_check_digit(line2[0:9], line2[9]),
            "date_of_birth": cls.validate_check_digit(line2[13:19], line2[19]),
            "date_of_expiry": cls.validate_check_digit(line2[21:27], line2[27]),
            "personal_number": cls.validate_check_digit(line2[28:42], line2[42]),
            "composite": cls.validate_check_digit(composite, line2[43]),
        }

    @classmethod
    def parse_td3_mrz(cls, mrz: str) -> DocumentRecord:
        """
        Extract the TD3 fields from an 88-character MRZ.

        Check digits are not enforced here; the chip data is already covered
        by the secure messaging MAC. Dates that do not parse are left empty.

        Raises:
            ParseError: If the MRZ is not 88 characters or has no document number
        """
        if len(mrz) != 2 * 44:
            msg = f"TD3 MRZ must be 88 characters, got {len(mrz)}"
            raise ParseError(msg)

        # First line: P<ISSUING_COUNTRY<SURNAME<<GIVEN_NAMES
        line1, line2 = mrz[:44], mrz[44:]
        document_type = line1[0:2].rstrip(FILLER)
        issuing_country = line1[2:5].rstrip(FILLER)

        name_parts = line1[5:].split("<<", 1)
        surname = cls._normalize_whitespace(name_parts[0])
        given_names = cls._normalize_whitespace(name_parts[1]) if len(name_parts) > 1 else ""

        # Second line: DOCUMENT_NUMBER CD NATIONALITY DOB CD SEX DOE CD PERSONAL_NUMBER CD COMPOSITE
        document_number = line2[0:9].replace(FILLER, "")
        if not document_number:
            msg = "MRZ does not contain a document number"
            raise ParseError(msg)

        checks = cls.verify_check_digits(line2)
        failed = [name for name, ok in checks.items() if not ok]
        if failed:
            logger.warning("MRZ check digit mismatch in: %s", ", ".join(failed))

        return DocumentRecord(
            document_type=document_type,
            issuing_country=issuing_country,
            document_number=document_number,
            surname=surname,
            given_names=given_names,
            nationality=line2[10:13].rstrip(FILLER),
            sex=Gender.from_mrz(line2[20]),
            date_of_birth=cls.parse_date(line2[13:19]),
            date_of_expiry=cls.parse_date(line2[21:27], is_expiry=True),
            personal_number=line2[28:42].replace(FILLER, "") or None,
            mrz=mrz,
        )


class MRZFormatter:
    """Builds TD3 MRZ lines and the BAC key seed string."""

    @staticmethod
    def _pad(value: str, length: int) -> str:
        return value[:length].ljust(length, FILLER)

    @staticmethod
    def format_document_number(document_number: str) -> str:
        """Normalise a document number to its 9-character field."""
        cleaned = "".join(document_number.split()).upper()
        if len(cleaned) > DOCUMENT_NUMBER_LENGTH:
            msg = f"Document number longer than {DOCUMENT_NUMBER_LENGTH} characters"
            raise FormatError(msg)
        if not re.fullmatch(r"[A-Z0-9<]*", cleaned):
            msg = "Document number may only contain A-Z, 0-9 and '<'"
            raise FormatError(msg)
        return cleaned.ljust(DOCUMENT_NUMBER_LENGTH, FILLER)

    @staticmethod
    def format_date(value: str, label: str = "date") -> str:
        value = value.strip()
        if len(value) != DATE_LENGTH or not value.isdigit():
            msg = f"{label} must be six digits in YYMMDD form, got {value!r}"
            raise FormatError(msg)
        return value

    @classmethod
    def format_country(cls, code: str) -> str:
        cleaned = re.sub(r"[^A-Z]", FILLER, code.strip().upper())
        if len(cleaned) > COUNTRY_CODE_LENGTH:
            msg = f"Country code {code!r} is longer than {COUNTRY_CODE_LENGTH} characters"
            raise FormatError(msg)
        return cls._pad(cleaned, COUNTRY_CODE_LENGTH)

    @classmethod
    def format_name(cls, surname: str, given_names: str = "") -> str:
        """Build the 39-character primary<<secondary identifier field."""
        primary = MRZParser.clean_name(surname)
        secondary = MRZParser.clean_name(given_names)
        name = f"{primary}<<{secondary}" if secondary else primary
        return cls._pad(name, NAME_FIELD_LENGTH)

    @classmethod
    def format_personal_number(cls, personal_number: str | None) -> str:
        cleaned = "".join((personal_number or "").split()).upper()
        if len(cleaned) > PERSONAL_NUMBER_LENGTH:
            msg = f"Personal number longer than {PERSONAL_NUMBER_LENGTH} characters"
            raise FormatError(msg)
        if not re.fullmatch(r"[A-Z0-9<]*", cleaned):
            msg = "Personal number may only contain A-Z, 0-9 and '<'"
            raise FormatError(msg)
        return cls._pad(cleaned, PERSONAL_NUMBER_LENGTH)

    @staticmethod
    def format_sex(sex: str | Gender) -> str:
        code = sex.mrz_code if isinstance(sex, Gender) else sex.strip().upper()
        if code in ("", "X"):
            return FILLER
        if code not in ("M", "F", FILLER):
            msg = f"Sex must be M, F, X or '<', got {code!r}"
            raise FormatError(msg)
        return code

    @classmethod
    def generate_td3(cls, info: PassportInfo) -> MRZRecord:
        """
        Generate a TD3 (passport) MRZ.

        Args:
            info: Passport fields

        Returns:
            MRZRecord with both 44-character lines
        """
        document_type = cls._pad(info.document_type, 2)
        line1 = (
            document_type
            + cls.format_country(info.issuing_country)
            + cls.format_name(info.surname, info.given_names)
        )

        document_number = cls.format_document_number(info.document_number)
        date_of_birth = cls.format_date(info.date_of_birth, "date of birth")
        date_of_expiry = cls.format_date(info.date_of_expiry, "date of expiry")
        personal_number = cls.format_personal_number(info.personal_number)

        doc_cd = MRZParser.calculate_check_digit(document_number)
        dob_cd = MRZParser.calculate_check_digit(date_of_birth)
        doe_cd = MRZParser.calculate_check_digit(date_of_expiry)
        personal_cd = MRZParser.calculate_check_digit(personal_number)

        composite = (
            document_number
            + doc_cd
            + date_of_birth
            + dob_cd
            + date_of_expiry
            + doe_cd
            + personal_number
            + personal_cd
        )
        composite_cd = MRZParser.calculate_check_digit(composite)

        line2 = (
            document_number
            + doc_cd
            + cls.format_country(info.nationality)
            + date_of_birth
            + dob_cd
            + cls.format_sex(info.gender)
            + date_of_expiry
            + doe_cd
            + personal_number
            + personal_cd
            + composite_cd
        )

        return MRZRecord(line1=line1, line2=line2)

    @classmethod
    def generate_mrz(
        cls,
        document_number: str,
        date_of_birth: str,
        date_of_expiry: str,
        surname: str = "UNKNOWN",
        given_names: str = "UNKNOWN",
        issuing_country: str = "UTO",
        nationality: str = "UTO",
        sex: str = FILLER,
        personal_number: str | None = None,
    ) -> MRZRecord:
        """Generate a TD3 MRZ from the BAC triple plus optional holder details."""
        try:
            info = PassportInfo(
                document_number=document_number,
                date_of_birth=date_of_birth,
                date_of_expiry=date_of_expiry,
                surname=surname,
                given_names=given_names,
                issuing_country=issuing_country,
                nationality=nationality,
                gender=Gender.from_mrz(cls.format_sex(sex)),
                personal_number=personal_number,
            )
        except PydanticValidationError as exc:
            msg = f"Cannot build MRZ: {exc}"
            raise FormatError(msg) from exc
        return cls.generate_td3(info)

    @staticmethod
    def extract_bac_seed_string(record: MRZRecord) -> str:
        """Document number, date of birth and date of expiry, each with its check digit."""
        line2 = record.line2
        return line2[0:10] + line2[13:20] + line2[21:28]

    @staticmethod
    def validate_mrz(record: MRZRecord) -> bool:
        """Return True when every check digit in line 2 is correct."""
        return all(MRZParser.verify_check_digits(record.line2).values())
