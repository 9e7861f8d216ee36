"""
Passport data models for the BAC reader.

These models follow ICAO Doc 9303 Part 4 (TD3 machine readable passports).
"""

from __future__ import annotations

import re
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..exceptions import ValidationError

MRZ_ALPHABET = re.compile(r"^[A-Z0-9<]*$")
DOCUMENT_NUMBER_PATTERN = re.compile(r"^[A-Z0-9<]{1,9}$")
TD3_LINE_LENGTH = 44


class Gender(str, Enum):
    """Passport gender enum according to ICAO standards."""

    MALE = "M"
    FEMALE = "F"
    UNSPECIFIED = "X"

    @classmethod
    def from_mrz(cls, code: str) -> Gender:
        if code == "M":
            return cls.MALE
        if code == "F":
            return cls.FEMALE
        return cls.UNSPECIFIED

    @property
    def mrz_code(self) -> str:
        return "<" if self is Gender.UNSPECIFIED else self.value


class BACValidationResult(BaseModel):
    """Outcome of checking identity input before key derivation."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)


def normalize_document_number(value: str) -> str:
    """Uppercase and drop whitespace; fillers are left for the formatter."""
    return "".join(value.split()).upper()


def _date_errors(value: str, label: str) -> list[str]:
    if len(value) != 6 or not value.isdigit():
        return [f"{label} must be 6 digits (YYMMDD)"]
    errors = []
    month = int(value[2:4])
    day = int(value[4:6])
    if not 1 <= month <= 12:
        errors.append(f"{label} has an invalid month: {value[2:4]}")
    if not 1 <= day <= 31:
        errors.append(f"{label} has an invalid day: {value[4:6]}")
    return errors


def validate_bac_inputs(
    document_number: str, date_of_birth: str, date_of_expiry: str
) -> BACValidationResult:
    """Check the three BAC inputs and collect every problem found."""
    errors: list[str] = []

    number = normalize_document_number(document_number)
    if not number.strip("<"):
        errors.append("Document number must not be empty")
    elif len(number) > 9:
        errors.append("Document number must be at most 9 characters")
    elif not DOCUMENT_NUMBER_PATTERN.match(number):
        errors.append("Document number may only contain A-Z and 0-9")

    errors.extend(_date_errors(date_of_birth.strip(), "Date of birth"))
    errors.extend(_date_errors(date_of_expiry.strip(), "Date of expiry"))

    return BACValidationResult(is_valid=not errors, errors=errors)


class IdentityInput(BaseModel):
    """The three values printed on the data page that unlock the chip."""

    document_number: str = Field(..., description="Document number, up to 9 characters")
    date_of_birth: str = Field(..., description="YYMMDD format")
    date_of_expiry: str = Field(..., description="YYMMDD format")

    model_config = {
        "frozen": True,
        "extra": "forbid",
    }

    @field_validator("document_number")
    @classmethod
    def validate_document_number(cls, v):
        v = normalize_document_number(v)
        if not v.strip("<") or not DOCUMENT_NUMBER_PATTERN.match(v):
            msg = "Document number must be 1-9 characters of A-Z and 0-9"
            raise ValueError(msg)
        return v

    @field_validator("date_of_birth", "date_of_expiry")
    @classmethod
    def validate_date_format(cls, v):
        v = v.strip()
        errors = _date_errors(v, "Date")
        if errors:
            raise ValueError(errors[0])
        return v

    @classmethod
    def from_strings(
        cls, document_number: str, date_of_birth: str, date_of_expiry: str
    ) -> IdentityInput:
        """
        Validate raw caller strings and build an IdentityInput.

        Raises:
            ValidationError: with every problem found, before any I/O happens
        """
        result = validate_bac_inputs(document_number, date_of_birth, date_of_expiry)
        if not result.is_valid:
            raise ValidationError(result.errors)
        return cls(
            document_number=document_number,
            date_of_birth=date_of_birth,
            date_of_expiry=date_of_expiry,
        )

    def __repr__(self) -> str:
        # Keep the document number out of logs and tracebacks
        return f"IdentityInput(document_number='***{self.document_number[-2:]}')"


class PassportInfo(BaseModel):
    """Full set of TD3 fields used to produce a data page MRZ."""

    document_number: str
    date_of_birth: str = Field(..., description="YYMMDD format")
    date_of_expiry: str = Field(..., description="YYMMDD format")
    surname: str = "UNKNOWN"
    given_names: str = "UNKNOWN"
    issuing_country: str = Field(default="UTO", description="3-letter country code")
    nationality: str = Field(default="UTO", description="3-letter country code")
    gender: Gender = Gender.UNSPECIFIED
    document_type: str = "P"
    personal_number: Optional[str] = None

    @field_validator("issuing_country", "nationality")
    @classmethod
    def validate_country_code(cls, v):
        v = v.strip().upper()
        if not 1 <= len(v) <= 3:
            msg = "Country code must be at most 3 characters"
            raise ValueError(msg)
        return v

    @field_validator("document_type")
    @classmethod
    def validate_document_type(cls, v):
        v = v.strip().upper()
        if not 1 <= len(v) <= 2 or not v.startswith("P"):
            msg = "TD3 document type must start with 'P'"
            raise ValueError(msg)
        return v


class MRZRecord(BaseModel):
    """Two 44-character TD3 lines."""

    line1: str
    line2: str

    model_config = {
        "frozen": True,
    }

    @field_validator("line1", "line2")
    @classmethod
    def validate_line(cls, v):
        if len(v) != TD3_LINE_LENGTH:
            msg = f"TD3 lines must be exactly {TD3_LINE_LENGTH} characters, got {len(v)}"
            raise ValueError(msg)
        if not MRZ_ALPHABET.match(v):
            msg = "MRZ lines may only contain A-Z, 0-9 and '<'"
            raise ValueError(msg)
        return v

    @property
    def full_mrz(self) -> str:
        return self.line1 + self.line2

    @property
    def display_format(self) -> str:
        return f"{self.line1}\n{self.line2}"


class DocumentRecord(BaseModel):
    """Fields read from DG1. The only artifact handed back after a successful read."""

    document_type: str
    issuing_country: str = Field(..., description="Issuing state or organisation")
    document_number: str
    surname: str
    given_names: str
    nationality: str
    sex: Gender
    date_of_birth: Optional[date] = None
    date_of_expiry: Optional[date] = None
    personal_number: Optional[str] = None
    mrz: str = Field(..., description="The 88-character MRZ as read from the chip")

    model_config = {
        "frozen": True,
        "extra": "forbid",
    }

    @property
    def full_name(self) -> str:
        return f"{self.given_names} {self.surname}".strip()
