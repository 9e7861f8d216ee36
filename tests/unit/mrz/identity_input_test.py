import pytest

from passport_bac.exceptions import ValidationError
from passport_bac.models.passport import IdentityInput, validate_bac_inputs


def test_identity_input_normalises_document_number():
    identity = IdentityInput.from_strings(" l898 902c ", "690806", " 940623")
    assert identity.document_number == "L898902C"
    assert identity.date_of_birth == "690806"
    assert identity.date_of_expiry == "940623"


def test_identity_input_collects_every_problem():
    with pytest.raises(ValidationError) as exc_info:
        IdentityInput.from_strings("", "901301", "abc")

    errors = exc_info.value.errors
    assert len(errors) == 3
    assert any("Document number" in error for error in errors)
    assert any("month" in error for error in errors)
    assert any("Date of expiry" in error for error in errors)
    assert exc_info.value.error_code == "INVALID_INPUT"


@pytest.mark.parametrize("document_number", ["1234567890", "AB-12345", "<<<<"])
def test_invalid_document_numbers(document_number):
    result = validate_bac_inputs(document_number, "690806", "940623")
    assert not result.is_valid


def test_invalid_day_is_reported():
    result = validate_bac_inputs("L898902C", "690832", "940623")
    assert not result.is_valid
    assert result.errors == ["Date of birth has an invalid day: 32"]


def test_identity_input_repr_masks_document_number():
    identity = IdentityInput.from_strings("L898902C3", "690806", "940623")
    assert "L898902" not in repr(identity)
    assert repr(identity).endswith("'***C3')")


def test_identity_input_is_immutable():
    identity = IdentityInput.from_strings("L898902C3", "690806", "940623")
    with pytest.raises(ValueError):
        identity.document_number = "X"
