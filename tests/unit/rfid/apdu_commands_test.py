import pytest

from passport_bac.rfid.apdu_commands import (
    APDUCommand,
    APDUResponse,
    PassportAPDU,
    describe_status,
)


def test_select_file():
    assert APDUCommand.select_file(PassportAPDU.EF_COM).to_bytes() == bytes.fromhex("00A4020C02011E")


def test_select_application():
    command = PassportAPDU.select_passport_application()
    assert command.to_bytes() == bytes.fromhex("00A4040C07A0000002471001")


@pytest.mark.parametrize(
    ("offset", "length", "expected"),
    [(0, 4, "00B0000004"), (240, 240, "00B000F0F0"), (0x0100, 256, "00B0010000")],
)
def test_read_binary(offset, length, expected):
    command = APDUCommand.read_binary(offset, length)
    assert command.to_bytes() == bytes.fromhex(expected)
    assert command.expected_length == length


def test_read_binary_offset_limit():
    with pytest.raises(ValueError):
        APDUCommand.read_binary(0x8000, 4)


def test_mutual_authenticate_requests_256_bytes():
    command = APDUCommand.mutual_authenticate(b"\x00" * 40)
    encoded = command.to_bytes()
    assert encoded[:5] == bytes.fromhex("0082000028")
    assert encoded[-1] == 0x00
    assert command.expected_length == 256


def test_command_validation():
    with pytest.raises(ValueError):
        APDUCommand(cla=0x100, ins=0xB0, p1=0, p2=0)
    with pytest.raises(ValueError):
        APDUCommand(cla=0, ins=0xB0, p1=0, p2=0, data=b"")
    with pytest.raises(ValueError):
        APDUCommand(cla=0, ins=0xB0, p1=0, p2=0, le=257)


@pytest.mark.parametrize(
    "encoded",
    ["0084000008", "00A4020C02011E", "0082000028" + "00" * 40 + "00", "00A4040C07A0000002471001"],
)
def test_from_bytes_parses_every_case(encoded):
    apdu = bytes.fromhex(encoded)
    assert APDUCommand.from_bytes(apdu).to_bytes() == apdu


def test_from_bytes_rejects_short_data():
    with pytest.raises(ValueError):
        APDUCommand.from_bytes(bytes.fromhex("00A4020C05011E"))


def test_response_status():
    response = APDUResponse(b"\x01\x02", 0x90, 0x00)
    assert response.data == b"\x01\x02"
    assert response.sw == 0x9000
    assert response.is_success
    assert response.to_bytes() == bytes.fromhex("01029000")

    warning = APDUResponse(b"", 0x62, 0x82)
    assert not warning.is_success
    assert warning.status_description == "End of file reached"


def test_describe_status():
    assert describe_status(0x6A82) == "File not found"
    assert describe_status(0x6C10) == "Wrong Le field (0x6C10)"
    assert describe_status(0x1234) == "Unknown status: 0x1234"


def test_file_names():
    assert PassportAPDU.file_name(PassportAPDU.EF_DG1) == "EF.DG1"
    assert PassportAPDU.file_name(0x0102) == "EF 0102"
