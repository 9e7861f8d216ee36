"""PC/SC transport response handling, driven through a fake card connection."""

import pytest

from passport_bac.exceptions import ConnectionLostError
from passport_bac.hardware import ReaderStatus
from passport_bac.hardware.pcsc_reader import PCSCTransport


class FakeCardError(Exception):
    pass


class FakeConnection:
    def __init__(self, responses):
        self.responses = list(responses)
        self.sent = []
        self.disconnected = False

    def transmit(self, apdu):
        self.sent.append(bytes(apdu))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def disconnect(self):
        self.disconnected = True


class FakeCardService:
    def __init__(self, connection):
        self.connection = connection


def make_transport(*responses):
    transport = PCSCTransport.__new__(PCSCTransport)
    transport.name = "Fake Reader 00"
    transport.timeout = 1
    transport.connection_errors = (FakeCardError,)
    transport.card_service = FakeCardService(FakeConnection(responses))
    transport.status = ReaderStatus.CONNECTED
    return transport


def test_send_command():
    transport = make_transport(([0x01, 0x02], 0x90, 0x00))

    response = transport.send_command(bytes.fromhex("0084000008"), 8)

    assert response.data == b"\x01\x02"
    assert response.sw == 0x9000
    assert transport.card_service.connection.sent == [bytes.fromhex("0084000008")]


def test_get_response_chaining():
    transport = make_transport(
        ([], 0x61, 0x04),
        ([0x01, 0x02, 0x03, 0x04], 0x61, 0x02),
        ([0x05, 0x06], 0x90, 0x00),
    )

    response = transport.send_command(bytes.fromhex("0082000028") + bytes(40), 256)

    assert response.data == bytes(range(1, 7))
    assert response.sw == 0x9000
    sent = transport.card_service.connection.sent
    assert sent[1] == bytes.fromhex("00C0000004")
    assert sent[2] == bytes.fromhex("00C0000002")


def test_wrong_le_is_resent():
    transport = make_transport(([], 0x6C, 0x04), ([1, 2, 3, 4], 0x90, 0x00))

    response = transport.send_command(bytes.fromhex("00B0000008"), 8)

    assert response.data == b"\x01\x02\x03\x04"
    assert transport.card_service.connection.sent[1] == bytes.fromhex("00B0000004")


def test_lost_card_raises_connection_lost():
    transport = make_transport(FakeCardError("card removed"))

    with pytest.raises(ConnectionLostError):
        transport.send_command(bytes.fromhex("0084000008"), 8)
    assert transport.status is ReaderStatus.INVALIDATED


def test_send_without_connection():
    transport = make_transport()
    transport.status = ReaderStatus.DISCONNECTED

    with pytest.raises(ConnectionLostError):
        transport.send_command(bytes.fromhex("0084000008"), 8)


def test_invalidate_disconnects():
    transport = make_transport()
    connection = transport.card_service.connection

    transport.invalidate("Read cancelled")

    assert connection.disconnected
    assert transport.card_service is None
    assert transport.status is ReaderStatus.INVALIDATED
