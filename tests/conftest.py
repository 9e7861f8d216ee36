"""
Test configuration for the passport BAC reader test suite.
"""

import logging

import pytest

from passport_bac.config import ReaderSettings, get_settings
from passport_bac.hardware import CardTransport, ReaderStatus
from passport_bac.rfid.apdu_commands import APDUResponse
from passport_bac.testing import SimulatedPassportChip

# Identity served by the simulated chip
SIM_DOCUMENT_NUMBER = "E00000000"
SIM_DATE_OF_BIRTH = "900101"
SIM_DATE_OF_EXPIRY = "251231"


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers."""
    for item in items:
        path = str(item.fspath)
        if "unit" in path:
            item.add_marker(pytest.mark.unit)
        if "integration" in path:
            item.add_marker(pytest.mark.integration)
        if "mrz" in path or "mrz" in item.name.lower():
            item.add_marker(pytest.mark.mrz)
        if "crypto" in path:
            item.add_marker(pytest.mark.crypto)
        if "rfid" in path:
            item.add_marker(pytest.mark.rfid)


@pytest.fixture(autouse=True)
def restore_root_logger():
    """setup_logging replaces root handlers; put them back after each test."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture(autouse=True)
def clear_settings_cache(monkeypatch):
    for name in ("PASSPORT_BAC_LOG_LEVEL", "PASSPORT_BAC_LOG_FORMAT"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    return ReaderSettings(_env_file=None)


@pytest.fixture
def chip():
    return SimulatedPassportChip(SIM_DOCUMENT_NUMBER, SIM_DATE_OF_BIRTH, SIM_DATE_OF_EXPIRY)


class ScriptedTransport(CardTransport):
    """Transport that answers from a queue of canned responses."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.commands = []
        self.invalidations = []
        self.status = ReaderStatus.DISCONNECTED

    def connect(self):
        self.status = ReaderStatus.CONNECTED

    def send_command(self, apdu, expected_response_length):
        self.commands.append(apdu)
        if not self.responses:
            return APDUResponse(b"", 0x6F, 0x00)
        return self.responses.pop(0)

    def invalidate(self, error_message=None):
        self.invalidations.append(error_message)
        self.status = ReaderStatus.INVALIDATED


@pytest.fixture
def scripted_transport():
    def factory(*responses):
        transport = ScriptedTransport(responses)
        transport.connect()
        return transport

    return factory
