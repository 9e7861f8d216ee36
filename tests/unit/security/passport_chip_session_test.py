import threading
from datetime import date

import pytest

from passport_bac.exceptions import (
    AuthenticationError,
    CardTimeoutError,
    FileNotFoundOnChipError,
    ReadCancelledError,
    ReaderBusyError,
    SecureMessagingError,
    ValidationError,
)
from passport_bac.hardware import ReaderStatus
from passport_bac.models.passport import Gender
from passport_bac.rfid.apdu_commands import PassportAPDU
from passport_bac.rfid.secure_messaging import BACSession
from passport_bac.security.passport_chip_session import PassportChipSession
from passport_bac.testing import ChipFaults, SimulatedPassportChip, build_com, build_dg1
from passport_bac.utils.cancellation import CancellationToken
from passport_bac.utils.mrz_utils import MRZFormatter

DOCUMENT_NUMBER = "E00000000"
DATE_OF_BIRTH = "900101"
DATE_OF_EXPIRY = "251231"


def test_read_document(chip, settings):
    progress = []
    session = PassportChipSession(chip, settings=settings, progress=progress.append)

    record = session.read_document(DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY)

    assert record.document_number == DOCUMENT_NUMBER
    assert record.surname == "UNKNOWN"
    assert record.issuing_country == "UTO"
    assert record.sex is Gender.UNSPECIFIED
    assert record.date_of_birth == date(1990, 1, 1)
    assert record.date_of_expiry == date(2025, 12, 31)
    assert progress[0] == "Waiting for passport"
    assert progress[-1] == "Passport read complete"
    assert chip.invalidations == [None]
    assert chip.status is ReaderStatus.INVALIDATED


def test_read_document_session_keys(settings, monkeypatch):
    """Nonces and key halves from ICAO 9303 part 11 Appendix D.3."""
    rnd_ic = bytes.fromhex("4608F91988702212")
    k_icc = bytes.fromhex("0B4F80323EB3191CB04970CB4052790B")
    k_ifd = bytes.fromhex("0B795240CB7049B01C19B33E32804F0B")
    rnd_ifd = bytes.fromhex("781723860C06C226")
    chip = SimulatedPassportChip(
        DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY, rnd_ic=rnd_ic, k_icc=k_icc
    )
    randoms = [rnd_ifd, k_ifd]

    created = []
    original_init = BACSession.__init__

    def recording_init(self, session_enc_key, session_mac_key, ssc):
        created.append((session_enc_key, session_mac_key, ssc))
        original_init(self, session_enc_key, session_mac_key, ssc)

    monkeypatch.setattr(BACSession, "__init__", recording_init)
    session = PassportChipSession(chip, settings=settings, random_bytes=lambda n: randoms.pop(0))
    session.read_document(DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY)

    enc_key, mac_key, ssc = created[0]
    assert enc_key[:16] == bytes.fromhex("979EC13B1CBFE9DCD01AB0FED307EAE5")
    assert enc_key[16:] == enc_key[:8]
    assert mac_key[:16] == bytes.fromhex("F1CB1F1FB5ADF208806B89DC579DC1F8")
    assert mac_key[16:] == mac_key[:8]
    assert ssc == 0x887022120C06C226


def test_invalid_input_never_reaches_the_chip(chip, settings):
    session = PassportChipSession(chip, settings=settings)

    with pytest.raises(ValidationError) as exc_info:
        session.read_document("", "901301", "abc")

    assert len(exc_info.value.errors) == 3
    assert chip.commands == []
    assert chip.status is ReaderStatus.DISCONNECTED
    assert chip.invalidations == []


def test_wrong_identity_fails_authentication(chip, settings):
    session = PassportChipSession(chip, settings=settings)

    with pytest.raises(AuthenticationError):
        session.read_document("E00000001", DATE_OF_BIRTH, DATE_OF_EXPIRY)

    assert len(chip.invalidations) == 1
    assert chip.invalidations[0].startswith("MUTUAL AUTHENTICATE failed")


def test_connect_failure_invalidates(settings):
    chip = SimulatedPassportChip(
        DOCUMENT_NUMBER,
        DATE_OF_BIRTH,
        DATE_OF_EXPIRY,
        connect_error=CardTimeoutError("No card presented"),
    )
    session = PassportChipSession(chip, settings=settings)

    with pytest.raises(CardTimeoutError):
        session.read_document(DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY)

    assert chip.invalidations == ["No card presented"]


def test_application_select_failure_is_tolerated(settings, caplog):
    chip = SimulatedPassportChip(
        DOCUMENT_NUMBER,
        DATE_OF_BIRTH,
        DATE_OF_EXPIRY,
        faults=ChipFaults(application_select_status=0x6A82),
    )
    session = PassportChipSession(chip, settings=settings)

    with caplog.at_level("WARNING"):
        record = session.read_document(DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY)

    assert record.document_number == DOCUMENT_NUMBER
    assert "eMRTD application" in caplog.text


def test_missing_com_is_tolerated(settings, caplog):
    mrz = MRZFormatter.generate_mrz(DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY, surname="DOE")
    chip = SimulatedPassportChip(
        DOCUMENT_NUMBER,
        DATE_OF_BIRTH,
        DATE_OF_EXPIRY,
        files={PassportAPDU.EF_DG1: build_dg1(mrz)},
    )

    with caplog.at_level("WARNING"):
        record = PassportChipSession(chip, settings=settings).read_document(
            DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY
        )

    assert record.surname == "DOE"
    assert "EF.COM not present" in caplog.text


def test_com_without_dg1_is_advisory(settings, caplog):
    mrz = MRZFormatter.generate_mrz(DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY)
    chip = SimulatedPassportChip(
        DOCUMENT_NUMBER,
        DATE_OF_BIRTH,
        DATE_OF_EXPIRY,
        files={PassportAPDU.EF_COM: build_com(tags=b"\x75"), PassportAPDU.EF_DG1: build_dg1(mrz)},
    )

    with caplog.at_level("WARNING"):
        PassportChipSession(chip, settings=settings).read_document(
            DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY
        )

    assert "does not list DG1" in caplog.text


def test_com_read_can_be_skipped(settings):
    chip = SimulatedPassportChip(
        DOCUMENT_NUMBER,
        DATE_OF_BIRTH,
        DATE_OF_EXPIRY,
        faults=ChipFaults(select_status={PassportAPDU.EF_COM: 0x6982}),
    )
    settings = settings.model_copy(update={"read_com": False})

    record = PassportChipSession(chip, settings=settings).read_document(
        DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY
    )

    assert record.document_number == DOCUMENT_NUMBER


def test_missing_dg1_is_an_error(settings):
    chip = SimulatedPassportChip(
        DOCUMENT_NUMBER,
        DATE_OF_BIRTH,
        DATE_OF_EXPIRY,
        files={PassportAPDU.EF_COM: build_com()},
    )

    with pytest.raises(FileNotFoundOnChipError):
        PassportChipSession(chip, settings=settings).read_document(
            DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY
        )
    assert chip.invalidations[0].startswith("SELECT EF.DG1 failed")


def test_encrypted_file_identifiers(settings):
    mrz = MRZFormatter.generate_mrz(DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY, surname="DOE")
    chip = SimulatedPassportChip(
        DOCUMENT_NUMBER,
        DATE_OF_BIRTH,
        DATE_OF_EXPIRY,
        files={PassportAPDU.EF_COM: build_com(), PassportAPDU.EF_DG1: build_dg1(mrz)},
        plain_select_file_id=False,
    )
    settings = settings.model_copy(update={"plain_select_file_id": False})

    record = PassportChipSession(chip, settings=settings).read_document(
        DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY
    )

    assert record.surname == "DOE"
    selects = [apdu for apdu in chip.commands if apdu[:4] == bytes.fromhex("0CA4020C")]
    assert len(selects) == 2
    for apdu in selects:
        # DO'87' holds one padded block rather than the bare file id
        assert apdu[5:8] == bytes.fromhex("870901")


def test_plain_file_content_is_rejected(settings):
    forged = MRZFormatter.generate_mrz("X12345678", DATE_OF_BIRTH, DATE_OF_EXPIRY, surname="MALLORY")
    chip = SimulatedPassportChip(
        DOCUMENT_NUMBER,
        DATE_OF_BIRTH,
        DATE_OF_EXPIRY,
        files={PassportAPDU.EF_COM: build_com(), PassportAPDU.EF_DG1: build_dg1(forged)},
        faults=ChipFaults(plain_read_binary=True),
    )

    with pytest.raises(SecureMessagingError, match="Unprotected response data"):
        PassportChipSession(chip, settings=settings).read_document(
            DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY
        )

    assert chip.status is ReaderStatus.INVALIDATED


def test_responses_without_mac_are_rejected(settings):
    chip = SimulatedPassportChip(
        DOCUMENT_NUMBER,
        DATE_OF_BIRTH,
        DATE_OF_EXPIRY,
        faults=ChipFaults(strip_response_macs=True),
    )

    with pytest.raises(SecureMessagingError, match="DO'8E'"):
        PassportChipSession(chip, settings=settings).read_document(
            DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY
        )

    # The first protected SELECT and its single retry
    protected = [apdu for apdu in chip.commands if apdu[0] == 0x0C]
    assert len(protected) == 2


def test_cancel_before_start(chip, settings):
    token = CancellationToken()
    token.cancel()

    with pytest.raises(ReadCancelledError):
        PassportChipSession(chip, settings=settings).read_document(
            DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY, cancel_token=token
        )

    assert chip.commands == []
    assert chip.invalidations == ["Read cancelled by user"]


def test_cancel_during_file_read(settings):
    token = CancellationToken()

    def cancel_on_read_binary(apdu):
        if apdu[1] == 0xB0:
            token.cancel()

    chip = SimulatedPassportChip(
        DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY, on_command=cancel_on_read_binary
    )

    with pytest.raises(ReadCancelledError):
        PassportChipSession(chip, settings=settings).read_document(
            DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY, cancel_token=token
        )

    read_commands = [apdu for apdu in chip.commands if apdu[1] == 0xB0]
    assert len(read_commands) == 1
    assert chip.status is ReaderStatus.INVALIDATED


def test_concurrent_read_is_refused(settings):
    entered = threading.Event()
    release = threading.Event()

    def block_first_command(apdu):
        if not entered.is_set():
            entered.set()
            release.wait(timeout=5)

    chip = SimulatedPassportChip(
        DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY, on_command=block_first_command
    )
    session = PassportChipSession(chip, settings=settings)
    results = []

    worker = threading.Thread(
        target=lambda: results.append(
            session.read_document(DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY)
        )
    )
    worker.start()
    try:
        assert entered.wait(timeout=5)
        with pytest.raises(ReaderBusyError):
            session.read_document(DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY)
    finally:
        release.set()
        worker.join(timeout=5)

    assert len(results) == 1
    # The session is usable again once the first read finished
    record = session.read_document(DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY)
    assert record.document_number == DOCUMENT_NUMBER


def test_session_keys_are_destroyed(chip, settings, monkeypatch):
    sessions = []
    original_init = BACSession.__init__

    def recording_init(self, *args):
        original_init(self, *args)
        sessions.append(self)

    monkeypatch.setattr(BACSession, "__init__", recording_init)
    PassportChipSession(chip, settings=settings).read_document(
        DOCUMENT_NUMBER, DATE_OF_BIRTH, DATE_OF_EXPIRY
    )

    assert len(sessions) == 1
    assert not sessions[0].is_active
