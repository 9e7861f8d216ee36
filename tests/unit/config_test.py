import json
import logging

import pytest
from pydantic import ValidationError

from passport_bac.config import ReaderSettings, get_settings
from passport_bac.logging_config import setup_logging


def test_default_settings(settings):
    assert settings.chunk_size == 240
    assert settings.header_probe_length == 4
    assert settings.default_file_length == 255
    assert settings.file_length_margin == 10
    assert settings.max_file_length == 1024
    assert settings.sm_retry_attempts == 1
    assert settings.plain_select_file_id
    assert settings.expected_response_length == 256


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("PASSPORT_BAC_CHUNK_SIZE", "128")
    monkeypatch.setenv("PASSPORT_BAC_READ_COM", "false")

    settings = get_settings()

    assert settings.chunk_size == 128
    assert not settings.read_com
    assert get_settings() is settings


@pytest.mark.parametrize(
    "overrides",
    [
        {"chunk_size": 300},
        {"chunk_size": 200, "expected_response_length": 100},
        {"chunk_size": 8, "header_probe_length": 16},
        {"max_file_length": 0x8000},
    ],
)
def test_invalid_settings(overrides):
    with pytest.raises(ValidationError):
        ReaderSettings(_env_file=None, **overrides)


def test_json_logging(capsys):
    setup_logging(service_name="passport-bac-test", log_level="DEBUG", log_format="json")

    logging.getLogger("passport_bac.test").warning(
        "Probe returned %s", "6A82", extra={"file_id": "0101", "status_word": "6A82"}
    )

    lines = [line for line in capsys.readouterr().err.splitlines() if "Probe returned" in line]
    entry = json.loads(lines[0])
    assert entry["message"] == "Probe returned 6A82"
    assert entry["service"] == "passport-bac-test"
    assert entry["level"] == "WARNING"
    assert entry["file_id"] == "0101"
    assert entry["status_word"] == "6A82"
    assert "ssc" not in entry


def test_text_logging_includes_service_name(capsys):
    setup_logging(service_name="passport-bac-test", log_level="INFO", log_format="text")

    logging.getLogger("passport_bac.test").info("Reading EF.DG1")
    logging.getLogger("passport_bac.test").debug("hidden")

    err = capsys.readouterr().err
    assert "[passport-bac-test]" in err
    assert "Reading EF.DG1" in err
    assert "hidden" not in err


def test_logging_can_be_turned_off(capsys):
    setup_logging(log_level="OFF")

    logging.getLogger("passport_bac.test").error("not shown")

    assert "not shown" not in capsys.readouterr().err
