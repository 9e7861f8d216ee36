"""
Configuration for the passport BAC reader.

Values come from environment variables prefixed with ``PASSPORT_BAC_`` (or a
``.env`` file) so the file-length heuristics and reader settings can be tuned
per deployment without code changes.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReaderSettings(BaseSettings):
    """Settings for chip access and the file reader heuristics."""

    model_config = SettingsConfigDict(
        env_prefix="PASSPORT_BAC_",
        env_file=".env",
        extra="ignore",
    )

    # Logging
    service_name: str = "passport-bac"
    log_level: str = "INFO"
    log_format: str = "text"

    # File reader heuristics
    chunk_size: int = Field(default=240, ge=1, le=255)
    header_probe_length: int = Field(default=4, ge=2, le=16)
    default_file_length: int = Field(default=255, ge=1)
    file_length_margin: int = Field(default=10, ge=0)
    max_file_length: int = Field(default=1024, ge=16, le=0x7FFF)
    sm_retry_attempts: int = Field(default=1, ge=0, le=3)

    # Protocol profile
    plain_select_file_id: bool = True
    read_com: bool = True
    expected_response_length: int = Field(default=256, ge=1, le=256)

    # PC/SC
    pcsc_reader_name: str | None = None
    card_wait_timeout: int = Field(default=10, ge=1)

    @model_validator(mode="after")
    def _check_lengths(self) -> ReaderSettings:
        if self.chunk_size > self.expected_response_length:
            msg = "chunk_size must not exceed expected_response_length"
            raise ValueError(msg)
        if self.header_probe_length > self.chunk_size:
            msg = "header_probe_length must not exceed chunk_size"
            raise ValueError(msg)
        return self


@lru_cache
def get_settings() -> ReaderSettings:
    """Return the process-wide settings instance."""
    return ReaderSettings()
