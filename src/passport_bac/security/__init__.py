"""Chip session orchestration."""

from .passport_chip_session import PassportChipSession

__all__ = ["PassportChipSession"]
