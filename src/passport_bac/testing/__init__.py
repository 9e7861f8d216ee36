"""Test doubles for exercising the reader without hardware."""

from .simulated_chip import ChipFaults, SimulatedPassportChip, build_com, build_dg1

__all__ = ["ChipFaults", "SimulatedPassportChip", "build_com", "build_dg1"]
