"""Block cipher and MAC primitives."""

from .des import (
    adjust_parity,
    decrypt_cbc,
    encrypt_cbc,
    expand_key,
    has_odd_parity,
    pad,
    retail_mac,
    unpad,
)

__all__ = [
    "adjust_parity",
    "decrypt_cbc",
    "encrypt_cbc",
    "expand_key",
    "has_odd_parity",
    "pad",
    "retail_mac",
    "unpad",
]
