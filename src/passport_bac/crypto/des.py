"""DES/3DES primitives used by BAC and secure messaging (ICAO Doc 9303 Part 11)."""

from __future__ import annotations

from cryptography.hazmat.decrepit.ciphers.algorithms import TripleDES
from cryptography.hazmat.primitives.ciphers import Cipher, modes

BLOCK_SIZE = 8
ZERO_IV = b"\x00" * BLOCK_SIZE


def adjust_parity(key: bytes) -> bytes:
    """Give every key byte odd parity by flipping its low bit where needed."""
    adjusted = bytearray(key)
    for idx, value in enumerate(adjusted):
        if bin(value).count("1") % 2 == 0:
            adjusted[idx] = value ^ 0x01
    return bytes(adjusted)


def has_odd_parity(key: bytes) -> bool:
    return all(bin(value).count("1") % 2 == 1 for value in key)


def expand_key(key: bytes) -> bytes:
    """Return the 24-byte form K1 || K2 || K1 of a two-key 3DES key."""
    if len(key) == 16:
        return key + key[:8]
    if len(key) == 24:
        return key
    msg = "3DES key must be 16 or 24 bytes"
    raise ValueError(msg)


def encrypt_cbc(key: bytes, data: bytes, iv: bytes = ZERO_IV) -> bytes:
    """3DES-CBC encrypt block-aligned ``data``."""
    _check_aligned(data)
    encryptor = Cipher(TripleDES(expand_key(key)), modes.CBC(iv)).encryptor()
    return encryptor.update(data) + encryptor.finalize()


def decrypt_cbc(key: bytes, data: bytes, iv: bytes = ZERO_IV) -> bytes:
    """3DES-CBC decrypt block-aligned ``data``."""
    _check_aligned(data)
    decryptor = Cipher(TripleDES(expand_key(key)), modes.CBC(iv)).decryptor()
    return decryptor.update(data) + decryptor.finalize()


def pad(data: bytes, block_size: int = BLOCK_SIZE) -> bytes:
    """ISO/IEC 9797-1 padding method 2: ``0x80`` then zeros up to the block boundary."""
    pad_len = block_size - (len(data) % block_size)
    return data + b"\x80" + b"\x00" * (pad_len - 1)


def unpad(data: bytes) -> bytes:
    """Strip ISO/IEC 9797-1 method 2 padding.

    Raises:
        ValueError: if the trailing bytes are not ``0x80`` followed by zeros
    """
    idx = len(data) - 1
    while idx >= 0 and data[idx] == 0x00:
        idx -= 1
    if idx < 0 or data[idx] != 0x80:
        msg = "Invalid ISO/IEC 9797-1 padding"
        raise ValueError(msg)
    return data[:idx]


def retail_mac(key: bytes, data: bytes, padded: bool = False) -> bytes:
    """
    ISO/IEC 9797-1 MAC algorithm 3 with single-DES chaining.

    The message is chained through DES-CBC under K1, then the final block is
    decrypted under K2 and encrypted again under K1.

    Args:
        key: 16 or 24 byte MAC key, K1 = key[0:8], K2 = key[8:16]
        data: message to authenticate
        padded: set when ``data`` already carries method 2 padding

    Returns:
        8-byte MAC
    """
    if len(key) not in (16, 24):
        msg = "MAC key must be 16 or 24 bytes"
        raise ValueError(msg)

    message = data if padded else pad(data)
    _check_aligned(message)
    k1, k2 = key[:8], key[8:16]

    # TripleDES with K1 = K2 = K3 is single DES.
    chain = Cipher(TripleDES(k1 * 3), modes.CBC(ZERO_IV)).encryptor()
    last_block = (chain.update(message) + chain.finalize())[-BLOCK_SIZE:]

    decryptor = Cipher(TripleDES(k2 * 3), modes.ECB()).decryptor()
    intermediate = decryptor.update(last_block) + decryptor.finalize()
    encryptor = Cipher(TripleDES(k1 * 3), modes.ECB()).encryptor()
    return encryptor.update(intermediate) + encryptor.finalize()


def _check_aligned(data: bytes) -> None:
    if len(data) % BLOCK_SIZE:
        msg = f"Data length {len(data)} is not a multiple of {BLOCK_SIZE}"
        raise ValueError(msg)
