"""Minimal BER-TLV helpers for secure messaging data objects and LDS headers."""

from __future__ import annotations

from typing import NamedTuple


class TLV(NamedTuple):
    tag: int
    value: bytes
    encoded: bytes


def encode_length(length: int) -> bytes:
    """Encode a BER length in short or long form."""
    if length < 0:
        msg = "Length must not be negative"
        raise ValueError(msg)
    if length <= 0x7F:
        return bytes([length])
    if length <= 0xFF:
        return b"\x81" + bytes([length])
    if length <= 0xFFFF:
        return b"\x82" + length.to_bytes(2, "big")
    msg = "Length encoding > 65535 not supported"
    raise ValueError(msg)


def encode_tag(tag: int) -> bytes:
    if tag <= 0xFF:
        return bytes([tag])
    return tag.to_bytes(2, "big")


def encode_tlv(tag: int, value: bytes) -> bytes:
    return encode_tag(tag) + encode_length(len(value)) + value


def read_tag(buffer: bytes, offset: int) -> tuple[int, int]:
    """Return ``(tag, bytes consumed)``; two-byte tags are recognised by ``xx1F``."""
    if offset >= len(buffer):
        msg = "Truncated TLV: missing tag"
        raise ValueError(msg)
    first = buffer[offset]
    if first & 0x1F == 0x1F:
        if offset + 1 >= len(buffer):
            msg = "Truncated TLV: incomplete tag"
            raise ValueError(msg)
        return int.from_bytes(buffer[offset : offset + 2], "big"), 2
    return first, 1


def read_length(buffer: bytes, offset: int) -> tuple[int, int]:
    """Return ``(length, bytes consumed)`` for a BER length of at most two bytes."""
    if offset >= len(buffer):
        msg = "Truncated TLV: missing length"
        raise ValueError(msg)
    first = buffer[offset]
    if first & 0x80 == 0:
        return first, 1
    num_bytes = first & 0x7F
    if num_bytes not in (1, 2):
        msg = f"Unsupported BER length form 0x{first:02X}"
        raise ValueError(msg)
    if offset + 1 + num_bytes > len(buffer):
        msg = "Truncated TLV: incomplete length"
        raise ValueError(msg)
    length = int.from_bytes(buffer[offset + 1 : offset + 1 + num_bytes], "big")
    return length, 1 + num_bytes


def parse_tlvs(buffer: bytes) -> list[TLV]:
    """Split a flat sequence of TLV objects. Nested templates are not descended."""
    idx = 0
    elements: list[TLV] = []

    while idx < len(buffer):
        start = idx
        tag, tag_len = read_tag(buffer, idx)
        idx += tag_len

        length, length_len = read_length(buffer, idx)
        idx += length_len

        if idx + length > len(buffer):
            msg = f"Truncated TLV: tag 0x{tag:02X} declares {length} bytes"
            raise ValueError(msg)
        value = buffer[idx : idx + length]
        idx += length

        elements.append(TLV(tag, value, buffer[start:idx]))

    return elements


def find_tlv(buffer: bytes, tag: int) -> bytes | None:
    """Scan ``buffer`` for the first object with ``tag`` and return its value.

    The scan walks bytes rather than structure so it also finds objects
    nested inside a template such as ``61`` (DG1) or ``60`` (COM).
    """
    tag_bytes = encode_tag(tag)
    start = buffer.find(tag_bytes)
    while start != -1:
        offset = start + len(tag_bytes)
        try:
            length, length_len = read_length(buffer, offset)
        except ValueError:
            length, length_len = -1, 0
        value_start = offset + length_len
        if length >= 0 and value_start + length <= len(buffer):
            return buffer[value_start : value_start + length]
        start = buffer.find(tag_bytes, start + 1)
    return None
