"""Basic Access Control key derivation (ICAO Doc 9303 Part 11, 9.7.1 and 9.7.2)."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from enum import Enum

from ..crypto.des import adjust_parity
from ..models.passport import IdentityInput, MRZRecord
from ..utils.mrz_utils import MRZFormatter

logger = logging.getLogger(__name__)


class KeyPurpose(bytes, Enum):
    """Counter appended to the key seed before hashing."""

    ENCRYPTION = b"\x00\x00\x00\x01"
    MAC = b"\x00\x00\x00\x02"


@dataclass(frozen=True)
class DocumentAccessKeys:
    """Long-term BAC keys derived from the MRZ."""

    encryption_key: bytes = field(repr=False)
    mac_key: bytes = field(repr=False)
    key_seed: bytes = field(repr=False)


def derive_key(seed: bytes, purpose: KeyPurpose) -> bytes:
    """
    Derive a parity-adjusted 24-byte 3DES key from a 16-byte seed.

    ``H = SHA-1(seed || counter)``, the key is ``H[0:16] || H[0:8]``.
    """
    if len(seed) != 16:
        msg = "Key seed must be 16 bytes"
        raise ValueError(msg)
    digest = hashlib.sha1(seed + purpose.value).digest()
    return adjust_parity(digest[:16] + digest[:8])


def compute_key_seed(seed_string: str) -> bytes:
    return hashlib.sha1(seed_string.encode("utf-8")).digest()[:16]


def derive_keys_from_mrz(record: MRZRecord) -> DocumentAccessKeys:
    """Derive the document access keys from a complete MRZ."""
    k_seed = compute_key_seed(MRZFormatter.extract_bac_seed_string(record))
    return DocumentAccessKeys(
        encryption_key=derive_key(k_seed, KeyPurpose.ENCRYPTION),
        mac_key=derive_key(k_seed, KeyPurpose.MAC),
        key_seed=k_seed,
    )


def derive_document_access_keys(identity: IdentityInput) -> DocumentAccessKeys:
    """Derive K.enc and K.mac from the document number, birth and expiry dates."""
    record = MRZFormatter.generate_mrz(
        document_number=identity.document_number,
        date_of_birth=identity.date_of_birth,
        date_of_expiry=identity.date_of_expiry,
    )
    keys = derive_keys_from_mrz(record)
    logger.debug("Derived BAC document access keys")
    return keys


def derive_session_keys(k_ifd: bytes, k_icc: bytes) -> tuple[bytes, bytes]:
    """Derive KS.enc and KS.mac from the two key halves exchanged during BAC."""
    if not (len(k_ifd) == len(k_icc) == 16):
        msg = "K.IFD and K.ICC must be 16-byte values"
        raise ValueError(msg)
    seed = bytes(x ^ y for x, y in zip(k_ifd, k_icc))
    return derive_key(seed, KeyPurpose.ENCRYPTION), derive_key(seed, KeyPurpose.MAC)
