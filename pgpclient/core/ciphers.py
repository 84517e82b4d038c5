"""
Algorithm catalog.

The RFC 4880 §9 identifiers come from :mod:`pgpy.constants`; this module adds
what the pipeline needs on top of them: the cipher selector offered to
callers, display names, and the ``cryptography`` block cipher behind each
symmetric ID. Pure lookup tables; whether the running OpenSSL build can
actually execute a cipher is decided once by :mod:`pgpclient.core.provider`.
"""

from __future__ import annotations

from enum import Enum

from cryptography.hazmat.decrepit.ciphers.algorithms import (
    CAST5,
    IDEA,
    Blowfish,
    Camellia,
    TripleDES,
)
from cryptography.hazmat.primitives.ciphers import algorithms
from pgpy.constants import (
    CompressionAlgorithm,
    HashAlgorithm,
    PubKeyAlgorithm,
    SymmetricKeyAlgorithm,
)

__all__ = [
    "ALGORITHM_CHOICES",
    "CIPHER_FACTORIES",
    "COMPRESSION_CHOICES",
    "ENCRYPTING_KEY_ALGORITHMS",
    "CompressionAlgorithm",
    "EncryptionAlgorithm",
    "HashAlgorithm",
    "PubKeyAlgorithm",
    "SymmetricKeyAlgorithm",
    "UNKNOWN_ALGORITHM_NAME",
    "symmetric_algorithm_name",
]


class EncryptionAlgorithm(Enum):
    """Session cipher selector for composing messages; NONE skips encryption."""

    NONE = SymmetricKeyAlgorithm.Plaintext
    IDEA = SymmetricKeyAlgorithm.IDEA
    TRIPLE_DES = SymmetricKeyAlgorithm.TripleDES
    CAST5 = SymmetricKeyAlgorithm.CAST5
    AES_128 = SymmetricKeyAlgorithm.AES128
    AES_192 = SymmetricKeyAlgorithm.AES192
    AES_256 = SymmetricKeyAlgorithm.AES256

    @property
    def id(self) -> int:
        return int(self.value)

    @property
    def cipher(self) -> SymmetricKeyAlgorithm:
        return self.value


_SYMMETRIC_NAMES = {
    0: "None",
    1: "IDEA",
    2: "3DES",
    3: "CAST5",
    4: "BLOWFISH",
    5: "SAFER",
    6: "DES",
    7: "AES128",
    8: "AES192",
    9: "AES256",
    10: "TWOFISH",
    11: "CAMELLIA128",
    12: "CAMELLIA192",
    13: "CAMELLIA256",
}

UNKNOWN_ALGORITHM_NAME = "Unknown algorithm code."


def symmetric_algorithm_name(code: int) -> str:
    """Display name for a symmetric algorithm ID."""
    return _SYMMETRIC_NAMES.get(code, UNKNOWN_ALGORITHM_NAME)


# Block ciphers by OpenPGP ID. Legacy ciphers live in cryptography's
# decrepit namespace; AES is the only one left in primitives.
CIPHER_FACTORIES: dict[SymmetricKeyAlgorithm, type] = {
    SymmetricKeyAlgorithm.IDEA: IDEA,
    SymmetricKeyAlgorithm.TripleDES: TripleDES,
    SymmetricKeyAlgorithm.CAST5: CAST5,
    SymmetricKeyAlgorithm.Blowfish: Blowfish,
    SymmetricKeyAlgorithm.AES128: algorithms.AES,
    SymmetricKeyAlgorithm.AES192: algorithms.AES,
    SymmetricKeyAlgorithm.AES256: algorithms.AES,
    SymmetricKeyAlgorithm.Camellia128: Camellia,
    SymmetricKeyAlgorithm.Camellia192: Camellia,
    SymmetricKeyAlgorithm.Camellia256: Camellia,
}

# Session keys can only be wrapped for these (PGPy's PKESK v3 support).
ENCRYPTING_KEY_ALGORITHMS = frozenset({
    PubKeyAlgorithm.RSAEncryptOrSign,
    PubKeyAlgorithm.ECDH,
})

# CLI / config spelling of the selector.
ALGORITHM_CHOICES: dict[str, EncryptionAlgorithm] = {
    "none": EncryptionAlgorithm.NONE,
    "idea": EncryptionAlgorithm.IDEA,
    "3des": EncryptionAlgorithm.TRIPLE_DES,
    "cast5": EncryptionAlgorithm.CAST5,
    "aes128": EncryptionAlgorithm.AES_128,
    "aes192": EncryptionAlgorithm.AES_192,
    "aes256": EncryptionAlgorithm.AES_256,
}

COMPRESSION_CHOICES: dict[str, CompressionAlgorithm] = {
    "zip": CompressionAlgorithm.ZIP,
    "zlib": CompressionAlgorithm.ZLIB,
    "bzip2": CompressionAlgorithm.BZ2,
}
