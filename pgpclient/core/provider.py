"""
Cryptographic capability registry.

PGPy performs the OpenPGP operations, but it hands block ciphers and hashes
to ``cryptography`` and whatever OpenSSL build sits underneath. Legacy
ciphers (IDEA, CAST5, Blowfish, Camellia) are missing from some builds, so
the set of algorithms the pipeline may use is decided here, once per
process: :func:`get_provider` tries every cipher in CFB mode under a lock,
and every later call returns the same instance.
"""

from __future__ import annotations

import logging
import threading

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.decrepit.ciphers.modes import CFB
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher

from .ciphers import CIPHER_FACTORIES, HashAlgorithm, SymmetricKeyAlgorithm

logger = logging.getLogger(__name__)

_BLOCK_BYTES = {
    SymmetricKeyAlgorithm.IDEA: 8,
    SymmetricKeyAlgorithm.TripleDES: 8,
    SymmetricKeyAlgorithm.CAST5: 8,
    SymmetricKeyAlgorithm.Blowfish: 8,
}


def _cipher_works(algorithm: SymmetricKeyAlgorithm, factory: type) -> bool:
    block = _BLOCK_BYTES.get(algorithm, 16)
    try:
        Cipher(factory(bytes(algorithm.key_size // 8)), CFB(bytes(block))).encryptor()
    except (UnsupportedAlgorithm, ValueError):
        return False
    return True


class CryptoProvider:
    """Symmetric ciphers and hashes usable with the installed backend."""

    def __init__(self) -> None:
        self._ciphers = frozenset(
            algorithm
            for algorithm, factory in CIPHER_FACTORIES.items()
            if _cipher_works(algorithm, factory)
        )
        logger.debug(
            "Registered symmetric ciphers: %s",
            ", ".join(a.name for a in sorted(self._ciphers)),
        )

    def supports(self, algorithm: int) -> bool:
        return algorithm in self._ciphers

    @property
    def ciphers(self) -> frozenset[SymmetricKeyAlgorithm]:
        return self._ciphers

    def hash_supported(self, algorithm: int) -> bool:
        """True if signatures made with *algorithm* can be checked here."""
        try:
            name = HashAlgorithm(algorithm).name
        except ValueError:
            return False
        return getattr(hashes, name, None) is not None


_provider: CryptoProvider | None = None
_provider_lock = threading.Lock()


def get_provider() -> CryptoProvider:
    """Return the process-wide provider, registering it on first use."""
    global _provider
    if _provider is None:
        with _provider_lock:
            if _provider is None:
                _provider = CryptoProvider()
    return _provider
