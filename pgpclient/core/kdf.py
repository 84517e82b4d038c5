"""
Passphrase key derivation for locking secret-key material.

Argon2id is the default; Scrypt is kept for environments where argon2-cffi
wheels are unavailable. Each KDF reports its three tuning parameters so they
can be stored next to the locked key and replayed on unlock.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod

from argon2.low_level import Type as Argon2Type
from argon2.low_level import hash_secret_raw
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .errors import KeyFormatError


class KDF(ABC):
    """Derives a symmetric key from a passphrase and salt."""

    kdf_id: int
    name: str
    salt_size: int = 16

    @property
    @abstractmethod
    def params(self) -> tuple[int, int, int]:
        """Tuning parameters in storage order."""

    @abstractmethod
    def derive(self, passphrase: bytes | bytearray, salt: bytes, key_length: int = 32) -> bytearray:
        """Return the derived key as a bytearray the caller must zero."""

    def generate_salt(self) -> bytes:
        return os.urandom(self.salt_size)


class Argon2idKDF(KDF):
    """Argon2id (RFC 9106) with OWASP interactive defaults: t=3, m=64 MiB, p=4."""

    kdf_id = 0x02
    name = "Argon2id"

    def __init__(self, time_cost: int = 3, memory_cost: int = 65536, parallelism: int = 4):
        self.time_cost = time_cost
        self.memory_cost = memory_cost
        self.parallelism = parallelism

    @property
    def params(self) -> tuple[int, int, int]:
        return (self.time_cost, self.memory_cost, self.parallelism)

    def derive(self, passphrase: bytes | bytearray, salt: bytes, key_length: int = 32) -> bytearray:
        return bytearray(hash_secret_raw(
            secret=bytes(passphrase),
            salt=salt,
            time_cost=self.time_cost,
            memory_cost=self.memory_cost,
            parallelism=self.parallelism,
            hash_len=key_length,
            type=Argon2Type.ID,
        ))


class ScryptKDF(KDF):
    """Scrypt (RFC 7914), n=2^17 by default."""

    kdf_id = 0x01
    name = "Scrypt"

    def __init__(self, n: int = 2**17, r: int = 8, p: int = 1):
        self.n = n
        self.r = r
        self.p = p

    @property
    def params(self) -> tuple[int, int, int]:
        return (self.n, self.r, self.p)

    def derive(self, passphrase: bytes | bytearray, salt: bytes, key_length: int = 32) -> bytearray:
        return bytearray(
            Scrypt(salt=salt, length=key_length, n=self.n, r=self.r, p=self.p)
            .derive(bytes(passphrase))
        )


KDF_REGISTRY: dict[int, type[KDF]] = {
    ScryptKDF.kdf_id: ScryptKDF,
    Argon2idKDF.kdf_id: Argon2idKDF,
}

KDF_CHOICES: dict[str, type[KDF]] = {
    "Argon2id": Argon2idKDF,
    "Scrypt": ScryptKDF,
}

# Upper bounds for parameters read back from a key file, so a hostile file
# cannot demand gigabytes of memory.
_LIMITS = {
    Argon2idKDF.kdf_id: ((1, 100), (1024, 4194304), (1, 64)),
    ScryptKDF.kdf_id: ((2**10, 2**25), (1, 64), (1, 64)),
}


def kdf_from_params(kdf_id: int, params: tuple[int, int, int]) -> KDF:
    """Rebuild a KDF from stored parameters, enforcing sane bounds."""
    kdf_cls = KDF_REGISTRY.get(kdf_id)
    if kdf_cls is None:
        raise KeyFormatError(f"Unknown KDF ID {kdf_id:#04x}")
    for value, (lo, hi) in zip(params, _LIMITS[kdf_id]):
        if not lo <= value <= hi:
            raise KeyFormatError(
                f"{kdf_cls.name} parameter {value} out of allowed range [{lo}, {hi}]"
            )
    return kdf_cls(*params)
