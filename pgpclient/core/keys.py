"""
OpenPGP key objects.

A :class:`PublicKey` wraps a public :class:`pgpy.PGPKey` (primary key,
subkeys and user IDs). Key IDs are PGPy's v4 fingerprints cut to their last
64 bits, so they match every other implementation.

A :class:`SecretKey` holds the public half in clear and the serialized
secret key locked under a passphrase (see :mod:`pgpclient.core.keyfile`).
The secret key is parsed only inside :meth:`SecretKey.unlocked`, and its
private material is cleared again when the block exits.
"""

from __future__ import annotations

from contextlib import ExitStack, contextmanager
from typing import Iterator

from pgpy import PGPKey
from pgpy.errors import PGPDecryptionError, PGPError

from . import keyfile
from .ciphers import ENCRYPTING_KEY_ALGORITHMS
from .errors import ConfigurationError, KeyFormatError, KeyUnlockError
from .kdf import KDF, Argon2idKDF
from .memory import Secret, secure_key, secure_zero

_PARSE_ERRORS = (PGPError, ValueError, TypeError, IndexError, KeyError,
                 StopIteration, NotImplementedError)


def format_key_id(key_id: int) -> str:
    return f"{key_id:016X}"


def load_key(data: bytes) -> PGPKey:
    """Parse an armored or binary transferable key (public or secret)."""
    try:
        key, _ = PGPKey.from_blob(bytes(data))
    except _PARSE_ERRORS as exc:
        raise KeyFormatError("Key data cannot be parsed") from exc
    if key.fingerprint is None:
        raise KeyFormatError("Key data does not start with a key packet")
    return key


def find_key(key: PGPKey, key_id: int) -> PGPKey | None:
    """The primary key or subkey of *key* whose key ID is *key_id*."""
    wanted = format_key_id(key_id)
    if key.fingerprint.keyid == wanted:
        return key
    return key.subkeys.get(wanted)


def key_packet(key: PGPKey):
    # PGPy has no public accessor for the key packet that
    # PKESessionKeyV3.decrypt_sk() expects.
    return key._key


def _all_keys(key: PGPKey) -> list[PGPKey]:
    return [key, *key.subkeys.values()]


class PublicKey:
    def __init__(self, key: PGPKey):
        if not key.is_public:
            raise ConfigurationError("PublicKey needs the public half of a key")
        if not key.userids:
            raise KeyFormatError(f"Key {key.fingerprint.keyid} has no user ID")
        self.key = key

    @property
    def fingerprint(self) -> str:
        return str(self.key.fingerprint).replace(" ", "")

    @property
    def key_id(self) -> int:
        return int(self.key.fingerprint.keyid, 16)

    @property
    def key_ids(self) -> frozenset[int]:
        """Key IDs of the primary key and every subkey."""
        return frozenset(int(k.fingerprint.keyid, 16) for k in _all_keys(self.key))

    @property
    def algorithm(self):
        return self.key.key_algorithm

    @property
    def can_encrypt(self) -> bool:
        return any(k.key_algorithm in ENCRYPTING_KEY_ALGORITHMS for k in _all_keys(self.key))

    @property
    def user_ids(self) -> list[str]:
        return [uid.userid for uid in self.key.userids]

    @property
    def user_id(self) -> str:
        """The primary (first) user ID, or an empty string."""
        return self.user_ids[0] if self.user_ids else ""

    def encode(self) -> bytes:
        """Transferable public key: key, user ID, subkey and signature packets."""
        return bytes(self.key)

    def armored(self) -> bytes:
        return str(self.key).encode("ascii")

    @classmethod
    def decode(cls, data: bytes) -> "PublicKey":
        """Accepts armored or binary keys; a secret key yields its public half."""
        key = load_key(data)
        if not key.is_public:
            key = key.pubkey
        return cls(key)

    def __eq__(self, other):
        if not isinstance(other, PublicKey):
            return NotImplemented
        return self.fingerprint == other.fingerprint

    def __hash__(self):
        return hash(self.fingerprint)

    def __repr__(self):
        return f"PublicKey({format_key_id(self.key_id)}, {self.user_id!r})"


def _pgpy_passphrase(passphrase: bytearray) -> str:
    # PGPy derives S2K keys from str; this copy cannot be wiped.
    try:
        return bytes(passphrase).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise KeyUnlockError("Passphrase is not valid UTF-8") from exc


class SecretKey:
    """A public key plus its passphrase-locked secret half."""

    def __init__(self, public_key: PublicKey, protected: bytes):
        self.public_key = public_key
        self.protected = protected

    @classmethod
    def protect(cls, key: PGPKey, passphrase: Secret, *,
                kdf: KDF | None = None) -> "SecretKey":
        """
        Lock a PGPy secret key under *passphrase*.

        A key that already carries its own S2K protection must open with the
        same passphrase; it is stored still protected.
        """
        if key.is_public:
            raise ConfigurationError("Only a secret key can be protected")
        public = PublicKey(key.pubkey)
        serialized = bytearray(bytes(key))
        try:
            with secure_key(passphrase) as pw:
                if key.is_protected:
                    try:
                        with key.unlock(_pgpy_passphrase(pw)):
                            pass
                    except PGPDecryptionError as exc:
                        raise KeyUnlockError(
                            f"Passphrase does not open key {format_key_id(public.key_id)}"
                        ) from exc
                blob = keyfile.lock(serialized, pw, kdf or Argon2idKDF())
        finally:
            secure_zero(serialized)
        return cls(public, blob)

    @property
    def key_id(self) -> int:
        return self.public_key.key_id

    @property
    def key_ids(self) -> frozenset[int]:
        return self.public_key.key_ids

    @property
    def user_ids(self) -> list[str]:
        return self.public_key.user_ids

    @contextmanager
    def unlocked(self, passphrase: Secret | None) -> Iterator[PGPKey]:
        """
        Yield the usable PGPy secret key for the duration of the block.

        Raises KeyUnlockError on a wrong or missing passphrase, or when the
        locked material does not belong to this key.
        """
        if passphrase is None:
            raise KeyUnlockError(
                f"Key {format_key_id(self.key_id)} is locked and no passphrase was given"
            )
        with ExitStack() as stack:
            pw = stack.enter_context(secure_key(passphrase))
            serialized = keyfile.unlock(self.protected, pw)
            try:
                key = load_key(serialized)
            except KeyFormatError as exc:
                raise KeyUnlockError("Secret key material cannot be parsed") from exc
            finally:
                secure_zero(serialized)

            if key.is_public or PublicKey(key.pubkey) != self.public_key:
                raise KeyUnlockError("Secret key material does not match its public key")
            if key.is_protected:
                try:
                    stack.enter_context(key.unlock(_pgpy_passphrase(pw)))
                except PGPDecryptionError as exc:
                    raise KeyUnlockError(
                        f"Passphrase does not open key {format_key_id(self.key_id)}"
                    ) from exc
            try:
                yield key
            finally:
                if not key.is_protected:
                    for k in _all_keys(key):
                        k.__key__.clear()

    def __repr__(self):
        return f"SecretKey({format_key_id(self.key_id)}, {self.public_key.user_id!r})"
