"""Tests for the protected secret-key blob format."""

import struct

import pytest

from pgpclient.core.errors import KeyFormatError, KeyUnlockError
from pgpclient.core.kdf import Argon2idKDF, ScryptKDF
from pgpclient.core.keyfile import BLOB_VERSION, HEADER_FORMAT, HEADER_SIZE, lock, unlock

FAST_ARGON2 = Argon2idKDF(time_cost=1, memory_cost=1024, parallelism=1)
FAST_SCRYPT = ScryptKDF(n=2**14, r=8, p=1)

SECRET = b"0\x82\x04\xbe private key DER stand-in" * 4


class TestLockUnlock:
    @pytest.mark.parametrize("kdf", [FAST_ARGON2, FAST_SCRYPT])
    def test_roundtrip(self, kdf):
        blob = lock(SECRET, b"passphrase", kdf)
        assert unlock(blob, b"passphrase") == bytearray(SECRET)

    def test_unlock_returns_bytearray(self):
        blob = lock(SECRET, b"passphrase", FAST_ARGON2)
        assert isinstance(unlock(blob, b"passphrase"), bytearray)

    def test_header_records_kdf(self):
        blob = lock(SECRET, b"passphrase", FAST_SCRYPT)
        version, kdf_id, flags, reserved, p1, p2, p3 = struct.unpack(
            HEADER_FORMAT, blob[:HEADER_SIZE]
        )
        assert version == BLOB_VERSION
        assert kdf_id == FAST_SCRYPT.kdf_id
        assert (flags, reserved) == (0, 0)
        assert (p1, p2, p3) == FAST_SCRYPT.params

    def test_each_lock_is_unique(self):
        assert lock(SECRET, b"pw", FAST_ARGON2) != lock(SECRET, b"pw", FAST_ARGON2)


class TestUnlockFailures:
    def setup_method(self):
        self.blob = lock(SECRET, b"passphrase", FAST_ARGON2)

    def test_wrong_passphrase(self):
        with pytest.raises(KeyUnlockError, match="incorrect passphrase"):
            unlock(self.blob, b"wrong")

    def test_tampered_ciphertext(self):
        tampered = bytearray(self.blob)
        tampered[-1] ^= 0x01
        with pytest.raises(KeyUnlockError):
            unlock(bytes(tampered), b"passphrase")

    def test_tampered_header_is_authenticated(self):
        tampered = bytearray(self.blob)
        tampered[4:8] = struct.pack("!I", 2)  # time_cost 1 -> 2
        with pytest.raises(KeyUnlockError):
            unlock(bytes(tampered), b"passphrase")

    def test_truncated(self):
        with pytest.raises(KeyFormatError, match="too short"):
            unlock(self.blob[:40], b"passphrase")

    def test_unknown_version(self):
        tampered = bytes([0x09]) + self.blob[1:]
        with pytest.raises(KeyFormatError, match="version"):
            unlock(tampered, b"passphrase")

    def test_reserved_bytes(self):
        tampered = bytearray(self.blob)
        tampered[3] = 1
        with pytest.raises(KeyFormatError, match="Reserved"):
            unlock(bytes(tampered), b"passphrase")

    def test_hostile_kdf_params(self):
        tampered = bytearray(self.blob)
        tampered[8:12] = struct.pack("!I", 2**31)
        with pytest.raises(KeyFormatError):
            unlock(bytes(tampered), b"passphrase")
