"""
Versioned binary format for passphrase-protected private-key material.

Layout (version 1):
  Bytes 0:     version  (0x01)
  Bytes 1:     kdf_id
  Bytes 2:     flags    (reserved, must be 0)
  Bytes 3:     reserved (0x00)
  Bytes 4-7:   kdf_param1  (uint32 big-endian: time_cost / n)
  Bytes 8-11:  kdf_param2  (uint32 big-endian: memory_cost / r)
  Bytes 12-15: kdf_param3  (uint32 big-endian: parallelism / p)
  Bytes 16+:   [salt (16)][nonce (12)][key_check (8)]
               [AES-256-GCM(serialized OpenPGP secret key)+tag]

The whole header is bound to the ciphertext as AES-GCM associated data.
"""

from __future__ import annotations

import hmac
import os
import struct

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import KeyFormatError, KeyUnlockError
from .kdf import KDF, kdf_from_params
from .memory import secure_zero

BLOB_VERSION = 0x01
HEADER_FORMAT = "!BBBBIII"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)  # 16 bytes

SALT_SIZE = 16
NONCE_SIZE = 12
KEY_CHECK_SIZE = 8
TAG_SIZE = 16


def _key_check(key: bytes | bytearray) -> bytes:
    """Truncated HMAC that tells a wrong passphrase apart from corruption."""
    return hmac.new(bytes(key), b"pgpclient-key-check", "sha256").digest()[:KEY_CHECK_SIZE]


def lock(secret: bytes | bytearray, passphrase: bytes | bytearray, kdf: KDF) -> bytes:
    """Encrypt *secret* under a key derived from *passphrase*."""
    header = struct.pack(HEADER_FORMAT, BLOB_VERSION, kdf.kdf_id, 0, 0, *kdf.params)
    salt = kdf.generate_salt()
    nonce = os.urandom(NONCE_SIZE)
    key = kdf.derive(passphrase, salt)
    try:
        ct = AESGCM(bytes(key)).encrypt(nonce, bytes(secret), header)
        return header + salt + nonce + _key_check(key) + ct
    finally:
        secure_zero(key)


def unlock(blob: bytes, passphrase: bytes | bytearray) -> bytearray:
    """
    Decrypt a blob produced by :func:`lock`.

    Returns a bytearray the caller must zero.

    Raises:
        KeyFormatError: truncated blob, unknown version or KDF
        KeyUnlockError: key-check or AEAD mismatch (wrong passphrase)
    """
    if len(blob) < HEADER_SIZE + SALT_SIZE + NONCE_SIZE + KEY_CHECK_SIZE + TAG_SIZE:
        raise KeyFormatError(f"Protected key too short ({len(blob)} bytes)")

    version, kdf_id, flags, reserved, p1, p2, p3 = struct.unpack(
        HEADER_FORMAT, blob[:HEADER_SIZE]
    )
    if version != BLOB_VERSION:
        raise KeyFormatError(f"Unsupported protected key version {version:#04x}")
    if flags or reserved:
        raise KeyFormatError("Reserved protected key header bytes must be zero")

    kdf = kdf_from_params(kdf_id, (p1, p2, p3))
    offset = HEADER_SIZE
    salt = blob[offset: offset + SALT_SIZE]
    offset += SALT_SIZE
    nonce = blob[offset: offset + NONCE_SIZE]
    offset += NONCE_SIZE
    stored_check = blob[offset: offset + KEY_CHECK_SIZE]
    offset += KEY_CHECK_SIZE

    key = kdf.derive(passphrase, salt)
    try:
        if not hmac.compare_digest(stored_check, _key_check(key)):
            raise KeyUnlockError("Key verification failed: incorrect passphrase")
        try:
            return bytearray(AESGCM(bytes(key)).decrypt(nonce, blob[offset:], blob[:HEADER_SIZE]))
        except InvalidTag as exc:
            raise KeyUnlockError("Secret key material is corrupt") from exc
    finally:
        secure_zero(key)
