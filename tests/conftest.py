"""Shared key material; RSA/DSA key generation is too slow to repeat per test."""

import pytest
from pgpy import PGPKey, PGPUID
from pgpy.constants import (
    CompressionAlgorithm,
    EllipticCurveOID,
    HashAlgorithm,
    KeyFlags,
    PubKeyAlgorithm,
    SymmetricKeyAlgorithm,
)

from pgpclient.core.kdf import Argon2idKDF
from pgpclient.core.keyring import KeyRing
from pgpclient.core.keys import SecretKey

# Use fast KDF params in tests
FAST_ARGON2 = Argon2idKDF(time_cost=1, memory_cost=1024, parallelism=1)

PASSPHRASE = "T3st!Passw0rd#Str0ng"

SIGN = {KeyFlags.Sign, KeyFlags.Certify}
ENCRYPT = {KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage}


def make_key(name, email, algorithm=PubKeyAlgorithm.RSAEncryptOrSign, size=2048,
             usage=SIGN | ENCRYPT):
    key = PGPKey.new(algorithm, size)
    key.add_uid(
        PGPUID.new(name, email=email),
        usage=usage,
        hashes=[HashAlgorithm.SHA256, HashAlgorithm.SHA512],
        ciphers=[SymmetricKeyAlgorithm.AES256, SymmetricKeyAlgorithm.AES192,
                 SymmetricKeyAlgorithm.AES128, SymmetricKeyAlgorithm.CAST5,
                 SymmetricKeyAlgorithm.TripleDES],
        compression=[CompressionAlgorithm.ZIP, CompressionAlgorithm.ZLIB,
                     CompressionAlgorithm.BZ2, CompressionAlgorithm.Uncompressed],
    )
    return key


@pytest.fixture(scope="session")
def alice_key():
    return make_key("Alice", "alice@example.org")


@pytest.fixture(scope="session")
def bob_key():
    return make_key("Bob", "bob@example.org")


@pytest.fixture(scope="session")
def dave_key():
    """DSA signing key without any key that could receive a message."""
    return make_key("Dave", "dave@example.org", PubKeyAlgorithm.DSA, usage=SIGN)


@pytest.fixture(scope="session")
def carol_key():
    """Ed25519 primary key with a Curve25519 ECDH subkey for encryption."""
    key = make_key("Carol", "carol@example.org", PubKeyAlgorithm.EdDSA,
                   EllipticCurveOID.Ed25519, usage=SIGN)
    subkey = PGPKey.new(PubKeyAlgorithm.ECDH, EllipticCurveOID.Curve25519)
    key.add_subkey(subkey, usage=ENCRYPT)
    return key


@pytest.fixture(scope="session")
def alice(alice_key):
    return SecretKey.protect(alice_key, PASSPHRASE, kdf=FAST_ARGON2)


@pytest.fixture(scope="session")
def bob(bob_key):
    return SecretKey.protect(bob_key, PASSPHRASE, kdf=FAST_ARGON2)


@pytest.fixture(scope="session")
def dave(dave_key):
    return SecretKey.protect(dave_key, PASSPHRASE, kdf=FAST_ARGON2)


@pytest.fixture(scope="session")
def carol(carol_key):
    return SecretKey.protect(carol_key, PASSPHRASE, kdf=FAST_ARGON2)


@pytest.fixture
def ring(alice, bob, carol, dave):
    """Alice's point of view: her secret key plus the others' public keys."""
    keys = KeyRing()
    keys.add_secret_key(alice, "alice")
    keys.add_public_key(bob.public_key, "bob")
    keys.add_public_key(carol.public_key, "carol")
    keys.add_public_key(dave.public_key, "dave")
    return keys


@pytest.fixture
def bob_ring(alice, bob, dave):
    """Bob's point of view: his secret key plus Alice's and Dave's public keys."""
    keys = KeyRing()
    keys.add_secret_key(bob, "bob")
    keys.add_public_key(alice.public_key, "alice")
    keys.add_public_key(dave.public_key, "dave")
    return keys


@pytest.fixture
def carol_ring(alice, carol):
    keys = KeyRing()
    keys.add_secret_key(carol, "carol")
    keys.add_public_key(alice.public_key, "alice")
    return keys
