"""
Public-key encryption layer.

Sealing hands the payload to :meth:`pgpy.PGPKey.encrypt`, which wraps a
session key for the recipient in a PKESK packet and encrypts the payload in a
SEIPD packet whose trailing modification detection code (MDC) is the
integrity protection. Opening reverses the two steps packet by packet so the
decoder can report which key and cipher were used. Legacy SED packets (no
MDC) can still be opened, but they never verify.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable

from pgpy import PGPKey
from pgpy.errors import (
    PGPDecryptionError,
    PGPEncryptionError,
    PGPError,
    PGPInsecureCipherError,
)
from pgpy.packet import packets as pgpy_packets

from .ciphers import SymmetricKeyAlgorithm, symmetric_algorithm_name
from .errors import EncryptionError, MalformedMessageError
from .keys import PublicKey, find_key, format_key_id, key_packet
from .memory import secure_zero
from .packets import EncryptedEnvelopeList, FramedMessage, PublicKeyEncryptedRecord
from .provider import get_provider

logger = logging.getLogger(__name__)

RandomSource = Callable[[int], bytes]


def seal(data: bytes, recipient: PublicKey, algorithm: SymmetricKeyAlgorithm, *,
         rng: RandomSource = os.urandom) -> bytes:
    """Return PKESK ∥ SEIPD packets carrying *data* for *recipient*."""
    name = symmetric_algorithm_name(algorithm)
    if not get_provider().supports(algorithm):
        raise EncryptionError(f"Cipher {name} is not available in this cryptography build")
    if not recipient.can_encrypt:
        raise EncryptionError(
            f"Key {recipient!r} has no RSA or ECDH key that can receive messages"
        )

    session_key = bytearray(rng(algorithm.key_size // 8))
    try:
        message = recipient.key.encrypt(
            FramedMessage(data), cipher=algorithm, sessionkey=bytes(session_key)
        )
    except PGPInsecureCipherError as exc:
        raise EncryptionError(f"Cipher {name} is too weak to encrypt with") from exc
    except (PGPEncryptionError, PGPError, NotImplementedError, ValueError, TypeError) as exc:
        raise EncryptionError(f"Could not encrypt message for {recipient!r}") from exc
    finally:
        secure_zero(session_key)
    logger.debug("Sealed %d bytes with %s for key %s",
                 len(data), name, format_key_id(recipient.key_id))
    return bytes(message)


def recover_session_key(record: PublicKeyEncryptedRecord,
                        key: PGPKey) -> tuple[SymmetricKeyAlgorithm, bytearray]:
    """
    Unwrap the session key from *record* with the unlocked secret *key*.

    Returns (algorithm, key); the caller must zero the key.
    """
    recipient = find_key(key, record.key_id)
    if recipient is None:
        raise MalformedMessageError(
            f"Key {format_key_id(record.key_id)} is not part of the unlocked key"
        )
    try:
        algorithm, session_key = record.packet.decrypt_sk(key_packet(recipient))
    except NotImplementedError as exc:
        raise MalformedMessageError(
            f"Session key wrapped with unsupported {record.algorithm.name}"
        ) from exc
    except (PGPDecryptionError, PGPError, ValueError, TypeError, IndexError) as exc:
        raise MalformedMessageError("Could not recover the session key") from exc
    return algorithm, bytearray(session_key)


@dataclass(frozen=True)
class DecryptedData:
    """Plaintext packet stream of an encrypted data packet."""
    algorithm: SymmetricKeyAlgorithm
    stream: bytes
    integrity_protected: bool


def open_data(envelope: EncryptedEnvelopeList, algorithm: SymmetricKeyAlgorithm,
              key: bytes | bytearray) -> DecryptedData:
    """
    Decrypt the data packet of *envelope*.

    For SEIPD packets PGPy checks the MDC before returning anything, so a
    tampered message raises MalformedMessageError here.
    """
    if not get_provider().supports(algorithm):
        raise MalformedMessageError(
            f"Message uses unavailable cipher {symmetric_algorithm_name(algorithm)}"
        )
    data = envelope.data
    try:
        plain = data.decrypt(bytes(key), algorithm)
    except PGPDecryptionError as exc:
        if envelope.integrity_protected:
            logger.warning("Integrity check failed for %s-encrypted data",
                           symmetric_algorithm_name(algorithm))
            raise MalformedMessageError("Encrypted data failed its integrity check") from exc
        raise MalformedMessageError("Session key quick check failed") from exc
    except (PGPError, ValueError, TypeError, IndexError) as exc:
        raise MalformedMessageError("Encrypted data packet cannot be decrypted") from exc
    return DecryptedData(
        algorithm,
        bytes(plain),
        isinstance(data, pgpy_packets.IntegrityProtectedSKEDataV1),
    )
