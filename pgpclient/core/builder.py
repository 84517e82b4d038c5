"""
Packet builders: the four outbound transforms a message is assembled from.

Each takes a byte payload and returns a new byte payload:

  literal_wrap        data -> literal packet
  signature_bracket   data -> one-pass header ∥ literal packet ∥ signature
  compression_wrap    payload -> compressed packet
  encryption_wrap     payload -> PKESK ∥ SEIPD

``signature_bracket`` performs the literal wrap itself, so it must be given
the raw data, never an already wrapped literal packet.
"""

from __future__ import annotations

import logging
import os

from pgpy import PGPMessage
from pgpy.packet.packets import CompressedData, LiteralData

from .ciphers import CompressionAlgorithm, EncryptionAlgorithm, HashAlgorithm
from .encryption import RandomSource, seal
from .errors import ConfigurationError, PacketConstructionError, SigningError
from .keys import PublicKey, SecretKey
from .memory import Secret
from .packets import FramedMessage
from .signatures import sign_document

logger = logging.getLogger(__name__)

MAX_FILENAME_BYTES = 255


def _literal_packet(data: bytes, filename: str, modified: int | None) -> LiteralData:
    encoded_name = filename.encode("utf-8")
    if len(encoded_name) > MAX_FILENAME_BYTES:
        raise PacketConstructionError(
            f"File name is {len(encoded_name)} bytes, at most {MAX_FILENAME_BYTES} fit"
        )
    message = PGPMessage.new(bytes(data), format="b",
                             compression=CompressionAlgorithm.Uncompressed)
    literal = next(iter(message))
    # PGPy writes file names as latin-1 and reads them back as UTF-8.
    literal.filename = encoded_name.decode("latin-1")
    if modified is not None:
        literal.mtime = modified
    literal.update_hlen()
    return literal


def literal_wrap(data: bytes, *, filename: str = "", modified: int | None = None) -> bytes:
    """Frame *data* as a binary literal data packet stamped with the current time."""
    try:
        return bytes(_literal_packet(data, filename, modified))
    except PacketConstructionError:
        logger.info("Could not create a literal data packet.")
        raise


def signature_bracket(data: bytes, sender_secret_key: SecretKey, passphrase: Secret, *,
                      filename: str = "",
                      hash_algorithm: HashAlgorithm = HashAlgorithm.SHA256) -> bytes:
    """
    Sign *data* and surround its literal packet with one-pass signature packets.

    The signature hash covers *data* itself, not the literal packet framing.

    Raises:
        KeyUnlockError: the passphrase does not unlock the sender's key
        SigningError: the key cannot sign, or the signing primitive failed
    """
    literal = literal_wrap(data, filename=filename)
    with sender_secret_key.unlocked(passphrase) as key:
        try:
            one_pass, signature = sign_document(key, data, hash_algorithm=hash_algorithm)
        except SigningError:
            logger.info("Could not create message signature with %r.", sender_secret_key)
            raise
    return bytes(one_pass) + literal + bytes(signature)


def compression_wrap(data: bytes, *,
                     algorithm: CompressionAlgorithm = CompressionAlgorithm.ZIP) -> bytes:
    packet = CompressedData()
    try:
        packet.calg = algorithm
        packet.packets = [FramedMessage(data)]
        packet.update_hlen()
        return bytes(packet)
    except (ValueError, TypeError, OSError) as exc:
        logger.info("Could not create a compressed data packet.")
        raise PacketConstructionError("Could not create a compressed data packet") from exc


def encryption_wrap(data: bytes, receiver_public_key: PublicKey,
                    algorithm: EncryptionAlgorithm, *,
                    rng: RandomSource = os.urandom) -> bytes:
    """
    Encrypt *data* for a single recipient with integrity protection.

    Raises:
        ConfigurationError: ``algorithm`` is ``EncryptionAlgorithm.NONE``
        EncryptionError: key type, cipher or primitive rejected the request
    """
    if algorithm is EncryptionAlgorithm.NONE:
        raise ConfigurationError("encryption_wrap called with EncryptionAlgorithm.NONE")
    return seal(bytes(data), receiver_public_key, algorithm.cipher, rng=rng)
