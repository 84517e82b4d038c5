"""
Message pipeline: outbound composition and the inbound facade.

Composition applies the requested layers in a fixed order:

    literal (or signature bracket) -> compression -> encryption -> armor

Each layer wraps the output of the previous one, so the decoder peels them in
reverse. Decoding lives in :mod:`pgpclient.core.decoder`; :class:`PgpPipeline`
binds both directions to a key store.
"""

from __future__ import annotations

import logging
import os

from . import armor, decoder
from .builder import compression_wrap, encryption_wrap, literal_wrap, signature_bracket
from .ciphers import CompressionAlgorithm, EncryptionAlgorithm
from .encryption import RandomSource
from .errors import ConfigurationError, PgpError
from .keyring import KeyStore
from .keys import PublicKey, SecretKey
from .memory import Secret, optional_secret
from .message import MessageEnvelope

logger = logging.getLogger(__name__)


def _check_inputs(sender_secret_key, receiver_public_key, algorithm,
                  passphrase, add_signature) -> None:
    if not isinstance(algorithm, EncryptionAlgorithm):
        raise ConfigurationError(f"Unknown encryption algorithm: {algorithm!r}")
    if add_signature:
        if sender_secret_key is None:
            raise ConfigurationError("Signing requested but no sender secret key given")
        if passphrase is None:
            raise ConfigurationError("Signing requested but no passphrase given")
    if algorithm is not EncryptionAlgorithm.NONE and receiver_public_key is None:
        raise ConfigurationError("Encryption requested but no receiver public key given")


def compose(message: bytes,
            sender_secret_key: SecretKey | None,
            receiver_public_key: PublicKey | None,
            algorithm: EncryptionAlgorithm,
            passphrase: Secret | None,
            add_signature: bool,
            add_compression: bool,
            add_transport_encoding: bool,
            *,
            filename: str = "",
            compression: CompressionAlgorithm = CompressionAlgorithm.ZIP,
            rng: RandomSource | None = None) -> bytes:
    """
    Build an OpenPGP message from *message*.

    Args:
        message: payload bytes (may be empty)
        sender_secret_key: signing key, required when ``add_signature``
        receiver_public_key: recipient, required unless ``algorithm`` is NONE
        algorithm: symmetric cipher, ``EncryptionAlgorithm.NONE`` to skip
            encryption
        passphrase: unlocks ``sender_secret_key``; copied into a buffer that
            is zeroed before returning
        add_signature: bracket the literal data with a one-pass signature
        add_compression: add a compressed data layer
        add_transport_encoding: ASCII-armor the result
        compression: algorithm of the compressed layer (ZIP by default)

    Raises:
        ConfigurationError: inputs missing for a requested layer
        KeyUnlockError, SigningError, PacketConstructionError,
        EncryptionError: the corresponding layer failed
    """
    _check_inputs(sender_secret_key, receiver_public_key, algorithm,
                  passphrase, add_signature)

    try:
        with optional_secret(passphrase) as pw:
            if add_signature:
                payload = signature_bracket(message, sender_secret_key, pw,
                                            filename=filename)
            else:
                payload = literal_wrap(message, filename=filename)
        logger.debug("Literal layer: %d bytes (signed=%s)", len(payload), add_signature)

        if add_compression:
            payload = compression_wrap(payload, algorithm=compression)
            logger.debug("Compression layer: %d bytes", len(payload))

        if algorithm is not EncryptionAlgorithm.NONE:
            payload = encryption_wrap(payload, receiver_public_key, algorithm,
                                      rng=rng or os.urandom)
            logger.debug("Encryption layer (%s): %d bytes", algorithm.name, len(payload))
    except PgpError as exc:
        logger.info("Message composition failed: %s", exc)
        raise

    if add_transport_encoding:
        payload = armor.encode(payload, armor.KIND_MESSAGE)
    return payload


class PgpPipeline:
    """
    Compose and decode messages against one key store.

    Holds no per-message state; a single instance can serve any number of
    sequential calls.
    """

    def __init__(self, key_store: KeyStore, *,
                 compression: CompressionAlgorithm = CompressionAlgorithm.ZIP,
                 rng: RandomSource | None = None):
        self.key_store = key_store
        self.compression = compression
        self.rng = rng

    def compose(self, message: bytes,
                sender_secret_key: SecretKey | None,
                receiver_public_key: PublicKey | None,
                algorithm: EncryptionAlgorithm,
                passphrase: Secret | None,
                add_signature: bool,
                add_compression: bool,
                add_transport_encoding: bool,
                *, filename: str = "") -> bytes:
        return compose(
            message, sender_secret_key, receiver_public_key, algorithm, passphrase,
            add_signature, add_compression, add_transport_encoding,
            filename=filename, compression=self.compression, rng=self.rng,
        )

    def inspect_envelope(self, envelope: MessageEnvelope) -> None:
        decoder.inspect_envelope(envelope, self.key_store)

    def decrypt_and_verify(self, passphrase: Secret | None, envelope: MessageEnvelope) -> None:
        decoder.decrypt_and_verify(passphrase, envelope, self.key_store)
