"""
Inbound message decoding.

A received message may carry any subset of the outbound layers, so the
decoder walks the packet stream once, forward only, and lets the type of each
decoded object decide which stage runs next:

    START -> TRANSPORT_STRIPPED -> ENCRYPTED | PLAIN
          -> DECRYPTED? -> DECOMPRESSED? -> SIGNATURE_HEADER_SEEN?
          -> LITERAL_EXTRACTED -> INTEGRITY_CHECKED? -> SIGNATURE_VERIFIED?
          -> DONE

Stages marked ``?`` are skipped when their layer is absent. Every stage
either advances or raises; a decode that raises leaves
``decrypted_message`` unset.

Two entry points share the stages:

* :func:`inspect_envelope` needs no passphrase. For an encrypted message it
  stops after finding which local key the message is addressed to; anything
  else is decoded completely.
* :func:`decrypt_and_verify` performs the whole decode.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto

from cryptography.exceptions import UnsupportedAlgorithm
from pgpy import PGPSignature

from . import armor
from .ciphers import symmetric_algorithm_name
from .encryption import DecryptedData, open_data, recover_session_key
from .errors import (
    KeyNotFoundError,
    MalformedMessageError,
    PgpError,
    SignatureVerificationError,
)
from .keyring import KeyStore
from .keys import PublicKey, format_key_id
from .memory import Secret, optional_secret, secure_zero
from .message import MessageEnvelope
from .packets import (
    CompressedPayload,
    EncryptedEnvelopeList,
    LiteralPayload,
    Marker,
    ObjectStream,
    OnePassSignature,
    OnePassSignatureHeader,
    PacketObject,
    PublicKeyEncryptedRecord,
    SignatureTrailer,
    Unknown,
)
from .signatures import SignatureVerifier, signature_key_id

logger = logging.getLogger(__name__)


class Stage(Enum):
    START = auto()
    TRANSPORT_STRIPPED = auto()
    ENCRYPTED = auto()
    PLAIN = auto()
    DECRYPTED = auto()
    DECOMPRESSED = auto()
    SIGNATURE_HEADER_SEEN = auto()
    LITERAL_EXTRACTED = auto()
    INTEGRITY_CHECKED = auto()
    SIGNATURE_VERIFIED = auto()
    DONE = auto()


@dataclass
class _DecodeState:
    stream: ObjectStream | None = None
    current: PacketObject | None = None
    envelope_list: EncryptedEnvelopeList | None = None
    record: PublicKeyEncryptedRecord | None = None
    decrypted: DecryptedData | None = None
    one_pass: OnePassSignature | None = None
    signer: PublicKey | None = None
    verifier: SignatureVerifier | None = None
    literal: bytes | None = None
    stage: Stage = Stage.START

    def advance(self, stage: Stage) -> None:
        logger.debug("Decode stage %s -> %s", self.stage.name, stage.name)
        self.stage = stage

    def next_object(self) -> PacketObject | None:
        self.current = self.stream.next_object()
        return self.current


def _describe(obj: PacketObject | None) -> str:
    if obj is None:
        return "end of stream"
    if isinstance(obj, Unknown):
        return f"unknown packet (tag {obj.tag})"
    return type(obj).__name__


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def _strip_transport(envelope: MessageEnvelope, state: _DecodeState) -> None:
    data, armored = armor.strip_transport(envelope.encrypted_message)
    envelope.is_transport_encoded = armored
    state.stream = ObjectStream(data)
    state.advance(Stage.TRANSPORT_STRIPPED)


def _detect_encryption(envelope: MessageEnvelope, state: _DecodeState) -> None:
    obj = state.next_object()
    if isinstance(obj, Marker):
        obj = state.next_object()
    if isinstance(obj, EncryptedEnvelopeList):
        state.envelope_list = obj
        envelope.is_encrypted = True
        state.advance(Stage.ENCRYPTED)
    else:
        state.advance(Stage.PLAIN)


def _find_recipient(state: _DecodeState, key_store: KeyStore):
    """First (record, secret key) pair the local key store can open."""
    for record in state.envelope_list.recipients:
        secret = key_store.find_secret_key(record.key_id)
        if secret is not None:
            return record, secret
    return None, None


def _decrypt(envelope: MessageEnvelope, state: _DecodeState,
             passphrase: bytearray | None, key_store: KeyStore) -> None:
    record, secret = _find_recipient(state, key_store)
    if record is None:
        ids = ", ".join(format_key_id(r.key_id) for r in state.envelope_list.recipients)
        raise KeyNotFoundError(f"Secret key for message not found (recipients: {ids or 'none'})")

    with secret.unlocked(passphrase) as key:
        algorithm, session_key = recover_session_key(record, key)
    try:
        decrypted = open_data(state.envelope_list, algorithm, session_key)
    finally:
        secure_zero(session_key)

    envelope.receiver_key_id = record.key_id
    envelope.symmetric_algorithm_name = symmetric_algorithm_name(algorithm)
    state.record = record
    state.decrypted = decrypted
    state.stream = ObjectStream(decrypted.stream)
    state.next_object()
    state.advance(Stage.DECRYPTED)


def _decompress(envelope: MessageEnvelope, state: _DecodeState) -> None:
    if not isinstance(state.current, CompressedPayload):
        return
    envelope.is_compressed = True
    state.stream = ObjectStream(state.current.decompress())
    state.next_object()
    state.advance(Stage.DECOMPRESSED)


def _read_signature_header(envelope: MessageEnvelope, state: _DecodeState,
                           key_store: KeyStore) -> None:
    if not isinstance(state.current, OnePassSignatureHeader):
        return
    envelope.is_signed = True
    one_pass = state.current.entries[0]
    signer = key_store.find_public_key(one_pass.key_id)
    if signer is None:
        raise KeyNotFoundError(
            f"Public key {format_key_id(one_pass.key_id)} of the signer not found"
        )
    try:
        state.verifier = SignatureVerifier(one_pass, signer)
    except UnsupportedAlgorithm as exc:
        raise MalformedMessageError(
            f"Signature uses unavailable hash algorithm {one_pass.hash_algorithm}"
        ) from exc
    state.one_pass = one_pass
    state.signer = signer
    state.next_object()
    state.advance(Stage.SIGNATURE_HEADER_SEEN)


def _extract_literal(state: _DecodeState) -> None:
    if not isinstance(state.current, LiteralPayload):
        raise MalformedMessageError(
            f"Expected literal data, found {_describe(state.current)}"
        )
    state.literal = state.current.body
    state.advance(Stage.LITERAL_EXTRACTED)


def _check_integrity(envelope: MessageEnvelope, state: _DecodeState) -> None:
    if state.decrypted is None:
        return
    if state.decrypted.integrity_protected:
        # The MDC was already checked while decrypting.
        envelope.is_integrity_verified = True
    else:
        logger.debug("Encrypted data carries no integrity protection")
    state.advance(Stage.INTEGRITY_CHECKED)


def _pick_signature(trailer: SignatureTrailer, one_pass: OnePassSignature) -> PGPSignature:
    for signature in trailer.signatures:
        if signature_key_id(signature) == one_pass.key_id:
            return signature
    # The first one-pass header pairs with the last signature packet.
    return trailer.signatures[-1]


def _verify_signature(envelope: MessageEnvelope, state: _DecodeState) -> None:
    if state.verifier is None:
        return
    state.verifier.update(state.literal)
    trailer = state.next_object()
    if not isinstance(trailer, SignatureTrailer):
        raise MalformedMessageError(
            f"Signature trailer expected after literal data, found {_describe(trailer)}"
        )
    if not state.verifier.verify(_pick_signature(trailer, state.one_pass)):
        raise SignatureVerificationError("Signature verification failed!")
    envelope.is_signature_verified = True
    envelope.sender_key_id = state.one_pass.key_id
    state.advance(Stage.SIGNATURE_VERIFIED)


def _finish(envelope: MessageEnvelope, state: _DecodeState, key_store: KeyStore) -> None:
    _decompress(envelope, state)
    _read_signature_header(envelope, state, key_store)
    _extract_literal(state)
    _check_integrity(envelope, state)
    _verify_signature(envelope, state)
    envelope.decrypted_message = state.literal
    state.advance(Stage.DONE)


def _run(envelope: MessageEnvelope, state: _DecodeState, step, *args) -> None:
    try:
        step(envelope, state, *args)
    except PgpError as exc:
        logger.info("Message decoding stopped after %s: %s", state.stage.name, exc)
        raise


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def _classify(envelope: MessageEnvelope, state: _DecodeState, key_store: KeyStore) -> None:
    _strip_transport(envelope, state)
    _detect_encryption(envelope, state)
    if not envelope.is_encrypted:
        _finish(envelope, state, key_store)
        return
    record, _ = _find_recipient(state, key_store)
    if record is not None:
        envelope.receiver_key_id = record.key_id


def _full_decode(envelope: MessageEnvelope, state: _DecodeState,
                 passphrase: bytearray | None, key_store: KeyStore) -> None:
    _strip_transport(envelope, state)
    _detect_encryption(envelope, state)
    if envelope.is_encrypted:
        _decrypt(envelope, state, passphrase, key_store)
    _finish(envelope, state, key_store)


def inspect_envelope(envelope: MessageEnvelope, key_store: KeyStore) -> None:
    """
    Classify ``envelope.encrypted_message`` without a passphrase.

    Encrypted: sets ``is_encrypted``, ``is_transport_encoded`` and, when a
    local secret key matches a recipient, ``receiver_key_id``. Nothing is
    decrypted. Not encrypted: decodes fully, as :func:`decrypt_and_verify`.
    """
    envelope.reset()
    _run(envelope, _DecodeState(), _classify, key_store)


def decrypt_and_verify(passphrase: Secret | None, envelope: MessageEnvelope,
                       key_store: KeyStore) -> None:
    """
    Decode ``envelope.encrypted_message`` completely.

    Raises:
        KeyNotFoundError: no local secret key for any recipient, or no
            public key for the signer
        KeyUnlockError: the passphrase does not unlock the recipient key
        MalformedMessageError: unexpected, truncated or corrupt packets,
            including a signed message without its signature trailer
        SignatureVerificationError: the signature does not match
    """
    envelope.reset()
    with optional_secret(passphrase) as pw:
        _run(envelope, _DecodeState(), _full_decode, pw, key_store)
