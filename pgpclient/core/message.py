"""The record exchanged between the message pipeline and its caller."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class MessageEnvelope:
    """
    Raw message bytes plus everything learned while decoding them.

    ``sender_key_id`` and ``receiver_key_id`` are 64-bit key IDs, 0 when
    unknown. The ``is_*_verified`` flags are only ever set after the
    corresponding check ran and passed.
    """
    encrypted_message: bytes = b""
    decrypted_message: bytes | None = None
    sender_key_id: int = 0
    receiver_key_id: int = 0
    symmetric_algorithm_name: str = ""
    is_encrypted: bool = False
    is_signed: bool = False
    is_compressed: bool = False
    is_transport_encoded: bool = False
    is_integrity_verified: bool = False
    is_signature_verified: bool = False

    def reset(self) -> None:
        """Clear every decode result, keeping ``encrypted_message``."""
        self.decrypted_message = None
        self.sender_key_id = 0
        self.receiver_key_id = 0
        self.symmetric_algorithm_name = ""
        self.is_encrypted = False
        self.is_signed = False
        self.is_compressed = False
        self.is_transport_encoded = False
        self.is_integrity_verified = False
        self.is_signature_verified = False
