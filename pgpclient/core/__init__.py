"""Core OpenPGP message modules."""

from .errors import (  # noqa: F401
    ConfigurationError,
    EncryptionError,
    KeyFormatError,
    KeyNotFoundError,
    KeyUnlockError,
    MalformedMessageError,
    PacketConstructionError,
    PgpError,
    SignatureVerificationError,
    SigningError,
)
