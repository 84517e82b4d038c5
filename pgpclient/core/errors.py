"""Structured error types for pgpclient.

Every stage of the message pipeline fails fast with one of these. Errors that
describe bad input also inherit from ``ValueError`` (or ``LookupError`` for
missing keys) so callers catching the builtin types keep working.

Hierarchy::

    PgpError (Exception)
    +-- ConfigurationError        : bad call (missing key, NONE algorithm)
    +-- PacketConstructionError   : codec fault while framing a packet
    +-- KeyUnlockError            : wrong passphrase or corrupt key material
    +-- KeyNotFoundError          : no local key for the message
    +-- SigningError              : signing primitive rejected the request
    +-- EncryptionError           : encryption primitive rejected the request
    +-- MalformedMessageError     : unexpected packet, truncated stream
    |   +-- KeyFormatError        : unreadable key file
    +-- SignatureVerificationError: signature does not match the data
"""

from __future__ import annotations


class PgpError(Exception):
    """Base class for all pgpclient errors."""


class ConfigurationError(PgpError, ValueError):
    """The call is mis-configured (missing key or passphrase, bad selector)."""


class PacketConstructionError(PgpError):
    """A packet could not be framed or buffered."""


class KeyUnlockError(PgpError, ValueError):
    """The passphrase does not unlock the secret key, or the key is corrupt."""


class KeyNotFoundError(PgpError, LookupError):
    """No key in the local key store matches the requested key ID."""


class SigningError(PgpError):
    """The signature primitive failed."""


class EncryptionError(PgpError):
    """The encryption primitive rejected the key, algorithm or data."""


class MalformedMessageError(PgpError, ValueError):
    """The packet stream is truncated or contains an unexpected packet."""


class KeyFormatError(MalformedMessageError):
    """A key file or protected key blob cannot be parsed."""


class SignatureVerificationError(PgpError, ValueError):
    """The computed signature does not match the signature trailer."""
