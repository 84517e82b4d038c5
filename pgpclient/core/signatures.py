"""
Version 4 document signatures in one-pass form.

:func:`sign_document` has PGPy sign the document and derives the matching
one-pass header from the finished signature. :class:`SignatureVerifier`
mirrors it on the reading side: it is created from the one-pass header, fed
the literal data, and finally checked against the signature packet that
follows the literal data.
"""

from __future__ import annotations

from cryptography.exceptions import UnsupportedAlgorithm
from pgpy import PGPKey, PGPSignature
from pgpy.errors import PGPError
from pgpy.packet.packets import OnePassSignatureV3

from .ciphers import HashAlgorithm
from .errors import MalformedMessageError, SigningError
from .keys import PublicKey, format_key_id
from .packets import OnePassSignature
from .provider import get_provider


def sign_document(key: PGPKey, data: bytes, *,
                  hash_algorithm: HashAlgorithm = HashAlgorithm.SHA256
                  ) -> tuple[OnePassSignatureV3, PGPSignature]:
    """
    Sign *data* as a binary document with the unlocked secret *key*.

    The signature names the key's first user ID as the signer's user ID.
    """
    prefs = {}
    uid = next(iter(key.userids), None)
    if uid is not None and (uid.email or uid.name):
        prefs["user"] = uid.email or uid.name
    try:
        signature = key.sign(bytes(data), hash=hash_algorithm, **prefs)
    except (PGPError, NotImplementedError, ValueError, TypeError) as exc:
        raise SigningError("Could not create message signature") from exc

    one_pass = signature.make_onepass()
    # Only one signature: flag byte 1, no further one-pass packet follows.
    one_pass.nested = True
    return one_pass, signature


def signature_key_id(signature: PGPSignature) -> int | None:
    """Issuer key ID of *signature*, or None when it names no issuer."""
    try:
        return int(signature.signer, 16)
    except (KeyError, IndexError, TypeError, ValueError):
        return None


class SignatureVerifier:
    def __init__(self, one_pass: OnePassSignature, public_key: PublicKey):
        if not get_provider().hash_supported(one_pass.hash_algorithm):
            raise UnsupportedAlgorithm(
                f"Hash algorithm {one_pass.hash_algorithm!r} is not available"
            )
        self.one_pass = one_pass
        self.public_key = public_key
        self._document = bytearray()

    def update(self, data: bytes) -> None:
        self._document += data

    def verify(self, signature: PGPSignature) -> bool:
        """True only if *signature* matches the hashed data and the signer key."""
        if (signature.hash_algorithm != self.one_pass.hash_algorithm
                or signature.type != self.one_pass.sig_type
                or signature_key_id(signature) != self.one_pass.key_id):
            return False
        try:
            return bool(self.public_key.key.verify(bytes(self._document), signature))
        except NotImplementedError as exc:
            raise MalformedMessageError(
                f"Signature by {format_key_id(self.one_pass.key_id)} uses an "
                f"unsupported key algorithm"
            ) from exc
        except (PGPError, ValueError, TypeError):
            return False
