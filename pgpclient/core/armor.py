"""
ASCII armor (RFC 4880 §6): the reversible transport encoding of a binary
packet stream.

PGPy's :class:`~pgpy.types.Armorable` does the radix-64 work in both
directions; this module only adds the pipeline's rules on top: armored input
must carry a matching CRC-24, and binary input passes through untouched.
"""

from __future__ import annotations

import warnings

from pgpy.errors import PGPError
from pgpy.types import Armorable, PGPObject

from .errors import MalformedMessageError

KIND_MESSAGE = "MESSAGE"
KIND_PUBLIC_KEY = "PUBLIC KEY BLOCK"

_BEGIN = b"-----BEGIN PGP "


class ArmoredBlock(Armorable, PGPObject):
    """Opaque binary data wearing an armor header of the given kind."""

    def __init__(self, data: bytes = b"", kind: str = KIND_MESSAGE):
        super().__init__()
        self._data = bytes(data)
        self._kind = kind

    @property
    def magic(self) -> str:
        return self._kind

    def parse(self, packet):
        self._data = bytes(packet)

    def __bytearray__(self):
        return bytearray(self._data)


def encode(data: bytes, kind: str = KIND_MESSAGE,
           headers: dict[str, str] | None = None) -> bytes:
    """Armor *data*; the result is pure ASCII with ``\\n`` line endings."""
    block = ArmoredBlock(data, kind)
    block.ascii_headers.update(headers or {})
    return str(block).encode("ascii")


def decode(armored: bytes) -> tuple[str, bytes]:
    """
    Remove the armor from the first armored block in *armored*.

    Returns (kind, binary data). Raises MalformedMessageError for input that
    is not armor, bad base64, or a checksum mismatch.
    """
    if not Armorable.is_ascii(armored):
        raise MalformedMessageError("Armored data is not ASCII")
    with warnings.catch_warnings():
        # PGPy only warns on a CRC mismatch; it is checked below.
        warnings.simplefilter("ignore")
        try:
            block = Armorable.ascii_unarmor(armored)
        except ValueError as exc:
            raise MalformedMessageError("No complete armored block found") from exc
        except PGPError as exc:
            raise MalformedMessageError("Invalid base64 in armored data") from exc

    data = bytes(block["body"])
    if block["crc"] is not None:
        actual = Armorable.crc24(data)
        if actual != block["crc"]:
            raise MalformedMessageError(
                f"Armor checksum {block['crc']:06x} does not match body {actual:06x}"
            )
    return block["magic"], data


def strip_transport(data: bytes) -> tuple[bytes, bool]:
    """
    Return (binary packet stream, was_armored).

    Binary OpenPGP data always starts with a byte that has bit 7 set, which
    is never true of ASCII armor.
    """
    stripped = data.lstrip()
    if not stripped or stripped[0] & 0x80:
        return bytes(stripped), False
    if not stripped.startswith(_BEGIN):
        raise MalformedMessageError("Input is neither binary OpenPGP data nor ASCII armor")
    return decode(stripped)[1], True
