"""
Packet stream reading on top of PGPy's packet classes.

PGPy parses each packet (RFC 4880 §4-5). :class:`ObjectStream` walks a
buffer one packet at a time and groups the results into the closed set of
decoded objects the message decoder branches on:

    Marker | EncryptedEnvelopeList | CompressedPayload | OnePassSignatureHeader
    | LiteralPayload | SignatureTrailer | Unknown

Compressed data packets are intercepted before PGPy sees their body: PGPy
inflates them eagerly and without bound, so the body is kept compressed until
the decoder asks for it and then inflated with an output cap.
"""

from __future__ import annotations

import bz2
import zlib
from dataclasses import dataclass, field
from typing import Iterator, Union

from pgpy import PGPMessage, PGPSignature
from pgpy.constants import PacketTag
from pgpy.errors import PGPError
from pgpy.packet import Packet
from pgpy.packet import packets as pgpy_packets
from pgpy.packet.types import Header

from .ciphers import CompressionAlgorithm
from .errors import MalformedMessageError

MAX_DECOMPRESSED_SIZE = 256 * 1024 * 1024  # 256 MiB

_SESSION_KEY_TAGS = (
    PacketTag.PublicKeyEncryptedSessionKey,
    PacketTag.SymmetricKeyEncryptedSessionKey,
)
_ENCRYPTED_DATA_TAGS = (
    PacketTag.SymmetricallyEncryptedData,
    PacketTag.SymmetricallyEncryptedIntegrityProtectedData,
)

# PGPy wraps its own parse failures in PGPError; a few slip through raw.
_PARSE_ERRORS = (PGPError, IndexError, KeyError, TypeError, ValueError,
                 NotImplementedError, UnicodeDecodeError)


class FramedMessage(PGPMessage):
    """
    Already-encoded packets, embedded verbatim by PGPy containers.

    Compressed data packets and :meth:`pgpy.PGPKey.encrypt` only ever ask
    their contents for ``__bytearray__``; this keeps the layers built by
    :mod:`pgpclient.core.builder` byte-exact inside them.
    """

    def __init__(self, data: bytes = b""):
        super().__init__()
        self.data = bytes(data)

    def __bytearray__(self):
        return bytearray(self.data)


# ---------------------------------------------------------------------------
# Decoded objects
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Marker:
    packet: pgpy_packets.Marker = field(repr=False)


@dataclass(frozen=True)
class PublicKeyEncryptedRecord:
    packet: pgpy_packets.PKESessionKeyV3 = field(repr=False)

    @property
    def key_id(self) -> int:
        return int(self.packet.encrypter, 16)

    @property
    def algorithm(self):
        return self.packet.pkalg


@dataclass(frozen=True)
class EncryptedEnvelopeList:
    recipients: tuple[PublicKeyEncryptedRecord, ...]
    data: Packet = field(repr=False)
    passphrase_records: int = 0

    @property
    def integrity_protected(self) -> bool:
        return isinstance(self.data, pgpy_packets.IntegrityProtectedSKEDataV1)


@dataclass(frozen=True)
class CompressedPayload:
    packet: pgpy_packets.CompressedData = field(repr=False)
    data: bytes = field(repr=False)

    @property
    def algorithm(self) -> CompressionAlgorithm:
        return self.packet.calg

    def decompress(self, limit: int | None = None) -> bytes:
        """
        Inflate the packet body, refusing to produce more than *limit* bytes
        (default :data:`MAX_DECOMPRESSED_SIZE`).
        """
        if limit is None:
            limit = MAX_DECOMPRESSED_SIZE
        if self.algorithm is CompressionAlgorithm.Uncompressed:
            if len(self.data) > limit:
                raise MalformedMessageError(
                    f"Compressed data expands beyond {limit} bytes"
                )
            return self.data

        if self.algorithm is CompressionAlgorithm.ZIP:
            inflater = zlib.decompressobj(-15)
        elif self.algorithm is CompressionAlgorithm.ZLIB:
            inflater = zlib.decompressobj()
        else:
            inflater = bz2.BZ2Decompressor()
        try:
            out = inflater.decompress(self.data, limit + 1)
        except (zlib.error, OSError, EOFError, ValueError) as exc:
            raise MalformedMessageError("Compressed data is corrupt") from exc
        if len(out) > limit:
            raise MalformedMessageError(f"Compressed data expands beyond {limit} bytes")
        if not inflater.eof:
            raise MalformedMessageError("Compressed data is truncated")
        return out


@dataclass(frozen=True)
class OnePassSignature:
    packet: pgpy_packets.OnePassSignatureV3 = field(repr=False)

    @property
    def key_id(self) -> int:
        return int(self.packet.signer, 16)

    @property
    def hash_algorithm(self):
        return self.packet.halg

    @property
    def key_algorithm(self):
        return self.packet.pubalg

    @property
    def sig_type(self):
        return self.packet.sigtype


@dataclass(frozen=True)
class OnePassSignatureHeader:
    entries: tuple[OnePassSignature, ...]


@dataclass(frozen=True)
class LiteralPayload:
    packet: pgpy_packets.LiteralData = field(repr=False)
    body: bytes = field(repr=False)

    @classmethod
    def from_packet(cls, packet: pgpy_packets.LiteralData) -> "LiteralPayload":
        contents = packet.contents
        if isinstance(contents, str):
            # PGPy decodes text ('t') as latin-1 and UTF-8 ('u') as UTF-8.
            contents = contents.encode("latin-1" if packet.format == "t" else "utf-8")
        return cls(packet, bytes(contents))

    @property
    def format(self) -> str:
        return self.packet.format

    @property
    def filename(self) -> str:
        return self.packet.filename

    @property
    def modified(self) -> int:
        return int(self.packet.mtime.timestamp())


@dataclass(frozen=True)
class SignatureTrailer:
    signatures: tuple[PGPSignature, ...]


@dataclass(frozen=True)
class Unknown:
    packet: Packet = field(repr=False)

    @property
    def tag(self) -> int:
        return int(self.packet.header.tag)


PacketObject = Union[
    Marker,
    EncryptedEnvelopeList,
    CompressedPayload,
    OnePassSignatureHeader,
    LiteralPayload,
    SignatureTrailer,
    Unknown,
]


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------

def _compressed(header: Header, body: bytearray) -> pgpy_packets.CompressedData:
    if not body:
        raise MalformedMessageError("Empty compressed data packet")
    packet = pgpy_packets.CompressedData()
    packet.header = header
    try:
        packet.calg = body[0]
    except ValueError:
        raise MalformedMessageError(f"Unsupported compression algorithm {body[0]}") from None
    return packet


def read_packet(buffer: bytearray) -> Packet:
    """
    Parse and consume the first packet in *buffer*.

    Compressed data packets come back with ``calg`` set, no ``packets``, and
    their still-compressed body attached as ``raw_body``.
    """
    if not buffer[0] & 0x80:
        raise MalformedMessageError(f"Invalid packet tag byte 0x{buffer[0]:02x}")
    header = Header()
    try:
        header.parse(buffer)
    except (IndexError, ValueError) as exc:
        raise MalformedMessageError("Truncated packet header") from exc
    if header.length > len(buffer):
        raise MalformedMessageError(
            f"Truncated packet: tag {int(header.tag)} needs {header.length} bytes, "
            f"{len(buffer)} left"
        )
    body = buffer[:header.length]
    del buffer[:header.length]

    if header.tag == PacketTag.CompressedData:
        packet = _compressed(header, body)
        packet.raw_body = bytes(body[1:])
        return packet
    try:
        return Packet(header.__bytearray__() + body)
    except _PARSE_ERRORS as exc:
        raise MalformedMessageError(f"Malformed packet with tag {int(header.tag)}") from exc


def iter_packets(data: bytes) -> Iterator[Packet]:
    buffer = bytearray(data)
    while buffer:
        yield read_packet(buffer)


class ObjectStream:
    """Forward-only cursor yielding one decoded object per call."""

    def __init__(self, data: bytes):
        self._packets = iter_packets(data)
        self._peeked: Packet | None = None

    def _next_raw(self) -> Packet | None:
        if self._peeked is not None:
            pkt, self._peeked = self._peeked, None
            return pkt
        for pkt in self._packets:
            if not isinstance(pkt, pgpy_packets.MDC):
                return pkt
        return None

    def _peek_raw(self) -> Packet | None:
        if self._peeked is None:
            self._peeked = self._next_raw()
        return self._peeked

    def _gather(self, first: Packet) -> list[Packet]:
        group = [first]
        while True:
            nxt = self._peek_raw()
            if nxt is None or nxt.header.tag != first.header.tag:
                return group
            group.append(self._next_raw())

    def _envelope(self, first: Packet) -> EncryptedEnvelopeList:
        recipients = []
        passphrase_records = 0
        pkt: Packet | None = first
        while pkt is not None and pkt.header.tag in _SESSION_KEY_TAGS:
            if isinstance(pkt, pgpy_packets.PKESessionKeyV3):
                recipients.append(PublicKeyEncryptedRecord(pkt))
            elif pkt.header.tag == PacketTag.SymmetricKeyEncryptedSessionKey:
                passphrase_records += 1
            else:
                raise MalformedMessageError("Unsupported public-key session key packet version")
            pkt = self._next_raw()
        if pkt is None or pkt.header.tag not in _ENCRYPTED_DATA_TAGS:
            raise MalformedMessageError("Session key packets are not followed by encrypted data")
        if not isinstance(pkt, (pgpy_packets.IntegrityProtectedSKEDataV1,
                                pgpy_packets.SKEData)):
            raise MalformedMessageError("Unsupported encrypted data packet version")
        return EncryptedEnvelopeList(tuple(recipients), pkt, passphrase_records)

    def _signatures(self, first: Packet) -> SignatureTrailer:
        signatures = []
        for pkt in self._gather(first):
            if not isinstance(pkt, pgpy_packets.SignatureV4):
                raise MalformedMessageError("Unsupported signature packet version")
            signatures.append(PGPSignature() | pkt)
        return SignatureTrailer(tuple(signatures))

    def _one_pass(self, first: Packet) -> OnePassSignatureHeader:
        entries = []
        for pkt in self._gather(first):
            if not isinstance(pkt, pgpy_packets.OnePassSignatureV3):
                raise MalformedMessageError("Unsupported one-pass signature packet version")
            entries.append(OnePassSignature(pkt))
        return OnePassSignatureHeader(tuple(entries))

    def next_object(self) -> PacketObject | None:
        pkt = self._next_raw()
        if pkt is None:
            return None
        tag = pkt.header.tag
        if tag == PacketTag.Marker:
            return Marker(pkt)
        if tag in _SESSION_KEY_TAGS or tag in _ENCRYPTED_DATA_TAGS:
            return self._envelope(pkt)
        if tag == PacketTag.CompressedData:
            return CompressedPayload(pkt, pkt.raw_body)
        if tag == PacketTag.OnePassSignature:
            return self._one_pass(pkt)
        if tag == PacketTag.LiteralData:
            try:
                return LiteralPayload.from_packet(pkt)
            except UnicodeDecodeError as exc:
                raise MalformedMessageError("Literal data is not valid UTF-8") from exc
        if tag == PacketTag.Signature:
            return self._signatures(pkt)
        return Unknown(pkt)
