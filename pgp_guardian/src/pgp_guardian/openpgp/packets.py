"""Packet sequences read through PGPy's packet classes."""
from __future__ import annotations

from typing import Iterable, List

from pgpy import PGPSignature
from pgpy.errors import PGPError
from pgpy.packet import Packet
from pgpy.packet.packets import (
    MDC,
    CompressedData,
    LiteralData,
    Marker,
    PubKeyV4,
    PubSubKeyV4,
    SignatureV4,
    Trust,
)

from ..utils.errors import MalformedMessage

FILENAME_LIMIT = 255


def _normalize(packets: Iterable, expand_compressed: bool) -> List[object]:
    result: List[object] = []
    for packet in packets:
        if isinstance(packet, (Marker, Trust, MDC)):
            continue
        if isinstance(packet, SignatureV4):
            result.append(PGPSignature() | packet)
        elif expand_compressed and isinstance(packet, CompressedData):
            result.extend(_normalize(packet.packets, expand_compressed))
        else:
            result.append(packet)
    return result


def read_packets(data: bytes, *, expand_compressed: bool = True) -> List[object]:
    """Parse binary OpenPGP data; signature packets come back as PGPSignature"""
    buffer = bytearray(data)
    parsed = []
    while buffer:
        before = len(buffer)
        if not buffer[0] & 0x80:
            raise MalformedMessage("Malformed packet: invalid tag octet")
        try:
            packet = Packet(buffer)
        except (PGPError, ValueError, IndexError, TypeError) as exc:
            raise MalformedMessage(f"Malformed packet: {exc}") from exc
        if len(buffer) >= before:
            raise MalformedMessage("Malformed packet: zero length")
        parsed.append(packet)
    return _normalize(parsed, expand_compressed)


def is_primary_key(packet) -> bool:
    return isinstance(packet, PubKeyV4) and not isinstance(packet, PubSubKeyV4)


def wire_filename(name: str) -> str:
    # PGPy writes literal filenames as latin-1 and reads them back as UTF-8.
    raw = name.encode("utf-8")[:FILENAME_LIMIT].decode("utf-8", errors="ignore").encode("utf-8")
    return raw.decode("latin-1")


def literal_packet(data: bytes, filename: str = "", mtime: int = 0) -> LiteralData:
    literal = LiteralData()
    literal.format = "b"
    literal.filename = wire_filename(filename)
    literal.mtime = mtime
    literal._contents = bytearray(data)
    literal.update_hlen()
    return literal


def literal_bytes(literal: LiteralData) -> bytes:
    return bytes(literal._contents)
