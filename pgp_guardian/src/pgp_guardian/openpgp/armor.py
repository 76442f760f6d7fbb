# ASCII armor (RFC 4880 section 6) on top of PGPy's Armorable.
from __future__ import annotations

import warnings
from typing import Optional, Tuple

from pgpy.errors import PGPError
from pgpy.types import Armorable, PGPObject

from ..utils.errors import MalformedMessage

PUBLIC_KEY_BLOCK = "PUBLIC KEY BLOCK"
MESSAGE = "MESSAGE"
SIGNATURE = "SIGNATURE"

_BEGIN = "-----BEGIN PGP "


class ArmoredBlock(Armorable, PGPObject):
    """One armored block of any kind; the payload stays opaque"""

    def __init__(self, kind: str = MESSAGE, payload: bytes = b"") -> None:
        super().__init__()
        self.kind = kind
        self.payload = bytes(payload)

    @property
    def magic(self) -> str:
        return self.kind

    def __bytearray__(self) -> bytearray:
        return bytearray(self.payload)

    def parse(self, packet) -> None:
        with warnings.catch_warnings():
            # a bad CRC only warns inside PGPy; it is checked below
            warnings.simplefilter("ignore")
            unarmored = self.ascii_unarmor(packet)
        if unarmored["magic"] is None:
            raise MalformedMessage("Armored data is not ASCII")
        body = bytes(unarmored["body"])
        if unarmored["crc"] != self.crc24(body):
            raise MalformedMessage("Armor checksum mismatch")
        self.kind = unarmored["magic"]
        self.payload = body


def armor(data: bytes, kind: str = MESSAGE, comment: Optional[str] = None) -> bytes:
    block = ArmoredBlock(kind, data)
    if comment:
        block.ascii_headers["Comment"] = " ".join(comment.split())
    return str(block).encode("utf-8")


def is_armored(data: bytes) -> bool:
    return data.lstrip()[:15] == _BEGIN.encode("ascii")


def _strip_headers(text: str) -> str:
    # Header values are free UTF-8 text; only the base64 body is parsed.
    lines = [line.strip() for line in text.strip().splitlines()]
    if not lines or not lines[0].startswith(_BEGIN):
        raise MalformedMessage("Missing armor header line")
    body = lines[1:]
    while body and ":" in body[0]:
        body.pop(0)
    if body and not body[0]:
        body.pop(0)
    return "\n".join([lines[0], "", *body]) + "\n"


def dearmor(data: bytes) -> Tuple[str, bytes]:
    """Return (block kind, binary payload); the CRC line is required and checked"""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedMessage("Armored data is not UTF-8 text") from exc
    try:
        block = ArmoredBlock.from_blob(_strip_headers(text))
    except (PGPError, ValueError) as exc:
        raise MalformedMessage(f"Malformed armor: {exc}") from exc
    return block.kind, block.payload


def unarmor_if_needed(data: bytes) -> bytes:
    if is_armored(data):
        return dearmor(data)[1]
    return data
