# Human-readable rendering of certificates, signatures and messages.
from __future__ import annotations

from typing import List, Optional, Set

from pgpy import PGPSignature
from pgpy.constants import KeyFlags
from pgpy.packet import Opaque
from pgpy.packet.packets import (
    CompressedData,
    IntegrityProtectedSKEDataV1,
    LiteralData,
    OnePassSignatureV3,
    PKESessionKeyV3,
    PubKeyV4,
    PubSubKeyV4,
    UserID,
)

from ..openpgp.armor import unarmor_if_needed
from ..openpgp.certificate import Certificate, load_certificates
from ..openpgp.keys import ALGORITHM_NAMES, describe_algorithm, describe_flags, key_bits
from ..openpgp.packets import is_primary_key, literal_bytes, read_packets
from ..openpgp.session import is_wildcard
from ..openpgp.signature import issuer_of, signed_at, timestamp
from ..policy.expiration import format_duration, format_utc

LABEL_WIDTH = 15


def _line(label: str, value: str) -> str:
    return f"{label.rjust(LABEL_WIDTH)}: {value}"


def _key_section(label: str, key: PubKeyV4, expiration: Optional[int], flags: Set[KeyFlags]) -> List[str]:
    created = timestamp(key.created)
    lines = [
        _line(label, str(key.fingerprint)),
        _line("Public-key algo", describe_algorithm(key)),
        _line("Public-key size", f"{key_bits(key)} bits"),
        _line("Creation time", format_utc(created)),
    ]
    if expiration is not None:
        expiry = format_utc(created + expiration)
        lines.append(_line("Expiration time", f"{expiry} (creation time + {format_duration(expiration)})"))
    if flags:
        lines.append(_line("Key flags", describe_flags(flags)))
    return lines


def describe_certificate(cert: Certificate) -> List[str]:
    lines = ["OpenPGP Certificate.", ""]
    lines += _key_section("Fingerprint", cert.primary, cert.expiration, cert.key_flags)
    for subkey in cert.subkeys:
        lines.append("")
        lines += _key_section("Subkey", subkey._key, cert.subkey_expiration(subkey), cert.subkey_flags(subkey))
    primary = cert.primary_uid
    for uid in cert.key.userids:
        lines.append("")
        lines.append(_line("UserID", uid.userid))
        if uid is primary:
            lines.append(_line("Primary", "yes"))
    return lines


def _issuer(sig: PGPSignature) -> str:
    return issuer_of(sig) or "unknown"


def _describe_signature(sig: PGPSignature) -> List[str]:
    created = signed_at(sig)
    return [
        _line("Signer", _issuer(sig)),
        _line("Signature type", sig.type.name.replace("_", " ").lower()),
        _line("Hash algo", sig.hash_algorithm.name),
        _line("Signed at", format_utc(created) if created is not None else "unknown"),
    ]


def _describe_message(packets: List[object]) -> List[str]:
    if any(isinstance(p, IntegrityProtectedSKEDataV1) for p in packets):
        lines = ["Encrypted OpenPGP Message.", ""]
        for pkesk in (p for p in packets if isinstance(p, PKESessionKeyV3)):
            recipient = "anonymous" if is_wildcard(pkesk) else pkesk.encrypter
            lines.append(_line("Recipient", f"{recipient} ({ALGORITHM_NAMES.get(pkesk.pkalg, pkesk.pkalg.name)})"))
        lines.append(_line("Data", "integrity protected, not decrypted"))
        return lines

    signatures = [p for p in packets if isinstance(p, PGPSignature)]
    literal = next((p for p in packets if isinstance(p, LiteralData)), None)

    if literal is None:
        lines = ["Detached signature." if len(signatures) == 1 else f"{len(signatures)} detached signatures.", ""]
    else:
        lines = ["Signed OpenPGP Message." if signatures else "Literal OpenPGP Message.", ""]
    for index, sig in enumerate(signatures):
        if index:
            lines.append("")
        lines += _describe_signature(sig)
    if literal is not None:
        lines.append("")
        lines.append(_line("Literal data", f"{len(literal_bytes(literal))} bytes"))
        if literal.filename:
            lines.append(_line("Filename", literal.filename))
    return lines


def _packet_summary(packet) -> str:
    if isinstance(packet, PubKeyV4):
        kind = "Public-Subkey" if isinstance(packet, PubSubKeyV4) else "Public-Key"
        return f"{kind} Packet, {describe_algorithm(packet)}, {packet.fingerprint}"
    if isinstance(packet, UserID):
        return f"User ID Packet, {packet.uid!r}"
    if isinstance(packet, PGPSignature):
        return (
            f"Signature Packet, {packet.type.name}, "
            f"{packet.key_algorithm.name}/{packet.hash_algorithm.name}, issuer {_issuer(packet)}"
        )
    if isinstance(packet, OnePassSignatureV3):
        return f"One-Pass Signature Packet, {packet.sigtype.name}, issuer {packet.signer}"
    if isinstance(packet, LiteralData):
        return f"Literal Data Packet, format {packet.format}, {len(literal_bytes(packet))} bytes"
    if isinstance(packet, PKESessionKeyV3):
        return f"Public-Key Encrypted Session Key Packet, {packet.pkalg.name}, recipient {packet.encrypter}"
    if isinstance(packet, IntegrityProtectedSKEDataV1):
        return f"Sym. Encrypted and Integrity Protected Data Packet, {len(packet.ct)} bytes"
    if isinstance(packet, CompressedData):
        return f"Compressed Data Packet, {packet.calg.name}"
    if isinstance(packet, Opaque):
        tag = packet.header.tag
        name = getattr(tag, "name", f"tag {tag}")
        return f"Unknown Packet ({name}), {len(packet.payload)} bytes"
    return type(packet).__name__


def dump_packets(data: bytes) -> str:
    packets = read_packets(unarmor_if_needed(data), expand_compressed=False)
    return "\n".join(_packet_summary(p) for p in packets) + "\n"


def inspect(data: bytes, source: str = "-") -> str:
    """Describe whatever OpenPGP data `data` holds"""
    binary = unarmor_if_needed(data)
    packets = read_packets(binary)
    if packets and is_primary_key(packets[0]):
        blocks = []
        for cert in load_certificates(binary):
            title, *rest = describe_certificate(cert)
            blocks.append("\n".join([f"{source}: {title}", *rest]))
        return "\n\n".join(blocks) + "\n"
    lines = _describe_message(packets)
    return f"{source}: " + "\n".join(lines) + "\n"
