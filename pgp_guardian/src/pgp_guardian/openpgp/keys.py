"""Version 4 public key packets built from `cryptography` key objects.

Key material is produced wherever the private key lives; this module only
turns the public half into PGPy packets and names what those packets hold.
"""
from __future__ import annotations

from typing import Iterable

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa, x25519
from pgpy.constants import (
    ECPointFormat,
    EllipticCurveOID,
    HashAlgorithm,
    KeyFlags,
    PubKeyAlgorithm,
)
from pgpy.packet.fields import ECPoint
from pgpy.packet.packets import PubKeyV4, PubSubKeyV4
from pgpy.packet.types import MPI

from ..utils.errors import CryptographicFailure

ENCRYPTION_FLAGS = frozenset({KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage})

ALGORITHM_NAMES = {
    PubKeyAlgorithm.RSAEncryptOrSign: "RSA",
    PubKeyAlgorithm.RSAEncrypt: "RSA (encrypt only)",
    PubKeyAlgorithm.RSASign: "RSA (sign only)",
    PubKeyAlgorithm.ECDH: "ECDH",
    PubKeyAlgorithm.ECDSA: "ECDSA",
    PubKeyAlgorithm.EdDSA: "EdDSA",
}

CURVE_NAMES = {
    EllipticCurveOID.NIST_P256: "NIST P-256",
    EllipticCurveOID.NIST_P384: "NIST P-384",
    EllipticCurveOID.NIST_P521: "NIST P-521",
    EllipticCurveOID.Ed25519: "Ed25519",
    EllipticCurveOID.Curve25519: "Curve25519",
}

_CURVES_BY_NAME = {
    "secp256r1": EllipticCurveOID.NIST_P256,
    "secp384r1": EllipticCurveOID.NIST_P384,
    "secp521r1": EllipticCurveOID.NIST_P521,
}

_FLAG_NAMES = (
    (KeyFlags.Certify, "certification"),
    (KeyFlags.Sign, "signing"),
    (KeyFlags.EncryptCommunications, "transport encryption"),
    (KeyFlags.EncryptStorage, "data-at-rest encryption"),
    (KeyFlags.Authentication, "authentication"),
)


def hasher(algorithm: HashAlgorithm) -> hashes.HashAlgorithm:
    """`cryptography` hash object for an OpenPGP hash algorithm"""
    try:
        return getattr(hashes, algorithm.name)()
    except AttributeError:
        raise CryptographicFailure(f"Unsupported hash algorithm: {algorithm.name}") from None


def describe_flags(flags: Iterable[KeyFlags]) -> str:
    present = set(flags)
    return ", ".join(name for flag, name in _FLAG_NAMES if flag in present)


def _ecdh(packet: PubKeyV4, oid: EllipticCurveOID) -> None:
    packet.keymaterial.kdf.halg = oid.kdf_halg
    packet.keymaterial.kdf.encalg = oid.kek_alg


def key_packet(public_key, created: int, *, subkey: bool = False, encryption: bool = False) -> PubKeyV4:
    """Public (sub)key packet for a `cryptography` public key"""
    packet = PubSubKeyV4() if subkey else PubKeyV4()
    packet.created = created

    if isinstance(public_key, rsa.RSAPublicKey):
        numbers = public_key.public_numbers()
        packet.pkalg = PubKeyAlgorithm.RSAEncryptOrSign
        packet.keymaterial.n = MPI(numbers.n)
        packet.keymaterial.e = MPI(numbers.e)

    elif isinstance(public_key, ed25519.Ed25519PublicKey):
        raw = public_key.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)
        packet.pkalg = PubKeyAlgorithm.EdDSA
        packet.keymaterial.oid = EllipticCurveOID.Ed25519
        packet.keymaterial.p = ECPoint.from_values(EllipticCurveOID.Ed25519.key_size, ECPointFormat.Native, raw)

    elif isinstance(public_key, x25519.X25519PublicKey):
        raw = public_key.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)
        packet.pkalg = PubKeyAlgorithm.ECDH
        packet.keymaterial.oid = EllipticCurveOID.Curve25519
        packet.keymaterial.p = ECPoint.from_values(EllipticCurveOID.Curve25519.key_size, ECPointFormat.Native, raw)
        _ecdh(packet, EllipticCurveOID.Curve25519)

    elif isinstance(public_key, ec.EllipticCurvePublicKey):
        oid = _CURVES_BY_NAME.get(public_key.curve.name)
        if oid is None:
            raise CryptographicFailure(f"Unsupported curve: {public_key.curve.name}")
        numbers = public_key.public_numbers()
        packet.pkalg = PubKeyAlgorithm.ECDH if encryption else PubKeyAlgorithm.ECDSA
        packet.keymaterial.oid = oid
        packet.keymaterial.p = ECPoint.from_values(oid.key_size, ECPointFormat.Standard, MPI(numbers.x), MPI(numbers.y))
        if encryption:
            _ecdh(packet, oid)

    else:
        raise CryptographicFailure(f"Unsupported key type: {type(public_key).__name__}")

    packet.update_hlen()
    return packet


def key_curve(packet: PubKeyV4):
    return getattr(packet.keymaterial, "oid", None)


def key_bits(packet: PubKeyV4) -> int:
    curve = key_curve(packet)
    if curve is not None:
        return curve.key_size
    return packet.keymaterial.n.bit_length()


def describe_algorithm(packet: PubKeyV4) -> str:
    name = ALGORITHM_NAMES.get(packet.pkalg, packet.pkalg.name)
    curve = key_curve(packet)
    if curve is None:
        return name
    return f"{name} ({CURVE_NAMES.get(curve, curve.name)})"
