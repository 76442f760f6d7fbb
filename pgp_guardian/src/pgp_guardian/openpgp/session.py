"""Recipient side of public-key encrypted session keys.

PGPy parses the PKESK packet and does all of the sender side. Opening one
needs the private subkey, so the pieces here split that step around the key
provider: the provider runs the RSA decryption or the ECDH agreement and the
RFC 6637 KDF and AES key unwrap run locally on the result.
"""
from __future__ import annotations

import struct
from typing import Tuple

from cryptography.hazmat.primitives.keywrap import InvalidUnwrap, aes_key_unwrap
from cryptography.hazmat.primitives.padding import PKCS7
from pgpy.constants import EllipticCurveOID, PubKeyAlgorithm, SymmetricKeyAlgorithm
from pgpy.packet.packets import PKESessionKeyV3, PubKeyV4

from ..utils.errors import CryptographicFailure, MalformedMessage, constant_time_compare

WILDCARD_KEYID = "0000000000000000"

RSA_ALGORITHMS = (PubKeyAlgorithm.RSAEncryptOrSign, PubKeyAlgorithm.RSAEncrypt)


def is_wildcard(pkesk: PKESessionKeyV3) -> bool:
    return pkesk.encrypter == WILDCARD_KEYID


def decode_session_key(payload: bytes) -> Tuple[SymmetricKeyAlgorithm, bytes]:
    """Split `alg || key || checksum` and check the two-octet checksum"""
    if len(payload) < 4:
        raise CryptographicFailure("Session key payload too short")
    try:
        algorithm = SymmetricKeyAlgorithm(payload[0])
    except ValueError as exc:
        raise CryptographicFailure(f"Unsupported session key algorithm: {exc}") from exc
    key, checksum = payload[1:-2], payload[-2:]
    if len(key) * 8 != algorithm.key_size:
        raise CryptographicFailure("Session key has the wrong size")
    if not constant_time_compare(struct.pack(">H", sum(key) & 0xFFFF), checksum):
        raise CryptographicFailure("Session key checksum mismatch")
    return algorithm, bytes(key)


def rsa_ciphertext(pkesk: PKESessionKeyV3, subkey: PubKeyV4) -> bytes:
    """m^e mod n left-padded to the modulus length"""
    value = bytes(pkesk.ct.me_mod_n.to_mpibytes()[2:])
    return value.rjust((subkey.keymaterial.n.bit_length() + 7) // 8, b"\x00")


def ecdh_peer(pkesk: PKESessionKeyV3, subkey: PubKeyV4) -> bytes:
    """Ephemeral public value: raw X25519 bytes or an uncompressed X9.62 point"""
    point = pkesk.ct.p
    oid = subkey.keymaterial.oid
    if oid is EllipticCurveOID.Curve25519:
        if len(point.x) != 32:
            raise MalformedMessage("Malformed Curve25519 ephemeral key")
        return bytes(point.x)
    if point.y is None:
        raise MalformedMessage("Malformed ECDH ephemeral point")
    size = (oid.key_size + 7) // 8
    return b"\x04" + int(point.x).to_bytes(size, "big") + int(point.y).to_bytes(size, "big")


def ecdh_unwrap(subkey: PubKeyV4, shared: bytes, pkesk: PKESessionKeyV3) -> Tuple[SymmetricKeyAlgorithm, bytes]:
    km = subkey.keymaterial
    kek = km.kdf.derive_key(shared, km.oid, PubKeyAlgorithm.ECDH, subkey.fingerprint)
    try:
        padded = aes_key_unwrap(kek, bytes(pkesk.ct.c))
    except InvalidUnwrap as exc:
        raise CryptographicFailure("Session key unwrap failed") from exc
    unpadder = PKCS7(64).unpadder()
    try:
        payload = unpadder.update(padded) + unpadder.finalize()
    except ValueError as exc:
        raise CryptographicFailure("Invalid session key padding") from exc
    return decode_session_key(payload)
