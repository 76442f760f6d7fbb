"""Version 4 signatures whose private-key step runs behind a key provider.

PGPy assembles the packet and computes what gets hashed; the provider only
ever sees the digest and hands back raw signature bytes (PKCS#1 for RSA,
DER for ECDSA, R||S for Ed25519), which are checked and folded into the
signature MPIs here.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from pgpy import PGPSignature
from pgpy.constants import HashAlgorithm, PubKeyAlgorithm, SignatureType
from pgpy.packet.packets import PubKeyV4

from ..utils.errors import CryptographicFailure
from .keys import hasher

SignFn = Callable[[bytes, HashAlgorithm], bytes]

DOCUMENT_TYPES = (SignatureType.BinaryDocument, SignatureType.CanonicalDocument)


def timestamp(value: datetime) -> int:
    return int(value.timestamp())


def new_signature(sig_type: SignatureType, issuer: PubKeyV4, hash_algorithm: HashAlgorithm, created: int) -> PGPSignature:
    """Unsigned signature carrying the creation time and issuer key ID"""
    return PGPSignature.new(
        sig_type,
        issuer.pkalg,
        hash_algorithm,
        issuer.fingerprint.keyid,
        created=datetime.fromtimestamp(created, timezone.utc),
    )


def add_subpacket(sig: PGPSignature, name: str, **fields) -> None:
    sig._signature.subpackets.addnew(name, hashed=True, **fields)


def _check_raw(algorithm: PubKeyAlgorithm, raw: bytes) -> bytes:
    if algorithm is PubKeyAlgorithm.ECDSA:
        try:
            decode_dss_signature(raw)
        except ValueError as exc:
            raise CryptographicFailure("Backend returned a malformed ECDSA signature") from exc
    elif algorithm is PubKeyAlgorithm.EdDSA:
        if len(raw) != 64:
            raise CryptographicFailure("Backend returned a malformed EdDSA signature")
    elif algorithm not in (PubKeyAlgorithm.RSAEncryptOrSign, PubKeyAlgorithm.RSASign):
        raise CryptographicFailure(f"{algorithm.name} keys cannot sign")
    return raw


def complete(sig: PGPSignature, issuer: PubKeyV4, subject, sign: SignFn) -> PGPSignature:
    """Hash `subject` under `sig` and fill in the signature from `sign`"""
    add_subpacket(sig, "IssuerFingerprint", version=4, issuer_fingerprint=issuer.fingerprint)
    data = sig.hashdata(subject)
    digest = hashes.Hash(hasher(sig.hash_algorithm))
    digest.update(data)
    value = digest.finalize()
    raw = _check_raw(issuer.pkalg, sign(value, sig.hash_algorithm))
    sig._signature.hash2 = bytearray(value[:2])
    sig._signature.signature.from_signer(raw)
    sig._signature.update_hlen()
    return sig


def verify_signature(key: PubKeyV4, subject, sig: PGPSignature) -> bool:
    if key.pkalg != sig.key_algorithm:
        return False
    try:
        verified = key.verify(sig.hashdata(subject), sig.__sig__, hasher(sig.hash_algorithm))
    except ValueError:
        # signature values that do not even decode
        return False
    if verified is NotImplemented:
        raise CryptographicFailure(f"{sig.key_algorithm.name} signatures are not supported")
    return bool(verified)


def issuer_of(sig: PGPSignature) -> Optional[str]:
    """Issuer fingerprint when the signature names one, else its key ID"""
    if sig.signer_fingerprint:
        return str(sig.signer_fingerprint)
    issuers = sig._signature.subpackets["Issuer"]
    return issuers[-1].issuer if issuers else None


def signed_at(sig: PGPSignature) -> Optional[int]:
    created = sig._signature.subpackets["h_CreationTime"]
    return timestamp(created[-1].created) if created else None


def hashed_subpacket(sig: PGPSignature, name: str):
    return next(iter(sig._signature.subpackets["h_" + name]), None)


def key_expiration(sig: PGPSignature) -> Optional[int]:
    """Expiration offset in seconds from key creation; None when the key does not expire"""
    subpacket = hashed_subpacket(sig, "KeyExpirationTime")
    if subpacket is None:
        return None
    return int(subpacket.expires.total_seconds()) or None


def is_primary_userid(sig: PGPSignature) -> bool:
    subpacket = hashed_subpacket(sig, "PrimaryUserID")
    return bool(subpacket is not None and subpacket.primary)
