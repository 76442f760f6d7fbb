"""Transferable public keys (certificates) held as PGPy keys."""
from __future__ import annotations

import warnings
from typing import Iterable, List, Optional, Set

from pgpy import PGPKey, PGPSignature, PGPUID
from pgpy.constants import KeyFlags, PubKeyAlgorithm, SignatureType
from pgpy.errors import PGPError
from pgpy.packet.packets import PubKeyV4, UserAttribute, UserID
from pgpy.packet.types import Private

from ..utils.errors import CryptographicFailure, MalformedMessage
from .armor import PUBLIC_KEY_BLOCK, armor, unarmor_if_needed
from .keys import ENCRYPTION_FLAGS
from .packets import is_primary_key, read_packets
from .signature import is_primary_userid, issuer_of, key_expiration, timestamp, verify_signature

CERTIFICATIONS = (
    SignatureType.Generic_Cert,
    SignatureType.Persona_Cert,
    SignatureType.Casual_Cert,
    SignatureType.Positive_Cert,
)

ENCRYPTING_ALGORITHMS = (
    PubKeyAlgorithm.RSAEncryptOrSign,
    PubKeyAlgorithm.RSAEncrypt,
    PubKeyAlgorithm.ECDH,
)


def _latest(signatures: Iterable[PGPSignature]) -> Optional[PGPSignature]:
    ordered = sorted(signatures, key=lambda sig: sig.created)
    return ordered[-1] if ordered else None


class Certificate:
    """One primary key with its user IDs and subkeys"""

    def __init__(self, key: PGPKey) -> None:
        self.key = key

    def __repr__(self) -> str:
        return f"<Certificate {self.fingerprint_hex}>"

    def __eq__(self, other) -> bool:
        if not isinstance(other, Certificate):
            return NotImplemented
        return self.to_bytes() == other.to_bytes()

    # ----- Serialization -----
    def to_bytes(self) -> bytes:
        return bytes(self.key)

    def armored(self) -> bytes:
        return armor(self.to_bytes(), PUBLIC_KEY_BLOCK, comment=self.primary_userid or self.fingerprint_hex)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Certificate":
        certs = load_certificates(data)
        if len(certs) != 1:
            raise MalformedMessage(f"Expected one certificate, found {len(certs)}")
        return certs[0]

    # ----- Identity -----
    @property
    def primary(self) -> PubKeyV4:
        return self.key._key

    @property
    def fingerprint(self):
        return self.key.fingerprint

    @property
    def fingerprint_hex(self) -> str:
        return str(self.key.fingerprint)

    @property
    def keyid(self) -> str:
        return self.key.fingerprint.keyid

    @property
    def created(self) -> int:
        return timestamp(self.key.created)

    def issued(self, sig: PGPSignature) -> bool:
        """True when the primary key is the signature's issuer"""
        issuer = issuer_of(sig)
        return issuer is not None and self.fingerprint == issuer

    @property
    def userids(self) -> List[str]:
        return [uid.userid for uid in self.key.userids]

    def _selfsig(self, uid: PGPUID) -> Optional[PGPSignature]:
        return _latest(sig for sig in uid._signatures if sig.type in CERTIFICATIONS and self.issued(sig))

    @property
    def primary_uid(self) -> Optional[PGPUID]:
        uids = self.key.userids
        for uid in uids:
            sig = self._selfsig(uid)
            if sig is not None and is_primary_userid(sig):
                return uid
        return uids[0] if uids else None

    @property
    def primary_userid(self) -> Optional[str]:
        uid = self.primary_uid
        return uid.userid if uid is not None else None

    @property
    def primary_signature(self) -> Optional[PGPSignature]:
        uid = self.primary_uid
        sig = self._selfsig(uid) if uid is not None else None
        if sig is not None:
            return sig
        return _latest(
            sig for sig in self.key._signatures if sig.type is SignatureType.DirectlyOnKey and self.issued(sig)
        )

    @property
    def key_flags(self) -> Set[KeyFlags]:
        sig = self.primary_signature
        return set(sig.key_flags) if sig else set()

    @property
    def expiration(self) -> Optional[int]:
        """Primary key expiration as an offset from its creation time"""
        sig = self.primary_signature
        return key_expiration(sig) if sig else None

    def expires_at(self) -> Optional[int]:
        offset = self.expiration
        return None if offset is None else self.created + offset

    def is_expired(self, at: int) -> bool:
        expiry = self.expires_at()
        return expiry is not None and at >= expiry

    # ----- Subkeys -----
    @property
    def subkeys(self) -> List[PGPKey]:
        return list(self.key.subkeys.values())

    def binding(self, subkey: PGPKey) -> Optional[PGPSignature]:
        return _latest(
            sig for sig in subkey._signatures
            if sig.type is SignatureType.Subkey_Binding and not sig.embedded and self.issued(sig)
        )

    def subkey_flags(self, subkey: PGPKey) -> Set[KeyFlags]:
        sig = self.binding(subkey)
        return set(sig.key_flags) if sig else set()

    def subkey_expiration(self, subkey: PGPKey) -> Optional[int]:
        sig = self.binding(subkey)
        return key_expiration(sig) if sig else None

    def encryption_keys(self, at: Optional[int] = None) -> List[PGPKey]:
        found: List[PGPKey] = []
        for subkey in self.subkeys:
            if not self.subkey_flags(subkey) & ENCRYPTION_FLAGS:
                continue
            offset = self.subkey_expiration(subkey)
            if at is not None and offset is not None and at >= timestamp(subkey.created) + offset:
                continue
            if subkey.key_algorithm in ENCRYPTING_ALGORITHMS:
                found.append(subkey)
        return found

    # ----- Validation -----
    def validated(self) -> "Certificate":
        """Return a copy keeping only self-signatures that verify against the primary key"""
        primary = self.primary
        key = PGPKey()
        key |= primary
        for sig in self.key._signatures:
            if sig.type is SignatureType.DirectlyOnKey and self.issued(sig) and verify_signature(primary, self.key, sig):
                key |= sig

        valid_uids = 0
        for uid in self.key._uids:
            good = [
                sig for sig in uid._signatures
                if sig.type in CERTIFICATIONS and self.issued(sig) and verify_signature(primary, uid, sig)
            ]
            if not good:
                continue
            copy = PGPUID() | uid._uid
            key |= copy
            for sig in good:
                copy |= sig
            valid_uids += uid.is_uid

        for subkey in self.subkeys:
            good = [
                sig for sig in subkey._signatures
                if sig.type is SignatureType.Subkey_Binding and not sig.embedded
                and self.issued(sig) and verify_signature(primary, subkey, sig)
            ]
            if not good:
                continue
            copy = PGPKey()
            copy |= subkey._key
            key |= copy
            for sig in good:
                copy |= sig

        if not valid_uids:
            raise CryptographicFailure(f"Certificate {self.fingerprint_hex} has no valid user ID self-signature")
        return Certificate(key)


def load_certificates(data: bytes) -> List[Certificate]:
    """Parse a keyring: one or more concatenated certificates, armored or binary"""
    binary = unarmor_if_needed(data)
    packets = read_packets(binary, expand_compressed=False)
    if not packets:
        raise MalformedMessage("No certificate found")
    if not is_primary_key(packets[0]):
        raise MalformedMessage("Certificate does not start with a primary key")
    for packet in packets:
        if isinstance(packet, Private):
            raise MalformedMessage("Secret key material is not a certificate")
        if not isinstance(packet, (PubKeyV4, UserID, UserAttribute, PGPSignature)):
            raise MalformedMessage(f"Unexpected packet in certificate: {type(packet).__name__}")
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            _, keys = PGPKey.from_blob(binary)
        except (PGPError, ValueError, TypeError, KeyError, StopIteration) as exc:
            raise MalformedMessage(f"Malformed certificate: {exc}") from exc
    return [Certificate(key) for key in keys.values()]
