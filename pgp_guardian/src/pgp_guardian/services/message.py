"""Sign, verify, encrypt and decrypt OpenPGP messages.

The engine talks to key providers only through their capability interface,
so one call can mix local and custodian-held keys. Signer operations are
independent of each other and run on a thread pool. Message composition and
the sender side of encryption are PGPy's; only the private-key steps go
through the providers.
"""
from __future__ import annotations

import logging
import time
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from pgpy import PGPKey, PGPMessage, PGPSignature
from pgpy.constants import HashAlgorithm, SignatureType, SymmetricKeyAlgorithm
from pgpy.errors import PGPDecryptionError, PGPError
from pgpy.packet.packets import IntegrityProtectedSKEDataV1, LiteralData, PKESessionKeyV3, SKEData

from ..audit import audited
from ..config import CONFIG
from ..openpgp.armor import unarmor_if_needed
from ..openpgp.certificate import Certificate
from ..openpgp.packets import literal_bytes, literal_packet, read_packets
from ..openpgp.session import is_wildcard
from ..openpgp.signature import (
    DOCUMENT_TYPES,
    complete,
    issuer_of,
    new_signature,
    signed_at,
    verify_signature,
)
from ..policy.algorithms import STANDARD_POLICY, AlgorithmPolicy, cipher_by_name, hash_by_name
from ..providers.base import KeyProvider
from ..utils.errors import AppError, CertificateMismatch, CryptographicFailure, MalformedMessage

logger = logging.getLogger(__name__)

GOOD = "good"
BAD = "bad"
MISSING = "missing"


@dataclass(frozen=True)
class SignatureCheck:
    """Outcome for one signature in a message"""

    status: str
    keyid: str
    fingerprint: Optional[str] = None
    userid: Optional[str] = None
    created: Optional[int] = None
    error: Optional[AppError] = None

    @property
    def ok(self) -> bool:
        return self.status == GOOD

    def describe(self) -> str:
        if self.status == GOOD:
            return f"Good signature from {self.fingerprint} ({self.userid or 'no user ID'})"
        if self.status == MISSING:
            return f"No certificate for signer {self.keyid}"
        return f"Bad signature from {self.fingerprint or self.keyid}: {self.error}"


@dataclass(frozen=True)
class VerificationResult:
    checks: Tuple[SignatureCheck, ...] = ()
    plaintext: Optional[bytes] = None

    @property
    def good(self) -> List[SignatureCheck]:
        return [c for c in self.checks if c.status == GOOD]

    @property
    def bad(self) -> List[SignatureCheck]:
        return [c for c in self.checks if c.status == BAD]

    @property
    def missing(self) -> List[SignatureCheck]:
        return [c for c in self.checks if c.status == MISSING]

    @property
    def valid(self) -> bool:
        """At least one signature, and every signature good"""
        return bool(self.checks) and all(c.ok for c in self.checks)

    def require(self, count: Optional[int] = None) -> "VerificationResult":
        """Raise unless enough signatures are good (all of them when count is None)"""
        if count is None:
            if self.valid:
                return self
            failed = [c for c in self.checks if not c.ok]
            if not self.checks:
                raise CryptographicFailure("Message carries no signatures")
            first = failed[0]
            if first.error is not None:
                raise first.error
            raise CryptographicFailure(first.describe())
        if len(self.good) < count:
            raise CryptographicFailure(f"Only {len(self.good)} of {count} required signatures verified")
        return self


@dataclass(frozen=True)
class DecryptionResult:
    plaintext: bytes
    filename: str = ""
    algorithm: SymmetricKeyAlgorithm = SymmetricKeyAlgorithm.AES256
    verification: VerificationResult = field(default_factory=VerificationResult)


class MessageEngine:
    def __init__(
        self,
        hash_algorithm: Optional[HashAlgorithm] = None,
        policy: AlgorithmPolicy = STANDARD_POLICY,
        max_workers: int = CONFIG.crypto.signer_workers,
        clock: Callable[[], float] = time.time,
        cipher: Optional[SymmetricKeyAlgorithm] = None,
    ) -> None:
        hash_algorithm = hash_algorithm or hash_by_name(CONFIG.crypto.hash_algorithm)
        cipher = cipher or cipher_by_name(CONFIG.crypto.symmetric_algorithm)
        policy.check_hash(hash_algorithm)
        policy.check_cipher(cipher)
        self.hash_algorithm = hash_algorithm
        self.cipher = cipher
        self.policy = policy
        self.max_workers = max_workers
        self.clock = clock

    # ----- Signing -----
    def _signatures(self, plaintext: bytes, signers: Sequence[KeyProvider]) -> List[PGPSignature]:
        if not signers:
            raise ValueError("At least one signer is required")
        created = int(self.clock())

        def one(provider: KeyProvider) -> PGPSignature:
            primary = provider.primary_key()
            sig = new_signature(SignatureType.BinaryDocument, primary, self.hash_algorithm, created)
            return complete(sig, primary, plaintext, provider.sign)

        with ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(signers)))) as pool:
            return list(pool.map(one, signers))

    def _literal_message(self, plaintext: bytes, filename: str) -> PGPMessage:
        message = PGPMessage()
        message |= literal_packet(plaintext, filename, int(self.clock()))
        return message

    def _signed_message(self, plaintext: bytes, signers: Sequence[KeyProvider], filename: str) -> PGPMessage:
        message = self._literal_message(plaintext, filename)
        # PGPy emits the one-pass packets, the literal data, then the signatures
        for sig in self._signatures(plaintext, signers):
            message |= sig
        return message

    def sign(
        self,
        plaintext: bytes,
        signers: Sequence[KeyProvider],
        detached: bool = False,
        filename: str = "",
    ) -> bytes:
        """Binary signed message (or detached signatures), one signature per signer"""
        with audited(logger, "sign", count=len(signers)):
            if detached:
                return b"".join(bytes(sig) for sig in self._signatures(plaintext, signers))
            return bytes(self._signed_message(plaintext, signers, filename))

    # ----- Verification -----
    def _check(self, signature: PGPSignature, data: bytes, certs: Sequence[Certificate]) -> SignatureCheck:
        issuer = issuer_of(signature)
        keyid = issuer[-16:] if issuer else "unknown"
        cert = self._find_signer(issuer, certs)
        if cert is None:
            return SignatureCheck(
                MISSING,
                keyid,
                error=CertificateMismatch(f"No candidate certificate holds key {keyid}", identity=keyid),
            )
        created = signed_at(signature)
        try:
            if created is None:
                raise CryptographicFailure("Signature carries no creation time")
            self.policy.check_hash(signature.hash_algorithm)
            if created < cert.created:
                raise CryptographicFailure("Signature predates the signing key")
            expires = cert.expires_at()
            if expires is not None and created >= expires:
                raise CryptographicFailure("Signature was made after the signing key expired")
            if signature.type not in DOCUMENT_TYPES:
                raise CryptographicFailure(f"Not a document signature: {signature.type.name}")
            if not verify_signature(cert.primary, data, signature):
                raise CryptographicFailure("Digest mismatch: the signed data was modified")
        except AppError as exc:
            exc.identity = exc.identity or cert.fingerprint_hex
            return SignatureCheck(BAD, keyid, cert.fingerprint_hex, cert.primary_userid, None, exc)
        return SignatureCheck(GOOD, keyid, cert.fingerprint_hex, cert.primary_userid, created)

    @staticmethod
    def _find_signer(issuer: Optional[str], certs: Sequence[Certificate]) -> Optional[Certificate]:
        if not issuer:
            return None
        # Only the primary carries signing capability in our certificates.
        for cert in certs:
            if cert.fingerprint == issuer:
                return cert
        return None

    def _verify_signatures(
        self, signatures: Sequence[PGPSignature], data: bytes, certs: Sequence[Certificate]
    ) -> VerificationResult:
        valid_certs = []
        for cert in certs:
            try:
                valid_certs.append(cert.validated())
            except AppError as exc:
                logger.warning("skipping candidate certificate %s: %s", cert.fingerprint_hex, exc.describe())
        checks = tuple(self._check(sig, data, valid_certs) for sig in signatures)
        for check in checks:
            logger.debug("signature %s: %s", check.keyid, check.status)
        return VerificationResult(checks=checks, plaintext=data)

    def verify(self, message: bytes, certs: Sequence[Certificate], data: Optional[bytes] = None) -> VerificationResult:
        """Check every signature in an inline-signed message, or detached signatures over `data`"""
        with audited(logger, "verify", count=len(certs)):
            packets = read_packets(unarmor_if_needed(message))
            if any(isinstance(p, (PKESessionKeyV3, IntegrityProtectedSKEDataV1, SKEData)) for p in packets):
                raise CryptographicFailure("Message is encrypted; decrypt it instead")
            signatures = [p for p in packets if isinstance(p, PGPSignature)]
            if data is None:
                literals = [p for p in packets if isinstance(p, LiteralData)]
                if len(literals) != 1:
                    raise MalformedMessage(f"Expected one literal data packet, found {len(literals)}")
                data = literal_bytes(literals[0])
            return self._verify_signatures(signatures, data, certs)

    # ----- Encryption -----
    def _recipient_keys(self, recipients: Sequence[Certificate], now: int) -> List[Tuple[Certificate, PGPKey]]:
        # the validated certificate owns the subkey's parent reference, so it travels along
        keys: List[Tuple[Certificate, PGPKey]] = []
        for cert in recipients:
            cert = cert.validated()
            if cert.is_expired(now):
                raise CryptographicFailure("Recipient certificate has expired", identity=cert.fingerprint_hex)
            found = cert.encryption_keys(now)
            if not found:
                raise CryptographicFailure("Recipient has no usable encryption subkey", identity=cert.fingerprint_hex)
            keys.extend((cert, subkey) for subkey in found)
        return keys

    def encrypt(
        self,
        plaintext: bytes,
        recipients: Sequence[Certificate],
        signers: Sequence[KeyProvider] = (),
        filename: str = "",
    ) -> bytes:
        """Encrypt to every recipient's encryption subkey, optionally signing inside"""
        if not recipients:
            raise ValueError("At least one recipient is required")
        with audited(logger, "encrypt", count=len(recipients)):
            keys = self._recipient_keys(recipients, int(self.clock()))
            if signers:
                message = self._signed_message(plaintext, signers, filename)
            else:
                message = self._literal_message(plaintext, filename)
            session_key = self.cipher.gen_key()
            with warnings.catch_warnings():
                # the cipher is ours to choose, whatever the recipient prefers
                warnings.simplefilter("ignore")
                for cert, subkey in keys:
                    try:
                        message = subkey.encrypt(message, sessionkey=session_key, cipher=self.cipher)
                    except PGPError as exc:
                        raise CryptographicFailure(
                            f"Cannot encrypt to subkey {subkey.fingerprint.keyid}: {exc}",
                            identity=cert.fingerprint_hex,
                        ) from exc
            return bytes(message)

    # ----- Decryption -----
    def _session_key(
        self, provider: KeyProvider, pkesks: Sequence[PKESessionKeyV3]
    ) -> Tuple[SymmetricKeyAlgorithm, bytes]:
        keyid = provider.subkey().fingerprint.keyid
        mine = [p for p in pkesks if p.encrypter == keyid]
        wildcards = [p for p in pkesks if is_wildcard(p)]
        if mine:
            return provider.decrypt(mine[0])
        for pkesk in wildcards:
            try:
                return provider.decrypt(pkesk)
            except CryptographicFailure:
                continue
        raise CertificateMismatch(
            f"Message is not encrypted to {provider.handle} (subkey {keyid})",
            identity=str(provider.handle),
        )

    def decrypt(self, message: bytes, provider: KeyProvider, certs: Sequence[Certificate] = ()) -> DecryptionResult:
        """Decrypt with the provider's subkey and verify any embedded signatures against `certs`"""
        with audited(logger, "decrypt", key=str(provider.handle), backend=provider.handle.backend):
            packets = read_packets(unarmor_if_needed(message), expand_compressed=False)
            if any(isinstance(p, SKEData) for p in packets):
                raise CryptographicFailure("Refusing unauthenticated symmetrically encrypted data")
            pkesks = [p for p in packets if isinstance(p, PKESessionKeyV3)]
            envelopes = [p for p in packets if isinstance(p, IntegrityProtectedSKEDataV1)]
            if len(envelopes) != 1:
                raise MalformedMessage(f"Expected one encrypted data packet, found {len(envelopes)}")

            algorithm, session_key = self._session_key(provider, pkesks)
            self.policy.check_cipher(algorithm)
            try:
                decrypted = envelopes[0].decrypt(session_key, algorithm)
            except (PGPDecryptionError, ValueError) as exc:
                raise CryptographicFailure("Modification detected: MDC mismatch") from exc
            inner = read_packets(bytes(decrypted))

            literals = [p for p in inner if isinstance(p, LiteralData)]
            if len(literals) != 1:
                raise MalformedMessage(f"Expected one literal data packet, found {len(literals)}")
            literal = literals[0]
            plaintext = literal_bytes(literal)
            signatures = [p for p in inner if isinstance(p, PGPSignature)]
            verification = self._verify_signatures(signatures, plaintext, certs)
        return DecryptionResult(
            plaintext=plaintext,
            filename=literal.filename,
            algorithm=algorithm,
            verification=verification,
        )


__all__ = [
    "DecryptionResult",
    "MessageEngine",
    "SignatureCheck",
    "VerificationResult",
]
