# Build OpenPGP certificates for provider-held keys, and re-extract them later.
from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Sequence, Tuple

from pgpy import PGPKey, PGPUID
from pgpy.constants import Features, HashAlgorithm, KeyFlags, SignatureType, SymmetricKeyAlgorithm

from ..audit import audited
from ..config import CONFIG
from ..models import CipherSuite
from ..openpgp.certificate import Certificate
from ..openpgp.keys import ENCRYPTION_FLAGS
from ..openpgp.signature import add_subpacket, complete, new_signature
from ..policy.algorithms import hash_by_name
from ..policy.expiration import ExpirationPolicy, ResolvedExpiration, resolve
from ..providers.base import KeyBackend, KeyProvider
from ..utils.errors import CertificateMismatch, ProviderRejected

logger = logging.getLogger(__name__)

PREFERRED_SYMMETRIC = [SymmetricKeyAlgorithm.AES256, SymmetricKeyAlgorithm.AES192, SymmetricKeyAlgorithm.AES128]
PREFERRED_HASH = [HashAlgorithm.SHA512, HashAlgorithm.SHA384, HashAlgorithm.SHA256]


def _check_userids(userids: Sequence[str]) -> List[str]:
    cleaned = [uid.strip() for uid in userids]
    if not cleaned:
        raise ValueError("At least one user ID is required")
    if any(not uid for uid in cleaned):
        raise ValueError("User IDs must not be empty")
    if len(set(cleaned)) != len(cleaned):
        raise ValueError("User IDs must be unique")
    return cleaned


class CertificateAssembler:
    """Create and re-derive certificates; never branches on the provider kind"""

    def __init__(
        self,
        hash_algorithm: Optional[HashAlgorithm] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.hash_algorithm = hash_algorithm or hash_by_name(CONFIG.crypto.hash_algorithm)
        self.clock = clock

    def generate(
        self,
        backend: KeyBackend,
        name: str,
        userids: Sequence[str],
        suite: CipherSuite = CipherSuite.CV25519,
        expiration: Optional[ExpirationPolicy] = None,
    ) -> Tuple[KeyProvider, Certificate]:
        uids = _check_userids(userids)
        created = int(self.clock())
        # Resolved before any key material exists, so a bad intent leaves nothing behind.
        resolved = resolve(created, expiration)
        with audited(logger, "generate", key=name, backend=backend.kind):
            provider = backend.create(name, suite, created)
            try:
                certificate = self.certify(provider, uids, resolved)
                provider.store_certificate(certificate)
            except Exception:
                backend.discard(provider)
                raise
        return provider, certificate

    def certify(self, provider: KeyProvider, userids: Sequence[str], resolved: ResolvedExpiration) -> Certificate:
        """Self-sign user IDs and bind the encryption subkey"""
        primary = provider.primary_key()
        created = resolved.created

        key = PGPKey()
        key |= primary
        for index, text in enumerate(userids):
            uid = PGPUID.new(text)
            key |= uid
            sig = new_signature(SignatureType.Positive_Cert, primary, self.hash_algorithm, created)
            if resolved.offset:
                add_subpacket(sig, "KeyExpirationTime", expires=resolved.offset)
            add_subpacket(sig, "KeyFlags", flags={KeyFlags.Certify, KeyFlags.Sign})
            add_subpacket(sig, "PreferredSymmetricAlgorithms", flags=PREFERRED_SYMMETRIC)
            add_subpacket(sig, "PreferredHashAlgorithms", flags=PREFERRED_HASH)
            add_subpacket(sig, "Features", flags=Features.pgpy_features)
            if index == 0:
                add_subpacket(sig, "PrimaryUserID", primary=True)
            uid |= complete(sig, primary, uid, provider.sign)

        subkey = PGPKey()
        subkey |= provider.subkey()
        key |= subkey
        binding = new_signature(SignatureType.Subkey_Binding, primary, self.hash_algorithm, created)
        if resolved.offset:
            add_subpacket(binding, "KeyExpirationTime", expires=resolved.offset)
        add_subpacket(binding, "KeyFlags", flags=set(ENCRYPTION_FLAGS))
        subkey |= complete(binding, primary, subkey, provider.sign)
        return Certificate(key)

    def extract(self, provider: KeyProvider) -> Certificate:
        """Return the certificate stored with the key, checked against its key material"""
        with audited(logger, "extract", key=str(provider.handle), backend=provider.handle.backend):
            certificate = provider.load_certificate()
            if certificate is None:
                raise ProviderRejected(f"No certificate stored for {provider.handle}", identity=str(provider.handle))
            if not provider.matches(certificate):
                raise CertificateMismatch(
                    f"Stored certificate {certificate.fingerprint_hex} does not belong to {provider.handle}",
                    identity=str(provider.handle),
                )
        return certificate
