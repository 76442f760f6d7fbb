"""Key provider capability interface.

A provider owns one OpenPGP key: a signing primary and an encryption subkey.
Upper layers only see `sign`, `decrypt` and the public key packets; where the
private halves live is each subclass's business. Subclasses translate their
backend failures into the AppError kinds before they leave this package.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Tuple

from pgpy.constants import HashAlgorithm, PubKeyAlgorithm, SymmetricKeyAlgorithm
from pgpy.packet.packets import PKESessionKeyV3, PubKeyV4

from ..models import CipherSuite, KeyHandle
from ..openpgp.certificate import Certificate
from ..openpgp.keys import key_packet
from ..openpgp.session import RSA_ALGORITHMS, decode_session_key, ecdh_peer, ecdh_unwrap, rsa_ciphertext
from ..utils.errors import CryptographicFailure


class KeyProvider(ABC):
    def __init__(self, handle: KeyHandle, created: int, suite: CipherSuite) -> None:
        self.handle = handle
        self.created = created
        self.suite = suite
        self._primary: Optional[PubKeyV4] = None
        self._subkey: Optional[PubKeyV4] = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.handle}>"

    # ----- Backend hooks -----
    @abstractmethod
    def _primary_public(self):
        """`cryptography` public key object of the primary key"""

    @abstractmethod
    def _subkey_public(self):
        """`cryptography` public key object of the encryption subkey"""

    @abstractmethod
    def _sign_raw(self, digest: bytes, hash_algorithm: HashAlgorithm) -> bytes:
        """Raw signature over a precomputed digest: PKCS#1 bytes, ECDSA DER, or Ed25519 R||S"""

    @abstractmethod
    def _decrypt_raw(self, ciphertext: bytes) -> bytes:
        """RSA PKCS#1 v1.5 decryption with the subkey"""

    @abstractmethod
    def _agree(self, peer: bytes) -> bytes:
        """ECDH with the subkey; `peer` is an X9.62 point or a raw X25519 value"""

    @abstractmethod
    def load_certificate(self) -> Optional[Certificate]:
        ...

    @abstractmethod
    def store_certificate(self, certificate: Certificate) -> None:
        ...

    # ----- Public key packets -----
    def primary_key(self) -> PubKeyV4:
        if self._primary is None:
            self._primary = key_packet(self._primary_public(), self.created)
        return self._primary

    def subkey(self) -> PubKeyV4:
        if self._subkey is None:
            self._subkey = key_packet(self._subkey_public(), self.created, subkey=True, encryption=True)
        return self._subkey

    @property
    def fingerprint(self) -> str:
        return str(self.primary_key().fingerprint)

    # ----- Capabilities -----
    def sign(self, digest: bytes, hash_algorithm: HashAlgorithm) -> bytes:
        """Sign a digest with the primary key and return the raw signature"""
        return self._sign_raw(digest, hash_algorithm)

    def decrypt(self, pkesk: PKESessionKeyV3) -> Tuple[SymmetricKeyAlgorithm, bytes]:
        """Recover the (cipher, session key) a PKESK packet wraps for our subkey"""
        subkey = self.subkey()
        if pkesk.pkalg != subkey.pkalg:
            raise CryptographicFailure(
                f"Session key was encrypted with {pkesk.pkalg.name}, subkey is {subkey.pkalg.name}",
                identity=str(self.handle),
            )
        if subkey.pkalg is PubKeyAlgorithm.ECDH:
            return ecdh_unwrap(subkey, self._agree(ecdh_peer(pkesk, subkey)), pkesk)
        if subkey.pkalg in RSA_ALGORITHMS:
            return decode_session_key(self._decrypt_raw(rsa_ciphertext(pkesk, subkey)))
        raise CryptographicFailure(f"{subkey.pkalg.name} keys cannot decrypt", identity=str(self.handle))

    def matches(self, certificate: Certificate) -> bool:
        """True when the certificate was issued for this provider's key material"""
        if certificate.primary.fingerprint != self.primary_key().fingerprint:
            return False
        return any(subkey.fingerprint == self.subkey().fingerprint for subkey in certificate.subkeys)


class KeyBackend(ABC):
    """Factory for providers of one kind"""

    kind: str = ""

    @abstractmethod
    def create(self, name: str, suite: CipherSuite, created: int) -> KeyProvider:
        """Make new key material; nothing is kept until the certificate is stored"""

    @abstractmethod
    def open(self, name: str) -> KeyProvider:
        ...

    def discard(self, provider: KeyProvider) -> None:
        """Remove whatever `create` left behind for a key that never got a certificate"""
