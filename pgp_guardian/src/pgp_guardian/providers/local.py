# Keys held in process, persisted in the filesystem keystore or a bundle file.
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from pgpy.constants import HashAlgorithm

from ..crypto.asymmetric import agree, generate_private_key, rsa_decrypt, sign_digest
from ..models import CipherSuite, KeyHandle
from ..openpgp.certificate import Certificate
from ..openpgp.keys import hasher
from ..storage.keystore import KeyBundle, KeyStore
from ..utils.errors import CryptographicFailure, ProviderRejected
from .base import KeyBackend, KeyProvider

Persist = Callable[[KeyBundle, bool], None]


class LocalKeyProvider(KeyProvider):
    def __init__(
        self,
        bundle: KeyBundle,
        *,
        persist: Optional[Persist] = None,
        passphrase: Optional[bytes] = None,
        stored: bool = True,
    ) -> None:
        try:
            suite = CipherSuite.parse(bundle.suite)
        except ValueError as exc:
            raise CryptographicFailure(str(exc), identity=bundle.name) from exc
        super().__init__(KeyHandle("local", bundle.name), bundle.created, suite)
        self.bundle = bundle
        self._persist = persist
        self._passphrase = passphrase
        # False until a freshly generated bundle has been written once
        self._stored = stored
        self._private: Dict[str, Any] = {}

    def _key(self, slot: str):
        if slot not in self._private:
            self._private[slot] = self.bundle.private_key(slot, self._passphrase)
        return self._private[slot]

    def _primary_public(self):
        return self._key("primary").public_key()

    def _subkey_public(self):
        return self._key("subkey").public_key()

    def _sign_raw(self, digest: bytes, hash_algorithm: HashAlgorithm) -> bytes:
        try:
            return sign_digest(self._key("primary"), digest, hasher(hash_algorithm))
        except ValueError as exc:
            raise CryptographicFailure(f"Local signing failed: {exc}", identity=str(self.handle)) from exc

    def _decrypt_raw(self, ciphertext: bytes) -> bytes:
        try:
            return rsa_decrypt(self._key("subkey"), ciphertext)
        except ValueError as exc:
            raise CryptographicFailure("Session key decryption failed", identity=str(self.handle)) from exc

    def _agree(self, peer: bytes) -> bytes:
        try:
            return agree(self._key("subkey"), peer)
        except ValueError as exc:
            raise CryptographicFailure(f"Key agreement failed: {exc}", identity=str(self.handle)) from exc

    def load_certificate(self) -> Optional[Certificate]:
        if not self.bundle.certificate:
            return None
        return Certificate.from_bytes(self.bundle.certificate.encode("utf-8"))

    def store_certificate(self, certificate: Certificate) -> None:
        bundle = self.bundle.with_certificate(certificate.armored().decode("utf-8"))
        if self._persist is not None:
            self._persist(bundle, self._stored)
        self.bundle = bundle
        self._stored = True


def _new_bundle(name: str, suite: CipherSuite, created: int, passphrase: Optional[bytes]) -> KeyBundle:
    primary_spec, subkey_spec = suite.specs
    return KeyBundle.seal_keys(
        name,
        created,
        suite.value,
        generate_private_key(primary_spec),
        generate_private_key(subkey_spec),
        passphrase,
    )


class LocalBackend(KeyBackend):
    """Keys kept in the keystore directory; a new key reaches disk together with its certificate"""

    kind = "local"

    def __init__(self, store: Optional[KeyStore] = None, passphrase: Optional[bytes] = None) -> None:
        self.store = store or KeyStore()
        self.passphrase = passphrase

    def _save(self, bundle: KeyBundle, overwrite: bool) -> None:
        self.store.save(bundle, overwrite=overwrite)

    def create(self, name: str, suite: CipherSuite, created: int) -> LocalKeyProvider:
        if self.store.exists(name):
            raise ProviderRejected(f"Local key already exists: {name}", identity=name)
        bundle = _new_bundle(name, suite, created, self.passphrase)
        return LocalKeyProvider(bundle, persist=self._save, passphrase=self.passphrase, stored=False)

    def open(self, name: str) -> LocalKeyProvider:
        return LocalKeyProvider(self.store.load(name), persist=self._save, passphrase=self.passphrase)


class BundleFileBackend(KeyBackend):
    """A single key kept in a standalone bundle file (private keys included)"""

    kind = "local"

    def __init__(self, path: Path, passphrase: Optional[bytes] = None) -> None:
        self.path = path
        self.passphrase = passphrase

    def _save(self, bundle: KeyBundle, overwrite: bool) -> None:
        try:
            with open(self.path, "w" if overwrite else "x", encoding="utf-8") as handle:
                handle.write(bundle.to_json())
        except FileExistsError as exc:
            raise ProviderRejected(f"Refusing to overwrite {self.path}", identity=str(self.path)) from exc
        os.chmod(self.path, 0o600)

    def create(self, name: str, suite: CipherSuite, created: int) -> LocalKeyProvider:
        if self.path.exists():
            raise ProviderRejected(f"Refusing to overwrite {self.path}", identity=str(self.path))
        bundle = _new_bundle(name, suite, created, self.passphrase)
        return LocalKeyProvider(bundle, persist=self._save, passphrase=self.passphrase, stored=False)

    def open(self, name: str = "") -> LocalKeyProvider:
        bundle = KeyStore.read_bundle_file(self.path)
        return LocalKeyProvider(bundle, persist=self._save, passphrase=self.passphrase)
