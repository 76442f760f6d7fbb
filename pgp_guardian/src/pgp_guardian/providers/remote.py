"""Keys held by the remote custodian.

One OpenPGP key maps to two custodian objects: NAME (primary, signs) and
NAME/encryption (subkey, decrypts or agrees). The primary object's metadata
carries the OpenPGP creation time, the suite and the stored certificate.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import httpx
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from pgpy.constants import HashAlgorithm

from ..custodian.client import CustodianClient, CustodianProtocolError
from ..custodian.models import CustodianKey
from ..models import CipherSuite, KeyHandle, KeySpec
from ..openpgp.certificate import Certificate
from ..utils.errors import (
    AppError,
    CryptographicFailure,
    KeyNotFound,
    ProviderRejected,
    ProviderUnavailable,
)
from .base import KeyBackend, KeyProvider

logger = logging.getLogger(__name__)

SUBKEY_SUFFIX = "/encryption"


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return response.reason_phrase


@contextmanager
def classified(identity: str) -> Iterator[None]:
    """Translate custodian transport and protocol failures into provider errors"""
    try:
        yield
    except httpx.TimeoutException as exc:
        raise ProviderUnavailable(f"Custodian timed out: {exc}", identity=identity) from exc
    except httpx.HTTPStatusError as exc:
        status = exc.response.status_code
        detail = _detail(exc.response)
        if status == 404:
            raise KeyNotFound(f"Custodian has no key {identity}: {detail}", identity=identity) from exc
        if status >= 500 or status == 429:
            raise ProviderUnavailable(f"Custodian unavailable ({status}): {detail}", identity=identity) from exc
        raise ProviderRejected(f"Custodian refused the request ({status}): {detail}", identity=identity) from exc
    except httpx.RequestError as exc:
        raise ProviderUnavailable(f"Custodian unreachable: {exc}", identity=identity) from exc
    except CustodianProtocolError as exc:
        raise CryptographicFailure(str(exc), identity=identity) from exc


def _load_public(key: CustodianKey):
    try:
        return serialization.load_der_public_key(key.public_der)
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise CryptographicFailure(f"Custodian returned an unusable public key for {key.name}") from exc


def _check_kind(key: CustodianKey, spec: KeySpec) -> None:
    if key.kind != spec.kind or (spec.curve and key.curve != spec.curve):
        raise CryptographicFailure(
            f"Custodian key {key.name} is {key.kind} {key.curve or ''}, expected {spec.kind} {spec.curve or ''}".rstrip(),
            identity=key.name,
        )


class RemoteKeyProvider(KeyProvider):
    def __init__(
        self,
        client: CustodianClient,
        primary: CustodianKey,
        subkey: CustodianKey,
        created: int,
        suite: CipherSuite,
    ) -> None:
        super().__init__(KeyHandle("remote", primary.name), created, suite)
        self._client = client
        self._primary_obj = primary
        self._subkey_obj = subkey

    @property
    def name(self) -> str:
        return self._primary_obj.name

    def _primary_public(self):
        return _load_public(self._primary_obj)

    def _subkey_public(self):
        return _load_public(self._subkey_obj)

    def _sign_raw(self, digest: bytes, hash_algorithm: HashAlgorithm) -> bytes:
        with classified(self.name):
            return self._client.sign(self.name, hash_algorithm.name, digest)

    def _decrypt_raw(self, ciphertext: bytes) -> bytes:
        with classified(self._subkey_obj.name):
            return self._client.decrypt(self._subkey_obj.name, ciphertext)

    def _agree(self, peer: bytes) -> bytes:
        with classified(self._subkey_obj.name):
            return self._client.agree(self._subkey_obj.name, peer)

    def load_certificate(self) -> Optional[Certificate]:
        armored = self._primary_obj.metadata.get("certificate")
        if not armored:
            return None
        if not isinstance(armored, str):
            raise CryptographicFailure("Custodian metadata holds a malformed certificate", identity=self.name)
        return Certificate.from_bytes(armored.encode("utf-8"))

    def store_certificate(self, certificate: Certificate) -> None:
        metadata: Dict[str, Any] = dict(self._primary_obj.metadata)
        metadata["certificate"] = certificate.armored().decode("utf-8")
        with classified(self.name):
            self._primary_obj = self._client.set_metadata(self.name, metadata)


class RemoteBackend(KeyBackend):
    kind = "remote"

    def __init__(self, client: CustodianClient) -> None:
        self.client = client

    def _delete(self, names: List[str]) -> None:
        # subkey before primary
        for name in reversed(names):
            try:
                with classified(name):
                    self.client.delete_key(name)
            except AppError as exc:
                logger.warning("rollback could not delete custodian key %s: %s", name, exc.describe())

    def create(self, name: str, suite: CipherSuite, created: int) -> RemoteKeyProvider:
        primary_spec, subkey_spec = suite.specs
        subkey_ops = ("decrypt",) if subkey_spec.kind == "rsa" else ("agree",)
        made: List[str] = []
        try:
            with classified(name):
                self.client.create_key(name, primary_spec, ("sign",))
                made.append(name)
                subkey = self.client.create_key(name + SUBKEY_SUFFIX, subkey_spec, subkey_ops)
                made.append(name + SUBKEY_SUFFIX)
                primary = self.client.set_metadata(name, {"created": created, "suite": suite.value})
        except AppError:
            self._delete(made)
            raise
        logger.debug("created custodian objects for %s", name, extra={"key": name, "backend": self.kind})
        return RemoteKeyProvider(self.client, primary, subkey, created, suite)

    def discard(self, provider: KeyProvider) -> None:
        name = provider.handle.name
        logger.info("discarding custodian objects for %s", name, extra={"key": name, "backend": self.kind})
        self._delete([name, name + SUBKEY_SUFFIX])

    def open(self, name: str) -> RemoteKeyProvider:
        with classified(name):
            primary = self.client.get_key(name)
            subkey = self.client.get_key(name + SUBKEY_SUFFIX)
        try:
            created = int(primary.metadata["created"])
            suite = CipherSuite.parse(str(primary.metadata["suite"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise CryptographicFailure(f"Custodian key {name} carries no OpenPGP metadata", identity=name) from exc
        primary_spec, subkey_spec = suite.specs
        _check_kind(primary, primary_spec)
        _check_kind(subkey, subkey_spec)
        return RemoteKeyProvider(self.client, primary, subkey, created, suite)


__all__ = ["RemoteBackend", "RemoteKeyProvider", "SUBKEY_SUFFIX", "classified"]
