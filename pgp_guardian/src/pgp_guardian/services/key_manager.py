# Turn backend spec strings into key backends and providers.
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import httpx

from ..config import CONFIG, CustodianConfig
from ..custodian.client import CustodianClient, CustodianConfigError
from ..models import KeyInfo
from ..providers import BundleFileBackend, KeyBackend, KeyProvider, LocalBackend, RemoteBackend
from ..storage.keystore import KeyStore
from ..utils.errors import ProviderRejected

BACKEND_KINDS = ("local", "local-file", "remote")


@dataclass(frozen=True)
class BackendSpec:
    """`local:NAME`, `local-file:PATH`, `remote:NAME`, or a bare NAME (remote)"""

    kind: str
    target: str

    @classmethod
    def parse(cls, value: str) -> "BackendSpec":
        prefix, sep, rest = value.partition(":")
        if sep and prefix in BACKEND_KINDS:
            if not rest:
                raise ValueError(f"Backend {value!r} names no key")
            return cls(prefix, rest)
        if not value:
            raise ValueError("Empty backend")
        return cls("remote", value)

    def __str__(self) -> str:
        return f"{self.kind}:{self.target}"


class KeyManager:
    """Create & open keys on the configured backends"""

    def __init__(
        self,
        store_dir: Optional[Path] = None,
        custodian: Optional[CustodianConfig] = None,
        passphrase: Optional[bytes] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.store_dir = store_dir or CONFIG.store_dir
        self.custodian = custodian or CONFIG.custodian
        self.passphrase = passphrase
        self._transport = transport
        self._store: Optional[KeyStore] = None
        self._client: Optional[CustodianClient] = None

    @property
    def store(self) -> KeyStore:
        if self._store is None:
            self._store = KeyStore(self.store_dir)
        return self._store

    @property
    def client(self) -> CustodianClient:
        if self._client is None:
            try:
                self._client = CustodianClient.from_config(self.custodian, transport=self._transport)
            except CustodianConfigError as exc:
                raise ProviderRejected(str(exc)) from exc
        return self._client

    def backend(self, spec: BackendSpec) -> KeyBackend:
        if spec.kind == "local":
            return LocalBackend(self.store, self.passphrase)
        if spec.kind == "local-file":
            return BundleFileBackend(Path(spec.target), self.passphrase)
        return RemoteBackend(self.client)

    def open(self, spec: BackendSpec) -> KeyProvider:
        return self.backend(spec).open(spec.target)

    def list_keys(self) -> List[KeyInfo]:
        return self.store.list_keys()

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "KeyManager":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
