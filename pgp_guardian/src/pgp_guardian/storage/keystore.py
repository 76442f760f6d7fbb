from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, List, Optional

from cryptography.exceptions import UnsupportedAlgorithm

from ..config import CONFIG
from ..crypto.asymmetric import load_private_pem, private_pem
from ..crypto.kdf import ScryptKdf
from ..models import KeyHandle, KeyInfo
from ..openpgp.certificate import Certificate
from ..utils.errors import CryptographicFailure, KeyNotFound, ProviderRejected
from .paths import PathResolver

BUNDLE_VERSION = 1


@dataclass(frozen=True)
class KeyBundle:
    """A local key pair (primary + encryption subkey) as stored on disk.

    Private keys are PKCS#8 PEM strings, or scrypt/AES-GCM sealed payloads
    when a passphrase was supplied at generation time.
    """

    name: str
    created: int
    suite: str
    primary: Any
    subkey: Any
    certificate: Optional[str] = None

    @property
    def sealed(self) -> bool:
        return isinstance(self.primary, dict)

    def to_json(self) -> str:
        return json.dumps(
            {
                "v": BUNDLE_VERSION,
                "name": self.name,
                "created": self.created,
                "suite": self.suite,
                "primary": self.primary,
                "subkey": self.subkey,
                "certificate": self.certificate,
            },
            indent=2,
        )

    @classmethod
    def from_json(cls, text: str) -> "KeyBundle":
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise CryptographicFailure("Key bundle is not valid JSON") from exc
        if not isinstance(data, dict) or data.get("v") != BUNDLE_VERSION:
            raise CryptographicFailure("Unsupported key bundle version")
        try:
            return cls(
                name=data["name"],
                created=int(data["created"]),
                suite=data["suite"],
                primary=data["primary"],
                subkey=data["subkey"],
                certificate=data.get("certificate"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise CryptographicFailure(f"Key bundle is missing fields: {exc}") from exc

    @classmethod
    def seal_keys(cls, name: str, created: int, suite: str, primary, subkey, passphrase: Optional[bytes]) -> "KeyBundle":
        def _encode(priv) -> Any:
            pem = private_pem(priv)
            if passphrase:
                return ScryptKdf(CONFIG.kdf).seal(pem, passphrase)
            return pem.decode("ascii")

        return cls(name=name, created=created, suite=suite, primary=_encode(primary), subkey=_encode(subkey))

    def private_key(self, slot: str, passphrase: Optional[bytes] = None):
        value = self.primary if slot == "primary" else self.subkey
        try:
            if isinstance(value, dict):
                if not passphrase:
                    raise ProviderRejected(f"Key {self.name} is passphrase protected", identity=self.name)
                pem = ScryptKdf(CONFIG.kdf).open(value, passphrase)
            else:
                pem = value.encode("ascii")
            return load_private_pem(pem)
        except (ValueError, TypeError, KeyError, UnsupportedAlgorithm) as exc:
            raise CryptographicFailure(f"Corrupted {slot} key in bundle {self.name}") from exc

    def with_certificate(self, certificate: str) -> "KeyBundle":
        return replace(self, certificate=certificate)


class KeyStore:
    """Filesystem-backed keystore under `CONFIG.store_dir`.

    Layout:
      - keys/<b64(name)>.json: one KeyBundle per local key
    """

    def __init__(self, root: Optional[Path | str] = None) -> None:
        self.paths = PathResolver(Path(root) if root else CONFIG.store_dir)
        self.paths.ensure()

    def exists(self, name: str) -> bool:
        return self.paths.bundle(name).exists()

    def save(self, bundle: KeyBundle, *, overwrite: bool = False) -> None:
        path = self.paths.bundle(bundle.name)
        if path.exists() and not overwrite:
            raise ProviderRejected(f"Local key already exists: {bundle.name}", identity=bundle.name)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(bundle.to_json(), encoding="utf-8")
        os.chmod(tmp, 0o600)
        tmp.replace(path)

    def load(self, name: str) -> KeyBundle:
        path = self.paths.bundle(name)
        if not path.exists():
            raise KeyNotFound(f"Local key not found: {name}", identity=name)
        return KeyBundle.from_json(path.read_text(encoding="utf-8"))

    def list_keys(self) -> List[KeyInfo]:
        infos: List[KeyInfo] = []
        for path in sorted(self.paths.keys.glob("*.json")):
            bundle = KeyBundle.from_json(path.read_text(encoding="utf-8"))
            info = KeyInfo(handle=KeyHandle("local", bundle.name), suite=bundle.suite, created_at=bundle.created)
            if bundle.certificate:
                cert = Certificate.from_bytes(bundle.certificate.encode("utf-8"))
                info.fingerprint = cert.fingerprint_hex
                info.userid = cert.primary_userid
            infos.append(info)
        return infos

    @staticmethod
    def read_bundle_file(path: Path) -> KeyBundle:
        if not path.exists():
            raise KeyNotFound(f"Key file not found: {path}", identity=str(path))
        return KeyBundle.from_json(path.read_text(encoding="utf-8"))

