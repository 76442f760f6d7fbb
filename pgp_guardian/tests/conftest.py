from __future__ import annotations

import base64
import binascii
import json
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote

import httpx
import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, padding, rsa, x25519
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed
from pgpy.constants import SymmetricKeyAlgorithm
from pgpy.packet.packets import PKESessionKeyV3

from pgp_guardian.custodian.client import CustodianClient
from pgp_guardian.providers import LocalBackend, RemoteBackend
from pgp_guardian.services.certificate import CertificateAssembler
from pgp_guardian.services.message import MessageEngine
from pgp_guardian.storage.keystore import KeyStore

API_KEY = "test-api-key"
ENDPOINT = "https://custodian.test/api"

_CURVES = {"P-256": ec.SECP256R1, "P-384": ec.SECP384R1, "P-521": ec.SECP521R1}
_HASHES = {"SHA256": hashes.SHA256, "SHA384": hashes.SHA384, "SHA512": hashes.SHA512, "SHA1": hashes.SHA1}


def _b64e(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64d(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


class FakeCustodian:
    """In-memory stand-in for the key custodian HTTP API"""

    def __init__(self, api_key: str = API_KEY) -> None:
        self.api_key = api_key
        self.keys: Dict[str, dict] = {}
        self.calls: List[Tuple[str, str]] = []
        self.fail_status: Optional[int] = None
        self.fail_exception: Optional[type] = None
        self.garbage = False
        # (method, path) -> status for one specific route
        self.fail_routes: Dict[Tuple[str, str], int] = {}

    # ----- Helpers -----
    def _generate(self, kind: str, curve: Optional[str], size: Optional[int]):
        if kind == "rsa":
            return rsa.generate_private_key(public_exponent=65537, key_size=size or 2048)
        if kind == "ec":
            return ec.generate_private_key(_CURVES[curve]())
        if kind == "ed25519":
            return ed25519.Ed25519PrivateKey.generate()
        return x25519.X25519PrivateKey.generate()

    def _view(self, name: str) -> dict:
        entry = self.keys[name]
        public = entry["private"].public_key().public_bytes(
            serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
        )
        return {
            "name": name,
            "kind": entry["kind"],
            "curve": entry["curve"],
            "size": entry["size"],
            "public_key": _b64e(public),
            "metadata": entry["metadata"],
        }

    def _sign(self, entry: dict, hash_alg: str, digest: bytes) -> bytes:
        priv = entry["private"]
        if entry["kind"] == "rsa":
            return priv.sign(digest, padding.PKCS1v15(), Prehashed(_HASHES[hash_alg]()))
        if entry["kind"] == "ec":
            return priv.sign(digest, ec.ECDSA(Prehashed(_HASHES[hash_alg]())))
        return priv.sign(digest)

    def _agree(self, entry: dict, peer: bytes) -> bytes:
        priv = entry["private"]
        if entry["kind"] == "x25519":
            return priv.exchange(x25519.X25519PublicKey.from_public_bytes(peer))
        public = ec.EllipticCurvePublicKey.from_encoded_point(priv.curve, peer)
        return priv.exchange(ec.ECDH(), public)

    # ----- Transport -----
    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.raw_path.decode("ascii").split("?")[0]
        base = httpx.URL(ENDPOINT).raw_path.decode("ascii").rstrip("/")
        parts = [unquote(p) for p in path[len(base):].strip("/").split("/")]
        self.calls.append((request.method, "/".join(parts)))

        if self.fail_exception is not None:
            raise self.fail_exception("injected failure", request=request)
        if request.headers.get("Authorization") != f"Bearer {self.api_key}":
            return httpx.Response(401, json={"detail": "bad credentials"})
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"detail": "injected status"})
        if self.garbage:
            return httpx.Response(200, content=b"<html>not json</html>")
        route = self.calls[-1]
        if route in self.fail_routes:
            return httpx.Response(self.fail_routes[route], json={"detail": "injected route failure"})

        body = json.loads(request.content) if request.content else {}
        if parts == ["keys"] and request.method == "POST":
            if body["name"] in self.keys:
                return httpx.Response(409, json={"detail": "exists"})
            self.keys[body["name"]] = {
                "kind": body["kind"],
                "curve": body.get("curve"),
                "size": body.get("size"),
                "ops": body.get("ops", []),
                "metadata": {},
                "private": self._generate(body["kind"], body.get("curve"), body.get("size")),
            }
            return httpx.Response(201, json=self._view(body["name"]))

        if len(parts) < 2 or parts[0] != "keys":
            return httpx.Response(404, json={"detail": "no route"})
        name = parts[1]
        action = parts[2] if len(parts) > 2 else ""
        # Names may contain a slash, which arrives percent-encoded in one segment.
        if name not in self.keys:
            return httpx.Response(404, json={"detail": f"no key {name}"})
        entry = self.keys[name]

        if not action and request.method == "GET":
            return httpx.Response(200, json=self._view(name))
        if not action and request.method == "DELETE":
            del self.keys[name]
            return httpx.Response(204)
        if action == "metadata" and request.method == "PUT":
            entry["metadata"] = body["metadata"]
            return httpx.Response(200, json=self._view(name))
        if action == "sign":
            if "sign" not in entry["ops"]:
                return httpx.Response(403, json={"detail": "sign not permitted"})
            signature = self._sign(entry, body["hash_alg"], _b64d(body["digest"]))
            return httpx.Response(200, json={"signature": _b64e(signature)})
        if action == "decrypt":
            if "decrypt" not in entry["ops"]:
                return httpx.Response(403, json={"detail": "decrypt not permitted"})
            plaintext = entry["private"].decrypt(_b64d(body["ciphertext"]), padding.PKCS1v15())
            return httpx.Response(200, json={"plaintext": _b64e(plaintext)})
        if action == "agree":
            if "agree" not in entry["ops"]:
                return httpx.Response(403, json={"detail": "agree not permitted"})
            secret = self._agree(entry, _b64d(body["public_key"]))
            return httpx.Response(200, json={"secret": _b64e(secret)})
        return httpx.Response(405, json={"detail": "method not allowed"})


@pytest.fixture
def custodian() -> FakeCustodian:
    return FakeCustodian()


@pytest.fixture
def transport(custodian: FakeCustodian) -> httpx.MockTransport:
    return httpx.MockTransport(custodian.handler)


@pytest.fixture
def client(transport: httpx.MockTransport):
    with CustodianClient(ENDPOINT, API_KEY, transport=transport) as c:
        yield c


@pytest.fixture
def store(tmp_path: Path) -> KeyStore:
    return KeyStore(tmp_path / "store")


@pytest.fixture
def local_backend(store: KeyStore) -> LocalBackend:
    return LocalBackend(store)


@pytest.fixture
def remote_backend(client: CustodianClient) -> RemoteBackend:
    return RemoteBackend(client)


@pytest.fixture
def assembler() -> CertificateAssembler:
    return CertificateAssembler()


@pytest.fixture
def engine() -> MessageEngine:
    return MessageEngine()


def _wrap_session_key(subkey, cipher=SymmetricKeyAlgorithm.AES256):
    key = cipher.gen_key()
    pkesk = PKESessionKeyV3()
    pkesk.encrypter = bytearray(binascii.unhexlify(subkey.fingerprint.keyid.encode("latin-1")))
    pkesk.pkalg = subkey.pkalg
    pkesk.encrypt_sk(subkey, cipher, key)
    return pkesk, key


@pytest.fixture
def wrap_session_key():
    """Build a PKESK for a subkey packet with PGPy; returns (pkesk, session key)"""
    return _wrap_session_key
