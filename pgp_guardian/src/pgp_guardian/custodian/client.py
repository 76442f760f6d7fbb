"""Synchronous httpx client for the key custodian API.

The client raises httpx exceptions and CustodianProtocolError unchanged;
translating them into provider error kinds is the remote provider's job.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Type, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from ..config import CustodianConfig
from ..models import KeySpec
from ..utils import b64d, b64e
from .models import (
    AgreeRequest,
    AgreeResponse,
    CreateKeyRequest,
    CustodianKey,
    DecryptRequest,
    DecryptResponse,
    MetadataRequest,
    SignRequest,
    SignResponse,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class CustodianProtocolError(Exception):
    """The custodian answered with something that is not a valid API response"""


class CustodianConfigError(Exception):
    """No usable endpoint or credentials were configured"""


def _decode(value: str, field: str) -> bytes:
    try:
        return b64d(value)
    except ValueError as exc:
        raise CustodianProtocolError(f"Field {field!r} is not valid base64") from exc


def _key_path(name: str, action: str = "") -> str:
    path = f"/keys/{quote(name, safe='')}"
    return f"{path}/{action}" if action else path


class CustodianClient:
    def __init__(
        self,
        endpoint: str,
        api_key: str,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self._client = httpx.Client(
            base_url=self.endpoint,
            headers={"Authorization": f"Bearer {api_key}", "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, cfg: CustodianConfig, *, transport: Optional[httpx.BaseTransport] = None) -> "CustodianClient":
        if not cfg.endpoint:
            raise CustodianConfigError("No custodian endpoint configured (PGG_CUSTODIAN_ENDPOINT)")
        if not cfg.api_key:
            raise CustodianConfigError("No custodian API key configured (PGG_CUSTODIAN_API_KEY)")
        return cls(cfg.endpoint, cfg.api_key, timeout=cfg.timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "CustodianClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _call(
        self,
        method: str,
        path: str,
        model: Type[ModelT],
        body: Optional[BaseModel] = None,
    ) -> ModelT:
        payload = body.model_dump(exclude_none=True) if body is not None else None
        logger.debug("custodian %s %s", method, path)
        response = self._client.request(method, path, json=payload)
        response.raise_for_status()
        try:
            return model.model_validate(response.json())
        except (ValidationError, ValueError) as exc:
            raise CustodianProtocolError(f"Invalid response to {method} {path}: {exc}") from exc

    # ----- Key objects -----
    def create_key(self, name: str, spec: KeySpec, ops: tuple[str, ...]) -> CustodianKey:
        request = CreateKeyRequest(name=name, kind=spec.kind, curve=spec.curve, size=spec.size, ops=list(ops))
        return self._call("POST", "/keys", CustodianKey, request)

    def get_key(self, name: str) -> CustodianKey:
        return self._call("GET", _key_path(name), CustodianKey)

    def set_metadata(self, name: str, metadata: Dict[str, Any]) -> CustodianKey:
        return self._call("PUT", _key_path(name, "metadata"), CustodianKey, MetadataRequest(metadata=metadata))

    def delete_key(self, name: str) -> None:
        path = _key_path(name)
        logger.debug("custodian DELETE %s", path)
        self._client.request("DELETE", path).raise_for_status()

    # ----- Private key operations -----
    def sign(self, name: str, hash_alg: str, digest: bytes) -> bytes:
        request = SignRequest(hash_alg=hash_alg, digest=b64e(digest))
        return _decode(self._call("POST", _key_path(name, "sign"), SignResponse, request).signature, "signature")

    def decrypt(self, name: str, ciphertext: bytes) -> bytes:
        request = DecryptRequest(ciphertext=b64e(ciphertext))
        return _decode(self._call("POST", _key_path(name, "decrypt"), DecryptResponse, request).plaintext, "plaintext")

    def agree(self, name: str, peer_public: bytes) -> bytes:
        request = AgreeRequest(public_key=b64e(peer_public))
        return _decode(self._call("POST", _key_path(name, "agree"), AgreeResponse, request).secret, "secret")
