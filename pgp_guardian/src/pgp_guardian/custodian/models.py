"""Wire models of the key custodian HTTP API."""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from ..utils import b64d

KeyKind = Literal["rsa", "ec", "ed25519", "x25519"]


class CustodianKey(BaseModel):
    name: str
    kind: KeyKind
    curve: Optional[str] = None
    size: Optional[int] = None
    public_key: str  #* base64url SubjectPublicKeyInfo DER
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def public_der(self) -> bytes:
        return b64d(self.public_key)


class CreateKeyRequest(BaseModel):
    name: str
    kind: KeyKind
    curve: Optional[str] = None
    size: Optional[int] = None
    ops: List[str] = Field(default_factory=list)


class MetadataRequest(BaseModel):
    metadata: Dict[str, Any]


class SignRequest(BaseModel):
    hash_alg: str
    digest: str


class SignResponse(BaseModel):
    signature: str


class DecryptRequest(BaseModel):
    ciphertext: str


class DecryptResponse(BaseModel):
    plaintext: str


class AgreeRequest(BaseModel):
    public_key: str


class AgreeResponse(BaseModel):
    secret: str


__all__ = [
    "AgreeRequest",
    "AgreeResponse",
    "CreateKeyRequest",
    "CustodianKey",
    "DecryptRequest",
    "DecryptResponse",
    "KeyKind",
    "MetadataRequest",
    "SignRequest",
    "SignResponse",
]
