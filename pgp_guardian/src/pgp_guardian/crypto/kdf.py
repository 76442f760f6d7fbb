# Scrypt + AES-GCM sealing for private key files at rest.
from __future__ import annotations

import os
from typing import Any, Dict

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from ..config import KdfConfig
from ..utils import b64d, b64e
from ..utils.errors import CryptographicFailure


class ScryptKdf:
  def __init__(self, cfg: KdfConfig):
    self.cfg = cfg

  def random_salt(self) -> bytes:
    return os.urandom(self.cfg.salt_length)

  def derive(self, passphrase: bytes, salt: bytes) -> bytes:
    kdf = Scrypt(salt=salt, length=self.cfg.length, n=self.cfg.n, r=self.cfg.r, p=self.cfg.p)
    return kdf.derive(passphrase)

  def seal(self, plaintext: bytes, passphrase: bytes) -> Dict[str, Any]:
    salt = self.random_salt()
    nonce = os.urandom(12)
    ct = AESGCM(self.derive(passphrase, salt)).encrypt(nonce, plaintext, None)
    return {
      "v": 1,
      "alg": "AES-256-GCM",
      "kdf": self.cfg.as_dict(),
      "salt": b64e(salt),
      "nonce": b64e(nonce),
      "ct": b64e(ct),
    }

  def open(self, payload: Dict[str, Any], passphrase: bytes) -> bytes:
    params = payload.get("kdf", {})
    kdf = Scrypt(
      salt=b64d(payload["salt"]),
      length=params.get("length", self.cfg.length),
      n=params.get("n", self.cfg.n),
      r=params.get("r", self.cfg.r),
      p=params.get("p", self.cfg.p),
    )
    key = kdf.derive(passphrase)
    try:
      return AESGCM(key).decrypt(b64d(payload["nonce"]), b64d(payload["ct"]), None)
    except InvalidTag as exc:
      raise CryptographicFailure("Wrong passphrase or corrupted key file") from exc
