from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

_STORE_ENV = "PGG_STORE_DIR"
_ENDPOINT_ENV = "PGG_CUSTODIAN_ENDPOINT"
_API_KEY_ENV = "PGG_CUSTODIAN_API_KEY"
_TIMEOUT_ENV = "PGG_CUSTODIAN_TIMEOUT"


def _default_store() -> Path:
    value = os.getenv(_STORE_ENV)
    if value:
        return Path(value).expanduser()

    return Path.home() / ".pgp_guardian"


def _default_timeout() -> float:
    value = os.getenv(_TIMEOUT_ENV)
    try:
        return float(value) if value else 30.0
    except ValueError:
        return 30.0


@dataclass(frozen=True)
class KdfConfig:
    """Parameters for sealing local private keys with scrypt"""

    algorithm: str = "scrypt"
    length: int = 32
    salt_length: int = 16
    n: int = 2**15
    r: int = 8
    p: int = 1

    def as_dict(self) -> Dict[str, Any]:
        return {
            "algorithm": self.algorithm,
            "length": self.length,
            "salt_length": self.salt_length,
            "n": self.n,
            "r": self.r,
            "p": self.p,
        }


@dataclass(frozen=True)
class CryptoDefaults:
    cipher_suite: str = "cv25519"
    hash_algorithm: str = "SHA512"
    symmetric_algorithm: str = "AES256"
    signer_workers: int = 4


@dataclass(frozen=True)
class CustodianConfig:
    endpoint: str | None = field(default_factory=lambda: os.getenv(_ENDPOINT_ENV))
    api_key: str | None = field(default_factory=lambda: os.getenv(_API_KEY_ENV))
    timeout: float = field(default_factory=_default_timeout)


@dataclass(frozen=True)
class AuditConfig:
    json_stdout: bool = True


@dataclass(frozen=True)
class AppConfig:
    store_dir: Path = field(default_factory=_default_store)
    kdf: KdfConfig = field(default_factory=KdfConfig)
    crypto: CryptoDefaults = field(default_factory=CryptoDefaults)
    custodian: CustodianConfig = field(default_factory=CustodianConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)


CONFIG = AppConfig()

__all__ = ["AppConfig", "AuditConfig", "CONFIG", "CryptoDefaults", "CustodianConfig", "KdfConfig"]
