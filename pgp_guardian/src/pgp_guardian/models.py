# Typed models shared by providers and services (KeyHandle, CipherSuite, KeySpec).

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Literal, Optional, Tuple

Backend = Literal["local", "remote"]


@dataclass(frozen=True)
class KeyHandle:
    """Opaque reference to a key pair held by one backend"""
    backend: Backend
    name: str

    def __str__(self) -> str:
        return f"{self.backend}:{self.name}"


@dataclass(frozen=True)
class KeySpec:
    """What to generate for one OpenPGP key slot"""
    kind: Literal["rsa", "ec", "ed25519", "x25519"]
    curve: Optional[str] = None
    size: Optional[int] = None


class CipherSuite(str, Enum):
    CV25519 = "cv25519"
    NISTP256 = "nistp256"
    NISTP384 = "nistp384"
    NISTP521 = "nistp521"
    RSA2K = "rsa2k"
    RSA3K = "rsa3k"
    RSA4K = "rsa4k"

    @property
    def specs(self) -> Tuple[KeySpec, KeySpec]:
        """(primary signing key, encryption subkey)"""
        return _SUITES[self]

    @classmethod
    def parse(cls, value: str) -> "CipherSuite":
        try:
            return cls(value.lower())
        except ValueError:
            choices = ", ".join(s.value for s in cls)
            raise ValueError(f"Unknown cipher suite {value!r} (choose from {choices})") from None


_SUITES = {
    CipherSuite.CV25519: (KeySpec("ed25519"), KeySpec("x25519")),
    CipherSuite.NISTP256: (KeySpec("ec", curve="P-256"), KeySpec("ec", curve="P-256")),
    CipherSuite.NISTP384: (KeySpec("ec", curve="P-384"), KeySpec("ec", curve="P-384")),
    CipherSuite.NISTP521: (KeySpec("ec", curve="P-521"), KeySpec("ec", curve="P-521")),
    CipherSuite.RSA2K: (KeySpec("rsa", size=2048), KeySpec("rsa", size=2048)),
    CipherSuite.RSA3K: (KeySpec("rsa", size=3072), KeySpec("rsa", size=3072)),
    CipherSuite.RSA4K: (KeySpec("rsa", size=4096), KeySpec("rsa", size=4096)),
}

@dataclass(slots=True)
class KeyInfo:
    """Listing entry for a stored key"""
    handle: KeyHandle
    suite: str
    created_at: int = 0
    fingerprint: Optional[str] = None
    userid: Optional[str] = None


__all__ = ["Backend", "CipherSuite", "KeyHandle", "KeyInfo", "KeySpec"]
