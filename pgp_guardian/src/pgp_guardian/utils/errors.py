from __future__ import annotations

import secrets


class AppError(Exception):
    """Base exception for PGP Guardian"""

    kind = "AppError"
    retryable = False

    def __init__(self, message: str = "", *, identity: str | None = None) -> None:
        super().__init__(message)
        self.identity = identity

    def describe(self) -> str:
        text = f"{self.kind}: {self}"
        if self.identity:
            text += f" [{self.identity}]"
        return text


class InvalidExpiration(AppError):
    """Raised when an expiration resolves to a time not after creation"""

    kind = "InvalidExpiration"


class ProviderUnavailable(AppError):
    """Raised for transient key provider failures (network, timeout)"""

    kind = "ProviderUnavailable"
    retryable = True


class ProviderRejected(AppError):
    """Raised when a key provider denies an operation (auth, not found, policy)"""

    kind = "ProviderRejected"


class KeyNotFound(ProviderRejected):
    """Raised when a key identifier cannot be resolved"""


class CertificateMismatch(AppError):
    """Raised when key material matches none of the candidate certificates"""

    kind = "CertificateMismatch"


class CryptographicFailure(AppError):
    """Raised for malformed envelopes, unsupported algorithms or bad signatures"""

    kind = "CryptographicFailure"


class MalformedMessage(CryptographicFailure):
    """Raised when OpenPGP data cannot be parsed"""


def constant_time_compare(lhs: bytes | str, rhs: bytes | str) -> bool:
    """Compare two byte sequences without leaking timing information"""
    if isinstance(lhs, str):
        lhs = lhs.encode("utf-8")
    if isinstance(rhs, str):
        rhs = rhs.encode("utf-8")
    return secrets.compare_digest(lhs, rhs)


__all__ = [
    "AppError",
    "InvalidExpiration",
    "ProviderUnavailable",
    "ProviderRejected",
    "KeyNotFound",
    "CertificateMismatch",
    "CryptographicFailure",
    "MalformedMessage",
    "constant_time_compare",
]
