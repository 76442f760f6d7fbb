from __future__ import annotations

from .config import AppConfig, AuditConfig, CONFIG, CryptoDefaults, CustodianConfig, KdfConfig
from .b64 import b64d, b64e

from .errors import (
    AppError,
    CertificateMismatch,
    CryptographicFailure,
    InvalidExpiration,
    KeyNotFound,
    MalformedMessage,
    ProviderRejected,
    ProviderUnavailable,
    constant_time_compare,
)

__all__ = [
    "b64e",
    "b64d",
    "AppConfig",
    "AuditConfig",
    "CONFIG",
    "CryptoDefaults",
    "CustodianConfig",
    "KdfConfig",
    "AppError",
    "CertificateMismatch",
    "CryptographicFailure",
    "InvalidExpiration",
    "KeyNotFound",
    "MalformedMessage",
    "ProviderRejected",
    "ProviderUnavailable",
    "constant_time_compare",
]
