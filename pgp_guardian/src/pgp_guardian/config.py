# Configuration for the application (keystore directory, custodian endpoint, defaults).

from .utils.config import (
    AppConfig,
    AuditConfig,
    CONFIG,
    CryptoDefaults,
    CustodianConfig,
    KdfConfig,
)

__all__ = ["AppConfig", "AuditConfig", "CONFIG", "CryptoDefaults", "CustodianConfig", "KdfConfig"]
