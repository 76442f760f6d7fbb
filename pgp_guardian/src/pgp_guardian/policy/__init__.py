from .algorithms import NULL_POLICY, STANDARD_POLICY, AlgorithmPolicy, cipher_by_name, hash_by_name
from .expiration import (
    DEFAULT_EXPIRATION,
    ExpirationKind,
    ExpirationPolicy,
    ResolvedExpiration,
    format_duration,
    resolve,
)

__all__ = [
    "NULL_POLICY",
    "STANDARD_POLICY",
    "AlgorithmPolicy",
    "cipher_by_name",
    "hash_by_name",
    "DEFAULT_EXPIRATION",
    "ExpirationKind",
    "ExpirationPolicy",
    "ResolvedExpiration",
    "format_duration",
    "resolve",
]
