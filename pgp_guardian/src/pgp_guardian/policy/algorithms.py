from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet

from pgpy.constants import HashAlgorithm, SymmetricKeyAlgorithm

from ..utils.errors import CryptographicFailure

AES_CIPHERS = frozenset({SymmetricKeyAlgorithm.AES128, SymmetricKeyAlgorithm.AES192, SymmetricKeyAlgorithm.AES256})


def hash_by_name(name: str) -> HashAlgorithm:
    """Hash algorithm from a configured name such as "SHA512" or "sha-256" """
    try:
        return HashAlgorithm[name.upper().replace("-", "")]
    except KeyError:
        raise ValueError(f"Unknown hash algorithm: {name}") from None


def cipher_by_name(name: str) -> SymmetricKeyAlgorithm:
    try:
        return SymmetricKeyAlgorithm[name.upper().replace("-", "")]
    except KeyError:
        raise ValueError(f"Unknown symmetric algorithm: {name}") from None


@dataclass(frozen=True)
class AlgorithmPolicy:
    """Which algorithms signatures and envelopes may rely on"""

    rejected_hashes: FrozenSet[HashAlgorithm] = field(
        default_factory=lambda: frozenset({HashAlgorithm.MD5, HashAlgorithm.SHA1, HashAlgorithm.RIPEMD160})
    )
    accepted_ciphers: FrozenSet[SymmetricKeyAlgorithm] = AES_CIPHERS

    def check_hash(self, algorithm: HashAlgorithm) -> None:
        if algorithm in self.rejected_hashes:
            raise CryptographicFailure(f"Hash algorithm {algorithm.name} is not accepted")

    def check_cipher(self, algorithm: SymmetricKeyAlgorithm) -> None:
        if algorithm not in self.accepted_ciphers:
            raise CryptographicFailure(f"Cipher {algorithm.name} is not accepted")


STANDARD_POLICY = AlgorithmPolicy()
# Accepts every hash PGPy and cryptography can compute; for old archives only.
NULL_POLICY = AlgorithmPolicy(rejected_hashes=frozenset())
