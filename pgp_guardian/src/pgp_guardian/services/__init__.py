from .certificate import CertificateAssembler
from .inspect import dump_packets, inspect
from .key_manager import BackendSpec, KeyManager
from .message import DecryptionResult, MessageEngine, SignatureCheck, VerificationResult

__all__ = [
    "BackendSpec",
    "CertificateAssembler",
    "DecryptionResult",
    "KeyManager",
    "MessageEngine",
    "SignatureCheck",
    "VerificationResult",
    "dump_packets",
    "inspect",
]
