"""OpenPGP (RFC 4880 v4) keys and messages built on PGPy, with private-key steps behind key providers."""
from .armor import MESSAGE, PUBLIC_KEY_BLOCK, SIGNATURE, armor, dearmor, is_armored, unarmor_if_needed
from .certificate import Certificate, load_certificates
from .keys import describe_algorithm, hasher, key_packet
from .packets import literal_packet, read_packets
from .session import decode_session_key, ecdh_unwrap
from .signature import complete, new_signature, verify_signature

__all__ = [
    "MESSAGE",
    "PUBLIC_KEY_BLOCK",
    "SIGNATURE",
    "armor",
    "dearmor",
    "is_armored",
    "unarmor_if_needed",
    "Certificate",
    "load_certificates",
    "describe_algorithm",
    "hasher",
    "key_packet",
    "literal_packet",
    "read_packets",
    "decode_session_key",
    "ecdh_unwrap",
    "complete",
    "new_signature",
    "verify_signature",
]
