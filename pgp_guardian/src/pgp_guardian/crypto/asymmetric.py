"""Asymmetric primitives behind the local key provider.

Each helper works on `cryptography` private key objects and produces the
raw backend outputs the OpenPGP layer encodes: PKCS#1 v1.5 signature bytes
for RSA, DER for ECDSA, R||S for Ed25519.
"""

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, padding, rsa, x25519
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed

from ..models import KeySpec

_CURVES = {"P-256": ec.SECP256R1, "P-384": ec.SECP384R1, "P-521": ec.SECP521R1}


def generate_private_key(spec: KeySpec):
    if spec.kind == "rsa":
        return rsa.generate_private_key(public_exponent=65537, key_size=spec.size or 3072)
    if spec.kind == "ec":
        try:
            curve = _CURVES[spec.curve or "P-256"]
        except KeyError:
            raise ValueError(f"Unsupported curve: {spec.curve}") from None
        return ec.generate_private_key(curve())
    if spec.kind == "ed25519":
        return ed25519.Ed25519PrivateKey.generate()
    if spec.kind == "x25519":
        return x25519.X25519PrivateKey.generate()
    raise ValueError(f"Unsupported key kind: {spec.kind}")


def private_pem(priv, passphrase: bytes | None = None) -> bytes:
    if passphrase:
        encryption = serialization.BestAvailableEncryption(passphrase)
    else:
        encryption = serialization.NoEncryption()

    return priv.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        encryption,
    )


def load_private_pem(pem: bytes, passphrase: bytes | None = None):
    return serialization.load_pem_private_key(pem, password=passphrase)


def sign_digest(priv, digest: bytes, hash_alg: hashes.HashAlgorithm) -> bytes:
    if isinstance(priv, rsa.RSAPrivateKey):
        return priv.sign(digest, padding.PKCS1v15(), Prehashed(hash_alg))
    if isinstance(priv, ec.EllipticCurvePrivateKey):
        return priv.sign(digest, ec.ECDSA(Prehashed(hash_alg)))
    if isinstance(priv, ed25519.Ed25519PrivateKey):
        # OpenPGP EdDSA signs the digest itself as the message.
        return priv.sign(digest)
    raise ValueError(f"{type(priv).__name__} cannot sign")


def rsa_decrypt(priv, ciphertext: bytes) -> bytes:
    if not isinstance(priv, rsa.RSAPrivateKey):
        raise ValueError(f"{type(priv).__name__} cannot RSA-decrypt")
    return priv.decrypt(ciphertext, padding.PKCS1v15())


def agree(priv, peer: bytes) -> bytes:
    """ECDH with a peer public value (X9.62 point, or raw 32 bytes for X25519)"""
    if isinstance(priv, x25519.X25519PrivateKey):
        return priv.exchange(x25519.X25519PublicKey.from_public_bytes(peer))
    if isinstance(priv, ec.EllipticCurvePrivateKey):
        public = ec.EllipticCurvePublicKey.from_encoded_point(priv.curve, peer)
        return priv.exchange(ec.ECDH(), public)
    raise ValueError(f"{type(priv).__name__} cannot perform key agreement")
