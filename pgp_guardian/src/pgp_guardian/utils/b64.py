import base64


def b64e(data: bytes) -> str:
    """URL-safe base64 for custodian payloads, no padding"""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64d(value: str | bytes) -> bytes:
    """Inverse of b64e; tolerates missing padding"""
    if isinstance(value, bytes):
        value = value.decode("ascii")
    pad = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + pad).encode("ascii"))
