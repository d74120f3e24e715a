"""
Request signing for the ycmd HTTP protocol.

Every request carries a base64 HMAC-SHA256 token derived from the session
secret, the HTTP method, the request path and the exact body bytes.
"""

from __future__ import annotations

import base64
import hashlib
import hmac


def _to_bytes(value: str | bytes | None) -> bytes:
    if value is None:
        return b""
    if isinstance(value, str):
        return value.encode("utf-8")
    return value


def create_hmac(value: str | bytes | None, secret: bytes) -> bytes:
    """Raw HMAC-SHA256 digest of a single value."""
    return hmac.new(secret, _to_bytes(value), hashlib.sha256).digest()


def compute_request_hmac(
    method: str, path: str, body: str | bytes | None, secret: bytes
) -> bytes:
    """Compute the authentication token for one request.

    The token is the HMAC of the concatenated raw HMACs of method, path and
    body. A missing body is signed as the empty string.
    """
    joined = b"".join(
        (
            create_hmac(method, secret),
            create_hmac(path, secret),
            create_hmac(body, secret),
        )
    )
    return create_hmac(joined, secret)


def request_signature(
    method: str, path: str, body: str | bytes | None, secret: bytes
) -> str:
    """Base64 text of the request token, as sent in the signature header."""
    return base64.b64encode(compute_request_hmac(method, path, body, secret)).decode("ascii")
