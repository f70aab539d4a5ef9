"""
Password hashing and session tokens for the user endpoints.

Passwords on user records are stored as PBKDF2-HMAC-SHA256 digests in
the form ``salthex$hashhex``.  A successful ``/user/login`` returns an
HS256-signed token (``header.payload.signature``, base64url encoded)
whose ``exp`` claim is derived from
``settings.access_token_expire_minutes``.
"""

import base64
import hashlib
import hmac
import json
import os
import time
from typing import Any, Dict, Optional

from .config import settings

PBKDF2_ITERATIONS = 100_000


def _b64_url_encode(data: bytes) -> str:
    """Base64-url encode bytes without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("utf-8")


def _sign(message: bytes, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()


def create_access_token(claims: Dict[str, Any], expires_delta: Optional[int] = None) -> str:
    """Create a signed token carrying ``claims`` and an ``exp`` timestamp.

    Parameters
    ----------
    claims : dict
        Claims to embed, e.g. ``{"sub": "alice"}``.
    expires_delta : Optional[int]
        Lifetime in seconds.  Defaults to
        ``settings.access_token_expire_minutes * 60``.
    """
    payload = dict(claims)
    payload["exp"] = int(time.time()) + (expires_delta or settings.access_token_expire_minutes * 60)
    header = {"alg": "HS256", "typ": "JWT"}
    header_b64 = _b64_url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_b64 = _b64_url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
    signature_b64 = _b64_url_encode(_sign(signing_input, settings.secret_key))
    return f"{header_b64}.{payload_b64}.{signature_b64}"


def hash_password(password: str) -> str:
    """Hash a password with a fresh 16-byte salt."""
    salt = os.urandom(16)
    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return f"{salt.hex()}${dk.hex()}"


def is_password_hash(value: Any) -> bool:
    """Tell whether ``value`` already has the ``salthex$hashhex`` shape."""
    if not isinstance(value, str) or value.count("$") != 1:
        return False
    salt_hex, hash_hex = value.split("$")
    try:
        return len(bytes.fromhex(salt_hex)) == 16 and len(bytes.fromhex(hash_hex)) == 32
    except ValueError:
        return False


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Check a plain password against a stored ``salthex$hashhex`` string."""
    if not is_password_hash(hashed_password):
        return False
    salt_hex, hash_hex = hashed_password.split("$", 1)
    dk = hashlib.pbkdf2_hmac(
        "sha256", plain_password.encode("utf-8"), bytes.fromhex(salt_hex), PBKDF2_ITERATIONS
    )
    # Constant-time comparison.
    return hmac.compare_digest(dk, bytes.fromhex(hash_hex))


def is_builtin_admin(username: str, password: str) -> bool:
    """Check the credentials of the configured administrator account."""
    return hmac.compare_digest(
        username.encode("utf-8"), settings.admin_username.encode("utf-8")
    ) and hmac.compare_digest(password.encode("utf-8"), settings.admin_password.encode("utf-8"))
