from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import time
import uuid


def sign_token(token: str, secret: str) -> str:
    """Signature the login form expects: sha256(token + secret) as hex."""
    return hashlib.sha256((token + secret).encode("utf-8")).hexdigest()


def generate_totp(secret: str, timestamp: float | None = None, *, interval: int = 30, digits: int = 6) -> str:
    """RFC 6238 code (HMAC-SHA1) for a base32 ``secret``, as authenticator apps show it."""
    if timestamp is None:
        timestamp = time.time()
    normalized = secret.replace(" ", "").upper()
    padded = normalized + "=" * ((8 - len(normalized) % 8) % 8)
    try:
        key = base64.b32decode(padded, casefold=True)
    except ValueError as e:
        raise ValueError("TOTP secret is not valid base32") from e
    counter = int(timestamp // interval).to_bytes(8, "big")
    digest = hmac.new(key, counter, hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    code_int = (int.from_bytes(digest[offset : offset + 4], "big") & 0x7FFFFFFF) % (10**digits)
    return str(code_int).zfill(digits)


def new_nonce() -> str:
    return secrets.token_hex(16)


def new_request_id() -> str:
    return str(uuid.uuid4())
