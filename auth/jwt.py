"""
Signed-token helpers.

Tokens are base64-encoded JSON payloads with an ``exp`` claim, signed with
HMAC-SHA256. Used for API bearer tokens (``config.jwt_secret``) and for the
OAuth ``state`` parameter (``config.oauth_state_secret``).
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from base64 import urlsafe_b64decode, urlsafe_b64encode
from typing import Any, Dict

from fastapi import HTTPException, status

from config.settings import config


def sign_payload(payload: Dict[str, Any], secret: str, ttl_seconds: int) -> str:
    body = dict(payload, exp=int(time.time()) + ttl_seconds)
    raw = json.dumps(body, sort_keys=True).encode()
    sig = hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
    return urlsafe_b64encode(raw).decode() + "." + sig


def verify_payload(token: str, secret: str) -> Dict[str, Any]:
    """Return the payload of a valid, unexpired token. Raises ``ValueError`` otherwise."""
    parts = token.split(".", 1)
    if len(parts) != 2:
        raise ValueError("bad format")
    try:
        raw = urlsafe_b64decode(parts[0].encode())
    except (ValueError, TypeError) as exc:
        raise ValueError("bad encoding") from exc
    expected_sig = hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(parts[1], expected_sig):
        raise ValueError("bad signature")
    payload = json.loads(raw)
    if payload.get("exp", 0) < time.time():
        raise ValueError("token expired")
    return payload


def create_token(user_id: str) -> str:
    """Create a bearer token for ``user_id``."""
    return sign_payload({"user_id": user_id}, config.jwt_secret, config.jwt_expiry_seconds)


def verify_token(token: str) -> str:
    """
    Verify a bearer token and return ``user_id``.

    Raises ``HTTPException(401)`` on invalid or expired tokens.
    """
    try:
        return verify_payload(token, config.jwt_secret)["user_id"]
    except (ValueError, KeyError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid or expired token: {exc}",
        )
