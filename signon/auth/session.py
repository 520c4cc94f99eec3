from __future__ import annotations

import hashlib
import hmac
from typing import Optional

from itsdangerous import BadSignature, Signer

from signon.auth.config import AuthConfig

SESSION_COOKIE_NAME = "token"
SESSION_SALT = "signon-session-v1"


def _signer(secret: str) -> Signer:
    return Signer(secret_key=secret, salt=SESSION_SALT, digest_method=hashlib.sha256)


def sign(identifier: str, secret: str) -> str:
    """
    Return `<identifier>.<signature>` for a session id.

    The id stays readable; the HMAC only proves the value came from this service.
    """
    if not secret:
        raise ValueError("Cookie secret is not configured")
    return _signer(secret).sign(identifier).decode("utf-8")


def verify(token: Optional[str], secret: Optional[str]) -> Optional[str]:
    """Return the session id embedded in `token`, or None if the signature does not match."""
    if not token or not secret:
        return None
    signer = _signer(secret)
    raw = token.encode("utf-8")
    try:
        value = signer.unsign(raw)
    except BadSignature:
        return None
    # base64 decoding ignores trailing pad bits; require the canonical encoding too.
    if not hmac.compare_digest(signer.sign(value), raw):
        return None
    try:
        identifier = value.decode("utf-8")
    except UnicodeDecodeError:
        return None
    return identifier or None


def session_cookie_kwargs(cfg: AuthConfig, value: str) -> dict:
    return {
        "key": SESSION_COOKIE_NAME,
        "value": value,
        "max_age": cfg.session_ttl_seconds,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }
