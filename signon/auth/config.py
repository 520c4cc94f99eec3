"""
Authentication configuration, loaded from the environment.

Google OAuth client credentials and the cookie signing key are required at request
time; the service still starts without them so health checks keep working.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://accounts.google.com/o/oauth2/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

DEFAULT_REDIRECT_URI = "http://localhost:3000/google/callback"

# 90 days.
DEFAULT_SESSION_TTL_SECONDS = 90 * 24 * 3600


@dataclass(frozen=True)
class AuthConfig:
    # Google OAuth client
    google_client_id: Optional[str]
    google_client_secret: Optional[str]
    redirect_uri: str  # Must match the redirect URI registered with Google

    # Provider endpoints (overridable for tests / proxies)
    authorize_url: str
    token_url: str
    userinfo_url: str

    # Session configuration
    cookie_secret: Optional[str]  # Required for session signing
    session_ttl_seconds: int
    cookie_secure: bool
    sweep_interval_seconds: int  # 0 disables the background sweeper

    http_timeout_seconds: float

    @property
    def google_enabled(self) -> bool:
        """Google login is usable once client id and secret are configured."""
        return bool(self.google_client_id and self.google_client_secret)


def _env_str(name: str) -> Optional[str]:
    return (os.getenv(name, "") or "").strip() or None


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load authentication configuration from environment variables.

    COOKIE_SECRET, GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are required for logins.
    GOOGLE_REDIRECT_URI defaults to the local development callback.
    """
    redirect_uri = _env_str("GOOGLE_REDIRECT_URI") or DEFAULT_REDIRECT_URI

    cookie_secure_env = (os.getenv("AUTH_COOKIE_SECURE", "") or "").strip().lower()
    if cookie_secure_env in ("1", "true", "yes", "on"):
        cookie_secure = True
    elif cookie_secure_env in ("0", "false", "no", "off"):
        cookie_secure = False
    else:
        # Default: secure cookies when the callback is served over https; otherwise allow local dev.
        cookie_secure = redirect_uri.startswith("https://")

    ttl = _env_int("AUTH_SESSION_TTL_SECONDS", DEFAULT_SESSION_TTL_SECONDS)
    if ttl <= 60:
        ttl = 60

    timeout = _env_float("AUTH_HTTP_TIMEOUT_SECONDS", 10.0)
    if timeout <= 0:
        timeout = 10.0

    sweep = _env_int("SESSION_SWEEP_INTERVAL_SECONDS", 3600)
    if sweep < 0:
        sweep = 0

    return AuthConfig(
        google_client_id=_env_str("GOOGLE_CLIENT_ID"),
        google_client_secret=_env_str("GOOGLE_CLIENT_SECRET"),
        redirect_uri=redirect_uri,
        authorize_url=_env_str("GOOGLE_AUTHORIZE_URL") or GOOGLE_AUTHORIZE_URL,
        token_url=_env_str("GOOGLE_TOKEN_URL") or GOOGLE_TOKEN_URL,
        userinfo_url=_env_str("GOOGLE_USERINFO_URL") or GOOGLE_USERINFO_URL,
        cookie_secret=_env_str("COOKIE_SECRET"),
        session_ttl_seconds=ttl,
        cookie_secure=cookie_secure,
        sweep_interval_seconds=sweep,
        http_timeout_seconds=timeout,
    )
