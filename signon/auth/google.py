from __future__ import annotations

import logging
from typing import Any, Dict
from urllib.parse import urlencode

import requests
from pydantic import ValidationError

from signon.auth.config import AuthConfig
from signon.auth.models import GoogleProfile

logger = logging.getLogger(__name__)

SCOPES = "openid email profile"


class ProviderError(RuntimeError):
    """The identity provider could not complete the code exchange or profile fetch."""


def build_authorize_url(cfg: AuthConfig) -> str:
    """
    Build the Google consent URL for the Authorization Code flow.
    Pure string construction; no network call.
    """
    if not cfg.google_client_id:
        raise ValueError("Google client ID not configured")

    params = {
        "client_id": cfg.google_client_id,
        "redirect_uri": cfg.redirect_uri,
        "prompt": "consent",
        "response_type": "code",
        "scope": SCOPES,
        "access_type": "offline",
    }
    return f"{cfg.authorize_url}?{urlencode(params)}"


def _json_object(r: requests.Response, what: str) -> Dict[str, Any]:
    try:
        data = r.json()
    except ValueError as e:
        raise ProviderError(f"Invalid {what} response (not JSON)") from e
    if not isinstance(data, dict):
        raise ProviderError(f"Invalid {what} response")
    return data


def exchange_code_for_tokens(cfg: AuthConfig, *, code: str) -> Dict[str, Any]:
    """
    Exchange an authorization code for tokens.

    The redirect URI must be byte-identical to the one used in the authorize request.
    """
    if not cfg.google_enabled:
        raise ProviderError("Google client ID/secret not configured")

    payload = {
        "code": code,
        "grant_type": "authorization_code",
        "client_id": cfg.google_client_id,
        "client_secret": cfg.google_client_secret,
        "redirect_uri": cfg.redirect_uri,
    }
    try:
        r = requests.post(cfg.token_url, data=payload, timeout=cfg.http_timeout_seconds)
    except requests.RequestException as e:
        raise ProviderError(f"Token exchange failed ({type(e).__name__})") from e
    if r.status_code >= 400:
        # Avoid leaking sensitive info; include minimal context.
        raise ProviderError(f"Token exchange failed (status={r.status_code})")
    data = _json_object(r, "token")
    if not str(data.get("access_token") or "").strip():
        raise ProviderError("Token response missing access_token")
    return data


def fetch_userinfo(cfg: AuthConfig, *, access_token: str) -> GoogleProfile:
    try:
        r = requests.get(
            cfg.userinfo_url,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=cfg.http_timeout_seconds,
        )
    except requests.RequestException as e:
        raise ProviderError(f"Userinfo request failed ({type(e).__name__})") from e
    if r.status_code >= 400:
        raise ProviderError(f"Userinfo request failed (status={r.status_code})")
    data = _json_object(r, "userinfo")
    try:
        return GoogleProfile.model_validate(data)
    except ValidationError as e:
        raise ProviderError("Userinfo response missing email") from e


def fetch_profile_for_code(cfg: AuthConfig, *, code: str) -> GoogleProfile:
    """Code -> access token -> profile. Raises ProviderError on any failure."""
    tokens = exchange_code_for_tokens(cfg, code=code)
    profile = fetch_userinfo(cfg, access_token=str(tokens["access_token"]).strip())
    logger.debug("Fetched Google profile (google_id=%s)", profile.id)
    return profile
